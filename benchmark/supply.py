"""
Нагрузка «создание продукта» для чейнкода supply.

Модуль-колбэк бенчмарка: init() получает адаптер блокчейна и контекст,
каждый run() отправляет одну транзакцию initProduct со сгенерированными
параметрами, end() завершает раунд.
"""
import os

info = "Creating product..."

ID = ["1q2", "1w2", "a12", "dd4"]
OWNERS = ["Alice", "Bob", "Claire", "David"]

CONTRACT_ID = "supply"
CONTRACT_VERSION = "v1"
INVOKE_TIMEOUT = 30

tx_index = 0
_bc = None
_context = None


def init(blockchain, context, args):
    """Запомнить адаптер и контекст раунда; счётчик транзакций продолжает расти между раундами."""
    global _bc, _context
    _bc = blockchain
    _context = context
    return None


def build_args(index, bc_type, pid=None):
    """Аргументы initProduct для транзакции с номером index."""
    pid = os.getpid() if pid is None else pid
    product_name = f"product_{index}_{pid}"
    product_id = ID[index % len(ID)]
    product_type = str(((index % 10) + 1) * 10)  # [10, 100]
    product_owner = OWNERS[index % len(OWNERS)]

    if bc_type == "fabric-ccp":
        return {
            "chaincodeFunction": "initProduct",
            "chaincodeArguments": [product_id, product_name, product_type, product_owner],
        }
    return {
        "verb": "initProduct",
        "name": product_name,
        "id": product_id,
        "type": product_type,
        "owner": product_owner,
    }


def run():
    global tx_index
    if _bc is None:
        raise RuntimeError("init() must be called before run()")
    tx_index += 1
    args = build_args(tx_index, getattr(_bc, "bc_type", ""))
    return _bc.invoke_smart_contract(_context, CONTRACT_ID, CONTRACT_VERSION, args, INVOKE_TIMEOUT)


def end():
    return None
