# Чейнкод supply: продукты в мировом состоянии (создание, чтение, передача владельца,
# rich query и история изменений). Вся работа с хранилищем: через ChaincodeStub.
import json
import re
from datetime import datetime, timezone

from supply_node import shim
from supply_node.logger_config import get_logger
from supply_node.shim import ShimError

logger = get_logger("supply")

OBJECT_TYPE = "product"
# Индекс по (тип, имя) для range-запросов; значение записи индекса: один нулевой байт
TYPE_NAME_INDEX = "type~name"
INDEX_SENTINEL = b"\x00"

_ORDINALS = ("1st", "2nd", "3rd", "4th")

_LONE_SURROGATE = re.compile("[\ud800-\udfff]")
# Внутри JSON эти символы встречаются только в строках, поэтому замена безопасна
_HTML_ESCAPES = (
    ("<", "\\u003c"),
    (">", "\\u003e"),
    ("&", "\\u0026"),
    ("\u2028", "\\u2028"),
    ("\u2029", "\\u2029"),
)


def product_record(puid, pname, ptype, owner):
    """Запись продукта; порядок полей совпадает с форматом хранения."""
    return {
        "docType": OBJECT_TYPE,
        "puid": puid,
        "pname": pname,
        "ptype": ptype,
        "owner": owner,
    }


def marshal(record):
    """Компактный JSON в UTF-8 в том же виде, что отдаёт хост: HTML-символы и U+2028/U+2029
    экранируются, одиночные суррогаты заменяются на U+FFFD."""
    text = json.dumps(record, separators=(",", ":"), ensure_ascii=False)
    text = _LONE_SURROGATE.sub("\ufffd", text)
    for ch, escaped in _HTML_ESCAPES:
        text = text.replace(ch, escaped)
    return text.encode("utf-8")


def format_timestamp(seconds, nanos):
    """Время транзакции строкой в UTC: 2006-01-02 15:04:05.999999999 +0000 UTC (хвостовые нули дробной части отбрасываются)."""
    base = datetime.fromtimestamp(seconds, tz=timezone.utc).strftime("%Y-%m-%d %H:%M:%S")
    fraction = f"{nanos:09d}".rstrip("0")
    if fraction:
        base += "." + fraction
    return base + " +0000 UTC"


class SupplyChaincode:
    """Чейнкод продуктов. Ошибки возвращаются как shim.error, исключения наружу не выходят."""

    def __init__(self):
        self.functions = {
            "initProduct": self.init_product,
            "transferProduct": self.transfer_product,
            "readProduct": self.read_product,
            "queryProduct": self.query_product,
            "getHistoryForProduct": self.get_history_for_product,
        }

    def init(self, stub):
        return shim.success()

    def invoke(self, stub):
        function, args = stub.get_function_and_parameters()
        logger.debug("invoke_running: function=%s", function)
        handler = self.functions.get(function)
        if handler is None:
            logger.warning("invoke_unknown_function: %s", function)
            return shim.error("Received unknown function invocation")
        return handler(stub, args)

    def init_product(self, stub, args):
        """Создать продукт: (id, name, type, owner); name/type/owner приводятся к нижнему регистру."""
        if len(args) != 4:
            return shim.error("Incorrect number of arguments. Expecting 4")

        for ordinal, value in zip(_ORDINALS, args):
            if len(value) <= 0:
                return shim.error(f"{ordinal} argument must be a non-empty string")

        puid = args[0]
        logger.debug("init_product_start: puid=%s", puid)
        pname = args[1].lower()
        ptype = args[2].lower()
        owner = args[3].lower()

        # Проверка уникальности идентификатора
        try:
            existing = stub.get_state(puid)
        except ShimError as e:
            return shim.error(f"Failed to get product: {e}")
        if existing is not None:
            logger.info("init_product_exists: puid=%s", puid)
            return shim.error(f"This product already exists: {puid}")

        record = product_record(puid, pname, ptype, owner)
        try:
            stub.put_state(puid, marshal(record))
            index_key = stub.create_composite_key(TYPE_NAME_INDEX, [record["ptype"], record["pname"]])
            stub.put_state(index_key, INDEX_SENTINEL)
        except ShimError as e:
            return shim.error(str(e))

        logger.debug("init_product_end: puid=%s", puid)
        return shim.success()

    def read_product(self, stub, args):
        if len(args) != 1:
            return shim.error("Incorrect number of arguments. Expecting product ID of the product to query")

        puid = args[0]
        try:
            value = stub.get_state(puid)
        except ShimError:
            return shim.error(json.dumps({"Error": f"Failed to get state for {puid}"}, separators=(",", ":")))
        if value is None:
            return shim.error(json.dumps({"Error": f"Product does not exist: {puid}"}, separators=(",", ":")))
        return shim.success(value)

    def transfer_product(self, stub, args):
        """Сменить владельца продукта; остальные поля не меняются."""
        if len(args) < 2:
            return shim.error("Incorrect number of arguments. Expecting 2")

        puid = args[0]
        new_owner = args[1].lower()
        logger.debug("transfer_product_start: puid=%s new_owner=%s", puid, new_owner)

        try:
            value = stub.get_state(puid)
        except ShimError as e:
            return shim.error(f"Failed to get product:{e}")
        if value is None:
            return shim.error("Product does not exist")

        try:
            record = json.loads(value)
        except ValueError as e:
            return shim.error(str(e))
        if not isinstance(record, dict):
            return shim.error(f"stored value for {puid} is not a product")
        record["owner"] = new_owner

        try:
            stub.put_state(puid, marshal(record))
        except ShimError as e:
            return shim.error(str(e))

        logger.debug("transfer_product_end: puid=%s", puid)
        return shim.success()

    def query_product(self, stub, args):
        """Rich query; результат: JSON-массив [{"Key": ..., "Record": ...}]."""
        if len(args) < 1:
            return shim.error("Incorrect number of arguments. Expecting 1")
        try:
            payload = get_query_result_for_query_string(stub, args[0])
        except (ShimError, ValueError) as e:
            return shim.error(str(e))
        return shim.success(payload)

    def get_history_for_product(self, stub, args):
        if len(args) < 1:
            return shim.error("Incorrect number of arguments. Expecting 1")

        puid = args[0]
        logger.debug("get_history_start: puid=%s", puid)
        try:
            iterator = stub.get_history_for_key(puid)
        except ShimError as e:
            return shim.error(str(e))

        entries = []
        try:
            with iterator:
                for modification in iterator:
                    # Для удаления значение: null, иначе сама запись продукта
                    value = None if modification.is_delete else json.loads(modification.value)
                    entries.append({
                        "TxId": modification.tx_id,
                        "Value": value,
                        "Timestamp": format_timestamp(*modification.timestamp),
                        "IsDelete": "true" if modification.is_delete else "false",
                    })
        except (ShimError, ValueError) as e:
            return shim.error(str(e))

        logger.debug("get_history_done: puid=%s entries=%s", puid, len(entries))
        return shim.success(marshal(entries))


def get_query_result_for_query_string(stub, query_string):
    """Выполнить строку запроса и собрать JSON-массив результатов (bytes)."""
    logger.debug("query_string: %s", query_string)
    results = []
    with stub.get_query_result(query_string) as iterator:
        for kv in iterator:
            results.append({"Key": kv.key, "Record": json.loads(kv.value)})
    logger.debug("query_result_count: %s", len(results))
    return marshal(results)
