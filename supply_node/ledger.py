# In-memory реестр: хостовая среда для чейнкода в одном процессе.
# Каждая зафиксированная транзакция: отдельный блок с набором записей (write set);
# хеш блока связывает цепочку и используется только для проверки целостности.
#
# Консенсуса и политики одобрения нет: вызовы сериализуются одной блокировкой,
# запись фиксируется, только если чейнкод вернул успешный ответ.
import hashlib
import json
import os
import threading
import uuid

from supply_node import rich_query
from supply_node.logger_config import get_logger
from supply_node.shim import (
    ChaincodeStub,
    KV,
    KeyModification,
    ResultsIterator,
    ShimError,
    create_composite_key,
    error,
    is_composite_key,
    now_timestamp,
)

logger = get_logger("ledger")

DEFAULT_CHANNEL_ID = os.environ.get("CHANNEL_ID", "mychannel")


def _encode(value):
    return value.decode("latin-1") if value is not None else None


def _decode(value):
    return value.encode("latin-1") if value is not None else None


class Block:
    """Блок реестра: одна транзакция с её записями, время, хеш предыдущего блока, хеш блока."""

    def __init__(self, index, tx_id, channel_id, chaincode, function, args, writes, timestamp, previous_hash):
        self.index = index
        self.tx_id = tx_id
        self.channel_id = channel_id
        self.chaincode = chaincode
        self.function = function
        self.args = list(args)
        self.writes = writes  # [{"key": str, "value": str|None, "is_delete": bool}]
        self.timestamp = list(timestamp)
        self.previous_hash = previous_hash
        self.hash = self.calculate_hash()

    def calculate_hash(self):
        """Вычисление хеша блока из всех полей."""
        block_string = json.dumps({
            "index": self.index,
            "tx_id": self.tx_id,
            "channel_id": self.channel_id,
            "chaincode": self.chaincode,
            "function": self.function,
            "args": self.args,
            "writes": self.writes,
            "timestamp": self.timestamp,
            "previous_hash": self.previous_hash,
        }, sort_keys=True)
        return hashlib.sha256(block_string.encode()).hexdigest()

    def to_dict(self):
        return dict(self.__dict__)

    @classmethod
    def from_dict(cls, data):
        return cls(
            data["index"],
            data["tx_id"],
            data["channel_id"],
            data["chaincode"],
            data["function"],
            data["args"],
            data["writes"],
            data["timestamp"],
            data["previous_hash"],
        )


class MemoryStub(ChaincodeStub):
    """
    Stub одной транзакции. Чтения видят только зафиксированное состояние
    (свои же незафиксированные записи не видны), записи копятся в write set.
    """

    def __init__(self, ledger, args, tx_id=None, channel_id=None, timestamp=None):
        self._ledger = ledger
        self._args = [str(a) for a in args]
        self._tx_id = tx_id or uuid.uuid4().hex
        self._channel_id = channel_id or ledger.channel_id
        self._timestamp = timestamp or now_timestamp()
        self.writes = {}  # key -> bytes | None (None = удаление)

    def get_args(self):
        return list(self._args)

    def get_tx_id(self):
        return self._tx_id

    def get_channel_id(self):
        return self._channel_id

    def get_tx_timestamp(self):
        return self._timestamp

    def get_state(self, key):
        _check_key(key)
        return self._ledger.get_committed(key)

    def put_state(self, key, value):
        _check_key(key)
        if value is None:
            raise ShimError(f"value for key {key!r} must not be nil")
        if isinstance(value, str):
            value = value.encode("utf-8")
        self.writes[key] = bytes(value)

    def del_state(self, key):
        _check_key(key)
        self.writes[key] = None

    def get_state_by_partial_composite_key(self, object_type, attributes):
        prefix = create_composite_key(object_type, attributes)
        items = [KV(k, v) for k, v in self._ledger.committed_items() if k.startswith(prefix)]
        return ResultsIterator(items)

    def get_query_result(self, query):
        entries = [(k, v) for k, v in self._ledger.committed_items() if not is_composite_key(k)]
        return ResultsIterator(rich_query.execute(entries, query))

    def get_history_for_key(self, key):
        _check_key(key)
        return ResultsIterator(self._ledger.history(key))


def _check_key(key):
    if not isinstance(key, str) or not key:
        raise ShimError("key must not be an empty string")
    try:
        key.encode("utf-8")
    except UnicodeEncodeError:
        raise ShimError(f"key {key!r} is not a valid utf8 string") from None


class Ledger:
    """Зафиксированное мировое состояние, история ключей и цепочка блоков."""

    def __init__(self, channel_id=None):
        self.channel_id = channel_id or DEFAULT_CHANNEL_ID
        self._lock = threading.RLock()
        self._state = {}  # key -> bytes
        self._history = {}  # key -> [KeyModification]
        self.chain = []

    # --- Чтение зафиксированного состояния ---

    def get_committed(self, key):
        with self._lock:
            return self._state.get(key)

    def committed_items(self):
        """Снимок пар (key, value), отсортированный по ключу."""
        with self._lock:
            return sorted(self._state.items())

    def history(self, key):
        with self._lock:
            return list(self._history.get(key, []))

    @property
    def height(self):
        return len(self.chain)

    def get_last_block(self):
        return self.chain[-1] if self.chain else None

    # --- Транзакции ---

    def new_stub(self, args, tx_id=None, timestamp=None):
        return MemoryStub(self, args, tx_id=tx_id, timestamp=timestamp)

    def invoke(self, chaincode, args, chaincode_name="supply", tx_id=None):
        """
        Выполнить транзакцию и зафиксировать write set при успешном ответе.
        Возвращает (response, tx_id).
        """
        with self._lock:
            stub = self.new_stub(args, tx_id=tx_id)
            response = self._execute(chaincode, stub)
            if response.ok and stub.writes:
                self._commit(stub, chaincode_name)
            elif not response.ok:
                logger.info("tx_rejected: tx_id=%s message=%s", stub.get_tx_id(), response.message)
            return response, stub.get_tx_id()

    def query(self, chaincode, args, tx_id=None):
        """Выполнить чейнкод без фиксации записей (evaluate). Возвращает (response, tx_id)."""
        stub = self.new_stub(args, tx_id=tx_id)
        response = self._execute(chaincode, stub)
        return response, stub.get_tx_id()

    def _execute(self, chaincode, stub):
        try:
            return chaincode.invoke(stub)
        except Exception as e:
            logger.exception("chaincode_panic: tx_id=%s", stub.get_tx_id())
            return error(f"chaincode execution failed: {e}")

    def _commit(self, stub, chaincode_name):
        function, params = stub.get_function_and_parameters()
        writes = []
        for key in sorted(stub.writes):
            value = stub.writes[key]
            is_delete = value is None
            if is_delete:
                self._state.pop(key, None)
            else:
                self._state[key] = value
            self._history.setdefault(key, []).append(
                KeyModification(stub.get_tx_id(), value, stub.get_tx_timestamp(), is_delete)
            )
            writes.append({"key": key, "value": _encode(value), "is_delete": is_delete})
        last = self.get_last_block()
        block = Block(
            index=len(self.chain),
            tx_id=stub.get_tx_id(),
            channel_id=stub.get_channel_id(),
            chaincode=chaincode_name,
            function=function,
            args=params,
            writes=writes,
            timestamp=stub.get_tx_timestamp(),
            previous_hash=last.hash if last else "0",
        )
        self.chain.append(block)
        logger.debug("block_committed: index=%s tx_id=%s writes=%s", block.index, block.tx_id, len(writes))
        return block

    # --- Целостность и сохранение ---

    def verify_chain(self):
        """Проверка цепочки: индексы, previous_hash и пересчитанные хеши. Возвращает (ok, err)."""
        previous_hash = "0"
        for i, block in enumerate(self.chain):
            if block.index != i:
                return False, f"wrong index at block {i}"
            if block.previous_hash != previous_hash:
                return False, f"previous_hash mismatch at block {i}"
            if block.calculate_hash() != block.hash:
                return False, f"hash mismatch at block {i}"
            previous_hash = block.hash
        return True, None

    def snapshot(self):
        with self._lock:
            return {"channel_id": self.channel_id, "chain": [b.to_dict() for b in self.chain]}

    def restore(self, data):
        """
        Восстановить реестр, проигрывая блоки снимка. Состояние и история
        пересчитываются из записей блоков; хеши проверяются.
        """
        chain = []
        previous_hash = "0"
        for i, block_dict in enumerate(data.get("chain", [])):
            block = Block.from_dict(block_dict)
            if block.index != i or block.previous_hash != previous_hash or block.hash != block_dict.get("hash"):
                raise ValueError(f"corrupted ledger snapshot at block {i}")
            chain.append(block)
            previous_hash = block.hash
        with self._lock:
            self.channel_id = data.get("channel_id", self.channel_id)
            self._state = {}
            self._history = {}
            for block in chain:
                for w in block.writes:
                    value = _decode(w["value"])
                    if w["is_delete"]:
                        self._state.pop(w["key"], None)
                    else:
                        self._state[w["key"]] = value
                    self._history.setdefault(w["key"], []).append(
                        KeyModification(block.tx_id, value, tuple(block.timestamp), w["is_delete"])
                    )
            self.chain = chain
        logger.info("ledger_restored: blocks=%s keys=%s", len(chain), len(self._state))

    def save(self, path):
        os.makedirs(os.path.dirname(os.path.abspath(path)), exist_ok=True)
        tmp_path = path + ".tmp"
        with open(tmp_path, "w", encoding="utf-8") as f:
            json.dump(self.snapshot(), f, indent=2)
        os.replace(tmp_path, path)

    def load(self, path):
        """Загрузить снимок из файла; отсутствующий файл: пустой реестр. Возвращает число блоков."""
        if not os.path.exists(path):
            return 0
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
        self.restore(data)
        return len(self.chain)
