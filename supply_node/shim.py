"""
Интерфейс между чейнкодом и хостовой средой исполнения (shim).

Чейнкод видит мир только через ChaincodeStub: чтение/запись ключей,
составные ключи для индексов, rich query и историю изменений ключа.
Ответ чейнкода: Response со статусом 200 (успех) или 500 (ошибка).
"""
import time

OK = 200
ERROR_THRESHOLD = 400
ERROR = 500

# Разделители составного ключа (как у хоста: U+0000 и максимальная кодовая точка)
COMPOSITE_KEY_NAMESPACE = "\x00"
MIN_UNICODE_RUNE_VALUE = "\x00"
MAX_UNICODE_RUNE_VALUE = "\U0010ffff"


class ShimError(Exception):
    """Ошибка хоста: недоступное состояние, некорректный ключ и т.п."""


class QueryError(ShimError):
    """Некорректная строка rich query."""


class Response:
    """Ответ чейнкода: статус, сообщение об ошибке и полезная нагрузка (bytes)."""

    def __init__(self, status, message="", payload=None):
        self.status = status
        self.message = message
        self.payload = payload

    @property
    def ok(self):
        return self.status < ERROR_THRESHOLD

    def to_dict(self):
        payload = self.payload.decode("utf-8") if self.payload else ""
        return {"status": self.status, "message": self.message, "payload": payload}

    def __repr__(self):
        return f"Response(status={self.status}, message={self.message!r}, payload={self.payload!r})"


def success(payload=None):
    return Response(OK, "", payload)


def error(message):
    return Response(ERROR, message, None)


class KV:
    """Запись результата запроса: ключ и значение в состоянии."""

    __slots__ = ("key", "value", "namespace")

    def __init__(self, key, value, namespace=""):
        self.key = key
        self.value = value
        self.namespace = namespace


class KeyModification:
    """Одна версия ключа в истории: транзакция, значение, время (секунды, наносекунды), удаление."""

    __slots__ = ("tx_id", "value", "timestamp", "is_delete")

    def __init__(self, tx_id, value, timestamp, is_delete=False):
        self.tx_id = tx_id
        self.value = value
        self.timestamp = timestamp
        self.is_delete = is_delete


class ResultsIterator:
    """
    Итератор результатов хоста. Поддерживает и стиль has_next()/next(),
    и обычную итерацию; после close() новых элементов не выдаёт.
    """

    def __init__(self, items):
        self._items = list(items)
        self._pos = 0
        self._closed = False

    def has_next(self):
        return not self._closed and self._pos < len(self._items)

    def next(self):
        if not self.has_next():
            raise ShimError("iterator exhausted or closed")
        item = self._items[self._pos]
        self._pos += 1
        return item

    def close(self):
        self._closed = True

    def __iter__(self):
        while self.has_next():
            yield self.next()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()
        return False


def _validate_composite_key_attribute(value):
    if not isinstance(value, str):
        raise ShimError(f"composite key attribute must be a string, got {type(value).__name__}")
    for ch in (MIN_UNICODE_RUNE_VALUE, MAX_UNICODE_RUNE_VALUE):
        if ch in value:
            raise ShimError(
                f"input contains unicode {ch!r} at position {value.index(ch)}: "
                "U+0000 and U+10FFFF are not allowed in composite key attributes"
            )


def create_composite_key(object_type, attributes):
    """Составной ключ: \\x00 objectType \\x00 attr1 \\x00 ... attrN \\x00."""
    _validate_composite_key_attribute(object_type)
    key = COMPOSITE_KEY_NAMESPACE + object_type + MIN_UNICODE_RUNE_VALUE
    for attr in attributes:
        _validate_composite_key_attribute(attr)
        key += attr + MIN_UNICODE_RUNE_VALUE
    return key


def split_composite_key(composite_key):
    """Разбор составного ключа на (objectType, [атрибуты])."""
    if not composite_key.startswith(COMPOSITE_KEY_NAMESPACE):
        raise ShimError(f"not a composite key: {composite_key!r}")
    parts = composite_key[1:].split(MIN_UNICODE_RUNE_VALUE)
    # Последний элемент: пустая строка после завершающего разделителя
    if len(parts) < 2 or parts[-1] != "":
        raise ShimError(f"malformed composite key: {composite_key!r}")
    return parts[0], parts[1:-1]


def is_composite_key(key):
    return key.startswith(COMPOSITE_KEY_NAMESPACE)


def now_timestamp():
    """Текущее время транзакции в формате (seconds, nanos)."""
    ns = time.time_ns()
    return ns // 1_000_000_000, ns % 1_000_000_000


class ChaincodeStub:
    """
    Интерфейс, который хост предоставляет чейнкоду на время одной транзакции.
    Конкретная реализация: supply_node.ledger.MemoryStub.
    """

    def get_args(self):
        raise NotImplementedError

    def get_function_and_parameters(self):
        args = self.get_args()
        if not args:
            return "", []
        return args[0], list(args[1:])

    def get_tx_id(self):
        raise NotImplementedError

    def get_channel_id(self):
        raise NotImplementedError

    def get_tx_timestamp(self):
        raise NotImplementedError

    def get_state(self, key):
        raise NotImplementedError

    def put_state(self, key, value):
        raise NotImplementedError

    def del_state(self, key):
        raise NotImplementedError

    def create_composite_key(self, object_type, attributes):
        return create_composite_key(object_type, attributes)

    def split_composite_key(self, composite_key):
        return split_composite_key(composite_key)

    def get_state_by_partial_composite_key(self, object_type, attributes):
        raise NotImplementedError

    def get_query_result(self, query):
        raise NotImplementedError

    def get_history_for_key(self, key):
        raise NotImplementedError
