"""
Rich query по JSON-документам состояния (селекторы в стиле CouchDB Mango).

Строка запроса: JSON-объект:
    {"selector": {...}, "fields": [...], "sort": [...], "limit": N, "skip": N, "use_index": ...}

Участвуют только значения, которые декодируются в JSON-объект; записи индексов
составных ключей (значение 0x00) никогда не совпадают.
"""
import json
import re

from supply_node.shim import KV, QueryError

_MISSING = object()

COMBINATION_OPERATORS = ("$and", "$or", "$nor", "$not")
CONDITION_OPERATORS = (
    "$eq", "$ne", "$gt", "$gte", "$lt", "$lte",
    "$in", "$nin", "$exists", "$regex", "$size", "$all", "$elemMatch", "$not", "$type",
)
_TYPE_NAMES = {
    "null": (type(None),),
    "boolean": (bool,),
    "number": (int, float),
    "string": (str,),
    "array": (list,),
    "object": (dict,),
}


def parse_query(query_string):
    """Разбор и проверка строки запроса; возвращает dict с нормализованными полями."""
    try:
        query = json.loads(query_string)
    except (TypeError, ValueError) as e:
        raise QueryError(f"invalid query string: {e}") from e
    if not isinstance(query, dict):
        raise QueryError("query must be a JSON object")
    selector = query.get("selector")
    if not isinstance(selector, dict):
        raise QueryError("query must contain a 'selector' object")
    _validate_selector(selector)

    fields = query.get("fields")
    if fields is not None and (not isinstance(fields, list) or not all(isinstance(f, str) for f in fields)):
        raise QueryError("'fields' must be a list of field names")

    sort = _parse_sort(query.get("sort"))

    limit = query.get("limit")
    if limit is not None and (not isinstance(limit, int) or isinstance(limit, bool) or limit < 0):
        raise QueryError("'limit' must be a non-negative integer")
    skip = query.get("skip", 0)
    if not isinstance(skip, int) or isinstance(skip, bool) or skip < 0:
        raise QueryError("'skip' must be a non-negative integer")

    return {"selector": selector, "fields": fields, "sort": sort, "limit": limit, "skip": skip}


def _parse_sort(raw):
    if raw is None:
        return []
    if not isinstance(raw, list):
        raise QueryError("'sort' must be a list")
    out = []
    for item in raw:
        if isinstance(item, str):
            out.append((item, "asc"))
        elif isinstance(item, dict) and len(item) == 1:
            field, direction = next(iter(item.items()))
            if direction not in ("asc", "desc"):
                raise QueryError(f"invalid sort direction for {field!r}: {direction!r}")
            out.append((field, direction))
        else:
            raise QueryError(f"invalid sort entry: {item!r}")
    return out


def _validate_selector(selector):
    for key, cond in selector.items():
        if key in ("$and", "$or", "$nor"):
            if not isinstance(cond, list) or not all(isinstance(s, dict) for s in cond):
                raise QueryError(f"{key} expects a list of selectors")
            for sub in cond:
                _validate_selector(sub)
        elif key == "$not":
            if not isinstance(cond, dict):
                raise QueryError("$not expects a selector")
            _validate_selector(cond)
        elif key.startswith("$"):
            raise QueryError(f"unknown operator: {key}")
        else:
            _validate_condition(cond)


def _validate_condition(cond):
    if not isinstance(cond, dict):
        return
    if _is_operator_dict(cond):
        for op, arg in cond.items():
            if op not in CONDITION_OPERATORS:
                raise QueryError(f"unknown operator: {op}")
            if op in ("$in", "$nin", "$all") and not isinstance(arg, list):
                raise QueryError(f"{op} expects a list")
            if op == "$regex":
                if not isinstance(arg, str):
                    raise QueryError("$regex expects a string")
                try:
                    re.compile(arg)
                except re.error as e:
                    raise QueryError(f"invalid $regex: {e}") from e
            if op == "$type" and (not isinstance(arg, str) or arg not in _TYPE_NAMES):
                raise QueryError(f"unknown $type: {arg!r}")
            if op in ("$elemMatch", "$not"):
                if not isinstance(arg, dict):
                    raise QueryError(f"{op} expects an object")
                _validate_condition(arg)
    else:
        _validate_selector(cond)


def _is_operator_dict(cond):
    return bool(cond) and all(k.startswith("$") for k in cond)


def _split_path(path):
    return [part.replace("\\.", ".") for part in re.split(r"(?<!\\)\.", path)]


def resolve_field(doc, path):
    """Значение по точечному пути или _MISSING."""
    current = doc
    for part in _split_path(path):
        if isinstance(current, dict) and part in current:
            current = current[part]
        else:
            return _MISSING
    return current


def _is_number(value):
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _json_equal(a, b):
    # В JSON true и 1: разные значения
    if isinstance(a, bool) or isinstance(b, bool):
        return isinstance(a, bool) and isinstance(b, bool) and a == b
    return a == b


def _comparable(a, b):
    if _is_number(a) and _is_number(b):
        return True
    return isinstance(a, str) and isinstance(b, str)


def _apply_operator(value, op, arg):
    if op == "$exists":
        return (value is not _MISSING) == bool(arg)
    if value is _MISSING:
        return False
    if op == "$eq":
        return _json_equal(value, arg)
    if op == "$ne":
        return not _apply_operator(value, "$eq", arg)
    if op in ("$gt", "$gte", "$lt", "$lte"):
        if not _comparable(value, arg):
            return False
        if op == "$gt":
            return value > arg
        if op == "$gte":
            return value >= arg
        if op == "$lt":
            return value < arg
        return value <= arg
    if op == "$in":
        return any(_apply_operator(value, "$eq", item) for item in arg)
    if op == "$nin":
        return not _apply_operator(value, "$in", arg)
    if op == "$regex":
        return isinstance(value, str) and re.search(arg, value) is not None
    if op == "$size":
        return isinstance(value, list) and len(value) == arg
    if op == "$all":
        return isinstance(value, list) and all(
            any(_apply_operator(v, "$eq", item) for v in value) for item in arg
        )
    if op == "$elemMatch":
        return isinstance(value, list) and any(match_condition(v, arg) for v in value)
    if op == "$not":
        return not match_condition(value, arg)
    if op == "$type":
        types = _TYPE_NAMES[arg]
        if arg == "number":
            return _is_number(value)
        return isinstance(value, types)
    raise QueryError(f"unknown operator: {op}")


def match_condition(value, cond):
    if isinstance(cond, dict) and _is_operator_dict(cond):
        return all(_apply_operator(value, op, arg) for op, arg in cond.items())
    if isinstance(cond, dict):
        return isinstance(value, dict) and match_selector(value, cond)
    return _apply_operator(value, "$eq", cond)


def match_selector(doc, selector):
    """Совпадает ли документ с селектором (все условия через AND)."""
    for key, cond in selector.items():
        if key == "$and":
            if not all(match_selector(doc, sub) for sub in cond):
                return False
        elif key == "$or":
            if not any(match_selector(doc, sub) for sub in cond):
                return False
        elif key == "$nor":
            if any(match_selector(doc, sub) for sub in cond):
                return False
        elif key == "$not":
            if match_selector(doc, cond):
                return False
        else:
            if not match_condition(resolve_field(doc, key), cond):
                return False
    return True


def _collation_key(value):
    # Порядок типов как в CouchDB: null < false < true < числа < строки < массивы < объекты
    if value is _MISSING or value is None:
        return (0, 0)
    if value is False:
        return (1, 0)
    if value is True:
        return (2, 0)
    if _is_number(value):
        return (3, value)
    if isinstance(value, str):
        return (4, value)
    if isinstance(value, list):
        return (5, json.dumps(value, sort_keys=True))
    return (6, json.dumps(value, sort_keys=True))


def _project(doc, fields):
    out = {}
    for path in fields:
        value = resolve_field(doc, path)
        if value is _MISSING:
            continue
        parts = _split_path(path)
        target = out
        for part in parts[:-1]:
            target = target.setdefault(part, {})
        target[parts[-1]] = value
    return out


def execute(entries, query_string):
    """
    Выполнить запрос над парами (key, value_bytes), отсортированными по ключу.
    Возвращает список KV; без проекции значения возвращаются байт-в-байт.
    """
    query = parse_query(query_string)
    matched = []
    for key, raw in entries:
        try:
            doc = json.loads(raw)
        except (TypeError, ValueError, UnicodeDecodeError):
            continue
        if not isinstance(doc, dict):
            continue
        if match_selector(doc, query["selector"]):
            matched.append((key, raw, doc))

    # Стабильная сортировка: с последнего поля к первому
    for field, direction in reversed(query["sort"]):
        matched.sort(
            key=lambda item: _collation_key(resolve_field(item[2], field)),
            reverse=(direction == "desc"),
        )

    matched = matched[query["skip"]:]
    if query["limit"] is not None:
        matched = matched[:query["limit"]]

    results = []
    for key, raw, doc in matched:
        if query["fields"]:
            value = json.dumps(_project(doc, query["fields"]), separators=(",", ":")).encode("utf-8")
        else:
            value = raw
        results.append(KV(key, value))
    return results
