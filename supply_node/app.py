import json
import os
import threading
from functools import wraps

from flask import Flask, jsonify, request
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address

from supply_node.ledger import Ledger
from supply_node.logger_config import get_logger, setup_logging
from supply_node.supply import SupplyChaincode

setup_logging()
logger = get_logger("supply_node")

# Каталог для снимка реестра; если не задан, реестр живёт только в памяти процесса
LEDGER_DATA_DIR = os.environ.get("LEDGER_DATA_DIR", "").strip()
LEDGER_FILE = os.path.join(LEDGER_DATA_DIR, "ledger.json") if LEDGER_DATA_DIR else ""
SUPPLY_PORT = int(os.environ.get("SUPPLY_PORT", "5000"))
DEFAULT_CONTRACT = os.environ.get("DEFAULT_CONTRACT", "supply")
# Лимит запросов по умолчанию для всех эндпоинтов
RATE_LIMIT_DEFAULT = os.environ.get("RATE_LIMIT_DEFAULT", "6000 per minute")
RATELIMIT_ENABLED = os.environ.get("RATELIMIT_ENABLED", "true").lower() not in ("0", "false", "no")
# Необязательный секрет для вызовов: заголовок X-Node-Secret
NODE_SECRET = os.environ.get("NODE_SECRET", "")

app = Flask(__name__)
app.config["MAX_CONTENT_LENGTH"] = 1 * 1024 * 1024  # 1 MB

# Счётчики для мониторинга (запросы по эндпоинтам и ошибки)
_request_counts = {}
_error_counts = {}

ledger = Ledger()
CHAINCODES = {"supply": SupplyChaincode()}
# Фиксация и сохранение снимка выполняются атомарно
_commit_lock = threading.Lock()

limiter = Limiter(
    get_remote_address,
    app=app,
    default_limits=[RATE_LIMIT_DEFAULT],
    storage_uri="memory://",
    enabled=RATELIMIT_ENABLED,
)


def _load_ledger():
    if not LEDGER_FILE:
        return
    try:
        n = ledger.load(LEDGER_FILE)
        if n:
            logger.info("ledger_loaded: blocks=%s file=%s", n, LEDGER_FILE)
    except (OSError, ValueError) as e:
        logger.warning("ledger_load_failed: %s", e)


_load_ledger()


@app.before_request
def _count_request():
    """Учёт запросов по пути для /metrics."""
    path = request.path or "unknown"
    _request_counts[path] = _request_counts.get(path, 0) + 1


@app.errorhandler(500)
def _handle_500(e):
    """Единая обработка внутренних ошибок сервера."""
    _error_counts["500"] = _error_counts.get("500", 0) + 1
    logger.exception("internal_error")
    return jsonify({"error": "Internal server error"}), 500


@app.errorhandler(429)
def _handle_429(e):
    """Ответ при превышении лимита запросов."""
    _error_counts["429"] = _error_counts.get("429", 0) + 1
    logger.warning("rate_limit_exceeded: %s", request.path)
    return jsonify({"error": "Too many requests"}), 429


def require_node_secret(f):
    """Проверка секрета узла (только если NODE_SECRET задан)."""
    @wraps(f)
    def wrapped(*args, **kwargs):
        if NODE_SECRET and request.headers.get("X-Node-Secret") != NODE_SECRET:
            return jsonify({"error": "Forbidden"}), 403
        return f(*args, **kwargs)
    return wrapped


def _normalize_args(raw_args):
    """Аргументы чейнкода: список строк; числа приводятся к строке. Возвращает (args, err)."""
    if raw_args is None:
        return [], None
    if not isinstance(raw_args, list):
        return None, "args must be a list"
    out = []
    for a in raw_args:
        if isinstance(a, bool) or not isinstance(a, (str, int, float)):
            return None, "args must be strings"
        out.append(str(a))
    return out, None


def _chaincode_response(response, tx_id):
    """Ответ чейнкода в JSON: 200 при успехе, 400 с текстом ошибки иначе."""
    if response.ok:
        result = response.payload.decode("utf-8") if response.payload else ""
        return jsonify({"tx_id": tx_id, "status": response.status, "result": result}), 200
    _error_counts["chaincode"] = _error_counts.get("chaincode", 0) + 1
    return jsonify({"tx_id": tx_id, "status": response.status, "error": response.message}), 400


@app.route("/chaincode/invoke", methods=["POST"])
@require_node_secret
def chaincode_invoke():
    """Отправить транзакцию: выполнить функцию чейнкода и зафиксировать записи при успехе."""
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        return jsonify({"error": "Invalid JSON"}), 400
    contract = data.get("contract") or DEFAULT_CONTRACT
    if not isinstance(contract, str):
        return jsonify({"error": "contract must be a string"}), 400
    function = data.get("function")
    if not isinstance(function, str) or not function:
        return jsonify({"error": "function is required"}), 400
    args, err = _normalize_args(data.get("args"))
    if err:
        return jsonify({"error": err}), 400
    chaincode = CHAINCODES.get(contract)
    if chaincode is None:
        return jsonify({"error": f"Unknown contract: {contract}"}), 404

    with _commit_lock:
        height_before = ledger.height
        response, tx_id = ledger.invoke(chaincode, [function] + args, chaincode_name=contract)
        if LEDGER_FILE and ledger.height != height_before:
            try:
                ledger.save(LEDGER_FILE)
            except OSError as e:
                logger.warning("ledger_save_failed: %s", e)
    logger.info("chaincode_invoke: contract=%s function=%s tx_id=%s status=%s", contract, function, tx_id, response.status)
    return _chaincode_response(response, tx_id)


@app.route("/chaincode/query", methods=["GET"])
def chaincode_query():
    """Выполнить функцию чейнкода без фиксации записей (evaluate)."""
    contract = request.args.get("contract") or DEFAULT_CONTRACT
    function = request.args.get("function", "")
    if not function:
        return jsonify({"error": "function is required"}), 400
    try:
        raw_args = json.loads(request.args.get("args", "[]"))
    except ValueError:
        return jsonify({"error": "args must be a JSON list"}), 400
    args, err = _normalize_args(raw_args)
    if err:
        return jsonify({"error": err}), 400
    chaincode = CHAINCODES.get(contract)
    if chaincode is None:
        return jsonify({"error": f"Unknown contract: {contract}"}), 404

    response, tx_id = ledger.query(chaincode, [function] + args)
    return _chaincode_response(response, tx_id)


@app.route("/chain", methods=["GET"])
def get_chain():
    """Зафиксированные блоки (для просмотра и отладки)."""
    return jsonify(ledger.snapshot()["chain"]), 200


@app.route("/health", methods=["GET"])
def health():
    """Проверка живости узла."""
    return jsonify({"status": "ok", "mode": "memory", "channel_id": ledger.channel_id}), 200


@app.route("/metrics", methods=["GET"])
def metrics():
    """Метрики: высота цепочки, размер состояния, целостность, счётчики запросов и ошибок."""
    chain_ok, chain_err = ledger.verify_chain()
    body = {
        "block_height": ledger.height,
        "state_keys": len(ledger.committed_items()),
        "chain_valid": chain_ok,
        "chain_error": chain_err,
        "chaincodes": sorted(CHAINCODES),
        "request_counts": _request_counts,
        "error_counts": _error_counts,
    }
    return jsonify(body), 200


def main():
    logger.info("supply_node_start: port=%s persistence=%s", SUPPLY_PORT, LEDGER_FILE or "off")
    app.run(host="0.0.0.0", port=SUPPLY_PORT)


if __name__ == "__main__":
    main()
