"""
Адаптеры блокчейна для бенчмарка: единый метод invoke_smart_contract()
поверх in-process реестра (LocalAdapter) или HTTP-сайдкара узла (SidecarAdapter).
"""
import os
import time
import uuid

import httpx

from supply_node.ledger import Ledger
from supply_node.logger_config import get_logger
from supply_node.supply import SupplyChaincode

logger = get_logger("benchmark.adapters")

SIDECAR_URL = os.environ.get("SIDECAR_URL", "http://localhost:5000")

FABRIC_CCP = "fabric-ccp"

# Порядок позиционных аргументов для запросов в старом формате {verb, id, name, ...}
LEGACY_ARG_ORDER = {
    "initProduct": ("id", "name", "type", "owner"),
    "transferProduct": ("id", "owner"),
    "readProduct": ("id",),
    "queryProduct": ("query",),
    "getHistoryForProduct": ("id",),
}


class TxStatus:
    """Статус одной транзакции бенчмарка: id, успех/ошибка, результат, время создания и завершения."""

    SUCCESS = "success"
    FAILED = "failed"

    def __init__(self, tx_id=None):
        self.id = tx_id or uuid.uuid4().hex
        self.status = "created"
        self.result = None
        self.error = None
        self.time_create = time.time()
        self.time_final = None

    def set_success(self, result=None):
        self.status = self.SUCCESS
        self.result = result
        self.time_final = time.time()

    def set_failed(self, error):
        self.status = self.FAILED
        self.error = error
        self.time_final = time.time()

    @property
    def is_success(self):
        return self.status == self.SUCCESS

    @property
    def latency_s(self):
        if self.time_final is None:
            return None
        return max(self.time_final - self.time_create, 0.0)

    def to_dict(self):
        return {
            "id": self.id,
            "status": self.status,
            "result": self.result,
            "error": self.error,
            "time_create": self.time_create,
            "time_final": self.time_final,
        }


def to_function_and_args(args):
    """
    Привести аргументы вызова к (function, [str, ...]).
    Формат fabric-ccp: {chaincodeFunction, chaincodeArguments};
    старый формат: {verb, <поля по LEGACY_ARG_ORDER>}.
    """
    if "chaincodeFunction" in args:
        return args["chaincodeFunction"], [str(a) for a in args.get("chaincodeArguments", [])]
    verb = args.get("verb")
    if verb not in LEGACY_ARG_ORDER:
        raise ValueError(f"Unsupported verb: {verb!r}")
    return verb, [str(args.get(field, "")) for field in LEGACY_ARG_ORDER[verb]]


class LocalAdapter:
    """Адаптер без сети: чейнкоды выполняются на локальном in-memory реестре."""

    def __init__(self, bc_type=FABRIC_CCP, ledger=None):
        self.bc_type = bc_type
        self.ledger = ledger or Ledger()
        self.chaincodes = {("supply", "v1"): SupplyChaincode()}

    def get_context(self, name, args=None):
        return {"name": name, "args": args or {}}

    def release_context(self, context):
        return None

    def invoke_smart_contract(self, context, contract_id, contract_ver, args, timeout=30):
        """Выполнить одну или несколько транзакций; возвращает список TxStatus."""
        batch = args if isinstance(args, list) else [args]
        statuses = []
        for item in batch:
            status = TxStatus()
            chaincode = self.chaincodes.get((contract_id, contract_ver))
            if chaincode is None:
                status.set_failed(f"Unknown chaincode {contract_id}@{contract_ver}")
                statuses.append(status)
                continue
            try:
                function, params = to_function_and_args(item)
            except ValueError as e:
                status.set_failed(str(e))
                statuses.append(status)
                continue
            response, tx_id = self.ledger.invoke(chaincode, [function] + params, chaincode_name=contract_id)
            status.id = tx_id
            if response.ok:
                status.set_success(response.payload.decode("utf-8") if response.payload else "")
            else:
                status.set_failed(response.message)
            statuses.append(status)
        return statuses

    def close(self):
        return None


class SidecarAdapter:
    """Адаптер к HTTP-сайдкару узла (POST /chaincode/invoke)."""

    def __init__(self, base_url=None, bc_type=FABRIC_CCP, node_secret=None, client=None):
        self.bc_type = bc_type
        self.base_url = (base_url or SIDECAR_URL).rstrip("/")
        headers = {"X-Node-Secret": node_secret} if node_secret else {}
        self._client = client or httpx.Client(base_url=self.base_url, headers=headers)

    def get_context(self, name, args=None):
        return {"name": name, "args": args or {}}

    def release_context(self, context):
        return None

    def health(self, timeout=5):
        r = self._client.get("/health", timeout=timeout)
        r.raise_for_status()
        return r.json()

    def invoke_smart_contract(self, context, contract_id, contract_ver, args, timeout=30):
        batch = args if isinstance(args, list) else [args]
        return [self._invoke_one(contract_id, item, timeout) for item in batch]

    def _invoke_one(self, contract_id, item, timeout):
        status = TxStatus()
        try:
            function, params = to_function_and_args(item)
        except ValueError as e:
            status.set_failed(str(e))
            return status
        try:
            r = self._client.post(
                "/chaincode/invoke",
                json={"contract": contract_id, "function": function, "args": params},
                timeout=timeout,
            )
            data = r.json()
        except (httpx.HTTPError, ValueError) as e:
            logger.warning("sidecar_invoke_failed: function=%s error=%s", function, e)
            status.set_failed(str(e))
            return status
        if data.get("tx_id"):
            status.id = data["tx_id"]
        if r.status_code == 200 and "error" not in data:
            status.set_success(data.get("result", ""))
        else:
            status.set_failed(data.get("error") or f"HTTP {r.status_code}")
        return status

    def close(self):
        self._client.close()
