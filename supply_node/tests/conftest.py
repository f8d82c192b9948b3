# Общие фикстуры и настройки pytest
import os
import sys

import pytest

# Корень репозитория (для импортов supply_node и benchmark без установки)
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.dirname(os.path.abspath(__file__)))))

# В тестах реестр только в памяти, без лимитов и секрета
os.environ["LEDGER_DATA_DIR"] = ""
os.environ["RATELIMIT_ENABLED"] = "false"
os.environ.setdefault("NODE_SECRET", "")

from supply_node.ledger import Ledger  # noqa: E402
from supply_node.supply import SupplyChaincode  # noqa: E402


@pytest.fixture
def ledger():
    return Ledger(channel_id="testchannel")


@pytest.fixture
def chaincode():
    return SupplyChaincode()


@pytest.fixture
def invoke(ledger, chaincode):
    """Вызов функции чейнкода с фиксацией: invoke("initProduct", "id", ...) -> Response."""
    def _invoke(function, *args):
        response, _ = ledger.invoke(chaincode, [function, *args])
        return response
    return _invoke


@pytest.fixture
def query(ledger, chaincode):
    """Вызов функции чейнкода без фиксации."""
    def _query(function, *args):
        response, _ = ledger.query(chaincode, [function, *args])
        return response
    return _query
