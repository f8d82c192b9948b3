# Тесты нагрузки supply, адаптеров и прогона раундов
import json

import httpx
import pytest

from benchmark import runner
from benchmark import supply as workload
from benchmark.adapters import LocalAdapter, SidecarAdapter, TxStatus, to_function_and_args


@pytest.fixture(autouse=True)
def fresh_workload(monkeypatch):
    monkeypatch.setattr(workload, "tx_index", 0)
    monkeypatch.setattr(workload, "_bc", None)
    monkeypatch.setattr(workload, "_context", None)


class TestBuildArgs:
    def test_fabric_ccp_shape(self):
        args = workload.build_args(1, "fabric-ccp", pid=77)
        assert args == {
            "chaincodeFunction": "initProduct",
            "chaincodeArguments": ["1w2", "product_1_77", "20", "Bob"],
        }

    def test_legacy_shape(self):
        args = workload.build_args(6, "fabric", pid=5)
        assert args == {"verb": "initProduct", "name": "product_6_5", "id": "a12", "type": "70", "owner": "Claire"}

    def test_type_range_and_cycles(self):
        for i in range(1, 41):
            args = workload.build_args(i, "fabric-ccp", pid=1)["chaincodeArguments"]
            assert args[0] == workload.ID[i % 4]
            assert args[3] == workload.OWNERS[i % 4]
            assert 10 <= int(args[2]) <= 100


def test_run_requires_init():
    with pytest.raises(RuntimeError):
        workload.run()


def test_run_against_local_adapter():
    adapter = LocalAdapter()
    workload.init(adapter, adapter.get_context("round"), {})
    statuses = [workload.run()[0] for _ in range(8)]
    workload.end()

    # Четыре идентификатора в пуле: вторая четвёрка повторяет ключи
    assert [s.is_success for s in statuses] == [True] * 4 + [False] * 4
    assert statuses[4].error == "This product already exists: 1w2"
    assert workload.tx_index == 8
    assert adapter.ledger.height == 4


def test_legacy_args_through_local_adapter():
    adapter = LocalAdapter(bc_type="fabric")
    workload.init(adapter, None, {})
    status = workload.run()[0]
    assert status.is_success
    record = json.loads(adapter.ledger.get_committed("1w2"))
    assert record["owner"] == "bob"
    assert record["ptype"] == "20"


def test_local_adapter_unknown_chaincode():
    adapter = LocalAdapter()
    status = adapter.invoke_smart_contract(None, "supply", "v2", {"chaincodeFunction": "readProduct"})[0]
    assert status.status == TxStatus.FAILED
    assert "Unknown chaincode" in status.error


def test_to_function_and_args():
    assert to_function_and_args({"verb": "transferProduct", "id": "a", "owner": "B"}) == ("transferProduct", ["a", "B"])
    with pytest.raises(ValueError):
        to_function_and_args({"verb": "mint"})


def test_sidecar_adapter_against_app(monkeypatch):
    from supply_node import app as app_module
    from supply_node.ledger import Ledger

    monkeypatch.setattr(app_module, "ledger", Ledger())
    monkeypatch.setattr(app_module, "LEDGER_FILE", "")
    client = httpx.Client(transport=httpx.WSGITransport(app=app_module.app), base_url="http://node")
    adapter = SidecarAdapter(client=client)
    assert adapter.health()["status"] == "ok"

    workload.init(adapter, None, {})
    first = workload.run()[0]
    assert first.is_success
    assert first.id == app_module.ledger.chain[0].tx_id

    statuses = adapter.invoke_smart_contract(None, "supply", "v1", {
        "chaincodeFunction": "transferProduct",
        "chaincodeArguments": ["missing", "Bob"],
    })
    assert statuses[0].status == TxStatus.FAILED
    assert statuses[0].error == "Product does not exist"
    adapter.close()


def test_sidecar_transport_error_is_failed_status():
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    client = httpx.Client(transport=httpx.MockTransport(handler), base_url="http://node")
    adapter = SidecarAdapter(client=client)
    status = adapter.invoke_smart_contract(None, "supply", "v1", workload.build_args(1, "fabric-ccp"))[0]
    assert status.status == TxStatus.FAILED
    assert "connection refused" in status.error
    assert status.latency_s is not None


def test_run_round_summary():
    adapter = LocalAdapter()
    result = runner.run_round(workload, adapter, "supply-1", tx_number=6)
    summary = result.summary()
    assert summary["succ"] == 4
    assert summary["fail"] == 2
    assert summary["latency_min_s"] <= summary["latency_avg_s"] <= summary["latency_max_s"]
    assert result.duration_s >= 0.0


def test_runner_main(capsys):
    assert runner.main(["--adapter", "local", "--tx-number", "5", "--rounds", "2"]) == 0
    out = capsys.readouterr().out
    assert workload.info in out
    assert "supply-1" in out
    assert "supply-2" in out
