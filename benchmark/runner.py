#!/usr/bin/env python3
"""
Прогон бенчмарка чейнкода supply.
Запуск: python -m benchmark.runner [--adapter local|sidecar] [--tx-number 100] [--tps 50] [--rounds 1]
"""
import argparse
import statistics
import sys
import time

from benchmark import supply as supply_workload
from benchmark.adapters import FABRIC_CCP, SIDECAR_URL, LocalAdapter, SidecarAdapter
from supply_node.logger_config import get_logger, setup_logging

logger = get_logger("benchmark")

WORKLOADS = {"supply": supply_workload}


class RoundResult:
    """Итог раунда: статусы транзакций и окно измерения."""

    def __init__(self, label, statuses, started_at, finished_at):
        self.label = label
        self.statuses = statuses
        self.started_at = started_at
        self.finished_at = finished_at

    @property
    def succeeded(self):
        return sum(1 for s in self.statuses if s.is_success)

    @property
    def failed(self):
        return len(self.statuses) - self.succeeded

    @property
    def duration_s(self):
        return max(self.finished_at - self.started_at, 0.0)

    def summary(self):
        latencies = [s.latency_s for s in self.statuses if s.is_success and s.latency_s is not None]
        duration = self.duration_s
        return {
            "label": self.label,
            "succ": self.succeeded,
            "fail": self.failed,
            "send_rate_tps": len(self.statuses) / duration if duration > 0 else 0.0,
            "throughput_tps": self.succeeded / duration if duration > 0 else 0.0,
            "latency_min_s": min(latencies) if latencies else None,
            "latency_avg_s": statistics.mean(latencies) if latencies else None,
            "latency_max_s": max(latencies) if latencies else None,
        }


def run_round(workload, adapter, label, tx_number, tps=None, context_args=None):
    """
    Один раунд: init() нагрузки, tx_number вызовов run() с фиксированной
    частотой tps (если задана), затем end().
    """
    context = adapter.get_context(label, context_args)
    workload.init(adapter, context, context_args or {})
    interval = 1.0 / tps if tps else 0.0
    statuses = []
    started_at = time.time()
    try:
        for i in range(tx_number):
            if interval:
                # Фиксированная частота: ждём момента отправки i-й транзакции
                delay = started_at + i * interval - time.time()
                if delay > 0:
                    time.sleep(delay)
            statuses.extend(workload.run())
    finally:
        workload.end()
        adapter.release_context(context)
    finished_at = time.time()
    result = RoundResult(label, statuses, started_at, finished_at)
    logger.info("round_finished: label=%s succ=%s fail=%s", label, result.succeeded, result.failed)
    return result


def _fmt(value):
    return "-" if value is None else f"{value:.4f}"


def print_report(results):
    header = f"{'Name':<16} {'Succ':>6} {'Fail':>6} {'Send(tps)':>10} {'Max(s)':>8} {'Min(s)':>8} {'Avg(s)':>8} {'Thr(tps)':>10}"
    print(header)
    print("-" * len(header))
    for result in results:
        s = result.summary()
        print(
            f"{s['label']:<16} {s['succ']:>6} {s['fail']:>6} {s['send_rate_tps']:>10.1f} "
            f"{_fmt(s['latency_max_s']):>8} {_fmt(s['latency_min_s']):>8} {_fmt(s['latency_avg_s']):>8} "
            f"{s['throughput_tps']:>10.1f}"
        )


def build_adapter(kind, base_url=None, bc_type=FABRIC_CCP, node_secret=None):
    if kind == "local":
        return LocalAdapter(bc_type=bc_type)
    if kind == "sidecar":
        return SidecarAdapter(base_url=base_url, bc_type=bc_type, node_secret=node_secret)
    raise ValueError(f"Unknown adapter: {kind}")


def main(argv=None):
    p = argparse.ArgumentParser(description="Benchmark driver for the supply chaincode")
    p.add_argument("--adapter", choices=("local", "sidecar"), default="local")
    p.add_argument("--base-url", default=SIDECAR_URL, help="Sidecar base URL")
    p.add_argument("--node-secret", default=None, help="X-Node-Secret header for the sidecar")
    p.add_argument("--bc-type", default=FABRIC_CCP, help="Adapter type; anything but fabric-ccp uses the legacy args shape")
    p.add_argument("--workload", choices=sorted(WORKLOADS), default="supply")
    p.add_argument("--tx-number", type=int, default=100)
    p.add_argument("--tps", type=float, default=None, help="Fixed send rate; unlimited if omitted")
    p.add_argument("--rounds", type=int, default=1)
    p.add_argument("--log-level", default=None)
    args = p.parse_args(argv)

    setup_logging(args.log_level)
    if args.tx_number <= 0 or args.rounds <= 0:
        p.error("--tx-number and --rounds must be positive")

    adapter = build_adapter(args.adapter, args.base_url, args.bc_type, args.node_secret)
    workload = WORKLOADS[args.workload]
    print(workload.info)
    results = []
    try:
        for n in range(args.rounds):
            results.append(run_round(workload, adapter, f"{args.workload}-{n + 1}", args.tx_number, args.tps))
    finally:
        adapter.close()

    print_report(results)
    total_succ = sum(r.succeeded for r in results)
    return 0 if total_succ else 1


if __name__ == "__main__":
    sys.exit(main())
