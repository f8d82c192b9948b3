#!/usr/bin/env python3
"""
Сквозные транзакции чейнкода supply через HTTP API сайдкара.
Запуск: python -m benchmark.flows [--base-url http://localhost:5000]
"""
import argparse
import json
import sys
import uuid

import httpx

from benchmark.adapters import SIDECAR_URL

CONTRACT = "supply"


def invoke(base: str, fn: str, args: list) -> dict:
    r = httpx.post(
        f"{base}/chaincode/invoke",
        json={"contract": CONTRACT, "function": fn, "args": [str(a) for a in args]},
        timeout=30,
    )
    return r.json()


def query(base: str, fn: str, args=None) -> dict:
    args = args or []
    r = httpx.get(
        f"{base}/chaincode/query",
        params={"contract": CONTRACT, "function": fn, "args": json.dumps([str(a) for a in args])},
        timeout=10,
    )
    return r.json()


def run_flows(base: str) -> list[tuple[str, bool, str]]:
    results = []
    puid = f"p-{uuid.uuid4().hex[:8]}"

    def ok(name: str, data: dict, expect_error: bool = False) -> None:
        passed = ("error" in data) == expect_error
        results.append((name, passed, str(data.get("error", data.get("result", "")))[:80]))

    steps = [
        ("1.initProduct", lambda: invoke(base, "initProduct", [puid, "Widget", "Tools", "Alice"]), False),
        ("2.initProduct(duplicate)", lambda: invoke(base, "initProduct", [puid, "Widget", "Tools", "Alice"]), True),
        ("3.readProduct", lambda: query(base, "readProduct", [puid]), False),
        ("4.transferProduct", lambda: invoke(base, "transferProduct", [puid, "Bob"]), False),
        ("5.transferProduct(missing)", lambda: invoke(base, "transferProduct", [f"{puid}-missing", "Bob"]), True),
        ("6.queryProduct", lambda: query(base, "queryProduct", [json.dumps({"selector": {"owner": "bob"}})]), False),
        ("7.getHistoryForProduct", lambda: query(base, "getHistoryForProduct", [puid]), False),
    ]
    for name, call, expect_error in steps:
        try:
            ok(name, call(), expect_error)
        except (httpx.HTTPError, ValueError) as e:
            results.append((name, False, str(e)[:80]))
    return results


def main():
    p = argparse.ArgumentParser()
    p.add_argument("--base-url", default=SIDECAR_URL, help="Sidecar base URL")
    args = p.parse_args()
    base = args.base_url.rstrip("/")

    # Health check
    try:
        r = httpx.get(f"{base}/health", timeout=5)
        health = r.json()
        print(f"Sidecar mode: {health.get('mode')} channel: {health.get('channel_id')}")
    except (httpx.HTTPError, ValueError) as e:
        print(f"Sidecar unreachable: {e}")
        sys.exit(1)

    print("Running supply chaincode flows...")
    results = run_flows(base)
    failed = sum(1 for _, ok_, _ in results if not ok_)
    for name, ok_, msg in results:
        status = "OK" if ok_ else "FAIL"
        print(f"  [{status}] {name}: {msg}")
    print(f"\n{len(results) - failed}/{len(results)} passed")
    sys.exit(1 if failed else 0)


if __name__ == "__main__":
    main()
