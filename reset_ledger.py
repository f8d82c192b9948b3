#!/usr/bin/env python3
"""
Скрипт для обнуления сохранённого реестра узла supply.

ВНИМАНИЕ: удаляет все зафиксированные блоки, а вместе с ними
мировое состояние (все продукты) и историю ключей.
Перед сбросом создаётся резервная копия ledger.json.backup.
"""
import argparse
import os
import shutil
import sys
from pathlib import Path

from supply_node.ledger import Ledger
from supply_node.shim import is_composite_key

SCRIPT_DIR = Path(__file__).parent
DEFAULT_DATA_DIR = os.environ.get("LEDGER_DATA_DIR", str(SCRIPT_DIR / "supply_node" / "data"))


def describe(ledger):
    """Краткая сводка по реестру: блоки, продукты, записи индекса."""
    keys = [k for k, _ in ledger.committed_items()]
    index_keys = [k for k in keys if is_composite_key(k)]
    return {
        "blocks": ledger.height,
        "products": len(keys) - len(index_keys),
        "index_entries": len(index_keys),
    }


def reset_ledger(ledger_file, backup_file):
    """
    Обнуление реестра: резервная копия, затем пустой снимок.
    Возвращает True при успехе.
    """
    if not ledger_file.exists():
        print(f"Ledger file not found: {ledger_file}")
        print("Nothing to reset.")
        return False

    ledger = Ledger()
    try:
        ledger.load(str(ledger_file))
        info = describe(ledger)
        print("Current state:")
        print(f"  blocks:        {info['blocks']}")
        print(f"  products:      {info['products']}")
        print(f"  index entries: {info['index_entries']}")
        ok, err = ledger.verify_chain()
        if not ok:
            print(f"  chain check:   FAILED ({err})")
    except (OSError, ValueError) as e:
        print(f"Could not read current ledger: {e}")
        print("Continuing with reset...")

    shutil.copy2(ledger_file, backup_file)
    print(f"Backup created: {backup_file}")

    try:
        Ledger(channel_id=ledger.channel_id).save(str(ledger_file))
    except OSError as e:
        print(f"Failed to write empty ledger: {e}")
        shutil.copy2(backup_file, ledger_file)
        print("Restored from backup")
        return False

    print("Ledger reset: no blocks, empty world state.")
    print(f"To restore, rename {backup_file.name} to {ledger_file.name}")
    return True


def main():
    p = argparse.ArgumentParser(description="Reset the persisted supply ledger")
    p.add_argument("--data-dir", default=DEFAULT_DATA_DIR)
    p.add_argument("--yes", action="store_true", help="Do not ask for confirmation")
    args = p.parse_args()

    data_dir = Path(args.data_dir)
    ledger_file = data_dir / "ledger.json"
    backup_file = data_dir / "ledger.json.backup"

    if not args.yes:
        print("WARNING: all blocks, products and history will be removed.")
        response = input("Continue? (yes/no): ")
        if response.lower() != "yes":
            print("Cancelled.")
            return 0

    return 0 if reset_ledger(ledger_file, backup_file) else 1


if __name__ == "__main__":
    sys.exit(main())
