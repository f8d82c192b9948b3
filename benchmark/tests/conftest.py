# Общие настройки pytest для бенчмарка
import os
import sys

# Корень репозитория (для импортов supply_node и benchmark без установки)
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.dirname(os.path.abspath(__file__)))))

os.environ["LEDGER_DATA_DIR"] = ""
os.environ["RATELIMIT_ENABLED"] = "false"
