#!/usr/bin/env python
# -*- coding: utf-8 -*-
"""Скрипт для запуска тестов узла и бенчмарка из корня репозитория."""
import os
import subprocess
import sys

script_dir = os.path.dirname(os.path.abspath(__file__))
os.chdir(script_dir)

# Устанавливаем пакет с зависимостями для тестов
print("Installing package with test dependencies...")
subprocess.run([sys.executable, "-m", "pip", "install", "-e", ".[test]", "-q"], check=False)

# Запускаем тесты
print("\nRunning tests...")
result = subprocess.run([sys.executable, "-m", "pytest", "supply_node/tests", "benchmark/tests", "-v", "--tb=short"])
sys.exit(result.returncode)
