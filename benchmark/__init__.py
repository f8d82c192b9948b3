"""
Бенчмарк чейнкода supply: нагрузка initProduct, адаптеры блокчейна и прогон раундов.
"""
