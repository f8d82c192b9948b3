"""
Узел с чейнкодом supply: контракт продуктов, интерфейс shim и in-memory реестр.
"""
