# inventory/__init__.py
# Ядро: разбор SKU -> индекс остатков -> выборка для пикера.
