# inventory/query.py
# Выборка вариантов по (тип, авто): дедуп + сортировка.
from __future__ import annotations

from enum import Enum
from typing import Dict, Iterable, List

from inventory.index import SkuIndex, StockKey, VariantEntry


class SortMode(str, Enum):
    ALPHA = "alpha"
    QTY_DESC = "qtydesc"


class StockFilter(str, Enum):
    IN_ONLY = "in_only"
    WITH_OOS = "with_oos"


def _sku_key(sku: str) -> str:
    return str(sku or "").strip().upper()


def dedupe_by_sku(variants: Iterable[VariantEntry]) -> List[VariantEntry]:
    """Один вариант на SKU; при дублях остаётся тот, у кого остаток больше."""
    by_sku: Dict[str, VariantEntry] = {}
    for v in variants:
        key = _sku_key(v.sku)
        prev = by_sku.get(key)
        if prev is None or v.available > prev.available:
            by_sku[key] = v
    return list(by_sku.values())


def sort_by_suffix(variants: Iterable[VariantEntry]) -> List[VariantEntry]:
    return sorted(variants, key=lambda v: v.suffix or v.sku)


def sort_by_qty_desc(variants: Iterable[VariantEntry]) -> List[VariantEntry]:
    # sorted() стабилен — при равных остатках порядок сохраняется
    return sorted(variants, key=lambda v: v.available, reverse=True)


def lookup(
    index: SkuIndex,
    category: str,
    subcategory: str,
    sort_mode: SortMode = SortMode.QTY_DESC,
    stock_filter: StockFilter = StockFilter.IN_ONLY,
) -> List[VariantEntry]:
    key = StockKey(category, subcategory)

    variants: List[VariantEntry] = list(index.in_stock_for(key))
    if StockFilter(stock_filter) is StockFilter.WITH_OOS:
        variants.extend(index.out_of_stock_for(key))

    variants = dedupe_by_sku(variants)
    if SortMode(sort_mode) is SortMode.ALPHA:
        return sort_by_suffix(variants)
    return sort_by_qty_desc(variants)
