# inventory/index.py
# Снимок индекса остатков: тип -> авто -> варианты (в наличии / нет в наличии).
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import AsyncIterable, Dict, Iterable, List, Mapping, NamedTuple, Optional, Set, Tuple

from inventory.sku import SkuFormat, parse_sku

logger = logging.getLogger("inventory.index")

SAMPLE_SIZE = 20


@dataclass(frozen=True)
class RawVariant:
    """Вариант в том виде, как пришёл со страницы выгрузки."""
    sku: str
    title: str
    product_title: str
    available: int


@dataclass(frozen=True)
class VariantEntry:
    sku: str
    suffix: str
    available: int


class StockKey(NamedTuple):
    category: str
    subcategory: str


@dataclass(frozen=True)
class SkuIndex:
    categories: frozenset = frozenset()
    subcategories_by_category: Mapping[str, frozenset] = field(default_factory=dict)
    in_stock: Mapping[StockKey, Tuple[VariantEntry, ...]] = field(default_factory=dict)
    out_of_stock: Mapping[StockKey, Tuple[VariantEntry, ...]] = field(default_factory=dict)
    scanned: int = 0
    sample: Tuple[str, ...] = ()
    built_at: Optional[datetime] = None

    @classmethod
    def empty(cls) -> "SkuIndex":
        return cls()

    def in_stock_for(self, key: StockKey) -> Tuple[VariantEntry, ...]:
        return self.in_stock.get(key, ())

    def out_of_stock_for(self, key: StockKey) -> Tuple[VariantEntry, ...]:
        return self.out_of_stock.get(key, ())

    def subcategories(self, category: str) -> frozenset:
        return self.subcategories_by_category.get(category, frozenset())

    @property
    def total_subcategories(self) -> int:
        return sum(len(s) for s in self.subcategories_by_category.values())

    def stats(self) -> Dict[str, object]:
        return {
            "types": len(self.categories),
            "cars": self.total_subcategories,
            "scanned": self.scanned,
            "in_stock": sum(len(v) for v in self.in_stock.values()),
            "out_of_stock": sum(len(v) for v in self.out_of_stock.values()),
            "built_at": self.built_at.isoformat() if self.built_at else None,
        }


def _is_internal(product_title: str, marker: str) -> bool:
    if not marker:
        return False
    return marker.upper() in (product_title or "").upper()


class _Accumulator:
    def __init__(self, fmt: SkuFormat, internal_marker: str) -> None:
        self.fmt = fmt
        self.internal_marker = internal_marker
        self.subcats: Dict[str, Set[str]] = {}
        self.in_stock: Dict[StockKey, List[VariantEntry]] = {}
        self.out_of_stock: Dict[StockKey, List[VariantEntry]] = {}
        self.scanned = 0
        self.sample: List[str] = []

    def add(self, v: RawVariant) -> None:
        self.scanned += 1
        raw = (v.sku or "").strip()
        if len(self.sample) < SAMPLE_SIZE:
            self.sample.append(raw or "(empty)")

        parsed = parse_sku(raw, self.fmt)
        if parsed is None:
            return

        key = StockKey(parsed.category, parsed.subcategory)
        available = max(0, int(v.available or 0))

        if available > 0:
            bucket = self.in_stock.setdefault(key, [])
        elif _is_internal(v.product_title, self.internal_marker):
            # внутренние товары без остатка не показываем
            return
        else:
            bucket = self.out_of_stock.setdefault(key, [])

        bucket.append(VariantEntry(sku=raw, suffix=parsed.suffix, available=available))
        self.subcats.setdefault(key.category, set()).add(key.subcategory)

    def freeze(self) -> SkuIndex:
        return SkuIndex(
            categories=frozenset(self.subcats.keys()),
            subcategories_by_category={c: frozenset(s) for c, s in self.subcats.items()},
            in_stock={k: tuple(v) for k, v in self.in_stock.items()},
            out_of_stock={k: tuple(v) for k, v in self.out_of_stock.items()},
            scanned=self.scanned,
            sample=tuple(self.sample),
            built_at=datetime.now(timezone.utc),
        )


def build_index_from(records: Iterable[RawVariant], fmt: SkuFormat, internal_marker: str) -> SkuIndex:
    acc = _Accumulator(fmt, internal_marker)
    for v in records:
        acc.add(v)
    return acc.freeze()


async def build_index(
    pages: AsyncIterable[Iterable[RawVariant]],
    fmt: SkuFormat,
    internal_marker: str,
) -> SkuIndex:
    """
    Собрать новый снимок из постраничного источника.

    Ошибка источника на любой странице пробрасывается наружу:
    частично собранный индекс никогда не возвращается.
    """
    acc = _Accumulator(fmt, internal_marker)
    async for page in pages:
        for v in page:
            acc.add(v)

    idx = acc.freeze()
    logger.info("Sample SKUs: %s", " | ".join(idx.sample))
    logger.info(
        "SKU index built: %d types, %d cars total, %d variants scanned",
        len(idx.categories), idx.total_subcategories, idx.scanned,
    )
    return idx
