"""
Shared fixtures for the stock index / picker test suite.

Provides:
- default SKU format (C-<CAR>-<TYPE>-<SUFFIX>)
- RawVariant factory
- async page sources (optionally failing mid-pagination)
- a store pre-loaded with a small index
"""

from typing import List, Optional

import pytest

from inventory.index import RawVariant, build_index_from
from inventory.sku import SkuFormat
from inventory.store import IndexStore

MARKER = "Z INTERNAL"


def variant(sku: str, available: int, product_title: str = "Steering wheel", title: str = "Default") -> RawVariant:
    return RawVariant(sku=sku, title=title, product_title=product_title, available=available)


class PageSourceFailed(RuntimeError):
    pass


async def page_source(pages: List[List[RawVariant]], fail_on_page: Optional[int] = None):
    """Async generator of pages; raises before yielding page number `fail_on_page` (0-based)."""
    for i, page in enumerate(pages):
        if fail_on_page is not None and i == fail_on_page:
            raise PageSourceFailed(f"transport failure on page {i}")
        yield page


@pytest.fixture
def fmt() -> SkuFormat:
    return SkuFormat(prefix="C", separator="-", category_index=2, subcategory_index=1)


@pytest.fixture
def sample_records() -> List[RawVariant]:
    return [
        variant("C-FORD-TRIM-001", 5),
        variant("C-FORD-TRIM-002", 0),
        variant("C-FORD-TRIM-003", 12),
        variant("C-BMW-TRIM-010", 1),
        variant("C-BMW-AIRBAG-01", 3),
        variant("C-AUDI-STEERINGWHEEL-X1", 2),
        variant("C-AUDI-ZZTOP-1", 4),
        variant("C-FORD-PADDLES-7", 0, product_title="Z Internal paddles"),
        variant("NOT-A-SKU", 9),
    ]


@pytest.fixture
def store(fmt, sample_records) -> IndexStore:
    return IndexStore(build_index_from(sample_records, fmt, MARKER))
