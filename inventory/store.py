# inventory/store.py
from __future__ import annotations

from typing import Optional

from inventory.index import SkuIndex


class IndexStore:
    """
    Держит один снимок индекса.

    replace() — одно присваивание ссылки, читатели получают либо старый,
    либо новый снимок целиком. Снимок после публикации не меняется.
    """

    def __init__(self, initial: Optional[SkuIndex] = None) -> None:
        self._snapshot: SkuIndex = initial if initial is not None else SkuIndex.empty()
        self._version = 0

    def current(self) -> SkuIndex:
        return self._snapshot

    def replace(self, index: SkuIndex) -> None:
        self._snapshot = index
        self._version += 1

    @property
    def version(self) -> int:
        return self._version

    def status(self) -> dict:
        return {"version": self._version, **self._snapshot.stats()}
