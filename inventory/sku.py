# inventory/sku.py
# Разбор SKU вида C-<CAR>-<TYPE>-<SUFFIX...> в (тип, авто, суффикс).
from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

# Суффикс — всё после первых трёх полей (префикс, авто, тип)
SUFFIX_START = 3


@dataclass(frozen=True)
class SkuFormat:
    prefix: str = "C"
    separator: str = "-"
    category_index: int = 2
    subcategory_index: int = 1

    def __post_init__(self) -> None:
        # вход сравнивается в верхнем регистре
        object.__setattr__(self, "prefix", (self.prefix or "").strip().upper())

    @classmethod
    def from_settings(cls, settings) -> "SkuFormat":
        return cls(
            prefix=settings.sku_prefix,
            separator=settings.sku_separator,
            category_index=settings.sku_type_index,
            subcategory_index=settings.sku_car_index,
        )


@dataclass(frozen=True)
class ParsedSku:
    category: str
    subcategory: str
    suffix: str


def parse_sku(raw: Optional[str], fmt: SkuFormat) -> Optional[ParsedSku]:
    """
    None = SKU не наш (нет префикса / мало полей / пустые поля).
    Это не ошибка — такие варианты просто не попадают в индекс.
    """
    if not raw:
        return None
    upper = str(raw).strip().upper()
    if not upper:
        return None

    # принимаем "C" или "C-..."
    if not (upper == fmt.prefix or upper.startswith(fmt.prefix + fmt.separator)):
        return None

    parts = upper.split(fmt.separator)
    if len(parts) <= max(fmt.category_index, fmt.subcategory_index):
        return None

    category = parts[fmt.category_index]
    subcategory = parts[fmt.subcategory_index]
    if not category or not subcategory:
        return None

    suffix = fmt.separator.join(parts[SUFFIX_START:])
    return ParsedSku(category=category, subcategory=subcategory, suffix=suffix)
