# inventory/render.py
# Результат выборки -> одно или несколько сообщений Telegram (HTML).
from __future__ import annotations

from html import escape
from typing import List, Sequence

from inventory.index import VariantEntry
from inventory.query import StockFilter

# Telegram лимит 4096 — берём с запасом
MAX_CHARS = 3900
MAX_MESSAGES = 20


def header_label(stock_filter: StockFilter) -> str:
    if StockFilter(stock_filter) is StockFilter.WITH_OOS:
        return "В наличии + нет в наличии"
    return "В наличии"


def no_matches_text(category: str, subcategory: str, stock_filter: StockFilter) -> str:
    c, s = escape(category), escape(subcategory)
    if StockFilter(stock_filter) is StockFilter.WITH_OOS:
        return f"Нет вариантов (ни в наличии, ни без остатка) для <b>{c}</b> / <b>{s}</b>."
    return f"Нет вариантов в наличии для <b>{c}</b> / <b>{s}</b>."


def variant_line(v: VariantEntry) -> str:
    return f"• {escape(v.suffix or v.sku)} — {v.available}"


def build_result_messages(
    category: str,
    subcategory: str,
    variants: Sequence[VariantEntry],
    stock_filter: StockFilter = StockFilter.IN_ONLY,
    max_chars: int = MAX_CHARS,
    max_messages: int = MAX_MESSAGES,
) -> List[str]:
    """
    Шапка идёт только в первом сообщении, дальше — строки вариантов,
    порезанные так, чтобы каждое сообщение влезало в max_chars.
    Если сообщений больше max_messages — хвост обрезается с "…".
    """
    if not variants:
        return [no_matches_text(category, subcategory, stock_filter)]

    header = (
        f"<b>{header_label(stock_filter)}</b> — "
        f"<b>Тип:</b> {escape(category)} • <b>Авто:</b> {escape(subcategory)}"
    )

    messages: List[str] = []
    current: List[str] = [header, ""]
    current_len = len(header) + 1

    lines = [variant_line(v) for v in variants]
    truncated = False

    for line in lines:
        if current and current_len + len(line) + 1 > max_chars:
            messages.append("\n".join(current).rstrip())
            current, current_len = [], 0
            if len(messages) >= max_messages:
                truncated = True
                break
        current.append(line)
        current_len += len(line) + 1

    if current and len(messages) < max_messages:
        messages.append("\n".join(current).rstrip())

    if truncated and messages:
        last = messages[-1]
        while len(last) + 2 > max_chars and "\n" in last:
            last = last.rsplit("\n", 1)[0]
        messages[-1] = last + "\n…"
    return messages
