# handlers/refresh.py
# /stock_refresh — ручная пересборка индекса (ответ сразу, результат — отдельным сообщением)
from __future__ import annotations

from typing import Optional

from aiogram import Router
from aiogram.filters import Command
from aiogram.types import Message

from inventory.refresh import RefreshInProgress, RefreshScheduler
from inventory.store import IndexStore

router = Router(name="stock_refresh")


def refresh_result_text(error: Optional[BaseException], store: IndexStore) -> str:
    if error is None:
        idx = store.current()
        return (
            "✅ Индекс остатков обновлён.\n"
            f"Типов: <b>{len(idx.categories)}</b>, авто: <b>{idx.total_subcategories}</b>"
        )
    if isinstance(error, RefreshInProgress):
        return "⏳ Обновление уже идёт — дождись его окончания."
    return "❌ Не удалось обновить индекс. Подробности — в логах (❗)."


@router.message(Command("stock_refresh"))
async def cmd_stock_refresh(message: Message, scheduler: RefreshScheduler, store: IndexStore):
    msg = await message.answer("🔄 Обновляю индекс остатков…")

    async def _done(error: Optional[BaseException]) -> None:
        await msg.edit_text(refresh_result_text(error, store))

    # не ждём: сборка идёт в фоне
    scheduler.trigger(_done)
