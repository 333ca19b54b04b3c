# handlers/stock.py
# UI пикера остатков (aiogram v3):
# /stock -> тип -> авто -> порядок/фильтр -> "👀 Показать" -> сообщения с вариантами
from __future__ import annotations

import logging
from html import escape
from typing import List, Optional

from aiogram import Bot, F, Router
from aiogram.exceptions import TelegramBadRequest
from aiogram.filters import Command
from aiogram.fsm.context import FSMContext
from aiogram.fsm.state import State, StatesGroup
from aiogram.types import (
    CallbackQuery,
    InlineKeyboardButton,
    InlineKeyboardMarkup,
    Message,
)

from config import Settings
from inventory.flow import (
    NO_SELECTION,
    PickerForm,
    Option,
    SelectionError,
    SelectionFlow,
    SelectionSession,
)
from inventory.query import SortMode, StockFilter

logger = logging.getLogger("handlers.stock")

router = Router(name="stock")

SESSION_KEY = "stock_session"

# кнопок выбора на одной странице клавиатуры
PAGE_OPTIONS = 14

SORT_LABELS = {
    SortMode.ALPHA: "Алфавит (A→Z)",
    SortMode.QTY_DESC: "Количество (↓)",
}
FILTER_LABELS = {
    StockFilter.IN_ONLY: "Только в наличии",
    StockFilter.WITH_OOS: "+ нет в наличии",
}

EMPTY_INDEX_TEXT = (
    "⏳ Индекс остатков ещё собирается или пуст.\n"
    "Попробуй /stock_refresh. Если пусто и дальше — смотри ❗ ошибки в логах."
)
STALE_TEXT = "Сессия устарела. Начни заново: /stock"


class StockStates(StatesGroup):
    picking = State()


# ---------------------------------------------------------------------
# Rendering
# ---------------------------------------------------------------------
def form_text(form: PickerForm) -> str:
    cat = f"<b>{escape(form.category)}</b>" if form.category else "—"
    sub = form.subcategory if form.subcategory and form.subcategory != NO_SELECTION else None
    sub_txt = f"<b>{escape(sub)}</b>" if sub else "—"

    lines = [
        "📦 <b>Остатки</b>",
        "",
        f"Тип: {cat}",
        f"Авто: {sub_txt}",
        f"Порядок: {SORT_LABELS[form.sort_mode]}",
        f"Показывать: {FILTER_LABELS[form.stock_filter]}",
    ]
    if form.errors.get("category"):
        lines.append(f"⚠️ {form.errors['category']}")
    if form.errors.get("subcategory"):
        lines.append(f"⚠️ {form.errors['subcategory']}")
    return "\n".join(lines)


def _page_slice(options: List[Option], page: int):
    total = len(options)
    max_page = (total - 1) // PAGE_OPTIONS if total > 0 else 0
    page = min(max(page, 0), max_page)
    start = page * PAGE_OPTIONS
    return options[start:start + PAGE_OPTIONS], page, max_page


def _nav_row(prefix: str, page: int, max_page: int) -> List[InlineKeyboardButton]:
    nav: List[InlineKeyboardButton] = []
    if page > 0:
        nav.append(InlineKeyboardButton(text="◀️", callback_data=f"{prefix}:{page-1}"))
    nav.append(InlineKeyboardButton(text=f"{page+1}/{max_page+1}", callback_data="stk:noop"))
    if page < max_page:
        nav.append(InlineKeyboardButton(text="▶️", callback_data=f"{prefix}:{page+1}"))
    return nav


def form_keyboard(form: PickerForm, show_types: bool = False, page: int = 0) -> InlineKeyboardMarkup:
    """
    Пока тип не выбран (или нажато "Сменить тип") — список типов.
    Иначе — список авто + порядок/фильтр.
    """
    rows: List[List[InlineKeyboardButton]] = []

    if show_types or not form.category:
        options = list(form.category_options)
        chunk, page, max_page = _page_slice(options, page)
        base = page * PAGE_OPTIONS
        for i, opt in enumerate(chunk):
            mark = "✅ " if opt.value == form.category else ""
            rows.append([InlineKeyboardButton(text=f"{mark}{opt.label}", callback_data=f"stk:cat:{base + i}")])
        if len(options) > PAGE_OPTIONS:
            rows.append(_nav_row("stk:catp", page, max_page))
    else:
        options = list(form.subcategory_options)
        chunk, page, max_page = _page_slice(options, page)
        base = page * PAGE_OPTIONS
        for i, opt in enumerate(chunk):
            if opt.value == NO_SELECTION:
                rows.append([InlineKeyboardButton(text=opt.label, callback_data="stk:sub:none")])
                continue
            mark = "✅ " if opt.value == form.subcategory else ""
            rows.append([InlineKeyboardButton(text=f"{mark}{opt.label}", callback_data=f"stk:sub:{base + i}")])
        if len(options) > PAGE_OPTIONS:
            rows.append(_nav_row("stk:subp", page, max_page))

        rows.append([InlineKeyboardButton(text=f"🔁 Сменить тип ({form.category})", callback_data="stk:types")])
        rows.append([
            InlineKeyboardButton(
                text=("✅ " if form.sort_mode is mode else "") + label,
                callback_data=f"stk:sort:{mode.value}",
            )
            for mode, label in SORT_LABELS.items()
        ])
        rows.append([
            InlineKeyboardButton(
                text=("✅ " if form.stock_filter is f else "") + label,
                callback_data=f"stk:oos:{f.value}",
            )
            for f, label in FILTER_LABELS.items()
        ])

    rows.append([InlineKeyboardButton(text="👀 Показать", callback_data="stk:go")])
    rows.append([InlineKeyboardButton(text="❌ Отмена", callback_data="stk:cancel")])
    return InlineKeyboardMarkup(inline_keyboard=rows)


# ---------------------------------------------------------------------
# Presenter (Telegram)
# ---------------------------------------------------------------------
class TelegramPresenter:
    def __init__(self, bot: Bot) -> None:
        self._bot = bot

    async def open_form(self, destination: int, form: PickerForm) -> Message:
        return await self._bot.send_message(destination, form_text(form), reply_markup=form_keyboard(form))

    async def update_form(self, token: Message, form: PickerForm, show_types: bool = False, page: int = 0) -> None:
        try:
            await token.edit_text(form_text(form), reply_markup=form_keyboard(form, show_types, page))
        except TelegramBadRequest as e:
            # повторный клик по той же кнопке
            if "message is not modified" not in str(e):
                raise

    async def post_message(self, destination: int, text: str) -> None:
        await self._bot.send_message(destination, text)

    async def post_notice(self, destination: int, actor: int, text: str) -> None:
        # в Telegram нет эфемерных сообщений — отвечаем в тот же чат
        await self._bot.send_message(destination, text)


# ---------------------------------------------------------------------
# Session helpers
# ---------------------------------------------------------------------
async def _load_session(state: FSMContext) -> Optional[SelectionSession]:
    data = await state.get_data()
    raw = data.get(SESSION_KEY)
    if not isinstance(raw, dict):
        return None
    return SelectionSession.from_dict(raw)


async def _save_session(state: FSMContext, session: SelectionSession) -> None:
    session.touch()
    await state.update_data({SESSION_KEY: session.to_dict()})


def _is_session_form(session: SelectionSession, callback: CallbackQuery) -> bool:
    if session.form_message_id is None:
        return True
    return callback.message is not None and callback.message.message_id == session.form_message_id


async def _active_session(
    callback: CallbackQuery,
    state: FSMContext,
    flow: SelectionFlow,
    settings: Settings,
) -> Optional[SelectionSession]:
    session = await _load_session(state)
    if session is None or session.is_terminal:
        await state.clear()
        await callback.answer(STALE_TEXT, show_alert=True)
        return None
    if not _is_session_form(session, callback):
        # кнопка со старой формы: текущую сессию не трогаем
        await callback.answer(STALE_TEXT, show_alert=True)
        return None
    if flow.is_expired(session, settings.session_ttl_sec):
        # таймаут = отмена, без побочных эффектов
        flow.cancel(session)
        await state.clear()
        await callback.answer(STALE_TEXT, show_alert=True)
        return None
    return session


def _int_part(data: Optional[str], pos: int) -> Optional[int]:
    parts = (data or "").split(":")
    if len(parts) <= pos:
        return None
    try:
        return int(parts[pos])
    except ValueError:
        return None


def _pick(choices: List[str], idx: Optional[int]) -> Optional[str]:
    if idx is None or idx < 0 or idx >= len(choices):
        return None
    return choices[idx]


# ---------------------------------------------------------------------
# Handlers
# ---------------------------------------------------------------------
@router.message(Command("stock"))
async def cmd_stock(message: Message, state: FSMContext, flow: SelectionFlow):
    presenter = TelegramPresenter(message.bot)
    actor = message.from_user.id if message.from_user else 0

    session = flow.start(message.chat.id)
    if session is None:
        await presenter.post_notice(message.chat.id, actor, EMPTY_INDEX_TEXT)
        return

    form = flow.render(session)
    sent = await presenter.open_form(message.chat.id, form)
    session.form_message_id = sent.message_id
    await state.set_state(StockStates.picking)
    await _save_session(state, session)


@router.callback_query(F.data == "stk:noop")
async def cb_noop(callback: CallbackQuery):
    await callback.answer()


@router.callback_query(F.data.startswith("stk:catp:") | (F.data == "stk:types"))
async def cb_types_page(callback: CallbackQuery, state: FSMContext, flow: SelectionFlow, settings: Settings):
    session = await _active_session(callback, state, flow, settings)
    if session is None:
        return
    page = _int_part(callback.data, 2) or 0
    form = flow.render(session)
    await TelegramPresenter(callback.bot).update_form(callback.message, form, show_types=True, page=page)
    await _save_session(state, session)
    await callback.answer()


@router.callback_query(F.data.startswith("stk:subp:"))
async def cb_subs_page(callback: CallbackQuery, state: FSMContext, flow: SelectionFlow, settings: Settings):
    session = await _active_session(callback, state, flow, settings)
    if session is None:
        return
    page = _int_part(callback.data, 2) or 0
    form = flow.render(session)
    await TelegramPresenter(callback.bot).update_form(callback.message, form, page=page)
    await _save_session(state, session)
    await callback.answer()


@router.callback_query(F.data.startswith("stk:cat:"))
async def cb_category(callback: CallbackQuery, state: FSMContext, flow: SelectionFlow, settings: Settings):
    session = await _active_session(callback, state, flow, settings)
    if session is None:
        return

    category = _pick(session.category_choices, _int_part(callback.data, 2))
    if category is None:
        await callback.answer(STALE_TEXT, show_alert=True)
        return

    try:
        form = flow.select_category(session, category)
    except SelectionError as e:
        await callback.answer(str(e), show_alert=True)
        return

    await TelegramPresenter(callback.bot).update_form(callback.message, form)
    await _save_session(state, session)
    await callback.answer()


@router.callback_query(F.data.startswith("stk:sub:"))
async def cb_subcategory(callback: CallbackQuery, state: FSMContext, flow: SelectionFlow, settings: Settings):
    session = await _active_session(callback, state, flow, settings)
    if session is None:
        return

    if callback.data == "stk:sub:none":
        value: Optional[str] = NO_SELECTION
    else:
        value = _pick(session.subcategory_choices, _int_part(callback.data, 2))
        if value is None:
            await callback.answer(STALE_TEXT, show_alert=True)
            return

    try:
        form = flow.select_subcategory(session, value)
    except SelectionError as e:
        await callback.answer(str(e), show_alert=True)
        return

    await TelegramPresenter(callback.bot).update_form(callback.message, form)
    await _save_session(state, session)
    await callback.answer()


@router.callback_query(F.data.startswith("stk:sort:") | F.data.startswith("stk:oos:"))
async def cb_display_options(callback: CallbackQuery, state: FSMContext, flow: SelectionFlow, settings: Settings):
    session = await _active_session(callback, state, flow, settings)
    if session is None:
        return

    _, kind, value = (callback.data or "::").split(":", 2)
    try:
        if kind == "sort":
            form = flow.set_sort_mode(session, SortMode(value))
        else:
            form = flow.set_stock_filter(session, StockFilter(value))
    except ValueError:
        await callback.answer("Неизвестный вариант", show_alert=True)
        return
    except SelectionError as e:
        await callback.answer(str(e), show_alert=True)
        return

    await TelegramPresenter(callback.bot).update_form(callback.message, form)
    await _save_session(state, session)
    await callback.answer()


@router.callback_query(F.data == "stk:go")
async def cb_submit(callback: CallbackQuery, state: FSMContext, flow: SelectionFlow, settings: Settings):
    session = await _active_session(callback, state, flow, settings)
    if session is None:
        return

    presenter = TelegramPresenter(callback.bot)
    try:
        result = flow.submit(session)
    except SelectionError as e:
        await callback.answer(str(e), show_alert=True)
        return

    if not result.ok:
        form = flow.render(session, errors=result.field_errors)
        await presenter.update_form(callback.message, form)
        await _save_session(state, session)
        await callback.answer("Заполни обязательные поля")
        return

    await callback.answer()
    await state.clear()

    # форму закрываем — как после submit
    try:
        await callback.message.edit_text(
            f"📦 Запрос: <b>{escape(session.category)}</b> / <b>{escape(session.subcategory)}</b>"
        )
    except TelegramBadRequest:
        logger.warning("Could not close picker form in chat %s", session.destination)

    for text in result.messages:
        await presenter.post_message(session.destination, text)


@router.callback_query(F.data == "stk:cancel")
async def cb_cancel(callback: CallbackQuery, state: FSMContext, flow: SelectionFlow):
    session = await _load_session(state)
    # отмена старой формы закрывает только её
    if session is None or _is_session_form(session, callback):
        if session is not None and not session.is_terminal:
            flow.cancel(session)
        await state.clear()
    await callback.answer("Отменено")
    try:
        await callback.message.edit_text("❌ Отменено.")
    except TelegramBadRequest:
        pass
