# inventory/flow.py
# Пикер остатков: тип -> авто -> сортировка/фильтр -> показать.
# Состояние сессии не зависит от транспорта; Telegram-обвязка в handlers/stock.py.
from __future__ import annotations

import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Protocol, Sequence, Tuple

from inventory.query import SortMode, StockFilter, lookup
from inventory.render import build_result_messages
from inventory.store import IndexStore

# "ничего не выбрано" в списке авто
NO_SELECTION = "__disabled__"


class FlowState(str, Enum):
    AWAITING_CATEGORY = "awaiting_category"
    AWAITING_SUBCATEGORY = "awaiting_subcategory"
    AWAITING_SUBMIT = "awaiting_submit"
    POSTED = "posted"
    CANCELLED = "cancelled"


TERMINAL_STATES = frozenset({FlowState.POSTED, FlowState.CANCELLED})

TRANSITIONS: Dict[FlowState, frozenset] = {
    FlowState.AWAITING_CATEGORY: frozenset({
        FlowState.AWAITING_SUBCATEGORY,
        FlowState.CANCELLED,
    }),
    FlowState.AWAITING_SUBCATEGORY: frozenset({
        FlowState.AWAITING_SUBCATEGORY,
        FlowState.AWAITING_SUBMIT,
        FlowState.CANCELLED,
    }),
    FlowState.AWAITING_SUBMIT: frozenset({
        FlowState.AWAITING_SUBCATEGORY,
        FlowState.AWAITING_SUBMIT,
        FlowState.POSTED,
        FlowState.CANCELLED,
    }),
    FlowState.POSTED: frozenset(),
    FlowState.CANCELLED: frozenset(),
}


class SelectionError(Exception):
    pass


class SessionClosed(SelectionError):
    """Операция над уже завершённой сессией."""


@dataclass
class SelectionSession:
    destination: int
    state: FlowState = FlowState.AWAITING_CATEGORY
    category: Optional[str] = None
    subcategory: Optional[str] = NO_SELECTION
    sort_mode: SortMode = SortMode.QTY_DESC
    stock_filter: StockFilter = StockFilter.IN_ONLY
    # значения кнопок в том порядке, в каком их показали
    category_choices: List[str] = field(default_factory=list)
    subcategory_choices: List[str] = field(default_factory=list)
    created_at: float = field(default_factory=time.time)
    # последнее действие пользователя; от него считается таймаут
    touched_at: float = field(default_factory=time.time)
    # сообщение с формой: кнопки других сообщений к сессии не относятся
    form_message_id: Optional[int] = None

    @property
    def is_terminal(self) -> bool:
        return self.state in TERMINAL_STATES

    def touch(self, now: Optional[float] = None) -> None:
        self.touched_at = time.time() if now is None else now

    def to_dict(self) -> Dict[str, Any]:
        return {
            "destination": self.destination,
            "state": self.state.value,
            "category": self.category,
            "subcategory": self.subcategory,
            "sort_mode": self.sort_mode.value,
            "stock_filter": self.stock_filter.value,
            "category_choices": list(self.category_choices),
            "subcategory_choices": list(self.subcategory_choices),
            "created_at": self.created_at,
            "touched_at": self.touched_at,
            "form_message_id": self.form_message_id,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SelectionSession":
        return cls(
            destination=data["destination"],
            state=FlowState(data.get("state", FlowState.AWAITING_CATEGORY.value)),
            category=data.get("category"),
            subcategory=data.get("subcategory", NO_SELECTION),
            sort_mode=SortMode(data.get("sort_mode", SortMode.QTY_DESC.value)),
            stock_filter=StockFilter(data.get("stock_filter", StockFilter.IN_ONLY.value)),
            category_choices=list(data.get("category_choices") or []),
            subcategory_choices=list(data.get("subcategory_choices") or []),
            created_at=float(data.get("created_at") or time.time()),
            touched_at=float(data.get("touched_at") or data.get("created_at") or time.time()),
            form_message_id=data.get("form_message_id"),
        )


@dataclass(frozen=True)
class Option:
    label: str
    value: str


@dataclass(frozen=True)
class PickerForm:
    """Форма пикера без привязки к транспорту."""
    category_options: Tuple[Option, ...]
    category: Optional[str]
    subcategory_options: Tuple[Option, ...]
    subcategory: Optional[str]
    sort_mode: SortMode
    stock_filter: StockFilter
    state: FlowState
    errors: Dict[str, str] = field(default_factory=dict)


@dataclass
class SubmitResult:
    messages: List[str] = field(default_factory=list)
    field_errors: Dict[str, str] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return not self.field_errors


class Presenter(Protocol):
    async def open_form(self, destination: int, form: PickerForm) -> Any: ...

    async def update_form(self, token: Any, form: PickerForm) -> None: ...

    async def post_message(self, destination: int, text: str) -> None: ...

    async def post_notice(self, destination: int, actor: int, text: str) -> None: ...


def order_categories(categories: Sequence[str], priority: Sequence[str]) -> List[str]:
    """Сначала приоритетные (в заданном порядке), потом остальные A→Z."""
    present = {c.upper() for c in categories}
    prio = [p.upper() for p in priority]
    first = [p for p in dict.fromkeys(prio) if p in present]
    rest = sorted(c for c in present if c not in set(prio))
    return first + rest


class SelectionFlow:
    def __init__(
        self,
        store: IndexStore,
        type_priority: Sequence[str] = (),
        subcategory_cap: int = 100,
    ) -> None:
        self._store = store
        self._type_priority = tuple(type_priority)
        self._subcategory_cap = subcategory_cap

    # ---------- lifecycle ----------

    def start(self, destination: int) -> Optional[SelectionSession]:
        """None — индекс ещё не собран (или пуст), форму не открываем."""
        if not self._store.current().categories:
            return None
        return SelectionSession(destination=destination)

    def cancel(self, session: SelectionSession) -> None:
        self._transition(session, FlowState.CANCELLED)

    @staticmethod
    def is_expired(session: SelectionSession, ttl_sec: float, now: Optional[float] = None) -> bool:
        if ttl_sec <= 0:
            return False
        now = time.time() if now is None else now
        return now - session.touched_at > ttl_sec

    # ---------- form ----------

    def category_values(self) -> List[str]:
        return order_categories(list(self._store.current().categories), self._type_priority)

    def subcategory_values(self, category: Optional[str]) -> List[str]:
        if not category:
            return []
        subs = sorted(self._store.current().subcategories(category))
        return subs[: self._subcategory_cap]

    def render(self, session: SelectionSession, errors: Optional[Dict[str, str]] = None) -> PickerForm:
        """
        Собирает форму по текущему снимку и запоминает в сессии
        показанные значения (кнопки ссылаются на них по номеру).
        """
        cats = self.category_values()
        subs = self.subcategory_values(session.category)
        session.category_choices = cats
        session.subcategory_choices = subs

        if subs:
            sub_options = tuple(Option(label=s, value=s) for s in subs)
        elif session.category:
            sub_options = (Option(label="— Нет авто для этого типа —", value=NO_SELECTION),)
        else:
            sub_options = (Option(label="— Сначала выберите тип —", value=NO_SELECTION),)

        return PickerForm(
            category_options=tuple(Option(label=c, value=c) for c in cats),
            category=session.category,
            subcategory_options=sub_options,
            subcategory=session.subcategory,
            sort_mode=session.sort_mode,
            stock_filter=session.stock_filter,
            state=session.state,
            errors=dict(errors or {}),
        )

    # ---------- steps ----------

    def select_category(self, session: SelectionSession, category: str) -> PickerForm:
        self._transition(session, FlowState.AWAITING_SUBCATEGORY)
        session.category = (category or "").strip().upper() or None
        # авто сбрасываем, сортировку/фильтр — нет
        session.subcategory = NO_SELECTION
        return self.render(session)

    def select_subcategory(self, session: SelectionSession, value: Optional[str]) -> PickerForm:
        value = (value or "").strip().upper()
        if not value or value == NO_SELECTION.upper():
            self._transition(session, FlowState.AWAITING_SUBCATEGORY)
            session.subcategory = NO_SELECTION
        else:
            self._transition(session, FlowState.AWAITING_SUBMIT)
            session.subcategory = value
        return self.render(session)

    def set_sort_mode(self, session: SelectionSession, mode: SortMode) -> PickerForm:
        self._ensure_open(session)
        session.sort_mode = SortMode(mode)
        return self.render(session)

    def set_stock_filter(self, session: SelectionSession, stock_filter: StockFilter) -> PickerForm:
        self._ensure_open(session)
        session.stock_filter = StockFilter(stock_filter)
        return self.render(session)

    @staticmethod
    def validate(session: SelectionSession) -> Dict[str, str]:
        errors: Dict[str, str] = {}
        if not session.category:
            errors["category"] = "Выберите тип товара."
        if not session.subcategory or session.subcategory == NO_SELECTION:
            errors["subcategory"] = "Выберите авто."
        return errors

    def submit(self, session: SelectionSession) -> SubmitResult:
        self._ensure_open(session)

        errors = self.validate(session)
        if errors:
            return SubmitResult(field_errors=errors)

        variants = lookup(
            self._store.current(),
            session.category,
            session.subcategory,
            session.sort_mode,
            session.stock_filter,
        )
        messages = build_result_messages(
            session.category, session.subcategory, variants, session.stock_filter,
        )
        self._transition(session, FlowState.POSTED)
        return SubmitResult(messages=messages)

    # ---------- state machine ----------

    @staticmethod
    def _ensure_open(session: SelectionSession) -> None:
        if session.is_terminal:
            raise SessionClosed(f"session is already {session.state.value}")

    def _transition(self, session: SelectionSession, to: FlowState) -> None:
        self._ensure_open(session)
        if to not in TRANSITIONS[session.state]:
            raise SelectionError(f"{session.state.value} -> {to.value} is not allowed")
        session.state = to
