import pytest

import inventory.flow as flow_mod
from inventory.flow import (
    NO_SELECTION,
    FlowState,
    SelectionError,
    SelectionFlow,
    SelectionSession,
    SessionClosed,
    order_categories,
)
from inventory.index import build_index_from
from inventory.query import SortMode, StockFilter
from inventory.store import IndexStore

from conftest import MARKER, variant

PRIORITY = ("STEERINGWHEEL", "TRIM", "MISSING")


@pytest.fixture
def flow(store):
    return SelectionFlow(store, type_priority=PRIORITY, subcategory_cap=100)


def test_start_on_empty_index_returns_none():
    assert SelectionFlow(IndexStore()).start(destination=1) is None


def test_start_opens_session_with_defaults(flow):
    session = flow.start(destination=42)
    assert session.state is FlowState.AWAITING_CATEGORY
    assert session.destination == 42
    assert session.sort_mode is SortMode.QTY_DESC
    assert session.stock_filter is StockFilter.IN_ONLY
    assert session.subcategory == NO_SELECTION


def test_category_order_priority_first_then_alpha():
    assert order_categories(["ZZTOP", "TRIM", "AIRBAG", "STEERINGWHEEL"], PRIORITY) == [
        "STEERINGWHEEL", "TRIM", "AIRBAG", "ZZTOP",
    ]


def test_render_records_shown_choices(flow):
    session = flow.start(destination=1)
    form = flow.render(session)
    assert [o.value for o in form.category_options] == ["STEERINGWHEEL", "TRIM", "AIRBAG", "ZZTOP"]
    assert session.category_choices == ["STEERINGWHEEL", "TRIM", "AIRBAG", "ZZTOP"]
    assert [o.value for o in form.subcategory_options] == [NO_SELECTION]


def test_select_category_lists_cars_and_keeps_display_picks(flow):
    session = flow.start(destination=1)
    flow.set_sort_mode(session, SortMode.ALPHA)
    flow.set_stock_filter(session, StockFilter.WITH_OOS)

    form = flow.select_category(session, "TRIM")
    assert [o.value for o in form.subcategory_options] == ["BMW", "FORD"]
    assert session.state is FlowState.AWAITING_SUBCATEGORY

    flow.select_subcategory(session, "FORD")
    assert session.state is FlowState.AWAITING_SUBMIT

    form = flow.select_category(session, "AIRBAG")
    assert session.subcategory == NO_SELECTION
    assert session.state is FlowState.AWAITING_SUBCATEGORY
    assert form.sort_mode is SortMode.ALPHA
    assert form.stock_filter is StockFilter.WITH_OOS
    assert [o.value for o in form.subcategory_options] == ["BMW"]


def test_subcategory_options_are_capped(fmt):
    records = [variant(f"C-CAR{i:03d}-TRIM-1", 1) for i in range(150)]
    store = IndexStore(build_index_from(records, fmt, MARKER))
    flow = SelectionFlow(store, subcategory_cap=100)
    session = flow.start(destination=1)
    form = flow.select_category(session, "TRIM")
    assert len(form.subcategory_options) == 100
    assert form.subcategory_options[0].value == "CAR000"


def test_subcategory_before_category_is_rejected(flow):
    session = flow.start(destination=1)
    with pytest.raises(SelectionError):
        flow.select_subcategory(session, "FORD")


def test_submit_with_placeholder_reports_field_error_without_lookup(flow, monkeypatch):
    def _boom(*args, **kwargs):
        raise AssertionError("lookup must not run")

    monkeypatch.setattr(flow_mod, "lookup", _boom)
    session = flow.start(destination=1)
    flow.select_category(session, "TRIM")
    flow.select_subcategory(session, NO_SELECTION)

    result = flow.submit(session)
    assert not result.ok
    assert set(result.field_errors) == {"subcategory"}
    assert session.state is FlowState.AWAITING_SUBCATEGORY
    assert session.category == "TRIM"


def test_submit_reports_both_errors_together(flow):
    session = flow.start(destination=1)
    result = flow.submit(session)
    assert set(result.field_errors) == {"category", "subcategory"}
    assert not session.is_terminal


def test_valid_submit_posts_and_closes(flow):
    session = flow.start(destination=1)
    flow.select_category(session, "TRIM")
    flow.select_subcategory(session, "FORD")
    flow.set_stock_filter(session, StockFilter.WITH_OOS)

    result = flow.submit(session)
    assert result.ok
    assert session.state is FlowState.POSTED
    text = "\n".join(result.messages)
    assert "• 003 — 12" in text and "• 002 — 0" in text

    with pytest.raises(SessionClosed):
        flow.submit(session)
    with pytest.raises(SessionClosed):
        flow.select_category(session, "TRIM")


def test_submit_without_matches_gives_no_matches_message(fmt):
    store = IndexStore(build_index_from([variant("C-FORD-TRIM-1", 0)], fmt, MARKER))
    flow = SelectionFlow(store)
    session = flow.start(destination=1)
    flow.select_category(session, "TRIM")
    flow.select_subcategory(session, "FORD")
    result = flow.submit(session)
    assert result.ok
    assert len(result.messages) == 1
    assert "Нет вариантов" in result.messages[0]


def test_cancel_is_terminal(flow):
    session = flow.start(destination=1)
    flow.cancel(session)
    assert session.state is FlowState.CANCELLED
    with pytest.raises(SessionClosed):
        flow.set_sort_mode(session, SortMode.ALPHA)


def test_session_round_trips_through_dict(flow):
    session = flow.start(destination=7)
    flow.select_category(session, "TRIM")
    restored = SelectionSession.from_dict(session.to_dict())
    assert restored == session


def test_expiry():
    session = SelectionSession(destination=1, created_at=1000.0, touched_at=1000.0)
    assert SelectionFlow.is_expired(session, ttl_sec=60, now=1061.0)
    assert not SelectionFlow.is_expired(session, ttl_sec=60, now=1059.0)
    assert not SelectionFlow.is_expired(session, ttl_sec=0, now=10_000.0)


def test_expiry_counts_from_last_action():
    session = SelectionSession(destination=1, created_at=1000.0, touched_at=1000.0)
    session.touch(now=1050.0)
    assert not SelectionFlow.is_expired(session, ttl_sec=60, now=1100.0)
    assert SelectionFlow.is_expired(session, ttl_sec=60, now=1111.0)


def test_old_session_dict_without_touched_at_uses_created_at():
    restored = SelectionSession.from_dict({"destination": 1, "created_at": 1000.0})
    assert restored.touched_at == 1000.0
    assert restored.form_message_id is None
