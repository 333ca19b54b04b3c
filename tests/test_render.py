from inventory.index import VariantEntry
from inventory.query import StockFilter
from inventory.render import build_result_messages, variant_line


def _variants(n, suffix_len=10):
    return [VariantEntry(sku=f"C-FORD-TRIM-{i}", suffix=f"{i:0{suffix_len}d}", available=i) for i in range(n)]


def test_empty_result_is_no_matches_message():
    (msg,) = build_result_messages("TRIM", "FORD", [], StockFilter.IN_ONLY)
    assert "Нет вариантов в наличии" in msg
    assert "TRIM" in msg and "FORD" in msg


def test_empty_result_with_oos_wording():
    (msg,) = build_result_messages("TRIM", "FORD", [], StockFilter.WITH_OOS)
    assert "ни в наличии" in msg


def test_single_message_has_header_and_lines():
    (msg,) = build_result_messages("TRIM", "FORD", [VariantEntry("C-FORD-TRIM-001", "001", 5)])
    assert msg.splitlines()[0].startswith("<b>В наличии</b>")
    assert "• 001 — 5" in msg


def test_line_falls_back_to_sku_and_escapes_html():
    assert variant_line(VariantEntry("C-A-B", "", 2)) == "• C-A-B — 2"
    assert variant_line(VariantEntry("x", "<L&R>", 1)) == "• &lt;L&amp;R&gt; — 1"


def test_chunks_respect_limit_and_keep_every_line():
    variants = _variants(400)
    messages = build_result_messages("TRIM", "FORD", variants, max_chars=1000, max_messages=100)
    assert len(messages) > 1
    assert all(len(m) <= 1000 for m in messages)
    assert sum("<b>Тип:</b>" in m for m in messages) == 1
    lines = [ln for m in messages for ln in m.splitlines() if ln.startswith("• ")]
    assert len(lines) == len(variants)


def test_too_many_chunks_are_truncated():
    messages = build_result_messages("TRIM", "FORD", _variants(400), max_chars=500, max_messages=3)
    assert len(messages) == 3
    assert messages[-1].endswith("…")
