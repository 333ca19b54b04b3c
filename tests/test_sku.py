import pytest

from inventory.sku import ParsedSku, SkuFormat, parse_sku


@pytest.mark.parametrize("raw", [
    None,
    "",
    "   ",
    "X-FORD-TRIM-001",
    "CFORD-TRIM-001",      # prefix without separator
    "D-FORD-TRIM",
    "C",                   # bare prefix has too few fields
    "C-FORD",
])
def test_rejects_foreign_or_short_skus(fmt, raw):
    assert parse_sku(raw, fmt) is None


def test_parses_type_car_and_suffix(fmt):
    assert parse_sku("C-FORD-TRIM-001", fmt) == ParsedSku(category="TRIM", subcategory="FORD", suffix="001")


def test_input_is_trimmed_and_upper_cased(fmt):
    parsed = parse_sku("  c-ford-trim-abc ", fmt)
    assert parsed == ParsedSku(category="TRIM", subcategory="FORD", suffix="ABC")


def test_suffix_empty_when_only_three_fields(fmt):
    assert parse_sku("C-FORD-TRIM", fmt).suffix == ""


def test_suffix_joins_all_trailing_fields(fmt):
    assert parse_sku("C-FORD-TRIM-001-LEFT", fmt).suffix == "001-LEFT"


def test_empty_field_is_rejected(fmt):
    assert parse_sku("C--TRIM-001", fmt) is None
    assert parse_sku("C-FORD--001", fmt) is None


def test_custom_separator_and_indices():
    fmt = SkuFormat(prefix="KIT", separator="_", category_index=1, subcategory_index=2)
    parsed = parse_sku("kit_airbag_tesla_9", fmt)
    assert parsed == ParsedSku(category="AIRBAG", subcategory="TESLA", suffix="9")
    assert parse_sku("KIT-AIRBAG-TESLA-9", fmt) is None


def test_valid_parses_are_upper_case_and_non_empty(fmt):
    for raw in ["C-a-b", "c-Ford-Trim-x", "C-1-2-3-4"]:
        parsed = parse_sku(raw, fmt)
        assert parsed is not None
        assert parsed.category and parsed.category == parsed.category.upper()
        assert parsed.subcategory and parsed.subcategory == parsed.subcategory.upper()


def test_fields_are_taken_as_is():
    parsed = parse_sku("C-FORD- -1", SkuFormat())
    assert parsed == ParsedSku(category=" ", subcategory="FORD", suffix="1")


def test_lower_case_prefix_is_normalised():
    fmt = SkuFormat(prefix=" c ")
    assert fmt.prefix == "C"
    assert parse_sku("C-FORD-TRIM-1", fmt) == ParsedSku(category="TRIM", subcategory="FORD", suffix="1")
