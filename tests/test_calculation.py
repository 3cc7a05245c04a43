from __future__ import annotations

from decimal import Decimal

import pytest

from tally.calculation import (
    calculate_complex,
    calculate_simple,
    format_weight,
    parse_quantity,
    parse_weight,
    require_data,
    summarize_results,
)
from tally.entities import EntityModel
from tally.errors import NoDataError
from tally.schema import COMPLEX_KIND, SIMPLE_KIND, SIMPLE_SCOPE


def _fill(model: EntityModel, scope_id: str, rows: list[tuple[str, str]]) -> None:
    for quantity, weight in rows:
        pair = model.add_pair(scope_id)
        model.set_pair_value(scope_id, pair.local_id, "quantity", quantity)
        model.set_pair_value(scope_id, pair.local_id, "weight", weight)


def test_simple_totals():
    model = EntityModel()
    _fill(model, SIMPLE_SCOPE, [("3", "2.5"), ("2", "")])

    result = calculate_simple(model.state.simple)

    assert result.has_data is True
    assert result.payload() == {"total_quantity": "5", "total_weight": "2.5"}


def test_complex_item_weight_rounds_half_up():
    model = EntityModel()
    item = model.add_item("Roman Pottery")
    _fill(model, item.id, [("10", "1.25")])

    result = calculate_complex(model.state.complex)

    assert result.payload() == [{"name": "Roman Pottery", "quantity": 10, "weight": 1.3}]


def test_complex_skips_items_without_data():
    model = EntityModel()
    empty = model.add_item("Roman Glass")
    model.add_pair(empty.id)
    full = model.add_item("Roman Shell")
    _fill(model, full.id, [("1", ""), ("", "0.4")])

    rows = calculate_complex(model.state.complex).rows

    assert [row.item_id for row in rows] == [full.id]
    assert rows[0].quantity == 1
    assert rows[0].weight == Decimal("0.4")


def test_no_data_is_refused():
    model = EntityModel()
    model.add_pair(SIMPLE_SCOPE)
    with pytest.raises(NoDataError, match="Please add some data before calculating"):
        require_data(calculate_simple(model.state.simple))
    with pytest.raises(NoDataError):
        require_data(calculate_complex(model.state.complex))


def test_unparseable_text_counts_as_data_but_adds_zero():
    model = EntityModel()
    _fill(model, SIMPLE_SCOPE, [("abc", "")])
    result = calculate_simple(model.state.simple)
    assert result.has_data is True
    assert result.total_quantity == 0


@pytest.mark.parametrize(
    ("raw", "expected"),
    [("12", 12), ("12abc", 12), (" 7", 7), ("", 0), (None, 0), ("x9", 0)],
)
def test_parse_quantity(raw, expected):
    assert parse_quantity(raw) == expected


def test_parse_weight_is_exact_decimal():
    assert parse_weight(".5") == Decimal("0.5")
    assert parse_weight("2.") == Decimal("2")
    assert parse_weight("junk") == Decimal(0)
    assert parse_weight("0.1") + parse_weight("0.2") == Decimal("0.3")


@pytest.mark.parametrize(
    ("value", "expected"),
    [(Decimal("5"), "5"), (Decimal("5.0"), "5"), (Decimal("1.25"), "1.3"), (Decimal("2.96"), "3.0"), (1.04, "1.0")],
)
def test_format_weight(value, expected):
    assert format_weight(value) == expected


def test_summarize_results():
    assert summarize_results(SIMPLE_KIND, {"total_quantity": "5", "total_weight": "2.5"}) == "Qty: 5, Weight: 2.5"
    assert summarize_results(COMPLEX_KIND, [{}, {}]) == "2 items calculated"
    assert summarize_results(SIMPLE_KIND, None) == "No results"
