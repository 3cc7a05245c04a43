"""Quantity and weight totals for simple and complex calculators."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation

from tally.entities import ComplexState, Pair, PairScope
from tally.errors import NoDataError
from tally.schema import SIMPLE_KIND


_LEADING_INT = re.compile(r"^\s*\+?(\d+)")
_LEADING_DECIMAL = re.compile(r"^\s*\+?(\d+(?:\.\d*)?|\.\d+)")
_ONE_PLACE = Decimal("0.1")


def parse_quantity(raw: str | None) -> int:
    """Leading-digit integer parse; anything unparseable counts as 0."""
    match = _LEADING_INT.match(str(raw or ""))
    return int(match.group(1)) if match else 0


def parse_weight(raw: str | None) -> Decimal:
    match = _LEADING_DECIMAL.match(str(raw or ""))
    if not match:
        return Decimal(0)
    try:
        return Decimal(match.group(1))
    except InvalidOperation:
        return Decimal(0)


def round_weight(total: Decimal) -> Decimal:
    """Integral totals stay integral; others round half away from zero to one place."""
    if total == total.to_integral_value():
        return total.to_integral_value()
    return total.quantize(_ONE_PLACE, rounding=ROUND_HALF_UP)


def format_weight(value) -> str:
    """Display form shared by both calculators and the history panel."""
    try:
        total = value if isinstance(value, Decimal) else Decimal(str(value))
    except InvalidOperation:
        return str(value)
    if total == total.to_integral_value():
        return str(int(total))
    return f"{round_weight(total):.1f}"


def _weight_number(total: Decimal) -> int | float:
    rounded = round_weight(total)
    if rounded == rounded.to_integral_value():
        return int(rounded)
    return float(rounded)


@dataclass
class PairTotals:
    quantity: int = 0
    weight: Decimal = field(default_factory=lambda: Decimal(0))
    has_data: bool = False


def fold_pairs(pairs: list[Pair]) -> PairTotals:
    totals = PairTotals()
    for pair in pairs:
        if pair.quantity.strip():
            totals.quantity += parse_quantity(pair.quantity)
            totals.has_data = True
        if pair.weight.strip():
            totals.weight += parse_weight(pair.weight)
            totals.has_data = True
    return totals


@dataclass
class SimpleResult:
    has_data: bool
    total_quantity: int
    total_weight: Decimal

    def payload(self) -> dict:
        return {
            "total_quantity": str(self.total_quantity),
            "total_weight": format_weight(self.total_weight),
        }


@dataclass
class ItemResult:
    item_id: str
    name: str
    quantity: int
    weight: Decimal

    def payload(self) -> dict:
        return {"name": self.name, "quantity": self.quantity, "weight": _weight_number(self.weight)}


@dataclass
class ComplexResult:
    rows: list[ItemResult]

    @property
    def has_data(self) -> bool:
        return bool(self.rows)

    def payload(self) -> list[dict]:
        return [row.payload() for row in self.rows]


def calculate_simple(scope: PairScope) -> SimpleResult:
    totals = fold_pairs(scope.ordered())
    return SimpleResult(totals.has_data, totals.quantity, totals.weight)


def calculate_complex(state: ComplexState) -> ComplexResult:
    rows: list[ItemResult] = []
    for item in state.ordered():
        totals = fold_pairs(item.scope.ordered())
        if not totals.has_data:
            continue
        rows.append(ItemResult(item.id, item.name, totals.quantity, totals.weight))
    return ComplexResult(rows)


def require_data(result: SimpleResult | ComplexResult) -> SimpleResult | ComplexResult:
    if not result.has_data:
        raise NoDataError("Please add some data before calculating")
    return result


def summarize_results(kind: str, results) -> str:
    """One-line history summary for a stored result payload."""
    if kind == SIMPLE_KIND:
        if not isinstance(results, dict):
            return "No results"
        return f"Qty: {results.get('total_quantity', '0')}, Weight: {results.get('total_weight', '0')}"
    count = len(results) if isinstance(results, list) else 0
    return f"{count} items calculated"
