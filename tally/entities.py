"""In-memory pair/item model with monotonic, never-reused identifiers."""

from __future__ import annotations

from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Callable, Iterator

from tally.errors import EntityNotFound
from tally.runtime_logging import append_runtime_event
from tally.schema import DEFAULT_PERIOD, MENU_PAGE, PAIR_FIELDS, SIMPLE_SCOPE


@dataclass
class Pair:
    local_id: int
    quantity: str = ""
    weight: str = ""

    def is_blank(self) -> bool:
        return not self.quantity.strip() and not self.weight.strip()


@dataclass
class PairScope:
    """Ordered pairs keyed by local id, plus the highest id ever issued."""

    pairs: dict[int, Pair] = field(default_factory=dict)
    pair_counter: int = 0

    def ordered(self) -> list[Pair]:
        return list(self.pairs.values())

    def clear(self) -> None:
        self.pairs.clear()
        self.pair_counter = 0


@dataclass
class Item:
    id: str
    name: str
    scope: PairScope = field(default_factory=PairScope)


@dataclass
class ComplexState:
    items: dict[str, Item] = field(default_factory=dict)
    item_counter: int = 0

    def ordered(self) -> list[Item]:
        return list(self.items.values())

    def clear(self) -> None:
        self.items.clear()
        self.item_counter = 0


@dataclass
class SessionState:
    current_page: str = MENU_PAGE
    selected_period: str = DEFAULT_PERIOD
    simple: PairScope = field(default_factory=PairScope)
    complex: ComplexState = field(default_factory=ComplexState)


def item_id_for(number: int) -> str:
    return f"item-{int(number)}"


class EntityModel:
    """Owns a :class:`SessionState` and notifies subscribers after every mutation.

    Subscribers are called with no arguments. Inside :meth:`batch` notifications
    are collapsed into a single call when the outermost batch exits.
    """

    def __init__(self, state: SessionState | None = None) -> None:
        self.state = state if state is not None else SessionState()
        self._listeners: list[Callable[[], None]] = []
        self._batch_depth = 0
        self._batch_dirty = False

    def subscribe(self, callback: Callable[[], None]) -> None:
        self._listeners.append(callback)

    def _changed(self) -> None:
        if self._batch_depth:
            self._batch_dirty = True
            return
        for callback in list(self._listeners):
            callback()

    @contextmanager
    def batch(self) -> Iterator[None]:
        self._batch_depth += 1
        try:
            yield
        finally:
            self._batch_depth -= 1
            if self._batch_depth == 0 and self._batch_dirty:
                self._batch_dirty = False
                self._changed()

    def scope(self, scope_id: str) -> PairScope | None:
        if scope_id == SIMPLE_SCOPE:
            return self.state.simple
        item = self.state.complex.items.get(scope_id)
        return item.scope if item is not None else None

    def item(self, item_id: str) -> Item | None:
        return self.state.complex.items.get(item_id)

    def add_pair(self, scope_id: str) -> Pair:
        scope = self.scope(scope_id)
        if scope is None:
            raise EntityNotFound(f"Scope {scope_id!r} does not exist.")
        scope.pair_counter += 1
        pair = Pair(local_id=scope.pair_counter)
        scope.pairs[pair.local_id] = pair
        self._changed()
        return pair

    def remove_pair(self, scope_id: str, local_id: int) -> bool:
        scope = self.scope(scope_id)
        if scope is None or local_id not in scope.pairs:
            _log_not_found("remove_pair", scope_id, local_id)
            return False
        del scope.pairs[local_id]
        self._changed()
        return True

    def set_pair_value(self, scope_id: str, local_id: int, field_name: str, raw_value: str | None) -> bool:
        """Store a raw validated string on a pair; numeric checks belong to the input mask."""
        if field_name not in PAIR_FIELDS:
            raise ValueError(f"Unknown pair field: {field_name}")
        scope = self.scope(scope_id)
        pair = scope.pairs.get(local_id) if scope is not None else None
        if pair is None:
            _log_not_found("set_pair_value", scope_id, local_id)
            return False
        value = "" if raw_value is None else str(raw_value)
        if getattr(pair, field_name) == value:
            return True
        setattr(pair, field_name, value)
        self._changed()
        return True

    def add_item(self, name: str) -> Item:
        complex_state = self.state.complex
        complex_state.item_counter += 1
        item = Item(id=item_id_for(complex_state.item_counter), name=str(name))
        complex_state.items[item.id] = item
        self._changed()
        return item

    def remove_item(self, item_id: str) -> bool:
        item = self.state.complex.items.pop(item_id, None)
        if item is None:
            _log_not_found("remove_item", item_id, None)
            return False
        item.scope.clear()
        self._changed()
        return True

    def clear_simple(self) -> None:
        self.state.simple.clear()
        self._changed()

    def clear_complex(self) -> None:
        for item in self.state.complex.ordered():
            item.scope.clear()
        self.state.complex.clear()
        self._changed()

    def set_page(self, page: str) -> None:
        if self.state.current_page != page:
            self.state.current_page = page
            self._changed()

    def set_period(self, period: str) -> None:
        if self.state.selected_period != period:
            self.state.selected_period = period
            self._changed()


def _log_not_found(operation: str, scope_id: str, local_id: int | None) -> None:
    append_runtime_event(
        level="INFO",
        event="entity_not_found",
        message=f"{operation} ignored a missing entity.",
        context={"scope": scope_id, "local_id": local_id},
    )
