"""
Form state engine for the signer page.

Holds the current draft (field id -> string value) and the current selection
of every mutual exclusion group. The engine is mutated synchronously from
input handlers only; listeners are notified after each change has been fully
applied.
"""
from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Callable, Mapping

from docsign.fieldmap.schema import FieldDescriptor, FieldMap

ChangeListener = Callable[[dict[str, str]], None]


class UnknownFieldError(KeyError):
    pass


@dataclass(frozen=True)
class Completion:
    percentage: int
    filled: int
    total: int


def _is_filled(value: str | None) -> bool:
    return bool(value and value.strip())


class FormStateEngine:
    def __init__(self, field_map: FieldMap, initial: Mapping[str, str] | None = None) -> None:
        self.field_map = field_map
        self._values: dict[str, str] = {}
        self._selections: dict[str, str] = {}
        self._listeners: list[ChangeListener] = []
        if initial:
            self.load(initial)

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------
    @property
    def values(self) -> dict[str, str]:
        return dict(self._values)

    @property
    def selections(self) -> dict[str, str]:
        return dict(self._selections)

    def value(self, field_id: str) -> str:
        return self._values.get(field_id, "")

    def snapshot(self) -> dict[str, str]:
        """Values worth persisting or submitting (non-empty only)."""
        return {key: value for key, value in self._values.items() if _is_filled(value)}

    def subscribe(self, listener: ChangeListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    # ------------------------------------------------------------------
    # Mutation
    # ------------------------------------------------------------------
    def set_field(self, field_id: str, value: str | None) -> None:
        field = self.field_map.get(field_id)
        if field is None:
            raise UnknownFieldError(field_id)
        normalized = "" if value is None else str(value)

        values = dict(self._values)
        selections = dict(self._selections)

        if self.field_map.is_selector(field):
            group = field.mutual_exclusion_group  # type: ignore[union-attr]
            if normalized and field.option_label(normalized) is None:  # type: ignore[union-attr]
                raise ValueError(f"{normalized!r} is not an option of {field_id!r}")
            if normalized:
                selections[group] = normalized
            else:
                selections.pop(group, None)
            for dependent in self.field_map.dependents_of(group):
                if not dependent.condition.applies(selections):  # type: ignore[union-attr]
                    # Kept as "" so a draft write overwrites the stored value.
                    values[dependent.id] = ""

        values[field_id] = normalized
        # Single swap: observers never see the old selection with new dependents or vice versa.
        self._values, self._selections = values, selections
        self._emit()

    def load(self, responses: Mapping[str, str]) -> None:
        """Hydrate from a saved draft. Unknown ids and values inconsistent with the selection are dropped."""
        values: dict[str, str] = {}
        selections: dict[str, str] = {}
        for group, selector in self.field_map.selectors.items():
            raw = responses.get(selector.id)
            if raw and selector.option_label(str(raw)) is not None:
                selections[group] = str(raw)
                values[selector.id] = str(raw)
        for field in self.field_map:
            if field.id in values or field.id not in responses:
                continue
            if self.field_map.is_selector(field):
                continue
            if field.condition and not field.condition.applies(selections):
                continue
            raw = responses[field.id]
            values[field.id] = "" if raw is None else str(raw)
        self._values, self._selections = values, selections
        self._emit()

    def clear(self) -> None:
        self._values, self._selections = {}, {}
        self._emit()

    def _emit(self) -> None:
        snapshot = self.snapshot()
        for listener in list(self._listeners):
            listener(snapshot)

    # ------------------------------------------------------------------
    # Derived state
    # ------------------------------------------------------------------
    def is_active(self, field: FieldDescriptor) -> bool:
        return field.condition is None or field.condition.applies(self._selections)

    def is_required(self, field: FieldDescriptor) -> bool:
        return field.required and self.is_active(field)

    def is_filled(self, field: FieldDescriptor) -> bool:
        return _is_filled(self._values.get(field.id))

    def completion(self) -> Completion:
        required = [field for field in self.field_map if self.is_required(field)]
        total = len(required)
        filled = sum(1 for field in required if self.is_filled(field))
        if total == 0:
            return Completion(percentage=100, filled=0, total=0)
        # Half-up rounding, matching what the signer page displays.
        percentage = int(math.floor(filled / total * 100 + 0.5))
        return Completion(percentage=percentage, filled=filled, total=total)

    def unfilled_required(self) -> list[FieldDescriptor]:
        return [field for field in self.field_map if self.is_required(field) and not self.is_filled(field)]

    def first_unfilled(self) -> FieldDescriptor | None:
        missing = self.unfilled_required()
        return missing[0] if missing else None

    def missing_for_submission(self) -> list[str]:
        return [field.id for field in self.unfilled_required()]
