"""
Field Map schema.

A field map binds every fillable contract field to a page and to a position
expressed as percentages of the page size (top-left origin). Percentages are
the only stored geometry: renderers and the stamping pipeline derive absolute
coordinates from them for whatever page size they work with.

The interchange format (shared by the signer page and the server) is a list of
camelCase objects::

    {"id": "host_name", "label": "Full Name", "type": "text", "page": 1,
     "topPct": 33, "leftPct": 12, "widthPct": 55, "required": true}
"""
from __future__ import annotations

import re
from typing import Annotated, Any, Iterable, Iterator, Literal, Mapping, Sequence, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError, field_validator, model_validator
from pydantic.alias_generators import to_camel


class FieldMapError(ValueError):
    """Configuration defect in a field map. Raised at load time, never recovered."""


class FieldOption(BaseModel):
    model_config = ConfigDict(frozen=True)

    value: str
    label: str


class FieldCondition(BaseModel):
    """The field only applies while selector ``group`` holds one of ``values``."""

    model_config = ConfigDict(frozen=True)

    group: str
    values: tuple[str, ...] = Field(min_length=1)

    def applies(self, selections: Mapping[str, str]) -> bool:
        return selections.get(self.group) in self.values


class _FieldBase(BaseModel):
    model_config = ConfigDict(frozen=True, alias_generator=to_camel, populate_by_name=True)

    id: str = Field(min_length=1)
    label: str
    page: int = Field(ge=1)
    top_pct: float = Field(ge=0.0, le=100.0)
    left_pct: float = Field(ge=0.0, le=100.0)
    width_pct: float = Field(gt=0.0, le=100.0)
    required: bool = False
    group: str | None = None
    font_size: float | None = Field(default=None, gt=0.0)
    condition: FieldCondition | None = None

    @model_validator(mode="after")
    def _fits_page_width(self) -> "_FieldBase":
        if self.left_pct + self.width_pct > 100.0:
            raise ValueError(
                f"field {self.id!r} overflows the page: leftPct + widthPct = {self.left_pct + self.width_pct}"
            )
        return self


class TextField(_FieldBase):
    type: Literal["text"] = "text"


class DateField(_FieldBase):
    type: Literal["date"] = "date"


class NumberField(_FieldBase):
    type: Literal["number"] = "number"


class CheckboxField(_FieldBase):
    type: Literal["checkbox"] = "checkbox"


class _ChoiceField(_FieldBase):
    options: tuple[FieldOption, ...] = Field(min_length=1)
    mutual_exclusion_group: str | None = None

    @field_validator("options", mode="before")
    @classmethod
    def _coerce_plain_options(cls, value: Any) -> Any:
        if isinstance(value, (list, tuple)):
            return [{"value": item, "label": item} if isinstance(item, str) else item for item in value]
        return value

    def option_label(self, value: str) -> str | None:
        for option in self.options:
            if option.value == value:
                return option.label
        return None


class SelectField(_ChoiceField):
    type: Literal["select"] = "select"


class RadioField(_ChoiceField):
    type: Literal["radio"] = "radio"


FieldDescriptor = Annotated[
    Union[TextField, DateField, NumberField, SelectField, CheckboxField, RadioField],
    Field(discriminator="type"),
]
ChoiceField = Union[SelectField, RadioField]

_descriptor_list = TypeAdapter(list[FieldDescriptor])


def humanize_field_id(key: str) -> str:
    """``host_name`` -> ``Host name``; ``fixedSum`` -> ``Fixed Sum``."""
    spaced = re.sub(r"([A-Z])", r" \1", key.replace("_", " ")).strip()
    return spaced[:1].upper() + spaced[1:]


class FieldMap:
    """Immutable, validated lookup table of field descriptors."""

    def __init__(self, fields: Iterable[FieldDescriptor]) -> None:
        self._fields: tuple[FieldDescriptor, ...] = tuple(fields)
        self._by_id: dict[str, FieldDescriptor] = {}
        self._selectors: dict[str, ChoiceField] = {}

        for field in self._fields:
            if field.id in self._by_id:
                raise FieldMapError(f"duplicate field id {field.id!r}")
            self._by_id[field.id] = field
            group = getattr(field, "mutual_exclusion_group", None)
            if group:
                if group in self._selectors:
                    raise FieldMapError(f"mutual exclusion group {group!r} has more than one selector")
                self._selectors[group] = field

        for field in self._fields:
            condition = field.condition
            if condition is None:
                continue
            selector = self._selectors.get(condition.group)
            if selector is None:
                raise FieldMapError(f"field {field.id!r} depends on unknown group {condition.group!r}")
            if selector.id == field.id:
                raise FieldMapError(f"selector {field.id!r} cannot depend on its own group")
            known = {option.value for option in selector.options}
            unknown = [value for value in condition.values if value not in known]
            if unknown:
                raise FieldMapError(f"field {field.id!r} depends on unknown options {unknown!r}")

    @classmethod
    def from_schema(cls, raw: Sequence[Mapping[str, Any]]) -> "FieldMap":
        try:
            fields = _descriptor_list.validate_python(list(raw))
        except ValidationError as exc:
            raise FieldMapError(str(exc)) from exc
        return cls(fields)

    def to_schema(self) -> list[dict[str, Any]]:
        return [field.model_dump(mode="json", by_alias=True, exclude_none=True) for field in self._fields]

    @property
    def fields(self) -> tuple[FieldDescriptor, ...]:
        return self._fields

    def __iter__(self) -> Iterator[FieldDescriptor]:
        return iter(self._fields)

    def __len__(self) -> int:
        return len(self._fields)

    def __contains__(self, field_id: object) -> bool:
        return field_id in self._by_id

    def get(self, field_id: str) -> FieldDescriptor | None:
        return self._by_id.get(field_id)

    def fields_for_page(self, page: int) -> list[FieldDescriptor]:
        return [field for field in self._fields if field.page == page]

    def pages_with_fields(self) -> list[int]:
        return sorted({field.page for field in self._fields})

    @property
    def selectors(self) -> Mapping[str, ChoiceField]:
        return dict(self._selectors)

    def selector_for(self, group: str) -> ChoiceField | None:
        return self._selectors.get(group)

    def is_selector(self, field: FieldDescriptor) -> bool:
        group = getattr(field, "mutual_exclusion_group", None)
        return bool(group) and self._selectors.get(group) is field

    def dependents_of(self, group: str) -> list[FieldDescriptor]:
        return [field for field in self._fields if field.condition and field.condition.group == group]

    def display_value(self, field_id: str, value: str) -> str:
        """Human-readable rendering of a stored value (option label for choice fields)."""
        field = self._by_id.get(field_id)
        if isinstance(field, (SelectField, RadioField)):
            label = field.option_label(value)
            if label:
                return label
        return value

    def label_for(self, field_id: str) -> str:
        return humanize_field_id(field_id)
