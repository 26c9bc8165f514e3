from docsign.fieldmap.host_contract import HOST_CONTRACT
from docsign.fieldmap.schema import (
    CheckboxField,
    DateField,
    FieldCondition,
    FieldDescriptor,
    FieldMap,
    FieldMapError,
    FieldOption,
    NumberField,
    RadioField,
    SelectField,
    TextField,
    humanize_field_id,
)

__all__ = [
    "HOST_CONTRACT",
    "CheckboxField",
    "DateField",
    "FieldCondition",
    "FieldDescriptor",
    "FieldMap",
    "FieldMapError",
    "FieldOption",
    "NumberField",
    "RadioField",
    "SelectField",
    "TextField",
    "humanize_field_id",
]
