#!/usr/bin/env python3
"""
Partial updates with explicit field deletion.

An update request is turned into one change per field:

- ``UNCHANGED``       the field was not mentioned
- ``SetValue(value)`` the field gets a new value
- ``CLEARED``         the field is removed (listed in ``delete``)

This keeps "not supplied" and "explicitly cleared" apart.
"""

from dataclasses import dataclass
from typing import Any, Dict, Iterable, Optional, Type, Union

from notification.errors import ValidationError
from notification.schema import EntityModel, validate_entity


class _Marker:
    def __init__(self, label: str):
        self._label = label

    def __repr__(self) -> str:
        return self._label


UNCHANGED = _Marker("UNCHANGED")
CLEARED = _Marker("CLEARED")


@dataclass(frozen=True)
class SetValue:
    value: Any


FieldChange = Union[_Marker, SetValue]


def build_changes(
    model_cls: Type[EntityModel],
    values: Optional[Dict[str, Any]] = None,
    delete: Optional[Iterable[str]] = None,
) -> Dict[str, FieldChange]:
    """Convert supplied values and a delete list into per-field changes.

    Values of None count as "not supplied". Raises ``ValidationError`` for
    unknown properties, attempts to change ``name``, deleting a required
    property, or a property that is both set and deleted.
    """
    changes: Dict[str, FieldChange] = {name: UNCHANGED for name in model_cls.model_fields}
    required = model_cls.required_fields()

    for key, value in (values or {}).items():
        if value is None:
            continue
        field = _resolve(model_cls, key)
        if field == "name":
            raise ValidationError("property 'name' cannot be changed")
        changes[field] = SetValue(value)

    for key in delete or []:
        field = _resolve(model_cls, key)
        if field in required:
            raise ValidationError(f"cannot delete required property '{key}'")
        if isinstance(changes[field], SetValue):
            raise ValidationError(f"property '{key}' is both set and deleted")
        changes[field] = CLEARED

    return changes


def apply_changes(entity: EntityModel, changes: Dict[str, FieldChange]) -> EntityModel:
    """Return a new, re-validated entity with the changes applied."""
    data = entity.model_dump(exclude_none=True)
    for field, change in changes.items():
        if change is CLEARED:
            data.pop(field, None)
        elif isinstance(change, SetValue):
            data[field] = change.value
    return validate_entity(type(entity), data)


def has_changes(changes: Dict[str, FieldChange]) -> bool:
    return any(change is not UNCHANGED for change in changes.values())


def _resolve(model_cls: Type[EntityModel], key: str) -> str:
    try:
        return model_cls.resolve_field(key)
    except ValueError as e:
        raise ValidationError(str(e))
