"""
Schema registry: one place mapping item types to their models.

Provides the persisted JSON layout (load/dump), a generic create validator, and
an explicit per-entity schema description usable by clients that render forms.
"""

from __future__ import annotations

import typing
from datetime import date, datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Type, Union

from pydantic import BaseModel, ValidationError

from qms_workflow.core.errors import RecordValidationError

from .capa import CAPA, CAPACreate, CAPAFields
from .common import QualityModel
from .enums import ItemType
from .mrb import MRB, MRBCreate, MRBFields
from .ncr import NCR, NCRCreate, NCRFields
from .scar import SCAR, SCARCreate, SCARFields

QualityRecord = Union[NCR, MRB, CAPA, SCAR]

RECORD_MODELS: Dict[ItemType, Type[BaseModel]] = {
    ItemType.NCR: NCR,
    ItemType.MRB: MRB,
    ItemType.CAPA: CAPA,
    ItemType.SCAR: SCAR,
}

CREATE_MODELS: Dict[ItemType, Type[BaseModel]] = {
    ItemType.NCR: NCRCreate,
    ItemType.MRB: MRBCreate,
    ItemType.CAPA: CAPACreate,
    ItemType.SCAR: SCARCreate,
}

# Fields a caller may change through update_fields. Everything else is owned by the workflow.
EDITABLE_FIELDS: Dict[ItemType, frozenset] = {
    ItemType.NCR: frozenset(NCRFields.model_fields),
    ItemType.MRB: frozenset(MRBFields.model_fields),
    ItemType.CAPA: frozenset(CAPAFields.model_fields),
    ItemType.SCAR: frozenset(SCARFields.model_fields),
}

NUMBER_PREFIXES: Dict[ItemType, str] = {
    ItemType.NCR: "NCR",
    ItemType.MRB: "MRB",
    ItemType.CAPA: "CAPA",
    ItemType.SCAR: "SCAR",
}


def item_type_of(record: QualityModel) -> ItemType:
    return ItemType(record.record_type)  # type: ignore[attr-defined]


def parse_item_type(value: Any) -> ItemType:
    try:
        return ItemType(value)
    except ValueError:
        raise RecordValidationError(
            f"Unknown item type: {value!r}",
            {"allowed": [t.value for t in ItemType]},
        )


def _wrap(exc: ValidationError, what: str) -> RecordValidationError:
    return RecordValidationError(
        f"Invalid {what}",
        exc.errors(include_url=False, include_context=False, include_input=False),
    )


# PUBLIC_INTERFACE
def load_record(document: Dict[str, Any]) -> QualityRecord:
    """Parse a persisted JSON document (camelCase layout) into its record model."""
    if not isinstance(document, dict):
        raise RecordValidationError("Record document must be a JSON object")
    item_type = parse_item_type(document.get("recordType"))
    model = RECORD_MODELS[item_type]
    try:
        return model.model_validate(document)  # type: ignore[return-value]
    except ValidationError as exc:
        raise _wrap(exc, f"{item_type.value} record")


# PUBLIC_INTERFACE
def dump_record(record: QualityModel) -> Dict[str, Any]:
    """Serialize a record to its persisted JSON layout."""
    return record.model_dump(mode="json", by_alias=True)


# PUBLIC_INTERFACE
def validate_create(item_type: ItemType, payload: Union[Dict[str, Any], BaseModel]) -> BaseModel:
    """Validate a create payload for the given item type."""
    model = CREATE_MODELS[item_type]
    if isinstance(payload, model):
        return payload
    if isinstance(payload, BaseModel):
        payload = payload.model_dump(by_alias=True, exclude_unset=True)
    try:
        return model.model_validate(payload)
    except ValidationError as exc:
        raise _wrap(exc, f"{item_type.value} payload")


def revalidate(record: QualityModel) -> QualityRecord:
    """Re-run model validation (field constraints and invariants) on a mutated snapshot."""
    try:
        return type(record).model_validate(record.model_dump())  # type: ignore[return-value]
    except ValidationError as exc:
        raise _wrap(exc, f"{record.record_type} record")  # type: ignore[attr-defined]


def validate_field_updates(item_type: ItemType, fields: Dict[str, Any]) -> Dict[str, Any]:
    """
    Map camelCase or snake_case field names to attribute names and reject
    anything that is not an editable field.
    """
    model = RECORD_MODELS[item_type]
    by_alias = {
        (info.alias or name): name for name, info in model.model_fields.items()
    }
    editable = EDITABLE_FIELDS[item_type]
    resolved: Dict[str, Any] = {}
    rejected: List[str] = []
    for key, value in fields.items():
        name = by_alias.get(key, key)
        if name not in editable:
            rejected.append(key)
            continue
        resolved[name] = value
    if rejected:
        raise RecordValidationError(
            "Fields are not editable or do not exist",
            {"fields": rejected, "editable": sorted(editable)},
        )
    return resolved


def _unwrap_optional(annotation: Any) -> tuple:
    origin = typing.get_origin(annotation)
    if origin is Union:
        args = [a for a in typing.get_args(annotation) if a is not type(None)]
        if len(args) == 1:
            return args[0], True
    return annotation, False


def _type_tag(annotation: Any) -> str:
    annotation, _ = _unwrap_optional(annotation)
    origin = typing.get_origin(annotation)
    if origin in (list, List):
        return "array"
    if origin is typing.Literal:
        return "enum"
    if isinstance(annotation, type):
        if issubclass(annotation, Enum):
            return "enum"
        if issubclass(annotation, bool):
            return "boolean"
        if issubclass(annotation, int):
            return "integer"
        if issubclass(annotation, float):
            return "number"
        if issubclass(annotation, datetime):
            return "datetime"
        if issubclass(annotation, date):
            return "date"
        if issubclass(annotation, str):
            return "string"
        if issubclass(annotation, BaseModel):
            return "object"
    return "any"


def _enum_values(annotation: Any) -> Optional[List[str]]:
    annotation, _ = _unwrap_optional(annotation)
    if typing.get_origin(annotation) is typing.Literal:
        return [str(a) for a in typing.get_args(annotation)]
    if isinstance(annotation, type) and issubclass(annotation, Enum):
        return [m.value for m in annotation]
    return None


# PUBLIC_INTERFACE
def describe_schema(item_type: ItemType) -> List[Dict[str, Any]]:
    """
    Describe the persisted layout of an item type as a list of field specs:
    name (wire name), type tag, required flag, enum values, and whether the
    field is caller-editable.
    """
    model = RECORD_MODELS[item_type]
    editable = EDITABLE_FIELDS[item_type]
    specs: List[Dict[str, Any]] = []
    for name, info in model.model_fields.items():
        specs.append(
            {
                "name": info.alias or name,
                "type": _type_tag(info.annotation),
                "required": info.is_required(),
                "enumValues": _enum_values(info.annotation),
                "editable": name in editable,
            }
        )
    return specs
