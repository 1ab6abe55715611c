"""Sample-based schema inference.

Builds a simplified schema (field paths and their BSON type names) from a
list of sampled documents, and renders it as the compact indented text
that schema and query prompts embed::

    _id: ObjectId
    name: String
    tags: Array<String>
    address: Document
      city: String
      zip: Int32|String
"""

from __future__ import annotations

import datetime
import decimal
import uuid
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from typing import Any

from bson import (
    Binary,
    Code,
    Decimal128,
    Int64,
    MaxKey,
    MinKey,
    ObjectId,
    Regex,
    Timestamp,
)
from bson.dbref import DBRef

_INT32_MIN = -(2**31)
_INT32_MAX = 2**31 - 1


def bson_type_name(value: Any) -> str:
    """BSON type name of a decoded Python value."""
    # bool first: it is a subclass of int.
    if isinstance(value, bool):
        return "Boolean"
    if isinstance(value, Int64):
        return "Int64"
    if isinstance(value, int):
        return "Int32" if _INT32_MIN <= value <= _INT32_MAX else "Int64"
    if isinstance(value, float):
        return "Double"
    if isinstance(value, str):
        return "String"
    if value is None:
        return "Null"
    if isinstance(value, ObjectId):
        return "ObjectId"
    if isinstance(value, datetime.datetime):
        return "Date"
    if isinstance(value, (Decimal128, decimal.Decimal)):
        return "Decimal128"
    if isinstance(value, Mapping):
        return "Document"
    if isinstance(value, (list, tuple)):
        return "Array"
    if isinstance(value, (bytes, Binary, uuid.UUID)):
        return "Binary"
    if isinstance(value, Regex):
        return "RegExp"
    if isinstance(value, Timestamp):
        return "Timestamp"
    if isinstance(value, Code):
        return "Code"
    if isinstance(value, DBRef):
        return "DBRef"
    if isinstance(value, MinKey):
        return "MinKey"
    if isinstance(value, MaxKey):
        return "MaxKey"
    return type(value).__name__


@dataclass
class FieldSchema:
    """Observed types of one field across the sample."""

    count: int = 0
    types: set[str] = field(default_factory=set)
    array_types: set[str] = field(default_factory=set)
    fields: dict[str, FieldSchema] = field(default_factory=dict)

    def observe(self, value: Any) -> None:
        self.count += 1
        type_name = bson_type_name(value)
        self.types.add(type_name)
        if type_name == "Document":
            _observe_document(self.fields, value)
        elif type_name == "Array":
            for item in value:
                item_type = bson_type_name(item)
                self.array_types.add(item_type)
                if item_type == "Document":
                    _observe_document(self.fields, item)

    def type_label(self) -> str:
        labels = []
        for name in sorted(self.types):
            if name == "Array" and self.array_types:
                labels.append(f"Array<{'|'.join(sorted(self.array_types))}>")
            else:
                labels.append(name)
        return "|".join(labels)


def _observe_document(fields: dict[str, FieldSchema], document: Mapping[str, Any]) -> None:
    for key, value in document.items():
        fields.setdefault(key, FieldSchema()).observe(value)


@dataclass
class CollectionSchema:
    """Fields observed in a sample of ``sample_size`` documents."""

    sample_size: int
    fields: dict[str, FieldSchema]

    def format(self) -> str:
        return "\n".join(_format_fields(self.fields, depth=0))

    def to_dict(self) -> dict[str, Any]:
        """JSON-friendly form for the raw schema output action."""
        return {
            "count": self.sample_size,
            "fields": _fields_to_dict(self.fields, self.sample_size),
        }


def infer_schema(documents: Iterable[Mapping[str, Any]]) -> CollectionSchema:
    fields: dict[str, FieldSchema] = {}
    sample_size = 0
    for document in documents:
        sample_size += 1
        _observe_document(fields, document)
    return CollectionSchema(sample_size=sample_size, fields=fields)


def _format_fields(fields: dict[str, FieldSchema], depth: int) -> list[str]:
    lines: list[str] = []
    indent = "  " * depth
    for name, schema in fields.items():
        lines.append(f"{indent}{name}: {schema.type_label()}")
        if schema.fields:
            lines.extend(_format_fields(schema.fields, depth + 1))
    return lines


def _fields_to_dict(fields: dict[str, FieldSchema], parent_count: int) -> dict[str, Any]:
    result: dict[str, Any] = {}
    for name, schema in fields.items():
        entry: dict[str, Any] = {
            "types": sorted(schema.types),
            "probability": (
                min(1.0, round(schema.count / parent_count, 4)) if parent_count else 0
            ),
        }
        if schema.array_types:
            entry["arrayTypes"] = sorted(schema.array_types)
        if schema.fields:
            entry["fields"] = _fields_to_dict(schema.fields, schema.count)
        result[name] = entry
    return result
