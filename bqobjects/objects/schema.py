"""
Infer BigQuery schemas from record classes.

Each annotated field becomes one ``bigquery.SchemaField``:

- scalar annotation           -> NULLABLE <kind>
- record annotation           -> NULLABLE RECORD with the record's fields
- collection of scalars       -> REPEATED <kind>
- collection of records       -> REPEATED RECORD with the record's fields

Schemas are rebuilt on every call; nothing is cached or mutated.
"""

from __future__ import annotations

from typing import Any, Iterable, List, Sequence

from google.cloud import bigquery

from bqobjects.common.errors import CyclicSchemaError, EmptyInputError, UnsupportedTypeError
from bqobjects.objects.types import (
    NULLABLE,
    RECORD,
    REPEATED,
    FieldInfo,
    classify,
    element_type,
    record_fields,
    strip_annotated,
    type_name,
)


def infer_schema(cls: type) -> List[bigquery.SchemaField]:
    """
    Build the schema for a record class.

    Raises:
        UnsupportedTypeError: a field type has no mapping (e.g. ``dict``, bare ``list``).
        CyclicSchemaError: a record refers back to a record already being expanded.
    """
    return _record_schema(cls, ())


def infer_schema_from_objects(objects: Iterable[Any]) -> List[bigquery.SchemaField]:
    """
    Build the schema from the class of the first object. The objects are
    assumed to share one class.
    """
    for obj in objects:
        return infer_schema(type(obj))
    raise EmptyInputError("Cannot generate schema from an empty list of objects.")


def _record_schema(cls: Any, chain: Sequence[type]) -> List[bigquery.SchemaField]:
    cls = strip_annotated(cls)
    if cls in chain:
        raise CyclicSchemaError([*chain, cls])
    fields = record_fields(cls)
    if not fields:
        raise UnsupportedTypeError(
            f"{type_name(cls)} has no annotated fields; it cannot be mapped to a RECORD", cls
        )
    chain = (*chain, cls)
    return [_field_schema(f, chain) for f in fields]


def _field_schema(field: FieldInfo, chain: Sequence[type]) -> bigquery.SchemaField:
    if field.is_collection:
        try:
            item_type = element_type(field.type)
        except UnsupportedTypeError as exc:
            raise UnsupportedTypeError(
                f"{type_name(chain[-1])}.{field.name}: {exc}", field.type
            ) from exc
        mode = REPEATED
    else:
        item_type = field.type
        mode = NULLABLE

    kind = classify(item_type)
    if kind is not None:
        return bigquery.SchemaField(field.name, kind.value, mode=mode)
    return bigquery.SchemaField(
        field.name,
        RECORD,
        mode=mode,
        fields=_record_schema(item_type, chain),
    )
