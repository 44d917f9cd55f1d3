"""
Encode record instances as BigQuery streaming-insert rows.

Rows are plain dicts of JSON-native values, in field declaration order,
ready for ``Client.insert_rows_json``:

- NUMERIC    -> plain decimal string (no exponent, scale kept)
- DATE       -> ``2023-10-27``
- TIME       -> ``10:30:00``
- DATETIME   -> ``2023-10-27T10:30:00``
- TIMESTAMP  -> UTC, ``2023-10-27T10:30:00Z``
- INTEGER / FLOAT / BOOLEAN / STRING -> the value itself (enums: their value)
- records    -> nested dicts; collections -> lists (null elements rejected)

Fields whose value is ``None`` are left out of the row.
"""

from __future__ import annotations

import datetime as dt
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, Iterable, List, Mapping

import numpy as np
import pandas as pd

from bqobjects.common.errors import UnsupportedTypeError
from bqobjects.objects.types import (
    ScalarKind,
    classify,
    element_type,
    is_collection,
    record_fields,
    type_name,
)


def encode_record(obj: Any) -> Dict[str, Any]:
    """
    Encode one record instance. Fields are read from the instance's own class.
    """
    cls = type(obj)
    fields = record_fields(cls)
    if not fields:
        raise UnsupportedTypeError(
            f"Unsupported type: {type_name(cls)} ({obj!r}) has no annotated fields", cls, obj
        )
    row: Dict[str, Any] = {}
    for f in fields:
        value = getattr(obj, f.name, None)
        if is_absent(value):
            continue
        row[f.name] = encode_field(value, f.type, f.name)
    return row


def encode_records(objects: Iterable[Any]) -> List[Dict[str, Any]]:
    return [encode_record(obj) for obj in objects]


def encode_field(value: Any, declared: Any, name: str = "") -> Any:
    """Encode a present value according to its declared field type."""
    if is_collection(declared):
        if isinstance(value, (str, bytes, Mapping)) or not isinstance(value, Iterable):
            raise UnsupportedTypeError(
                f"Unsupported type: expected a collection for {declared!r}, got {type(value).__name__} ({value!r})",
                type(value),
                value,
            )
        items = list(value)
        # BigQuery rejects NULL array elements
        if any(is_absent(v) for v in items):
            raise UnsupportedTypeError(
                f"Unsupported value: REPEATED field {name or declared!r} cannot hold null elements ({items!r})",
                declared,
                value,
            )
        item_type = element_type(declared)
        kind = classify(item_type)
        if kind is not None:
            return [encode_scalar(v, kind) for v in items]
        return [encode_record(v) for v in items]

    kind = classify(declared)
    if kind is not None:
        return encode_scalar(value, kind)
    return encode_record(value)


def encode_scalar(value: Any, kind: ScalarKind) -> Any:
    """
    Canonical insert representation of a scalar value of the given kind.
    """
    if isinstance(value, np.generic):
        value = value.item()

    if kind is ScalarKind.NUMERIC:
        if isinstance(value, Decimal):
            return format(value, "f")
        if isinstance(value, int) and not isinstance(value, bool):
            return str(value)
    elif kind is ScalarKind.TIMESTAMP:
        if isinstance(value, dt.datetime):
            return _utc_iso(value)
    elif kind is ScalarKind.DATETIME:
        if isinstance(value, dt.datetime):
            if value.tzinfo is not None:
                value = value.astimezone(dt.timezone.utc).replace(tzinfo=None)
            return value.isoformat()
    elif kind is ScalarKind.DATE:
        if isinstance(value, dt.date) and not isinstance(value, dt.datetime):
            return value.isoformat()
    elif kind is ScalarKind.TIME:
        if isinstance(value, dt.time):
            return value.isoformat()
    elif kind is ScalarKind.BOOLEAN:
        if isinstance(value, bool):
            return value
    elif kind is ScalarKind.INTEGER:
        if isinstance(value, int) and not isinstance(value, bool):
            return int(value)
    elif kind is ScalarKind.FLOAT:
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            return value
    elif kind is ScalarKind.STRING:
        if isinstance(value, Enum):
            value = value.value
        if isinstance(value, str):
            # exact str, whatever __str__ a subclass defines
            return str.__str__(value)

    # The classifier accepted the declared type, so reaching this point
    # means the value does not match its annotation.
    raise UnsupportedTypeError(
        f"Unsupported type: {type(value).__name__} ({value!r}) for {kind.value} field",
        type(value),
        value,
    )


def is_absent(value: Any) -> bool:
    """None, ``pd.NA`` and ``pd.NaT`` are written as missing keys."""
    return value is None or value is pd.NA or value is pd.NaT


def _utc_iso(value: dt.datetime) -> str:
    if value.tzinfo is None:
        value = value.replace(tzinfo=dt.timezone.utc)
    else:
        value = value.astimezone(dt.timezone.utc)
    return value.replace(tzinfo=None).isoformat() + "Z"
