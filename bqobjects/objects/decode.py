"""
Decode BigQuery rows into record instances.

Cells may be textual (REST / tabledata rows, JSON files, the encoder's own
output) or already typed (``Client.query(...).result()`` rows). Dispatch
is on the shape of the cell:

- list / tuple       -> REPEATED, each element decoded against the element type
- mapping / ``Row``  -> RECORD, decoded into a new instance of the field's class
- anything else      -> scalar, coerced to the field's declared kind

Null cells leave the field at the value the class's constructor gave it.

Temporal text is parsed defensively. TIMESTAMP accepts, in order:

1. a number, read as microseconds since the epoch (truncated to milliseconds)
2. ``yyyy-MM-dd HH:mm:ss[.ffffff] UTC``
3. an ISO-8601 instant carrying a zone (``Z`` or an offset)
4. an ISO-8601 local date-time, taken as UTC
"""

from __future__ import annotations

import datetime as dt
import re
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, Iterable, Mapping, Optional

import numpy as np
import pandas as pd
from google.cloud.bigquery.table import Row

from bqobjects.common.errors import DateTimeFormatError, RecordConstructionError, UnsupportedTypeError
from bqobjects.common.utils import get_logger
from bqobjects.objects.types import (
    ScalarKind,
    classify,
    collection_factory,
    element_type,
    field_map,
    is_collection,
    record_fields,
    strip_annotated,
    type_name,
    unwrap_optional,
)

logger = get_logger("bqobjects.objects.decode")

_EPOCH = dt.datetime(1970, 1, 1, tzinfo=dt.timezone.utc)
_NUMBER_RE = re.compile(r"[+-]?(\d+\.?\d*|\.\d+)([eE][+-]?\d+)?")
_UTC_SUFFIX = " UTC"
_UTC_SUFFIX_FORMATS = ("%Y-%m-%d %H:%M:%S", "%Y-%m-%d %H:%M:%S.%f")
_RELAXED_DATETIME_FORMATS = (
    "%Y-%m-%dT%H:%M:%S.%f",
    "%Y-%m-%d %H:%M:%S.%f",
    "%Y-%m-%dT%H:%M:%S",
    "%Y-%m-%d %H:%M:%S",
    "%Y-%m-%dT%H:%M",
    "%Y-%m-%d %H:%M",
)
_RELAXED_TIME_FORMATS = ("%H:%M:%S.%f", "%H:%M:%S", "%H:%M")

# DataFrame rows carry REPEATED values as numpy arrays.
_SEQUENCE_CELLS = (list, tuple, np.ndarray)


# ---------------------------------------------------------------------
# Rows and records
# ---------------------------------------------------------------------

def infer_mappings(columns: Iterable[str], cls: type) -> Dict[str, str]:
    """
    Column -> field mapping by exact name. Columns without a matching field
    are dropped.
    """
    names = field_map(cls)
    return {c: c for c in columns if c in names}


def decode_row(row: Any, cls: type, mapping: Optional[Mapping[str, str]] = None) -> Any:
    """
    Build one ``cls`` instance from a row.

    Args:
        row: mapping-like row (dict, ``bigquery.Row``).
        cls: target record class; must be constructible without arguments.
        mapping: column -> field names. Inferred from the row's keys when None.
    """
    if mapping is None:
        mapping = infer_mappings(_keys(row), cls)

    instance = new_instance(cls)
    fields = field_map(cls)
    for column, field_name in mapping.items():
        f = fields.get(field_name)
        if f is None:
            logger.debug("Field %r not found on %s; skipping column %r.", field_name, type_name(cls), column)
            continue
        cell = row.get(column)
        if is_null(cell):
            continue
        _set_field(instance, f.name, decode_value(cell, f.type, f"{type_name(cls)}.{f.name}"))
    return instance


def decode_record(record: Any, cls: Any) -> Any:
    """
    Build a nested record. Fields missing from the record are skipped with a
    warning.
    """
    cls = strip_annotated(unwrap_optional(cls))
    instance = new_instance(cls)
    keys = set(_keys(record))
    for f in record_fields(cls):
        if f.name not in keys:
            logger.warning(
                "Column '%s' not found in nested BigQuery record. Skipping field.", f.name
            )
            continue
        cell = record[f.name]
        if is_null(cell):
            continue
        _set_field(instance, f.name, decode_value(cell, f.type, f"{type_name(cls)}.{f.name}"))
    return instance


def decode_value(cell: Any, declared: Any, where: str = "") -> Any:
    """Decode a non-null cell against a declared field type."""
    if isinstance(cell, _SEQUENCE_CELLS):
        if not is_collection(declared):
            raise UnsupportedTypeError(
                f"{where}: REPEATED value cannot be stored in non-collection type {declared!r}", declared, cell
            )
        item_type = element_type(declared)
        items = [None if is_null(v) else decode_value(v, item_type, where) for v in cell]
        return collection_factory(declared)(items)

    if is_record_cell(cell):
        if is_collection(declared) or classify(declared) is not None:
            raise UnsupportedTypeError(
                f"{where}: RECORD value cannot be stored in type {declared!r}", declared, cell
            )
        return decode_record(cell, declared)

    kind = classify(declared)
    if kind is None:
        raise UnsupportedTypeError(
            f"{where}: scalar value {cell!r} cannot be stored in type {declared!r}", declared, cell
        )
    try:
        return coerce_scalar(cell, kind, strip_annotated(declared))
    except DateTimeFormatError:
        raise
    except (ValueError, TypeError, ArithmeticError) as exc:
        raise RecordConstructionError(
            f"{where}: cannot convert {cell!r} to {kind.value}: {exc}"
        ) from exc


def new_instance(cls: type) -> Any:
    try:
        return cls()
    except TypeError as exc:
        raise RecordConstructionError(
            f"{type_name(cls)} must be constructible without arguments: {exc}"
        ) from exc


def is_record_cell(cell: Any) -> bool:
    return isinstance(cell, (Mapping, Row))


def is_null(cell: Any) -> bool:
    if cell is None:
        return True
    if isinstance(cell, _SEQUENCE_CELLS) or is_record_cell(cell):
        return False
    return bool(pd.api.types.is_scalar(cell) and pd.isna(cell))


def _keys(row: Any) -> Iterable[str]:
    return list(row.keys())


def _set_field(instance: Any, name: str, value: Any) -> None:
    # object.__setattr__ also works on frozen dataclasses
    object.__setattr__(instance, name, value)


# ---------------------------------------------------------------------
# Scalars
# ---------------------------------------------------------------------

def coerce_scalar(value: Any, kind: ScalarKind, target: Any = None) -> Any:
    """
    Convert a cell value to the Python value for ``kind``. ``target`` is the
    declared class; narrower types (``numpy.int8``, enums, ``pd.Timestamp``)
    are built from the wide value.
    """
    if kind is ScalarKind.INTEGER:
        return _narrow(target, int, _to_int(value))
    if kind is ScalarKind.FLOAT:
        return _narrow(target, float, float(value))
    if kind is ScalarKind.BOOLEAN:
        return _narrow(target, bool, _to_bool(value))
    if kind is ScalarKind.STRING:
        return _narrow(target, str, value if isinstance(value, str) else str(value))
    if kind is ScalarKind.NUMERIC:
        return _to_decimal(value)
    if kind is ScalarKind.DATE:
        return parse_date(value)
    if kind is ScalarKind.TIME:
        return parse_time(value)
    if kind is ScalarKind.DATETIME:
        return parse_local_datetime(value)
    if kind is ScalarKind.TIMESTAMP:
        instant = parse_instant(value)
        if isinstance(target, type) and issubclass(target, pd.Timestamp):
            return pd.Timestamp(instant)
        if isinstance(instant, pd.Timestamp):
            return instant.to_pydatetime()
        return instant
    raise UnsupportedTypeError(f"Unsupported kind {kind!r}", kind, value)


def _narrow(target: Any, wide: type, value: Any) -> Any:
    if not isinstance(target, type) or target is wide:
        return value
    return target(value)


def _to_int(value: Any) -> int:
    if isinstance(value, (str, float, Decimal)):
        number = Decimal(value)
        if number != number.to_integral_value():
            raise ValueError(f"not an integer: {value!r}")
        return int(number)
    return int(value)


def _to_bool(value: Any) -> bool:
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in ("true", "1"):
            return True
        if lowered in ("false", "0"):
            return False
        raise ValueError(f"not a boolean: {value!r}")
    return bool(value)


def _to_decimal(value: Any) -> Decimal:
    if isinstance(value, Decimal):
        return value
    try:
        return Decimal(str(value))
    except InvalidOperation as exc:
        raise ValueError(f"not a decimal: {value!r}") from exc


# ---------------------------------------------------------------------
# Temporal parsing
# ---------------------------------------------------------------------

def parse_instant(value: Any) -> dt.datetime:
    """
    Parse a TIMESTAMP cell into an aware UTC datetime.

    Raises:
        DateTimeFormatError: no supported format matched.
    """
    if isinstance(value, dt.datetime):
        return _as_utc(value)
    if isinstance(value, (int, float, Decimal)) and not isinstance(value, bool):
        return _from_epoch_micros(Decimal(str(value)), value)

    text = value if isinstance(value, str) else str(value)

    if _NUMBER_RE.fullmatch(text):
        return _from_epoch_micros(Decimal(text), text)

    if text.endswith(_UTC_SUFFIX):
        parsed = _parse_utc_suffix(text)
        if parsed is not None:
            return parsed

    try:
        parsed = _fromisoformat(text)
    except ValueError:
        parsed = None
    if parsed is not None and parsed.tzinfo is not None:
        return parsed.astimezone(dt.timezone.utc)

    # last resort: zone-less local date-time, read as UTC
    if parsed is None:
        parsed = _strptime_any(text, _RELAXED_DATETIME_FORMATS)
    if parsed is not None:
        return parsed.replace(tzinfo=dt.timezone.utc)

    raise DateTimeFormatError(text, "TIMESTAMP")


def parse_local_datetime(value: Any) -> dt.datetime:
    """Parse a DATETIME cell into a naive datetime (aware input is moved to UTC)."""
    if isinstance(value, dt.datetime):
        return _drop_zone(value)
    text = value if isinstance(value, str) else str(value)

    if text.endswith(_UTC_SUFFIX):
        parsed = _parse_utc_suffix(text)
        if parsed is not None:
            return parsed.replace(tzinfo=None)

    try:
        return _drop_zone(_fromisoformat(text))
    except ValueError:
        pass

    parsed = _strptime_any(text, _RELAXED_DATETIME_FORMATS)
    if parsed is not None:
        return parsed
    raise DateTimeFormatError(text, "DATETIME")


def parse_date(value: Any) -> dt.date:
    if isinstance(value, dt.datetime):
        return value.date()
    if isinstance(value, dt.date):
        return value
    text = value if isinstance(value, str) else str(value)
    try:
        return dt.date.fromisoformat(text)
    except ValueError:
        pass
    try:
        return parse_local_datetime(text).date()
    except DateTimeFormatError:
        raise DateTimeFormatError(text, "DATE") from None


def parse_time(value: Any) -> dt.time:
    if isinstance(value, dt.time):
        return value
    if isinstance(value, dt.datetime):
        return value.time()
    text = value if isinstance(value, str) else str(value)
    try:
        return dt.time.fromisoformat(text)
    except ValueError:
        pass
    for fmt in _RELAXED_TIME_FORMATS:
        try:
            return dt.datetime.strptime(text, fmt).time()
        except ValueError:
            continue
    raise DateTimeFormatError(text, "TIME")


def _from_epoch_micros(micros: Decimal, original: Any) -> dt.datetime:
    try:
        # int() truncates toward zero, like integer division on a long
        millis = int(Decimal(int(micros)) / 1000)
        return _EPOCH + dt.timedelta(milliseconds=millis)
    except (OverflowError, InvalidOperation, ValueError):
        raise DateTimeFormatError(str(original), "TIMESTAMP") from None


def _parse_utc_suffix(text: str) -> Optional[dt.datetime]:
    body = text[: -len(_UTC_SUFFIX)]
    parsed = _strptime_any(body, _UTC_SUFFIX_FORMATS)
    if parsed is None:
        return None
    return parsed.replace(tzinfo=dt.timezone.utc)


def _fromisoformat(text: str) -> dt.datetime:
    if text.endswith(("Z", "z")):
        text = text[:-1] + "+00:00"
    return dt.datetime.fromisoformat(text)


def _strptime_any(text: str, formats: Iterable[str]) -> Optional[dt.datetime]:
    for fmt in formats:
        try:
            return dt.datetime.strptime(text, fmt)
        except ValueError:
            continue
    return None


def _as_utc(value: dt.datetime) -> dt.datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=dt.timezone.utc)
    return value.astimezone(dt.timezone.utc)


def _drop_zone(value: dt.datetime) -> dt.datetime:
    if value.tzinfo is None:
        return value
    return value.astimezone(dt.timezone.utc).replace(tzinfo=None)
