"""
Type classification and field introspection for record classes.

A *record class* is a ``@dataclass`` or a plain class with annotated
instance attributes. Each annotation is classified into one of the
BigQuery scalar kinds, or ``None`` when it is a nested record or a
collection.

Python type                                 BigQuery type
------------------------------------------  -------------
int, numpy.integer                          INTEGER
float, numpy.floating                       FLOAT
bool, numpy.bool_                           BOOLEAN
str                                         STRING
decimal.Decimal                             NUMERIC
datetime.date                               DATE
datetime.time                               TIME
datetime.datetime                           DATETIME
pandas.Timestamp, UtcDateTime               TIMESTAMP
list[T], tuple[T, ...], set[T], Sequence[T] REPEATED T
any other annotated class                   RECORD

``Annotated[datetime, ScalarKind.TIMESTAMP]`` stores a datetime as TIMESTAMP;
an override naming any other kind than the base type's own is rejected.
"""

from __future__ import annotations

import collections.abc
import dataclasses
import datetime as dt
import functools
import types
from decimal import Decimal
from enum import Enum
from typing import Annotated, Any, Callable, ClassVar, List, Optional, Tuple, Union, get_args, get_origin, get_type_hints

import numpy as np
import pandas as pd

from bqobjects.common.errors import UnsupportedTypeError


class ScalarKind(str, Enum):
    """BigQuery scalar column types (legacy SQL names, as used by SchemaField)."""

    INTEGER = "INTEGER"
    FLOAT = "FLOAT"
    BOOLEAN = "BOOLEAN"
    STRING = "STRING"
    NUMERIC = "NUMERIC"
    DATE = "DATE"
    TIME = "TIME"
    DATETIME = "DATETIME"
    TIMESTAMP = "TIMESTAMP"


RECORD = "RECORD"
NULLABLE = "NULLABLE"
REPEATED = "REPEATED"

# Zone-aware point in time; decodes to an aware UTC datetime.
UtcDateTime = Annotated[dt.datetime, ScalarKind.TIMESTAMP]

_COLLECTION_ORIGINS = (
    list,
    tuple,
    set,
    frozenset,
    collections.abc.Sequence,
    collections.abc.MutableSequence,
    collections.abc.Collection,
    collections.abc.Iterable,
    collections.abc.Set,
    collections.abc.MutableSet,
)


# ---------------------------------------------------------------------
# Annotation helpers
# ---------------------------------------------------------------------

def unwrap_optional(tp: Any) -> Any:
    """``Optional[X]`` / ``X | None`` -> ``X``. Other unions are returned as-is."""
    origin = get_origin(tp)
    if origin is Union or origin is types.UnionType:
        args = [a for a in get_args(tp) if a is not type(None)]
        if len(args) == 1:
            return args[0]
    return tp


def kind_override(tp: Any) -> Optional[ScalarKind]:
    """Kind given through ``Annotated[T, ScalarKind.X]``, if any."""
    if get_origin(tp) is Annotated:
        for meta in get_args(tp)[1:]:
            if isinstance(meta, ScalarKind):
                return meta
    return None


def strip_annotated(tp: Any) -> Any:
    if get_origin(tp) is Annotated:
        return get_args(tp)[0]
    return tp


def is_collection(tp: Any) -> bool:
    tp = strip_annotated(unwrap_optional(tp))
    if tp in _COLLECTION_ORIGINS:
        return True
    return get_origin(tp) in _COLLECTION_ORIGINS


def element_type(tp: Any) -> Any:
    """
    Element type of a collection annotation, e.g. ``list[str]`` -> ``str``.
    """
    tp = strip_annotated(unwrap_optional(tp))
    args = [a for a in get_args(tp) if a is not Ellipsis]
    if not args:
        raise UnsupportedTypeError(f"Collection type {tp!r} has no element type", tp)
    if any(a != args[0] for a in args[1:]):
        raise UnsupportedTypeError(f"Heterogeneous tuple {tp!r} cannot map to a REPEATED field", tp)
    return unwrap_optional(args[0])


def collection_factory(tp: Any) -> Callable[[List[Any]], Any]:
    """Constructor for decoded collection values (lists unless the annotation says otherwise)."""
    tp = strip_annotated(unwrap_optional(tp))
    origin = get_origin(tp) or tp
    if origin in (tuple, set, frozenset):
        return origin
    if origin in (collections.abc.Set, collections.abc.MutableSet):
        return set
    return list


# ---------------------------------------------------------------------
# Classification
# ---------------------------------------------------------------------

# Kinds an ``Annotated`` override may replace the natural kind with; the
# encoder and decoder handle the base type the same way under both.
_COMPATIBLE_OVERRIDES = {
    ScalarKind.DATETIME: frozenset({ScalarKind.TIMESTAMP}),
}


def classify(tp: Any) -> Optional[ScalarKind]:
    """
    Map a declared type to its scalar kind, or ``None`` for records and
    collections. Never looks at values.

    Raises:
        UnsupportedTypeError: ``Annotated[T, ScalarKind.X]`` where T cannot
            be written and read back as X.
    """
    tp = unwrap_optional(tp)
    override = kind_override(tp)
    natural = _natural_kind(strip_annotated(tp))
    if override is None or override is natural:
        return natural
    if override in _COMPATIBLE_OVERRIDES.get(natural, ()):
        return override
    raise UnsupportedTypeError(
        f"{type_name(strip_annotated(tp))} cannot be stored as {override.value}", tp
    )


def _natural_kind(tp: Any) -> Optional[ScalarKind]:
    if not isinstance(tp, type) or get_origin(tp) is not None:
        return None

    # bool before int: bool is an int subclass
    if issubclass(tp, (bool, np.bool_)):
        return ScalarKind.BOOLEAN
    if issubclass(tp, (int, np.integer)):
        return ScalarKind.INTEGER
    if issubclass(tp, (float, np.floating)):
        return ScalarKind.FLOAT
    if issubclass(tp, str):
        return ScalarKind.STRING
    if issubclass(tp, Decimal):
        return ScalarKind.NUMERIC
    # pd.Timestamp before datetime, datetime before date: subclass chain
    if issubclass(tp, pd.Timestamp):
        return ScalarKind.TIMESTAMP
    if issubclass(tp, dt.datetime):
        return ScalarKind.DATETIME
    if issubclass(tp, dt.date):
        return ScalarKind.DATE
    if issubclass(tp, dt.time):
        return ScalarKind.TIME
    return None


# ---------------------------------------------------------------------
# Record field introspection
# ---------------------------------------------------------------------

@dataclasses.dataclass(frozen=True)
class FieldInfo:
    """One instance field of a record class."""

    name: str
    type: Any  # Optional[...] already unwrapped; Annotated kept

    @property
    def is_collection(self) -> bool:
        return is_collection(self.type)

    @property
    def kind(self) -> Optional[ScalarKind]:
        return classify(self.type)


def _is_classvar(tp: Any) -> bool:
    return tp is ClassVar or get_origin(tp) is ClassVar


@functools.lru_cache(maxsize=None)
def record_fields(cls: type) -> Tuple[FieldInfo, ...]:
    """
    Instance fields of ``cls`` in declaration order (base classes first).

    Dataclasses use :func:`dataclasses.fields`; other classes use their
    resolved annotations minus ``ClassVar`` and dunder names.
    """
    if not isinstance(cls, type) or get_origin(cls) is not None:
        raise UnsupportedTypeError(f"{cls!r} is not a class and cannot be used as a record", cls)
    try:
        hints = get_type_hints(cls, include_extras=True)
    except (NameError, TypeError) as exc:
        raise UnsupportedTypeError(f"Cannot resolve annotations of {cls.__qualname__}: {exc}", cls) from exc

    if dataclasses.is_dataclass(cls):
        names = [f.name for f in dataclasses.fields(cls)]
    else:
        names = [
            n for n, tp in hints.items()
            if not _is_classvar(tp) and not (n.startswith("__") and n.endswith("__"))
        ]
    return tuple(FieldInfo(n, unwrap_optional(hints[n])) for n in names if n in hints)


def field_map(cls: type) -> dict[str, FieldInfo]:
    return {f.name: f for f in record_fields(cls)}


def type_name(tp: Any) -> str:
    return getattr(tp, "__qualname__", None) or repr(tp)
