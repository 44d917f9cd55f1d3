"""
Exceptions raised by bqobjects.

Everything derives from :class:`BigQueryObjectsError`; the few errors that
describe bad input also subclass the matching builtin so callers can catch
``ValueError`` / ``TypeError`` as usual.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional, Sequence


class BigQueryObjectsError(Exception):
    """Base class for bqobjects errors."""


# ---------------------------------------------------------------------
# Schema / type mapping
# ---------------------------------------------------------------------

class EmptyInputError(BigQueryObjectsError, ValueError):
    """A schema was requested from an empty collection of objects."""


class UnsupportedTypeError(BigQueryObjectsError, TypeError):
    """A type (or value) has no BigQuery mapping."""

    def __init__(self, message: str, type_: Any = None, value: Any = None):
        super().__init__(message)
        self.type = type_
        self.value = value


class CyclicSchemaError(BigQueryObjectsError, ValueError):
    """A record type refers back to itself, directly or through other records."""

    def __init__(self, chain: Sequence[type]):
        self.chain = list(chain)
        names = " -> ".join(getattr(t, "__qualname__", repr(t)) for t in self.chain)
        super().__init__(f"Cyclic record graph, cannot infer schema: {names}")


class DateTimeFormatError(BigQueryObjectsError, ValueError):
    """No supported date/time format matched the given text."""

    def __init__(self, value: str, target: str):
        self.value = value
        self.target = target
        super().__init__(f"Failed to parse {target}: {value!r}")


# ---------------------------------------------------------------------
# Reading
# ---------------------------------------------------------------------

class MappingError(BigQueryObjectsError):
    """Column mapping was configured incorrectly."""


class RecordConstructionError(BigQueryObjectsError):
    """A query row could not be turned into a record instance."""


# ---------------------------------------------------------------------
# Writing
# ---------------------------------------------------------------------

class PartialInsertError(BigQueryObjectsError):
    """Streaming insert succeeded as a call but rejected one or more rows."""

    def __init__(self, table_id: str, errors: Dict[int, List[Dict[str, Any]]]):
        self.table_id = table_id
        self.errors = errors
        super().__init__(
            f"Failed to insert {len(errors)} row(s) into {table_id}; first error: "
            f"{_first_error(errors)}"
        )


class InsertError(BigQueryObjectsError):
    """Insert failed with an error that does not warrant a table repair."""

    def __init__(self, table_id: str, message: str):
        self.table_id = table_id
        super().__init__(f"Failed to insert data into {table_id}: {message}")


class ReconcileError(BigQueryObjectsError):
    """Creating/updating the table or the single retried insert failed."""

    def __init__(self, table_id: str, message: str):
        self.table_id = table_id
        super().__init__(f"Failed to handle table error for {table_id}: {message}")


def _first_error(errors: Dict[int, List[Dict[str, Any]]]) -> Optional[Any]:
    for index in sorted(errors):
        if errors[index]:
            return {"index": index, **errors[index][0]}
    return None
