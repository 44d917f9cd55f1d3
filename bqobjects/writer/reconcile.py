"""
Create or update a destination table so it matches the schema inferred
from the rows being written.

Used by :class:`bqobjects.writer.writer.InsertBuilder` after an insert
fails because the table is missing or its schema does not match:

    insert -> failed -> retryable? -> reconcile_table() -> insert once more

The table definition (schema, time partitioning, clustering) is always
replaced as a whole; individual fields are never patched.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import List, Mapping, Optional, Sequence, Tuple

from google.cloud import bigquery
from google.api_core.exceptions import Conflict, GoogleAPICallError, NotFound

from bqobjects.common.bq_utils import get_table_or_none, schemas_equal, table_fqn
from bqobjects.common.utils import get_logger

logger = get_logger("bqobjects.writer.reconcile")

NOT_FOUND_REASON = "notFound"
SCHEMA_MISMATCH_MARKER = "schema mismatch"

PARTITION_TYPES = {
    "DAY": bigquery.TimePartitioningType.DAY,
    "HOUR": bigquery.TimePartitioningType.HOUR,
    "MONTH": bigquery.TimePartitioningType.MONTH,
    "YEAR": bigquery.TimePartitioningType.YEAR,
}
DEFAULT_PARTITION_TYPE = "DAY"

# Table properties written by update_table; together they are the whole definition.
UPDATE_FIELDS: List[str] = ["schema", "time_partitioning", "clustering_fields"]

CREATED = "created"
UPDATED = "updated"
UNCHANGED = "unchanged"


def normalize_partition_type(type_: Optional[str]) -> str:
    key = (type_ or DEFAULT_PARTITION_TYPE).upper()
    if key not in PARTITION_TYPES:
        raise ValueError(f"Unsupported partition type {type_!r}; expected one of {sorted(PARTITION_TYPES)}")
    return key


# ---------------------------------------------------------------------
# Table definition
# ---------------------------------------------------------------------

@dataclass(frozen=True)
class TableDefinition:
    """Schema plus the physical layout options we manage."""

    schema: Tuple[bigquery.SchemaField, ...]
    partition_field: Optional[str] = None
    partition_type: str = DEFAULT_PARTITION_TYPE
    clustering_fields: Optional[Tuple[str, ...]] = None

    @classmethod
    def from_table(cls, table: bigquery.Table) -> "TableDefinition":
        tp = table.time_partitioning
        clustering = table.clustering_fields
        return cls(
            schema=tuple(table.schema or ()),
            partition_field=tp.field if tp is not None else None,
            partition_type=(tp.type_ or DEFAULT_PARTITION_TYPE) if tp is not None else DEFAULT_PARTITION_TYPE,
            clustering_fields=tuple(clustering) if clustering else None,
        )

    def time_partitioning(self) -> Optional[bigquery.TimePartitioning]:
        if not self.partition_field:
            return None
        return bigquery.TimePartitioning(
            type_=PARTITION_TYPES[normalize_partition_type(self.partition_type)],
            field=self.partition_field,
        )

    def apply_to(self, table: bigquery.Table) -> bigquery.Table:
        """Overwrite schema, partitioning and clustering of ``table`` in place."""
        table.schema = list(self.schema)
        table.time_partitioning = self.time_partitioning()
        table.clustering_fields = list(self.clustering_fields) if self.clustering_fields else None
        return table

    def to_table(self, ref: bigquery.TableReference) -> bigquery.Table:
        return self.apply_to(bigquery.Table(ref))


def needs_update(remote: TableDefinition, required: TableDefinition) -> bool:
    """
    True when the schema differs, or when a requested partition field /
    clustering list differs from the remote one. Options that were not
    requested are not compared.
    """
    if not schemas_equal(remote.schema, required.schema):
        return True
    if required.partition_field and required.partition_field != remote.partition_field:
        return True
    if required.clustering_fields and list(required.clustering_fields) != list(remote.clustering_fields or ()):
        return True
    return False


# ---------------------------------------------------------------------
# Error classification
# ---------------------------------------------------------------------

def is_retryable(exc: BaseException) -> bool:
    """
    An insert error is worth a table repair when the table is missing
    (``NotFound`` or reason ``notFound``) or the message reports a schema
    mismatch. Anything that is not an API error is never retryable.
    """
    if not isinstance(exc, GoogleAPICallError):
        return False
    if isinstance(exc, NotFound):
        return True
    for err in exc.errors or ():
        if isinstance(err, Mapping) and err.get("reason") == NOT_FOUND_REASON:
            return True
    return SCHEMA_MISMATCH_MARKER in (exc.message or str(exc))


# ---------------------------------------------------------------------
# Reconciliation
# ---------------------------------------------------------------------

def reconcile_table(
    client: bigquery.Client,
    ref: bigquery.TableReference,
    required: TableDefinition,
) -> str:
    """
    Make the table at ``ref`` match ``required``.

    Returns:
        "created", "updated" or "unchanged".

    Raises:
        google.api_core.exceptions.GoogleAPICallError: create/update failed.
    """
    fqn = table_fqn(ref)
    table = get_table_or_none(client, ref)

    if table is None:
        try:
            client.create_table(required.to_table(ref))
            logger.info("Created table %s", fqn)
        except Conflict:
            # created by someone else between get_table and create_table
            logger.info("Table %s already exists; continuing", fqn)
        return CREATED

    remote = TableDefinition.from_table(table)
    if not needs_update(remote, required):
        logger.info("Table %s already matches the required definition", fqn)
        return UNCHANGED

    logger.info("Schema or table options mismatch. Updating table %s", fqn)
    client.update_table(required.apply_to(table), UPDATE_FIELDS)
    logger.info("Updated table %s schema and options successfully.", fqn)
    return UPDATED


def describe(definition: TableDefinition) -> Sequence[str]:
    """Short human-readable summary, used by the CLI dry run."""
    lines = [f"fields: {len(definition.schema)}"]
    if definition.partition_field:
        lines.append(f"partitioned by {definition.partition_field} ({definition.partition_type})")
    if definition.clustering_fields:
        lines.append(f"clustered by {', '.join(definition.clustering_fields)}")
    return lines
