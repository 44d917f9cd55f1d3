"""
Fluent writer for streaming record instances into BigQuery.

    BigQueryObjectWriter(client) \\
        .insert("analytics", "events") \\
        .rows(events) \\
        .partition_by("created_at", "DAY") \\
        .cluster_by("user_id") \\
        .execute()

The insert is attempted straight away. If it fails because the table does
not exist or its schema does not match, the table is created/updated from
the schema inferred from the rows and the insert is retried exactly once.
"""

from __future__ import annotations

from typing import Any, Dict, Iterable, List, Optional

from google.cloud import bigquery
from google.api_core.exceptions import GoogleAPICallError

from bqobjects.common.bq_utils import table_fqn, table_ref
from bqobjects.common.errors import InsertError, PartialInsertError, ReconcileError
from bqobjects.common.io import get_bq_client
from bqobjects.common.utils import get_logger
from bqobjects.objects.encode import encode_records
from bqobjects.objects.schema import infer_schema_from_objects
from bqobjects.writer.reconcile import (
    DEFAULT_PARTITION_TYPE,
    TableDefinition,
    is_retryable,
    normalize_partition_type,
    reconcile_table,
)

logger = get_logger("bqobjects.writer.writer")


class BigQueryObjectWriter:
    """Entry point for building insert requests against one client."""

    def __init__(self, client: Optional[bigquery.Client] = None, project: Optional[str] = None):
        self.client = client or get_bq_client(project)

    def insert(self, dataset: str, table: str, project: Optional[str] = None) -> "InsertBuilder":
        return InsertBuilder(self.client, dataset, table, project=project)


class InsertBuilder:
    """
    Pending write to one table: the objects to insert plus the partitioning
    and clustering to use if the table has to be (re)defined.
    """

    def __init__(
        self,
        client: bigquery.Client,
        dataset: str,
        table: str,
        project: Optional[str] = None,
    ):
        self.client = client
        self.table_ref = table_ref(client, dataset, table, project)
        self._objects: List[Any] = []
        self._partition_field: Optional[str] = None
        self._partition_type: str = DEFAULT_PARTITION_TYPE
        self._clustering_fields: Optional[List[str]] = None

    @property
    def table_id(self) -> str:
        return table_fqn(self.table_ref)

    # -----------------------------------------------------------------
    # Configuration
    # -----------------------------------------------------------------

    def row(self, obj: Any) -> "InsertBuilder":
        self._objects.append(obj)
        return self

    def rows(self, objects: Iterable[Any]) -> "InsertBuilder":
        self._objects.extend(objects)
        return self

    def partition_by(self, field: str, type_: str = DEFAULT_PARTITION_TYPE) -> "InsertBuilder":
        """
        Time-partition the table on ``field``. ``type_`` is one of DAY
        (default), HOUR, MONTH, YEAR.
        """
        self._partition_type = normalize_partition_type(type_)
        self._partition_field = field
        return self

    def cluster_by(self, *fields: str) -> "InsertBuilder":
        self._clustering_fields = list(fields)
        return self

    # -----------------------------------------------------------------
    # Introspection
    # -----------------------------------------------------------------

    def schema(self) -> List[bigquery.SchemaField]:
        """Schema inferred from the class of the first pending object."""
        return infer_schema_from_objects(self._objects)

    def table_definition(self) -> TableDefinition:
        return TableDefinition(
            schema=tuple(self.schema()),
            partition_field=self._partition_field or None,
            partition_type=self._partition_type,
            clustering_fields=tuple(self._clustering_fields) if self._clustering_fields else None,
        )

    # -----------------------------------------------------------------
    # Execution
    # -----------------------------------------------------------------

    def execute(self) -> None:
        """
        Insert the pending objects, repairing the table once if needed.

        Raises:
            PartialInsertError: the first attempt rejected some rows.
            InsertError: the first attempt failed for a reason other than a
                missing table or a schema mismatch.
            ReconcileError: creating/updating the table or the retry failed.
        """
        if not self._objects:
            logger.debug("No rows to insert into %s", self.table_id)
            return

        try:
            self._insert()
        except GoogleAPICallError as exc:
            if not is_retryable(exc):
                raise InsertError(self.table_id, str(exc)) from exc

            logger.warning(
                "BigQuery table %s not found or schema mismatch (%s). Attempting to create/update table.",
                self.table_id,
                exc,
            )
            try:
                reconcile_table(self.client, self.table_ref, self.table_definition())
                self._insert()
            except (GoogleAPICallError, PartialInsertError) as retry_exc:
                logger.error("Failed to create/update table or retry insert: %s", retry_exc)
                raise ReconcileError(self.table_id, str(retry_exc)) from retry_exc

    def _insert(self) -> None:
        rows = encode_records(self._objects)
        response = self.client.insert_rows_json(self.table_ref, rows)
        if not response:
            logger.info("Inserted %d row(s) into %s", len(rows), self.table_id)
            return

        errors: Dict[int, List[Dict[str, Any]]] = {}
        for entry in response:
            index = int(entry.get("index", -1))
            errors.setdefault(index, []).extend(entry.get("errors") or [])
        for index, row_errors in sorted(errors.items()):
            logger.error("Error inserting row %d into %s: %s", index, self.table_id, row_errors)
        raise PartialInsertError(self.table_id, errors)
