"""
Fluent reader mapping BigQuery query results onto record classes.

Columns map to fields of the same name unless explicit mappings are given:

    users = BigQueryObjectReader.of(User).read(client.query(sql).result())

    items = (
        BigQueryObjectReader.of(InventoryItem)
        .map("item_id").to("id")
        .map("unit_cost").to("cost")
        .read(result)
    )

As soon as one explicit mapping exists, name matching is switched off:
unmapped columns are ignored even when a field of the same name exists.
"""

from __future__ import annotations

from typing import Any, Dict, Generic, Iterable, List, Optional, Sequence, TypeVar

import pandas as pd
from google.cloud import bigquery

from bqobjects.common.errors import MappingError
from bqobjects.common.io import get_bq_client
from bqobjects.common.utils import get_logger
from bqobjects.objects.decode import decode_row, infer_mappings

logger = get_logger("bqobjects.reader.reader")

T = TypeVar("T")


class BigQueryObjectReader(Generic[T]):
    def __init__(self, cls: type[T]):
        self.cls = cls
        self._explicit: Dict[str, str] = {}
        self._current_column: Optional[str] = None

    @classmethod
    def of(cls, record_cls: type[T]) -> "BigQueryObjectReader[T]":
        return cls(record_cls)

    # -----------------------------------------------------------------
    # Explicit mapping
    # -----------------------------------------------------------------

    def map(self, column: str) -> "BigQueryObjectReader[T]":
        """Start a mapping for ``column``; complete it with :meth:`to`."""
        self._current_column = column
        return self

    def to(self, field: str) -> "BigQueryObjectReader[T]":
        if self._current_column is None:
            raise MappingError("Must call 'map' before calling 'to'.")
        self._explicit[self._current_column] = field
        self._current_column = None
        return self

    @property
    def mapping(self) -> Dict[str, str]:
        return dict(self._explicit)

    def resolve_mapping(self, columns: Optional[Iterable[str]]) -> Optional[Dict[str, str]]:
        """
        The explicit mapping if any, else name matching against ``columns``.
        None means "match each row by its own keys".
        """
        if self._explicit:
            return dict(self._explicit)
        if columns is None:
            return None
        return infer_mappings(columns, self.cls)

    # -----------------------------------------------------------------
    # Reading
    # -----------------------------------------------------------------

    def read(
        self,
        result: Iterable[Any],
        schema: Optional[Sequence[bigquery.SchemaField]] = None,
    ) -> List[T]:
        """
        Map every row of ``result`` to a new ``cls`` instance.

        Args:
            result: a ``RowIterator`` (or anything iterable with a ``schema``
                attribute), or a plain iterable of mappings.
            schema: result schema, when ``result`` has none.
        """
        if schema is None:
            schema = getattr(result, "schema", None)
        columns = [f.name for f in schema] if schema is not None else None
        mapping = self.resolve_mapping(columns)
        if mapping is not None:
            logger.debug("Reading %s with column mapping %s", self.cls.__qualname__, mapping)
        return [decode_row(row, self.cls, mapping) for row in result]

    def read_dataframe(self, df: pd.DataFrame) -> List[T]:
        """Map a DataFrame (e.g. from ``RowIterator.to_dataframe()``) row by row."""
        mapping = self.resolve_mapping([str(c) for c in df.columns])
        return [decode_row(row, self.cls, mapping) for row in df.to_dict(orient="records")]

    def query(
        self,
        sql: str,
        *,
        client: Optional[bigquery.Client] = None,
        params: Optional[Iterable[bigquery.ScalarQueryParameter]] = None,
    ) -> List[T]:
        """
        Execute SQL and map the result.
        """
        client = client or get_bq_client()
        job_cfg = bigquery.QueryJobConfig()
        if params:
            job_cfg.query_parameters = list(params)
        job = client.query(sql, job_config=job_cfg)
        return self.read(job.result())
