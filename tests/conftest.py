"""
Shared fixtures:
- FakeBigQueryClient: in-memory stand-in for google.cloud.bigquery.Client that
  records calls and raises real google.api_core exceptions.
- FakeRowIterator: iterable with a ``schema`` attribute, like RowIterator.
- log capture for the package's non-propagating loggers.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Iterable, List, Optional, Sequence

import pytest
from google.cloud import bigquery
from google.api_core.exceptions import Conflict, NotFound


def _key(ref: Any) -> str:
    if isinstance(ref, bigquery.Table):
        ref = ref.reference
    if isinstance(ref, bigquery.TableReference):
        return f"{ref.project}.{ref.dataset_id}.{ref.table_id}"
    return str(ref)


class FakeRowIterator:
    def __init__(self, schema: Sequence[bigquery.SchemaField], rows: Iterable[Any]):
        self.schema = list(schema)
        self._rows = list(rows)

    def __iter__(self):
        return iter(self._rows)


class FakeQueryJob:
    def __init__(self, result: FakeRowIterator):
        self._result = result

    def result(self):
        return self._result


class FakeBigQueryClient:
    def __init__(self, project: str = "test-project"):
        self.project = project
        self.tables: Dict[str, bigquery.Table] = {}
        self.insert_outcomes: List[Any] = []   # queue: list response or exception
        self.create_error: Optional[Exception] = None
        self.update_error: Optional[Exception] = None
        self.query_result: Optional[FakeRowIterator] = None
        self.calls: List[tuple] = []
        self.inserted: List[List[Dict[str, Any]]] = []

    # --- helpers for tests -------------------------------------------------

    def add_table(
        self,
        fqn: str,
        schema: Sequence[bigquery.SchemaField],
        partition_field: Optional[str] = None,
        clustering_fields: Optional[List[str]] = None,
    ) -> bigquery.Table:
        table = bigquery.Table(fqn, schema=list(schema))
        if partition_field:
            table.time_partitioning = bigquery.TimePartitioning(field=partition_field)
        if clustering_fields:
            table.clustering_fields = clustering_fields
        self.tables[fqn] = table
        return table

    def count(self, name: str) -> int:
        return sum(1 for c in self.calls if c[0] == name)

    # --- client API --------------------------------------------------------

    def get_table(self, ref):
        key = _key(ref)
        self.calls.append(("get_table", key))
        if key not in self.tables:
            raise NotFound(f"Not found: Table {key}")
        return self.tables[key]

    def create_table(self, table):
        key = _key(table)
        self.calls.append(("create_table", key))
        if self.create_error is not None:
            raise self.create_error
        if key in self.tables:
            raise Conflict(f"Already Exists: Table {key}")
        self.tables[key] = table
        return table

    def update_table(self, table, fields):
        key = _key(table)
        self.calls.append(("update_table", key, list(fields)))
        if self.update_error is not None:
            raise self.update_error
        self.tables[key] = table
        return table

    def insert_rows_json(self, table, json_rows):
        key = _key(table)
        self.calls.append(("insert_rows_json", key))
        self.inserted.append(list(json_rows))
        outcome = self.insert_outcomes.pop(0) if self.insert_outcomes else []
        if isinstance(outcome, BaseException):
            raise outcome
        return outcome

    def query(self, sql, job_config=None):
        self.calls.append(("query", sql, job_config))
        return FakeQueryJob(self.query_result or FakeRowIterator([], []))


@pytest.fixture
def fake_client() -> FakeBigQueryClient:
    return FakeBigQueryClient()


@pytest.fixture
def package_logs(caplog):
    """Attach caplog to the package loggers (they do not propagate)."""
    names = [
        "bqobjects.objects.decode",
        "bqobjects.writer.writer",
        "bqobjects.writer.reconcile",
        "bqobjects.reader.reader",
    ]
    loggers = [logging.getLogger(n) for n in names]
    for lg in loggers:
        lg.addHandler(caplog.handler)
    # entrypoint tests may have raised the package levels; restored on teardown
    for n in names:
        caplog.set_level(logging.DEBUG, logger=n)
    yield caplog
    for lg in loggers:
        lg.removeHandler(caplog.handler)
