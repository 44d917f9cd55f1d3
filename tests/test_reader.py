from __future__ import annotations

import numpy as np
import pandas as pd
import pytest
from google.cloud import bigquery

from bqobjects.common.errors import MappingError
from bqobjects.reader.reader import BigQueryObjectReader
from tests.conftest import FakeRowIterator
from tests.models import Address, InventoryItem, User

ITEM_SCHEMA = [
    bigquery.SchemaField("id", "STRING"),
    bigquery.SchemaField("name", "STRING"),
    bigquery.SchemaField("cost", "FLOAT"),
    bigquery.SchemaField("quantity", "INTEGER"),
]


def test_columns_map_to_fields_by_name():
    result = FakeRowIterator(
        ITEM_SCHEMA + [bigquery.SchemaField("warehouse", "STRING")],
        [
            {"id": "i1", "name": "Widget", "cost": 2.5, "quantity": 3, "warehouse": "north"},
            {"id": "i2", "name": "Gadget", "cost": None, "quantity": 1, "warehouse": "south"},
        ],
    )
    items = BigQueryObjectReader.of(InventoryItem).read(result)
    assert items == [
        InventoryItem("i1", "Widget", 2.5, 3),
        InventoryItem("i2", "Gadget", 0.0, 1),
    ]


def test_explicit_mapping_switches_off_name_matching():
    result = FakeRowIterator(
        [bigquery.SchemaField("item_id", "STRING"), bigquery.SchemaField("name", "STRING")],
        [{"item_id": "i1", "name": "Widget"}],
    )
    reader = BigQueryObjectReader.of(InventoryItem).map("item_id").to("id")

    assert reader.read(result) == [InventoryItem(id="i1")]


def test_mapping_to_unknown_field_is_ignored():
    result = FakeRowIterator([bigquery.SchemaField("a", "STRING")], [{"a": "x"}])
    items = BigQueryObjectReader.of(InventoryItem).map("a").to("does_not_exist").read(result)
    assert items == [InventoryItem()]


def test_to_without_map_fails():
    with pytest.raises(MappingError, match="Must call 'map' before calling 'to'."):
        BigQueryObjectReader.of(InventoryItem).to("id")


def test_each_map_needs_its_own_to():
    reader = BigQueryObjectReader.of(InventoryItem).map("a").to("id")
    with pytest.raises(MappingError):
        reader.to("name")


def test_mapping_property_is_a_copy():
    reader = BigQueryObjectReader.of(InventoryItem).map("item_id").to("id")
    reader.mapping["other"] = "name"
    assert reader.mapping == {"item_id": "id"}


def test_rows_without_schema_match_their_own_keys():
    users = BigQueryObjectReader.of(User).read([{"id": "u1"}, {"id": "u2", "name": "Bob"}])
    assert users == [User(id="u1"), User(id="u2", name="Bob")]


def test_nested_repeated_records_from_query_rows():
    schema = [
        bigquery.SchemaField("id", "STRING"),
        bigquery.SchemaField(
            "addresses",
            "RECORD",
            mode="REPEATED",
            fields=[
                bigquery.SchemaField("street", "STRING"),
                bigquery.SchemaField("city", "STRING"),
                bigquery.SchemaField("postal_code", "STRING"),
            ],
        ),
    ]
    rows = [
        bigquery.table.Row(
            ("u1", [{"street": "Main", "city": "Town", "postal_code": "1"}]),
            {"id": 0, "addresses": 1},
        )
    ]
    (user,) = BigQueryObjectReader.of(User).read(FakeRowIterator(schema, rows))
    assert user.addresses == [Address("Main", "Town", "1")]


def test_read_dataframe():
    df = pd.DataFrame(
        {
            "item_id": ["i1", "i2"],
            "cost": [1.5, np.nan],
            "quantity": np.array([4, 5], dtype=np.int64),
        }
    )
    items = BigQueryObjectReader.of(InventoryItem).map("item_id").to("id").map("cost").to("cost").read_dataframe(df)
    assert items == [InventoryItem(id="i1", cost=1.5), InventoryItem(id="i2")]

    by_name = BigQueryObjectReader.of(InventoryItem).read_dataframe(df)
    assert [i.quantity for i in by_name] == [4, 5]
    assert all(type(i.quantity) is int for i in by_name)
    assert [i.id for i in by_name] == [None, None]


def test_query_runs_sql_with_parameters(fake_client):
    fake_client.query_result = FakeRowIterator(ITEM_SCHEMA, [{"id": "i1", "quantity": 2}])
    params = [bigquery.ScalarQueryParameter("min_qty", "INT64", 1)]

    items = BigQueryObjectReader.of(InventoryItem).query(
        "SELECT * FROM shop.items WHERE quantity >= @min_qty", client=fake_client, params=params
    )

    assert items == [InventoryItem(id="i1", quantity=2)]
    ((name, sql, job_config),) = fake_client.calls
    assert name == "query"
    assert "@min_qty" in sql
    assert [p.name for p in job_config.query_parameters] == ["min_qty"]
