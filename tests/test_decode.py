from __future__ import annotations

import datetime as dt
import logging
from decimal import Decimal

import numpy as np
import pandas as pd
import pytest
from google.cloud.bigquery.table import Row

from bqobjects.common.errors import DateTimeFormatError, RecordConstructionError, UnsupportedTypeError
from bqobjects.objects.decode import (
    coerce_scalar,
    decode_row,
    infer_mappings,
    parse_date,
    parse_instant,
    parse_local_datetime,
    parse_time,
)
from bqobjects.objects.encode import encode_record
from bqobjects.objects.schema import infer_schema
from bqobjects.objects.types import ScalarKind
from tests.models import (
    Address,
    AllTypes,
    Color,
    FrozenPoint,
    InventoryItem,
    NeedsArgs,
    Order,
    Painted,
    PlainRecord,
    Priced,
    Priority,
    Stamped,
    User,
)

UTC = dt.timezone.utc
INSTANT = dt.datetime(2023, 10, 27, 10, 30, tzinfo=UTC)


# ---------------------------------------------------------------------
# Scalars
# ---------------------------------------------------------------------

def test_text_row_with_all_scalar_kinds():
    row = {
        "string_field": "Hello, BigQuery!",
        "byte_field": "127",
        "int_field": "42",
        "float_field": "3.14",
        "bool_field": "true",
        "decimal_field": "123.456",
        "date_field": "2023-10-27",
        "time_field": "10:30:00",
        "datetime_field": "2023-10-27T10:30:00",
        "instant_field": "2023-10-27T10:30:00Z",
        "timestamp_field": "1698402600000000",
    }
    obj = decode_row(row, AllTypes)

    assert obj.string_field == "Hello, BigQuery!"
    assert obj.byte_field == 127 and isinstance(obj.byte_field, np.int8)
    assert obj.int_field == 42
    assert obj.float_field == pytest.approx(3.14)
    assert obj.bool_field is True
    assert obj.decimal_field == Decimal("123.456")
    assert obj.date_field == dt.date(2023, 10, 27)
    assert obj.time_field == dt.time(10, 30)
    assert obj.datetime_field == dt.datetime(2023, 10, 27, 10, 30)
    assert obj.datetime_field.tzinfo is None
    assert obj.instant_field == INSTANT
    assert obj.instant_field.utcoffset() == dt.timedelta(0)
    assert isinstance(obj.timestamp_field, pd.Timestamp)
    assert obj.timestamp_field == pd.Timestamp("2023-10-27 10:30:00", tz="UTC")


def test_typed_cells_pass_through():
    row = {
        "int_field": 42,
        "bool_field": False,
        "decimal_field": Decimal("1.5"),
        "date_field": dt.date(2024, 2, 29),
        "datetime_field": dt.datetime(2024, 2, 29, 1, 2, 3),
        "instant_field": INSTANT,
    }
    obj = decode_row(row, AllTypes)
    assert obj.int_field == 42
    assert obj.bool_field is False
    assert obj.decimal_field == Decimal("1.5")
    assert obj.date_field == dt.date(2024, 2, 29)
    assert obj.datetime_field == dt.datetime(2024, 2, 29, 1, 2, 3)
    assert obj.instant_field == INSTANT


@pytest.mark.parametrize(
    "text",
    [
        "2023-10-27T10:30:00Z",
        "2023-10-27 10:30:00 UTC",
        "1698402600000000",
        "2023-10-27T12:30:00+02:00",
        "2023-10-27T10:30:00",
        "2023-10-27 10:30:00",
    ],
)
def test_timestamp_text_forms_denote_the_same_instant(text):
    parsed = parse_instant(text)
    assert parsed == INSTANT
    assert parsed.tzinfo is not None
    assert parsed.timestamp() == 1698402600


def test_epoch_micros_are_truncated_to_millis():
    assert parse_instant("1698402600123999") == INSTANT.replace(microsecond=123000)
    assert parse_instant(1698402600123999) == INSTANT.replace(microsecond=123000)
    # toward zero, also before the epoch
    assert parse_instant("-1500") == dt.datetime(1969, 12, 31, 23, 59, 59, 999000, tzinfo=UTC)


def test_utc_suffix_form_accepts_a_fraction():
    assert parse_instant("2023-10-27 10:30:00.5 UTC") == INSTANT.replace(microsecond=500000)


def test_aware_datetime_cell_is_moved_to_utc():
    cell = dt.datetime(2023, 10, 27, 12, 30, tzinfo=dt.timezone(dt.timedelta(hours=2)))
    assert parse_instant(cell) == INSTANT
    assert parse_local_datetime(cell) == dt.datetime(2023, 10, 27, 10, 30)


@pytest.mark.parametrize("text", ["not a date", "2023-13-45T99:00:00Z", "10/27/2023"])
def test_unparseable_timestamp(text):
    with pytest.raises(DateTimeFormatError) as exc_info:
        parse_instant(text)
    assert exc_info.value.value == text
    assert exc_info.value.target == "TIMESTAMP"


def test_unparseable_temporal_text_names_the_target():
    with pytest.raises(DateTimeFormatError, match="DATE"):
        parse_date("yesterday")
    with pytest.raises(DateTimeFormatError, match="TIME"):
        parse_time("noon")
    with pytest.raises(DateTimeFormatError, match="DATETIME"):
        parse_local_datetime("soon")


def test_local_datetime_forms():
    expected = dt.datetime(2023, 10, 27, 10, 30)
    assert parse_local_datetime("2023-10-27 10:30:00") == expected
    assert parse_local_datetime("2023-10-27 10:30:00 UTC") == expected
    assert parse_local_datetime("2023-10-27T10:30") == expected


def test_date_and_time_forms():
    assert parse_date("2023-10-27") == dt.date(2023, 10, 27)
    assert parse_date(dt.datetime(2023, 10, 27, 23, 59)) == dt.date(2023, 10, 27)
    assert parse_time("10:30") == dt.time(10, 30)
    assert parse_time("10:30:00.250000") == dt.time(10, 30, 0, 250000)


def test_bad_temporal_cell_in_row_propagates_as_format_error():
    with pytest.raises(DateTimeFormatError):
        decode_row({"instant_field": "garbage"}, AllTypes)


@pytest.mark.parametrize(
    "value, kind, expected",
    [
        ("1", ScalarKind.BOOLEAN, True),
        ("FALSE", ScalarKind.BOOLEAN, False),
        ("1E+2", ScalarKind.INTEGER, 100),
        (3.0, ScalarKind.INTEGER, 3),
        ("2.5", ScalarKind.FLOAT, 2.5),
        (12, ScalarKind.STRING, "12"),
        (1.25, ScalarKind.NUMERIC, Decimal("1.25")),
    ],
)
def test_coerce_scalar(value, kind, expected):
    assert coerce_scalar(value, kind) == expected


@pytest.mark.parametrize(
    "row",
    [
        {"int_field": "abc"},
        {"int_field": "3.7"},
        {"int_field": 3.7},
        {"int_field": Decimal("-0.5")},
        {"byte_field": "1.5E+0"},
        {"bool_field": "yes"},
        {"decimal_field": "1.2.3"},
        {"float_field": "x"},
        {"int_field": "NaN"},
    ],
)
def test_bad_scalar_text_raises_record_construction_error(row):
    with pytest.raises(RecordConstructionError):
        decode_row(row, AllTypes)


# ---------------------------------------------------------------------
# Records
# ---------------------------------------------------------------------

def test_repeated_nested_records():
    row = {
        "id": "user123",
        "name": "Alice",
        "phone_numbers": ["555-1234", "555-5678"],
        "addresses": [
            {"street": "123 Main St", "city": "Anytown", "postal_code": "12345"},
            {"street": "456 Oak Ave", "city": "Otherville", "postal_code": "67890"},
        ],
    }
    user = decode_row(row, User)
    assert user == User(
        id="user123",
        name="Alice",
        phone_numbers=["555-1234", "555-5678"],
        addresses=[
            Address("123 Main St", "Anytown", "12345"),
            Address("456 Oak Ave", "Otherville", "67890"),
        ],
    )


def test_missing_nested_column_is_skipped_with_warning(package_logs):
    user = decode_row({"id": "u1", "addresses": [{"street": "Main"}]}, User)

    assert user.addresses == [Address(street="Main")]
    warnings = [r.getMessage() for r in package_logs.records if r.levelno == logging.WARNING]
    assert "Column 'city' not found in nested BigQuery record. Skipping field." in warnings
    assert "Column 'postal_code' not found in nested BigQuery record. Skipping field." in warnings


def test_nulls_keep_constructor_defaults():
    item = decode_row({"id": "x", "cost": None, "quantity": float("nan")}, InventoryItem)
    assert item == InventoryItem(id="x", cost=0.0, quantity=0)


def test_null_elements_stay_in_collections():
    order = decode_row({"amounts": ["1.5", None]}, Order)
    assert order.amounts == [Decimal("1.5"), None]


def test_collection_type_follows_annotation():
    assert decode_row({"tags": ["a", "b"]}, Order).tags == ("a", "b")


def test_numpy_array_cells_are_repeated_values():
    user = decode_row({"phone_numbers": np.array(["a", "b"])}, User)
    assert user.phone_numbers == ["a", "b"]


def test_bigquery_row_objects():
    row = Row(
        ("u1", [{"street": "s", "city": "c", "postal_code": "p"}]),
        {"id": 0, "addresses": 1},
    )
    user = decode_row(row, User)
    assert user.id == "u1"
    assert user.addresses == [Address("s", "c", "p")]


def test_row_columns_without_fields_are_ignored():
    assert decode_row({"id": "u1", "unknown": 5}, User) == User(id="u1")


def test_frozen_dataclass_and_plain_class():
    assert decode_row({"x": "1", "y": 2}, FrozenPoint) == FrozenPoint(1, 2)
    rec = decode_row({"name": "n", "count": "3"}, PlainRecord)
    assert (rec.name, rec.count) == ("n", 3)


def test_class_needing_arguments_cannot_be_built():
    with pytest.raises(RecordConstructionError):
        decode_row({"value": 1}, NeedsArgs)


@pytest.mark.parametrize("row", [{"id": {"a": 1}}, {"id": ["a"]}, {"customer": "u1"}])
def test_cell_shape_not_matching_field_raises(row):
    with pytest.raises(UnsupportedTypeError):
        decode_row(row, Order)


def test_explicit_mapping_renames_columns():
    item = decode_row({"item_id": "i1", "unit_cost": "2.5"}, InventoryItem, {"item_id": "id", "unit_cost": "cost"})
    assert item == InventoryItem(id="i1", cost=2.5)


def test_infer_mappings_matches_names_exactly():
    assert infer_mappings(["id", "ID", "other", "name"], User) == {"id": "id", "name": "name"}


def test_encoded_row_decodes_to_an_equal_object():
    order = Order(
        id="o1",
        customer=User(
            id="u1",
            name="Alice",
            phone_numbers=["1"],
            addresses=[Address("Main", "Town", "123")],
        ),
        created_at=dt.datetime(2023, 10, 27, 12, 30, tzinfo=dt.timezone(dt.timedelta(hours=2))),
        amounts=[Decimal("1.10"), Decimal("100")],
        ship_dates=[dt.date(2023, 11, 1)],
        tags=("x",),
    )
    assert decode_row(encode_record(order), Order) == order


def test_integral_text_is_accepted_for_integers():
    assert decode_row({"int_field": "42.000", "byte_field": "1E+1"}, AllTypes) == AllTypes(int_field=42, byte_field=10)


def test_enums_round_trip_through_their_value():
    painted = Painted(color=Color.GREEN, priority=Priority.LOW, palette=[Color.RED])
    decoded = decode_row(encode_record(painted), Painted)
    assert decoded == painted
    assert decoded.color is Color.GREEN
    assert decoded.priority is Priority.LOW


def test_unknown_enum_value_raises_record_construction_error():
    with pytest.raises(RecordConstructionError):
        decode_row({"color": "blue"}, Painted)


def test_datetime_annotated_as_timestamp_decodes_to_utc():
    stamped = decode_row({"at": "2023-10-27 10:30:00 UTC"}, Stamped)
    assert stamped.at == INSTANT
    assert stamped.at.utcoffset() == dt.timedelta(0)
    assert decode_row(encode_record(stamped), Stamped) == stamped


def test_incompatible_kind_override_is_rejected_on_both_sides():
    with pytest.raises(UnsupportedTypeError):
        infer_schema(Priced)
    with pytest.raises(UnsupportedTypeError):
        decode_row({"amount": "1.50"}, Priced)
