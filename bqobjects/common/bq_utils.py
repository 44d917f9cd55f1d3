"""BigQuery convenience helpers for bqobjects.

Lightweight wrappers for table references, existence lookups and schema
serialization/comparison. Used by the writer to decide whether a table
must be created or updated, and by the CLI to print inferred schemas.
"""

from __future__ import annotations

import json
from typing import Any, Dict, List, Optional, Sequence

from google.cloud import bigquery
from google.api_core.exceptions import NotFound


# ============================================================
# Table helpers
# ============================================================

def table_ref(
    client: bigquery.Client,
    dataset_id: str,
    table_id: str,
    project: Optional[str] = None,
) -> bigquery.TableReference:
    """
    Build a TableReference, defaulting the project to the client's project.
    """
    project = project or client.project
    return bigquery.TableReference.from_string(f"{project}.{dataset_id}.{table_id}")


def table_fqn(ref: bigquery.TableReference) -> str:
    return f"{ref.project}.{ref.dataset_id}.{ref.table_id}"


def get_table_or_none(client: bigquery.Client, ref: bigquery.TableReference) -> Optional[bigquery.Table]:
    try:
        return client.get_table(ref)
    except NotFound:
        return None


# ============================================================
# Schema helpers
# ============================================================

# Standard SQL aliases reported by the API for legacy type names.
_TYPE_ALIASES = {
    "INT64": "INTEGER",
    "FLOAT64": "FLOAT",
    "BOOL": "BOOLEAN",
    "STRUCT": "RECORD",
    "DECIMAL": "NUMERIC",
    "BIGDECIMAL": "BIGNUMERIC",
}


def normalize_field_type(field_type: Optional[str]) -> Optional[str]:
    if field_type is None:
        return None
    upper = field_type.upper()
    return _TYPE_ALIASES.get(upper, upper)


def normalize_mode(mode: Optional[str]) -> str:
    return (mode or "NULLABLE").upper()


def fields_equal(a: bigquery.SchemaField, b: bigquery.SchemaField) -> bool:
    """Structural equality of two fields: name, type, mode and subfields."""
    return (
        a.name == b.name
        and normalize_field_type(a.field_type) == normalize_field_type(b.field_type)
        and normalize_mode(a.mode) == normalize_mode(b.mode)
        and schemas_equal(a.fields, b.fields)
    )


def schemas_equal(
    a: Optional[Sequence[bigquery.SchemaField]],
    b: Optional[Sequence[bigquery.SchemaField]],
) -> bool:
    """
    Order-sensitive structural comparison. Descriptions, policy tags and
    other field options are ignored.
    """
    a = list(a or [])
    b = list(b or [])
    if len(a) != len(b):
        return False
    return all(fields_equal(x, y) for x, y in zip(a, b))


def schema_to_dicts(schema: Sequence[bigquery.SchemaField]) -> List[Dict[str, Any]]:
    """
    Schema as a list of {name, type, mode[, fields]} dicts (bq CLI layout).
    """
    out: List[Dict[str, Any]] = []
    for f in schema:
        d: Dict[str, Any] = {"name": f.name, "type": f.field_type, "mode": normalize_mode(f.mode)}
        if f.fields:
            d["fields"] = schema_to_dicts(f.fields)
        out.append(d)
    return out


def schema_from_dicts(fields: Sequence[Dict[str, Any]]) -> List[bigquery.SchemaField]:
    out: List[bigquery.SchemaField] = []
    for fld in fields:
        out.append(
            bigquery.SchemaField(
                fld["name"],
                fld["type"],
                mode=fld.get("mode", "NULLABLE"),
                fields=schema_from_dicts(fld.get("fields") or []),
            )
        )
    return out


def schema_from_json(json_path: str) -> List[bigquery.SchemaField]:
    """
    Load a BigQuery schema from a JSON file (list of {name, type, mode, fields}).
    """
    with open(json_path, "r", encoding="utf-8") as f:
        fields = json.load(f)
    return schema_from_dicts(fields)


def schema_to_json(schema: Sequence[bigquery.SchemaField], out_path: str) -> None:
    """
    Dump a BigQuery schema to a JSON file.
    """
    with open(out_path, "w", encoding="utf-8") as f:
        json.dump(schema_to_dicts(schema), f, indent=2)
