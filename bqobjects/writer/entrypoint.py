"""
Command-line entrypoint for inserting records into BigQuery.

What this does:
  - Loads repo/env config (no secrets).
  - Imports the record class given as --record_class (module:Name).
  - Decodes every line of the --input JSON Lines file into that class.
  - Inserts the records with BigQueryObjectWriter, creating/updating the
    table (partitioning, clustering) if the first insert fails.
  - With --dry_run, prints the inferred schema instead of inserting.

Example:
  python -m bqobjects.writer.entrypoint --record_class myapp.models:Event \
      --input events.jsonl --table events --partition_field created_at
"""

from __future__ import annotations

import argparse
import json
import sys
from typing import Any, Dict, List, Optional

from google.cloud import bigquery

from bqobjects.common.bq_utils import schema_to_dicts
from bqobjects.common.io import get_bq_client, load_env_config, read_jsonl
from bqobjects.common.utils import get_logger, import_object, set_package_log_level, utcnow_iso
from bqobjects.objects.decode import decode_row
from bqobjects.objects.schema import infer_schema
from bqobjects.writer.reconcile import TableDefinition, describe, normalize_partition_type
from bqobjects.writer.writer import BigQueryObjectWriter


def parse_args(argv=None) -> argparse.Namespace:
    p = argparse.ArgumentParser(description="bqobjects insert entrypoint")

    p.add_argument("--record_class", required=True, help="Record class as module:Name.")
    p.add_argument("--input", required=True, help="JSON Lines file, one record per line.")
    p.add_argument("--table", required=True, help="Destination table name.")

    # Optional knobs
    p.add_argument("--dataset", default=None, help="Destination dataset (default: bq_dataset from config).")
    p.add_argument("--project", default=None, help="Destination project (default: project_id from config).")
    p.add_argument("--partition_field", default=None, help="Time-partitioning column.")
    p.add_argument("--partition_type", default=None, help="DAY, HOUR, MONTH or YEAR (default from config).")
    p.add_argument("--cluster_by", default=None, help="Comma-separated clustering columns.")
    p.add_argument("--dry_run", action="store_true", help="Print the inferred schema and exit.")
    p.add_argument("--log_level", default=None, help="Override log level (INFO, DEBUG, etc.)")

    return p.parse_args(argv)


def load_records(path: str, cls: type) -> List[Any]:
    """Decode each JSON object of a JSON Lines file into ``cls``."""
    return [decode_row(row, cls) for row in read_jsonl(path)]


def _partition_type(args: argparse.Namespace, cfg: Dict[str, Any]) -> str:
    return normalize_partition_type(args.partition_type or cfg.get("partition_type"))


def _cluster_fields(args: argparse.Namespace) -> List[str]:
    return [c.strip() for c in (args.cluster_by or "").split(",") if c.strip()]


def main(argv=None, client: Optional[bigquery.Client] = None) -> Dict[str, Any]:
    args = parse_args(argv)
    cfg: Dict[str, Any] = load_env_config()

    level = args.log_level or cfg.get("log_level", "INFO")
    logger = get_logger("bqobjects.writer.entrypoint", level=level)
    set_package_log_level(level)
    logger.info("=== bqobjects insert ===")
    logger.info("Timestamp: %s", utcnow_iso())

    dataset = args.dataset or cfg.get("bq_dataset")
    if not dataset:
        raise SystemExit("--dataset is required when bq_dataset is not configured")
    project = args.project or cfg.get("project_id")
    partition_type = _partition_type(args, cfg)
    cluster_fields = _cluster_fields(args)

    cls = import_object(args.record_class)
    records = load_records(args.input, cls)
    logger.info("Loaded %d record(s) of %s from %s", len(records), cls.__qualname__, args.input)

    summary: Dict[str, Any] = {"table": f"{dataset}.{args.table}", "rows": len(records), "dry_run": args.dry_run}

    if args.dry_run:
        # No client needed: the definition comes from the record class alone.
        definition = TableDefinition(
            schema=tuple(infer_schema(cls)),
            partition_field=args.partition_field or None,
            partition_type=partition_type,
            clustering_fields=tuple(cluster_fields) or None,
        )
        for line in describe(definition):
            logger.info("Table definition: %s", line)
        print(json.dumps(schema_to_dicts(definition.schema), indent=2))
        return summary

    client = client or get_bq_client(project, cfg.get("region"))
    builder = BigQueryObjectWriter(client).insert(dataset, args.table, project=project).rows(records)
    if args.partition_field:
        builder.partition_by(args.partition_field, partition_type)
    if cluster_fields:
        builder.cluster_by(*cluster_fields)

    builder.execute()
    summary["table"] = builder.table_id
    logger.info("Insert completed. Summary: %s", json.dumps(summary, indent=2))
    return summary


if __name__ == "__main__":
    main(sys.argv[1:])
