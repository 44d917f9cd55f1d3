"""
Command-line entrypoint for reading BigQuery query results as records.

What this does:
  - Loads repo/env config (no secrets).
  - Imports the record class given as --record_class (module:Name).
  - Runs --sql (or the contents of --sql_file) and maps each row onto the class,
    by column name or through repeated --map column=field options.
  - Prints one JSON object per record, encoded like an insert row.

Example:
  python -m bqobjects.reader.entrypoint --record_class myapp.models:Item \
      --sql "SELECT item_id, unit_cost FROM shop.items" --map item_id=id --map unit_cost=cost
"""

from __future__ import annotations

import argparse
import sys
from typing import Any, Dict, Optional, TextIO

from google.cloud import bigquery

from bqobjects.common.io import get_bq_client, load_env_config, read_text
from bqobjects.common.utils import dict_to_json_line, get_logger, import_object, set_package_log_level, utcnow_iso
from bqobjects.objects.encode import encode_record
from bqobjects.reader.reader import BigQueryObjectReader


def parse_args(argv=None) -> argparse.Namespace:
    p = argparse.ArgumentParser(description="bqobjects read entrypoint")

    p.add_argument("--record_class", required=True, help="Record class as module:Name.")
    src = p.add_mutually_exclusive_group(required=True)
    src.add_argument("--sql", help="Query text.")
    src.add_argument("--sql_file", help="Path to a file holding the query.")

    # Optional knobs
    p.add_argument("--map", action="append", default=[], metavar="COLUMN=FIELD",
                   help="Explicit column to field mapping; repeatable. Disables name matching.")
    p.add_argument("--project", default=None, help="Billing project (default: project_id from config).")
    p.add_argument("--log_level", default=None, help="Override log level (INFO, DEBUG, etc.)")

    return p.parse_args(argv)


def build_reader(cls: type, mappings) -> BigQueryObjectReader:
    reader = BigQueryObjectReader.of(cls)
    for item in mappings:
        column, sep, field = item.partition("=")
        if not sep or not column or not field:
            raise SystemExit(f"Invalid --map {item!r}; expected COLUMN=FIELD")
        reader.map(column.strip()).to(field.strip())
    return reader


def main(argv=None, client: Optional[bigquery.Client] = None, out: Optional[TextIO] = None) -> int:
    args = parse_args(argv)
    cfg: Dict[str, Any] = load_env_config()

    level = args.log_level or cfg.get("log_level", "INFO")
    logger = get_logger("bqobjects.reader.entrypoint", level=level)
    set_package_log_level(level)
    logger.info("=== bqobjects read ===")
    logger.info("Timestamp: %s", utcnow_iso())

    cls = import_object(args.record_class)
    reader = build_reader(cls, args.map)
    sql = args.sql if args.sql is not None else read_text(args.sql_file)

    client = client or get_bq_client(args.project or cfg.get("project_id"), cfg.get("region"))
    records = reader.query(sql, client=client)

    out = out or sys.stdout
    for record in records:
        out.write(dict_to_json_line(encode_record(record)) + "\n")

    logger.info("Read %d record(s) of %s", len(records), cls.__qualname__)
    return len(records)


if __name__ == "__main__":
    main(sys.argv[1:])
