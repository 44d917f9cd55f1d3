"""
Write side: stream record instances into BigQuery.

Modules:
    writer.py      - BigQueryObjectWriter / InsertBuilder (fluent insert API).
    reconcile.py   - Table create/update logic run before the single retry.
    entrypoint.py  - CLI: load a JSON Lines file as records and insert them.
"""
__all__ = [
    "writer",
    "reconcile",
    "entrypoint",
]
