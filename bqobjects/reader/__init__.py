"""
Read side: map query results onto record classes.

Modules:
    reader.py      - BigQueryObjectReader (fluent column -> field mapping).
    entrypoint.py  - CLI: run a query and print decoded records as JSON Lines.
"""
__all__ = [
    "reader",
    "entrypoint",
]
