"""
Common utilities shared by the object mapping, writer and reader code.

Modules:
    io.py        - Config loading and BigQuery client construction.
    bq_utils.py  - Table reference, lookup and schema (de)serialization helpers.
    errors.py    - Exception hierarchy raised by the package.
    utils.py     - Logging and small helpers shared by the entrypoints.
"""

__all__ = [
    "io",
    "bq_utils",
    "errors",
    "utils",
]
