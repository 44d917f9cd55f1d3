"""
bqobjects: map Python record classes to BigQuery tables and back.

Subpackages:
    common   - Config, client factory, table/schema helpers, logging, errors.
    objects  - Type classification, schema inference, row encoding/decoding.
    writer   - Fluent insert builder with table create/update and a single retry.
    reader   - Fluent query-result reader mapping columns onto record fields.
"""

from bqobjects.objects.types import ScalarKind, UtcDateTime
from bqobjects.objects.schema import infer_schema, infer_schema_from_objects
from bqobjects.objects.encode import encode_record
from bqobjects.objects.decode import decode_row
from bqobjects.reader.reader import BigQueryObjectReader
from bqobjects.writer.writer import BigQueryObjectWriter, InsertBuilder

__all__ = [
    "ScalarKind",
    "UtcDateTime",
    "infer_schema",
    "infer_schema_from_objects",
    "encode_record",
    "decode_row",
    "BigQueryObjectReader",
    "BigQueryObjectWriter",
    "InsertBuilder",
]
