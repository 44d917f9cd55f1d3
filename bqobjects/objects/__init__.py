"""
Mapping between Python record classes and BigQuery rows.

Modules:
    types.py   - ScalarKind, annotation classification and field introspection.
    schema.py  - Schema inference from record classes.
    encode.py  - Record instance -> insert row (dict of JSON-native values).
    decode.py  - Query row -> record instance, with scalar/temporal coercion.
"""
__all__ = [
    "types",
    "schema",
    "encode",
    "decode",
]
