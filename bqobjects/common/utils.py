"""Miscellaneous utilities shared by the writer and reader code.

Highlights:
- :func:`get_logger` - stdout logger used by every module of the package.
- :func:`import_object` - resolve ``"pkg.module:Name"`` to the object it names.
"""

from __future__ import annotations

import importlib
import json
import logging
from datetime import datetime, timezone
from typing import Any, Dict


# ---------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------

def get_logger(name: str, level: str | int | None = None) -> logging.Logger:
    """
    Create a simple stdout logger. Level is only applied when given, so
    module-level loggers can be tuned later by the entrypoints.
    """
    logger = logging.getLogger(name)
    if isinstance(level, str):
        level = getattr(logging, level.upper(), logging.INFO)
    if level is not None:
        logger.setLevel(level)
    if not logger.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter("[%(asctime)s] %(levelname)s %(name)s: %(message)s"))
        logger.addHandler(handler)
    logger.propagate = False
    return logger


def set_package_log_level(level: str | int) -> None:
    """Apply a level to every ``bqobjects.*`` logger created so far."""
    if isinstance(level, str):
        level = getattr(logging, level.upper(), logging.INFO)
    for name in list(logging.root.manager.loggerDict):
        if name == "bqobjects" or name.startswith("bqobjects."):
            logging.getLogger(name).setLevel(level)


# ---------------------------------------------------------------------
# Time helpers
# ---------------------------------------------------------------------

def utcnow_iso() -> str:
    """UTC timestamp in ISO format (for log lines)."""
    return datetime.now(timezone.utc).replace(tzinfo=None).isoformat(timespec="seconds") + "Z"


# ---------------------------------------------------------------------
# Import / JSON helpers (entrypoints)
# ---------------------------------------------------------------------

def import_object(path: str) -> Any:
    """
    Resolve ``"package.module:Name"`` (or ``"package.module.Name"``) to the object.
    """
    if ":" in path:
        module_name, _, attr = path.partition(":")
    else:
        module_name, _, attr = path.rpartition(".")
    if not module_name or not attr:
        raise ValueError(f"Expected 'module:Name', got {path!r}")
    module = importlib.import_module(module_name)
    obj: Any = module
    for part in attr.split("."):
        obj = getattr(obj, part)
    return obj


def dict_to_json_line(d: Dict[str, Any]) -> str:
    """
    Compact JSON line keeping key order (encoded rows are already ordered).
    """
    return json.dumps(d, separators=(",", ":"), ensure_ascii=False)
