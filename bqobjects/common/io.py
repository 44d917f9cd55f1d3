"""
I/O utilities shared by the writer and reader.

- Config:
    load_env_config(): load configs/env.yaml (local-only) with fallback to configs/env.example.yaml,
    with optional environment variable overrides.

- BigQuery:
    get_bq_client()

- Local files:
    read_jsonl(), read_text()

Notes:
- We rely on Application Default Credentials for the BigQuery client.
- Locally you can authenticate with: `gcloud auth application-default login`.
"""

from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Any, Dict, Iterator, Optional

import yaml
from google.cloud import bigquery


# =========================
# Config
# =========================

_DEF_LOCATION = "US"
_DEF_PARTITION_TYPE = "DAY"

_ENV_PATH = Path("configs/env.yaml")               # local (not committed)
_ENV_EXAMPLE_PATH = Path("configs/env.example.yaml")  # committed default


def _read_yaml(path: Path) -> Dict[str, Any]:
    with path.open("r", encoding="utf-8") as f:
        return yaml.safe_load(f) or {}


def load_env_config(
    env_path: Optional[Path] = None,
    example_path: Optional[Path] = None,
) -> Dict[str, Any]:
    """
    Load environment config.

    Order of precedence:
      1) Environment variables (PROJECT_ID, REGION, BQ_DATASET, LOG_LEVEL) – if present.
      2) configs/env.yaml – developer-local overrides (not committed).
      3) configs/env.example.yaml – repo default.

    Returns:
        dict with keys project_id, region, bq_dataset, log_level, partition_type.
    """
    env_path = env_path or _ENV_PATH
    example_path = example_path or _ENV_EXAMPLE_PATH

    cfg: Dict[str, Any] = {}
    if example_path.exists():
        cfg.update(_read_yaml(example_path))
    if env_path.exists():
        cfg.update(_read_yaml(env_path))

    env_overrides = {
        "project_id": os.getenv("PROJECT_ID"),
        "region": os.getenv("REGION"),
        "bq_dataset": os.getenv("BQ_DATASET"),
        "log_level": os.getenv("LOG_LEVEL"),
    }
    for k, v in env_overrides.items():
        if v:
            cfg[k] = v

    # project_id stays unset when nothing provides it; the client then
    # falls back to the ADC default project.
    cfg.setdefault("project_id", None)
    cfg.setdefault("region", _DEF_LOCATION)
    cfg.setdefault("bq_dataset", None)
    cfg.setdefault("log_level", "INFO")
    cfg.setdefault("partition_type", _DEF_PARTITION_TYPE)
    return cfg


# =========================
# BigQuery helpers
# =========================

def get_bq_client(project: Optional[str] = None, location: Optional[str] = None) -> bigquery.Client:
    """Create a BigQuery client using ADC."""
    project = project or os.getenv("PROJECT_ID")
    location = location or os.getenv("BQ_LOCATION", _DEF_LOCATION)
    return bigquery.Client(project=project, location=location)


# =========================
# Local file helpers
# =========================

def read_text(path: str | Path) -> str:
    return Path(path).read_text(encoding="utf-8")


def read_jsonl(path: str | Path) -> Iterator[Dict[str, Any]]:
    """
    Yield one dict per non-blank line of a JSON Lines file.
    """
    with Path(path).open("r", encoding="utf-8") as f:
        for lineno, line in enumerate(f, start=1):
            line = line.strip()
            if not line:
                continue
            obj = json.loads(line)
            if not isinstance(obj, dict):
                raise ValueError(f"{path}:{lineno}: expected a JSON object, got {type(obj).__name__}")
            yield obj
