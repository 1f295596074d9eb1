"""
Configuration Loader (``numbering_config.loader``).

Responsibility
--------------
Loads one YAML configuration set and parses it into the frozen
``numbering_config.schema`` dataclasses.  Runtime callers go through
``numbering_config.get_active_config()`` instead of calling this directly.

Invariants enforced
-------------------
* Every parsed object is a frozen dataclass from ``schema.py``.
* Required keys have no silent defaults; optional sections fall back to
  the dataclass defaults.
* ``compute_checksum`` is deterministic for identical content.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Missing required keys  -> ``KeyError`` propagates.
* Wrongly typed values  -> ``ValueError`` / ``TypeError``.
"""

from __future__ import annotations

import hashlib
import json
import os
from pathlib import Path
from typing import Any

import yaml

from numbering_config.schema import (
    AllocationSettings,
    DatabaseSettings,
    LayoutSettings,
    NumberingConfig,
)

# Overrides the configured database URL when set (deployment convenience).
DATABASE_URL_ENV = "NUMBERING_DATABASE_URL"


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
    """
    with open(path) as f:
        return yaml.safe_load(f) or {}


def parse_database(data: dict[str, Any]) -> DatabaseSettings:
    """Parse DatabaseSettings; ``url`` is required."""
    return DatabaseSettings(
        url=os.environ.get(DATABASE_URL_ENV) or data["url"],
        pool_size=int(data.get("pool_size", 20)),
        max_overflow=int(data.get("max_overflow", 10)),
        pool_timeout=int(data.get("pool_timeout", 30)),
        busy_timeout_seconds=float(data.get("busy_timeout_seconds", 30.0)),
        echo=bool(data.get("echo", False)),
    )


def parse_allocation(data: dict[str, Any]) -> AllocationSettings:
    return AllocationSettings(
        max_attempts=int(data.get("max_attempts", 5)),
        backoff_seconds=float(data.get("backoff_seconds", 0.05)),
        max_backoff_seconds=float(data.get("max_backoff_seconds", 1.0)),
    )


def parse_layout(data: dict[str, Any]) -> LayoutSettings:
    return LayoutSettings(
        invoice_marker=str(data.get("invoice_marker", "IN1")),
        quotation_marker=str(data.get("quotation_marker", "QN1")),
        version_prefix=str(data.get("version_prefix", "V")),
        client_sequence_width=int(data.get("client_sequence_width", 3)),
        document_sequence_width=int(data.get("document_sequence_width", 6)),
    )


def parse_config(data: dict[str, Any]) -> NumberingConfig:
    """Parse a whole configuration set, stamping its checksum."""
    return NumberingConfig(
        config_id=data["config_id"],
        version=int(data["version"]),
        description=data.get("description", ""),
        database=parse_database(data["database"]),
        allocation=parse_allocation(data.get("allocation") or {}),
        layout=parse_layout(data.get("layout") or {}),
        checksum=compute_checksum(data),
    )


def compute_checksum(data: dict[str, Any]) -> str:
    """SHA-256 of the canonical JSON serialization of ``data``."""
    canonical = json.dumps(data, sort_keys=True, default=str)
    return hashlib.sha256(canonical.encode()).hexdigest()
