"""
NumberingConfig schema.

Frozen dataclasses for one configuration set.  YAML sets are parsed into
these types by the loader, checked by the validator, and translated into
kernel inputs by the bridges.
"""

from __future__ import annotations

from dataclasses import dataclass, field

# ---------------------------------------------------------------------------
# Sections
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class DatabaseSettings:
    """Where counters and issued identifiers live."""

    url: str
    pool_size: int = 20
    max_overflow: int = 10
    pool_timeout: int = 30
    busy_timeout_seconds: float = 30.0
    echo: bool = False


@dataclass(frozen=True)
class AllocationSettings:
    """Bounded retry for transient lock conflicts."""

    max_attempts: int = 5
    backoff_seconds: float = 0.05
    max_backoff_seconds: float = 1.0


@dataclass(frozen=True)
class LayoutSettings:
    """Identifier markers and fixed field widths."""

    invoice_marker: str = "IN1"
    quotation_marker: str = "QN1"
    version_prefix: str = "V"
    client_sequence_width: int = 3
    document_sequence_width: int = 6


# ---------------------------------------------------------------------------
# Root
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class NumberingConfig:
    """
    One named configuration set.

    ``checksum`` is the SHA-256 of the canonical source content and is
    filled in by the loader.
    """

    config_id: str
    version: int
    database: DatabaseSettings
    allocation: AllocationSettings = field(default_factory=AllocationSettings)
    layout: LayoutSettings = field(default_factory=LayoutSettings)
    description: str = ""
    checksum: str = ""
