"""
Configuration Validator (``numbering_config.validator``).

Responsibility
--------------
Checks a parsed ``NumberingConfig`` before anything is built from it, so
that an operator sees every problem at once instead of the first one the
kernel trips over.

Invariants enforced
-------------------
* Database URL uses a supported dialect (PostgreSQL or SQLite).
* Pool sizes and the retry bound are positive; backoff is non-negative.
* Invoice and quotation markers are distinct upper-case tokens.
* Field widths are at least the pinned minimum (3 for clients, 6 for
  documents).  Narrowing them would re-render issued identifiers.

Failure modes
-------------
* ``ConfigValidationResult.errors``  -> the configuration MUST NOT be used.
* ``ConfigValidationResult.warnings``  -> usable, but worth a look.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field

from numbering_config.schema import NumberingConfig

MIN_CLIENT_SEQUENCE_WIDTH = 3
MIN_DOCUMENT_SEQUENCE_WIDTH = 6

_MARKER_RE = re.compile(r"^[A-Z][A-Z0-9]{1,7}$")
_SUPPORTED_SCHEMES = ("postgresql", "sqlite")


class ConfigValidationError(ValueError):
    """Raised when a configuration set fails validation."""

    code = "CONFIG_VALIDATION_ERROR"

    def __init__(self, config_id: str, errors: list[str]):
        self.config_id = config_id
        self.errors = list(errors)
        super().__init__(
            f"Configuration {config_id!r} failed validation:\n"
            + "\n".join(f"  - {e}" for e in self.errors)
        )


@dataclass
class ConfigValidationResult:
    """
    Result of configuration validation.

    ``is_valid`` is True only when ``errors`` is empty.
    """

    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        return len(self.errors) == 0

    def add_error(self, msg: str) -> None:
        self.errors.append(msg)

    def add_warning(self, msg: str) -> None:
        self.warnings.append(msg)


def validate_configuration(config: NumberingConfig) -> ConfigValidationResult:
    """Validate every section of ``config`` and collect all findings."""
    result = ConfigValidationResult()
    _validate_database(config, result)
    _validate_allocation(config, result)
    _validate_layout(config, result)
    return result


def _validate_database(config: NumberingConfig, result: ConfigValidationResult) -> None:
    db = config.database
    scheme = db.url.split(":", 1)[0].split("+", 1)[0]
    if scheme not in _SUPPORTED_SCHEMES:
        result.add_error(
            f"database.url: unsupported dialect {scheme!r} (expected one of {_SUPPORTED_SCHEMES})"
        )
    if db.pool_size < 1:
        result.add_error("database.pool_size must be >= 1")
    if db.max_overflow < 0:
        result.add_error("database.max_overflow must be >= 0")
    if db.busy_timeout_seconds <= 0:
        result.add_error("database.busy_timeout_seconds must be > 0")
    if scheme == "sqlite" and ":memory:" in db.url:
        result.add_warning(
            "database.url: in-memory SQLite is single-connection; use a file for concurrent callers"
        )


def _validate_allocation(config: NumberingConfig, result: ConfigValidationResult) -> None:
    alloc = config.allocation
    if alloc.max_attempts < 1:
        result.add_error("allocation.max_attempts must be >= 1")
    if alloc.backoff_seconds < 0 or alloc.max_backoff_seconds < 0:
        result.add_error("allocation backoff values must be >= 0")
    elif alloc.max_backoff_seconds < alloc.backoff_seconds:
        result.add_warning("allocation.max_backoff_seconds is below backoff_seconds")


def _validate_layout(config: NumberingConfig, result: ConfigValidationResult) -> None:
    layout = config.layout
    for name in ("invoice_marker", "quotation_marker"):
        value = getattr(layout, name)
        if not _MARKER_RE.match(value):
            result.add_error(f"layout.{name}: {value!r} must be upper-case alphanumeric")
    if layout.invoice_marker == layout.quotation_marker:
        result.add_error("layout: invoice_marker and quotation_marker must differ")
    if not layout.version_prefix.isalpha():
        result.add_error("layout.version_prefix must be alphabetic")
    if layout.client_sequence_width < MIN_CLIENT_SEQUENCE_WIDTH:
        result.add_error(
            f"layout.client_sequence_width must be >= {MIN_CLIENT_SEQUENCE_WIDTH}"
        )
    if layout.document_sequence_width < MIN_DOCUMENT_SEQUENCE_WIDTH:
        result.add_error(
            f"layout.document_sequence_width must be >= {MIN_DOCUMENT_SEQUENCE_WIDTH}"
        )
