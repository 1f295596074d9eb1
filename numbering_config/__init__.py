"""
numbering_config -- single public entrypoint for numbering configuration.

Responsibility:
    Provides the ONLY way to obtain configuration at runtime through
    ``get_active_config()``.  Returns a frozen ``NumberingConfig``.

Architecture position:
    Configuration -- YAML-driven settings, validated before use.
    This package sits above ``numbering_kernel``.  The kernel MUST NEVER
    import from ``numbering_config``; ``numbering_config.bridges``
    translates a config into kernel objects.

Invariants enforced:
    - Single entrypoint: all runtime config flows through ``get_active_config()``.
    - A config that fails validation is never returned.
    - Deterministic checksum: the same YAML content always produces the
      same ``NumberingConfig.checksum``.

Failure modes:
    - ``FileNotFoundError`` -- no configuration set with the requested name.
    - ``ConfigValidationError`` -- one or more validation errors (all listed).
    - ``KeyError`` / ``ValueError`` -- structurally broken YAML content.

Audit relevance:
    Every successful call emits a ``NUMBERING_CONFIG_TRACE`` log entry with
    the config id, version, checksum and layout, tying each issued
    identifier's shape back to the configuration that produced it.
"""

from __future__ import annotations

import logging
from pathlib import Path

from numbering_config.loader import load_yaml_file, parse_config
from numbering_config.schema import NumberingConfig
from numbering_config.validator import ConfigValidationError, validate_configuration

_logger = logging.getLogger("numbering_kernel.config")

_DEFAULT_CONFIG_DIR = Path(__file__).parent / "sets"

__all__ = ["ConfigValidationError", "NumberingConfig", "get_active_config"]


def get_active_config(
    config_dir: Path | None = None,
    name: str = "default",
) -> NumberingConfig:
    """The ONLY public configuration entrypoint.

    Args:
        config_dir: Directory holding ``<name>.yaml`` sets.  Defaults to
            numbering_config/sets/.
        name: Configuration set name.

    Raises:
        FileNotFoundError: If ``<config_dir>/<name>.yaml`` does not exist.
        ConfigValidationError: If validation reports any error.
    """
    sets_dir = Path(config_dir) if config_dir is not None else _DEFAULT_CONFIG_DIR
    path = sets_dir / f"{name}.yaml"
    if not path.is_file():
        raise FileNotFoundError(f"Configuration set not found: {path}")

    config = parse_config(load_yaml_file(path))

    validation = validate_configuration(config)
    if not validation.is_valid:
        raise ConfigValidationError(config.config_id, validation.errors)
    for warning in validation.warnings:
        _logger.warning("config_validation_warning", extra={"warning": warning})

    _logger.info(
        "NUMBERING_CONFIG_TRACE",
        extra={
            "trace_type": "NUMBERING_CONFIG_TRACE",
            "config_set_id": config.config_id,
            "config_set_version": config.version,
            "checksum": config.checksum,
            "database_dialect": config.database.url.split(":", 1)[0],
            "invoice_marker": config.layout.invoice_marker,
            "quotation_marker": config.layout.quotation_marker,
            "max_attempts": config.allocation.max_attempts,
        },
    )
    return config
