"""
Config -> Kernel Bridges.

Functions that turn a NumberingConfig into kernel objects.  They live in
numbering_config (the producer) because the kernel never imports
numbering_config.

Usage:
    from numbering_config import get_active_config
    from numbering_config.bridges import build_coordinator, init_engine_from_config

    config = get_active_config()
    init_engine_from_config(config)
    coordinator = build_coordinator(config)
"""

from __future__ import annotations

from sqlalchemy.engine import Engine

from numbering_config.schema import NumberingConfig
from numbering_kernel.db.engine import get_session_factory, init_engine_from_url
from numbering_kernel.domain.clock import Clock
from numbering_kernel.domain.formatter import NumberingLayout
from numbering_kernel.services.allocation_coordinator import AllocationCoordinator


def layout_from_config(config: NumberingConfig) -> NumberingLayout:
    """Build the formatter layout from the ``layout`` section."""
    layout = config.layout
    return NumberingLayout(
        invoice_marker=layout.invoice_marker,
        quotation_marker=layout.quotation_marker,
        version_prefix=layout.version_prefix,
        client_sequence_width=layout.client_sequence_width,
        document_sequence_width=layout.document_sequence_width,
    )


def init_engine_from_config(config: NumberingConfig) -> Engine:
    db = config.database
    return init_engine_from_url(
        db.url,
        echo=db.echo,
        pool_size=db.pool_size,
        max_overflow=db.max_overflow,
        pool_timeout=db.pool_timeout,
        busy_timeout_seconds=db.busy_timeout_seconds,
    )


def build_coordinator(
    config: NumberingConfig,
    clock: Clock | None = None,
) -> AllocationCoordinator:
    """
    Build an AllocationCoordinator wired to the configured layout and retry
    bound.  The engine must already be initialized.
    """
    return AllocationCoordinator(
        session_factory=get_session_factory(),
        clock=clock,
        layout=layout_from_config(config),
        max_attempts=config.allocation.max_attempts,
        backoff_seconds=config.allocation.backoff_seconds,
        max_backoff_seconds=config.allocation.max_backoff_seconds,
    )
