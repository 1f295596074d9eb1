"""
ORM-Level Immutability Enforcement (Layer 1 of 2).

===============================================================================
WHY THIS EXISTS
===============================================================================

An issued identifier is printed on invoices, emailed to clients and quoted
back on payments.  Once issued it must never change, and a client's code is
frozen at onboarding so that historic invoices keep pointing at it.

  Layer 1: THIS FILE (ORM event listeners)
    - Catches modifications through Python/SQLAlchemy code
    - Fires BEFORE the SQL is sent to the database

  Layer 2: db/triggers.py (PostgreSQL / SQLite triggers)
    - Catches raw SQL, bulk UPDATE statements, direct console access

===============================================================================
PROTECTED ENTITIES
===============================================================================

Entity              | When Immutable          | Why
--------------------|-------------------------|---------------------------------
IssuedIdentifier    | ALWAYS (from creation)  | Append-only; reissue = new row
ClientCode          | ALWAYS (from creation)  | Historic documents reference it

===============================================================================
USAGE
===============================================================================

Called once at startup (AllocationCoordinator does this on construction):

    from numbering_kernel.db.immutability import register_immutability_listeners
    register_immutability_listeners()

To temporarily disable (TESTS ONLY):

    unregister_immutability_listeners()
"""

from sqlalchemy import event

from numbering_kernel.exceptions import ImmutabilityViolationError
from numbering_kernel.logging_config import get_logger

logger = get_logger("db.immutability")


def _block(entity_type: str, target, operation: str, reason: str) -> None:
    logger.error(
        "immutability_violation_blocked",
        extra={
            "entity_type": entity_type,
            "entity_id": str(target.id),
            "operation": operation,
        },
    )
    raise ImmutabilityViolationError(
        entity_type=entity_type,
        entity_id=str(target.id),
        reason=reason,
    )


def _check_issued_identifier_update(mapper, connection, target):
    """Issued identifiers are append-only."""
    _block(
        "IssuedIdentifier",
        target,
        "UPDATE",
        f"Issued identifier {target.human_id} cannot be modified; reissue instead",
    )


def _check_issued_identifier_delete(mapper, connection, target):
    _block(
        "IssuedIdentifier",
        target,
        "DELETE",
        f"Issued identifier {target.human_id} cannot be deleted",
    )


def _check_client_code_update(mapper, connection, target):
    """Client codes are frozen at onboarding."""
    _block(
        "ClientCode",
        target,
        "UPDATE",
        f"Client code {target.human_code} is frozen at onboarding",
    )


def _check_client_code_delete(mapper, connection, target):
    _block(
        "ClientCode",
        target,
        "DELETE",
        f"Client code {target.human_code} cannot be deleted",
    )


_LISTENERS = (
    ("IssuedIdentifier", "before_update", _check_issued_identifier_update),
    ("IssuedIdentifier", "before_delete", _check_issued_identifier_delete),
    ("ClientCode", "before_update", _check_client_code_update),
    ("ClientCode", "before_delete", _check_client_code_delete),
)


def _models() -> dict:
    from numbering_kernel.models.client_code import ClientCode
    from numbering_kernel.models.issued_identifier import IssuedIdentifier

    return {"IssuedIdentifier": IssuedIdentifier, "ClientCode": ClientCode}


def register_immutability_listeners() -> None:
    """
    Register all immutability enforcement event listeners (idempotent).

    Call after models are importable and before any allocation runs.
    """
    models = _models()
    for model_name, event_name, listener_fn in _LISTENERS:
        target = models[model_name]
        if not event.contains(target, event_name, listener_fn):
            event.listen(target, event_name, listener_fn)


def unregister_immutability_listeners() -> None:
    """
    Remove immutability enforcement event listeners.

    WARNING: Only use this in tests that must bypass Layer 1 to prove that
    Layer 2 (database triggers) still holds.
    """
    models = _models()
    for model_name, event_name, listener_fn in _LISTENERS:
        target = models[model_name]
        if event.contains(target, event_name, listener_fn):
            event.remove(target, event_name, listener_fn)
