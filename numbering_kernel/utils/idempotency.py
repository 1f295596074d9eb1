"""
Idempotency key generation utilities.

An idempotency key names one logical business event (onboarding a client,
raising an invoice).  Retrying the event with the same key returns the
identifier issued the first time instead of allocating a new one.
"""

from uuid import UUID


def generate_idempotency_key(
    workflow: str,
    entity_type: str,
    business_id: UUID | str,
) -> str:
    """
    Generate an idempotency key for a business event.

    Format: workflow:entity_type:business_id

    The key is stored on the IssuedIdentifier row under a unique constraint.

    Example:
        >>> generate_idempotency_key("client-onboarding", "CLIENT", uuid)
        "client-onboarding:CLIENT:550e8400-e29b-41d4-a716-446655440000"
    """
    return f"{workflow}:{entity_type}:{business_id}"


def parse_idempotency_key(key: str) -> tuple[str, str, str]:
    """
    Parse an idempotency key into its components.

    Raises:
        ValueError: If key format is invalid.
    """
    parts = key.split(":", 2)
    if len(parts) != 3 or not all(parts):
        raise ValueError(f"Invalid idempotency key format: {key}")
    return parts[0], parts[1], parts[2]
