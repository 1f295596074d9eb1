"""
Values -- closed vocabularies for identifier allocation.

Responsibility:
    Defines the entity kinds the allocator numbers and the onboarding
    vocabularies (project and platform codes) captured on a ClientCode.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.
    Imported by models, requests, formatter and services.

Invariants enforced:
    - Only CLIENT, INVOICE and QUOTATION identifiers are ever allocated.
    - Project codes and platform codes are single upper-case letters from a
      fixed vocabulary; country codes are three upper-case letters.

Failure modes:
    - ValueError from the Enum constructors on unknown codes (callers at the
      boundary translate this into RequestValidationError).
"""

from __future__ import annotations

import re
from enum import Enum


class EntityType(str, Enum):
    """Kinds of business record that receive an allocated identifier."""

    CLIENT = "CLIENT"
    INVOICE = "INVOICE"
    QUOTATION = "QUOTATION"

    @property
    def is_document(self) -> bool:
        """Invoices and quotations are owned by a client and fiscal-year scoped."""
        return self is not EntityType.CLIENT


class ProjectCode(str, Enum):
    """Engagement size recorded at client onboarding."""

    ENTERPRISE = "E"
    STARTUP = "S"
    MEDIUM_BUSINESS = "M"
    PERSONAL = "P"


class PlatformCode(str, Enum):
    """Delivery platform recorded at client onboarding."""

    APP = "A"
    WEB = "W"
    BOTH = "B"
    HYBRID = "H"


DEFAULT_COUNTRY_CODE = "IND"

_COUNTRY_CODE_RE = re.compile(r"^[A-Z]{3}$")


def is_valid_country_code(value: object) -> bool:
    """True for a three-letter upper-case country code such as ``IND``."""
    return isinstance(value, str) and bool(_COUNTRY_CODE_RE.match(value))
