"""ORM models for the numbering kernel."""

from numbering_kernel.models.client_code import ClientCode
from numbering_kernel.models.counter import GlobalCounter, ScopedCounter
from numbering_kernel.models.issued_identifier import IssuedIdentifier

__all__ = [
    "ClientCode",
    "GlobalCounter",
    "IssuedIdentifier",
    "ScopedCounter",
]
