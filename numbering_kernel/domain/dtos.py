"""
DTOs -- immutable records returned by the allocation engine.

Responsibility:
    Frozen read models for issued identifiers and client codes.  Services and
    selectors return these instead of live ORM instances so callers can hold
    them after the session closes.

Architecture position:
    Kernel > Domain -- pure data, zero I/O.

Invariants enforced:
    - ``to_response()`` exposes exactly the boundary response shape:
      humanId, globalSequence, scopedSequence, fiscalYear, version.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from typing import Any
from uuid import UUID

from numbering_kernel.domain.values import EntityType


@dataclass(frozen=True)
class IssuedIdentifierRecord:
    """
    One persisted allocation.

    Contract:
        Carries both the display string and the raw numeric components a
        business row needs for a later reissue.
    """

    id: UUID
    entity_type: EntityType
    human_id: str
    global_sequence: int
    scoped_sequence: int
    fiscal_year: str
    scope_owner: str
    scope_period: str
    version: int
    issued_at: datetime
    request_date: date
    owner_client_id: str
    client_code: str | None
    idempotency_key: str
    request_hash: str

    @classmethod
    def from_row(cls, row: Any) -> IssuedIdentifierRecord:
        return cls(
            id=row.id,
            entity_type=EntityType(row.entity_type),
            human_id=row.human_id,
            global_sequence=row.global_sequence,
            scoped_sequence=row.scoped_sequence,
            fiscal_year=row.fiscal_year,
            scope_owner=row.scope_owner,
            scope_period=row.scope_period,
            version=row.version,
            issued_at=row.issued_at,
            request_date=row.request_date,
            owner_client_id=row.owner_client_id,
            client_code=row.client_code,
            idempotency_key=row.idempotency_key,
            request_hash=row.request_hash,
        )

    def to_response(self) -> dict[str, Any]:
        return {
            "humanId": self.human_id,
            "globalSequence": self.global_sequence,
            "scopedSequence": self.scoped_sequence,
            "fiscalYear": self.fiscal_year,
            "version": self.version,
        }


@dataclass(frozen=True)
class ClientCodeRecord:
    """The frozen semi-static part of a client's identity."""

    id: UUID
    client_id: str
    human_code: str
    project_code: str
    platform_code: str
    country_code: str
    period_code: str
    scoped_seq: int
    global_sequence: int
    created_at: datetime

    @classmethod
    def from_row(cls, row: Any) -> ClientCodeRecord:
        return cls(
            id=row.id,
            client_id=row.client_id,
            human_code=row.human_code,
            project_code=row.project_code,
            platform_code=row.platform_code,
            country_code=row.country_code,
            period_code=row.period_code,
            scoped_seq=row.scoped_seq,
            global_sequence=row.global_sequence,
            created_at=row.created_at,
        )
