"""
Module: numbering_kernel.selectors.identifier_selector
Responsibility: Read side for issued identifiers -- lookups by human id and
    idempotency key, reissue version history, and per-client listings.
Architecture position: Kernel > Selectors.  Read-only.

Invariants enforced:
    - Returns IssuedIdentifierRecord DTOs only.

Audit relevance:
    ``exists()`` is informational.  It is NOT a uniqueness guard: the
    allocator's own unique constraints close the check-then-insert race, so
    callers never need to pre-check before writing a business row.
"""

from sqlalchemy import func, select

from numbering_kernel.domain.dtos import IssuedIdentifierRecord
from numbering_kernel.domain.values import EntityType
from numbering_kernel.models.issued_identifier import IssuedIdentifier
from numbering_kernel.selectors.base import BaseSelector


class IdentifierSelector(BaseSelector[IssuedIdentifier]):
    """Read-only queries over issued identifiers."""

    def get_by_human_id(
        self, entity_type: EntityType | str, human_id: str
    ) -> IssuedIdentifierRecord | None:
        row = self.session.execute(
            select(IssuedIdentifier).where(
                IssuedIdentifier.entity_type == EntityType(entity_type).value,
                IssuedIdentifier.human_id == human_id,
            )
        ).scalar_one_or_none()
        return IssuedIdentifierRecord.from_row(row) if row is not None else None

    def get_by_idempotency_key(self, idempotency_key: str) -> IssuedIdentifierRecord | None:
        row = self.session.execute(
            select(IssuedIdentifier).where(
                IssuedIdentifier.idempotency_key == idempotency_key
            )
        ).scalar_one_or_none()
        return IssuedIdentifierRecord.from_row(row) if row is not None else None

    def exists(self, entity_type: EntityType | str, human_id: str) -> bool:
        """Informational only; never use as a pre-insert uniqueness check."""
        return self.session.execute(
            select(IssuedIdentifier.id).where(
                IssuedIdentifier.entity_type == EntityType(entity_type).value,
                IssuedIdentifier.human_id == human_id,
            )
        ).first() is not None

    def version_history(
        self, entity_type: EntityType | str, global_sequence: int
    ) -> list[IssuedIdentifierRecord]:
        """Every version issued for one document number, oldest first."""
        rows = self.session.execute(
            select(IssuedIdentifier)
            .where(
                IssuedIdentifier.entity_type == EntityType(entity_type).value,
                IssuedIdentifier.global_sequence == global_sequence,
            )
            .order_by(IssuedIdentifier.version)
        ).scalars().all()
        return [IssuedIdentifierRecord.from_row(row) for row in rows]

    def latest_version(self, entity_type: EntityType | str, global_sequence: int) -> int | None:
        return self.session.execute(
            select(func.max(IssuedIdentifier.version)).where(
                IssuedIdentifier.entity_type == EntityType(entity_type).value,
                IssuedIdentifier.global_sequence == global_sequence,
            )
        ).scalar_one()

    def list_for_client(
        self,
        client_id: str,
        entity_type: EntityType | str | None = None,
        fiscal_year: str | None = None,
    ) -> list[IssuedIdentifierRecord]:
        """Identifiers owned by one client, in issue order."""
        query = select(IssuedIdentifier).where(
            IssuedIdentifier.owner_client_id == client_id
        )
        if entity_type is not None:
            query = query.where(IssuedIdentifier.entity_type == EntityType(entity_type).value)
        if fiscal_year is not None:
            query = query.where(IssuedIdentifier.fiscal_year == fiscal_year)
        rows = self.session.execute(
            query.order_by(
                IssuedIdentifier.entity_type,
                IssuedIdentifier.global_sequence,
                IssuedIdentifier.version,
            )
        ).scalars().all()
        return [IssuedIdentifierRecord.from_row(row) for row in rows]

    def scoped_sequences(
        self,
        scope_owner: str,
        entity_type: EntityType | str,
        scope_period: str,
    ) -> list[int]:
        """Scoped numbers of fresh (version 1) allocations for one tuple, ascending."""
        return list(
            self.session.execute(
                select(IssuedIdentifier.scoped_sequence)
                .where(
                    IssuedIdentifier.scope_owner == scope_owner,
                    IssuedIdentifier.entity_type == EntityType(entity_type).value,
                    IssuedIdentifier.scope_period == scope_period,
                    IssuedIdentifier.version == 1,
                )
                .order_by(IssuedIdentifier.scoped_sequence)
            ).scalars()
        )
