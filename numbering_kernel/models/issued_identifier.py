"""
Module: numbering_kernel.models.issued_identifier
Responsibility: ORM persistence for every identifier the engine has issued.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - human_id is unique per entity_type (uq_issued_identifier_human_id).
    - One row per idempotency key (uq_issued_identifier_idempotency_key), so a
      retried request can never allocate twice.
    - One row per (entity_type, global_sequence, version): a reissue shares
      the original's numbers but never its version.
    - Append-only: ORM before_update/before_delete listeners and DB triggers
      reject any change.  A reissue inserts a new row.

Failure modes:
    - IntegrityError on a duplicate idempotency key or human id.  The
      coordinator turns these into an idempotent replay or a retry.
    - ImmutabilityViolationError on UPDATE or DELETE.

Audit relevance:
    request_hash fingerprints the request that produced the row, so a reused
    idempotency key with a different request is detected instead of silently
    returning a mismatched identifier.
"""

from datetime import date, datetime

from sqlalchemy import (
    CheckConstraint,
    Date,
    Index,
    Integer,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column

from numbering_kernel.db.base import Base


class IssuedIdentifier(Base):
    """
    One allocation result, as persisted.

    Contract:
        Written once inside the same transaction that reserved its counter
        values.  Never updated, never deleted.
    """

    __tablename__ = "issued_identifiers"

    __table_args__ = (
        UniqueConstraint("entity_type", "human_id", name="uq_issued_identifier_human_id"),
        UniqueConstraint("idempotency_key", name="uq_issued_identifier_idempotency_key"),
        UniqueConstraint(
            "entity_type",
            "global_sequence",
            "version",
            name="uq_issued_identifier_sequence_version",
        ),
        CheckConstraint("version >= 1", name="ck_issued_identifier_version"),
        CheckConstraint("global_sequence >= 1", name="ck_issued_identifier_global"),
        CheckConstraint("scoped_sequence >= 1", name="ck_issued_identifier_scoped"),
        Index("idx_issued_identifier_owner", "owner_client_id", "entity_type"),
        Index("idx_issued_identifier_sequence", "entity_type", "global_sequence"),
        Index("idx_issued_identifier_scope", "scope_owner", "entity_type", "scope_period"),
    )

    entity_type: Mapped[str] = mapped_column(String(20), nullable=False)

    human_id: Mapped[str] = mapped_column(String(64), nullable=False)

    global_sequence: Mapped[int] = mapped_column(nullable=False)

    scoped_sequence: Mapped[int] = mapped_column(nullable=False)

    # FY label of the request date, for every entity type
    fiscal_year: Mapped[str] = mapped_column(String(10), nullable=False)

    # Key of the scoped counter that produced scoped_sequence
    scope_owner: Mapped[str] = mapped_column(String(64), nullable=False)

    scope_period: Mapped[str] = mapped_column(String(10), nullable=False)

    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    issued_at: Mapped[datetime] = mapped_column(nullable=False)

    request_date: Mapped[date] = mapped_column(Date, nullable=False)

    # For CLIENT rows this is the new client's own id
    owner_client_id: Mapped[str] = mapped_column(String(64), nullable=False)

    # Owner's frozen ClientCode.human_code, when one is registered
    client_code: Mapped[str | None] = mapped_column(String(32), nullable=True)

    idempotency_key: Mapped[str] = mapped_column(String(255), nullable=False)

    request_hash: Mapped[str] = mapped_column(String(64), nullable=False)

    def __repr__(self) -> str:
        return f"<IssuedIdentifier {self.entity_type} {self.human_id}>"
