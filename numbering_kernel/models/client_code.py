"""
Module: numbering_kernel.models.client_code
Responsibility: ORM persistence for the semi-static part of a client's
    identity, derived once at onboarding.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - One ClientCode per client (uq_client_code_client) and one client per
      human code (uq_client_code_human_code).
    - Immutable forever: historic invoices keep referencing this code even if
      the client's project, platform or country later change.  ORM listeners
      and DB triggers reject UPDATE and DELETE.

Failure modes:
    - IntegrityError on a second registration for the same client.
    - ImmutabilityViolationError on UPDATE or DELETE.
"""

from datetime import datetime

from sqlalchemy import String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from numbering_kernel.db.base import Base


class ClientCode(Base):
    """Frozen onboarding code for one client (e.g. ``E001-IND-259``)."""

    __tablename__ = "client_codes"

    __table_args__ = (
        UniqueConstraint("client_id", name="uq_client_code_client"),
        UniqueConstraint("human_code", name="uq_client_code_human_code"),
    )

    client_id: Mapped[str] = mapped_column(String(64), nullable=False)

    human_code: Mapped[str] = mapped_column(String(32), nullable=False)

    project_code: Mapped[str] = mapped_column(String(1), nullable=False)

    platform_code: Mapped[str] = mapped_column(String(1), nullable=False)

    country_code: Mapped[str] = mapped_column(String(3), nullable=False)

    period_code: Mapped[str] = mapped_column(String(3), nullable=False)

    scoped_seq: Mapped[int] = mapped_column(nullable=False)

    global_sequence: Mapped[int] = mapped_column(nullable=False)

    created_at: Mapped[datetime] = mapped_column(nullable=False)

    def __repr__(self) -> str:
        return f"<ClientCode {self.client_id} {self.human_code}>"
