"""
Module: numbering_kernel.models.counter
Responsibility: ORM persistence for the two counter granularities -- one
    GlobalCounter row per entity type and one ScopedCounter row per
    (owner, entity type, period) tuple.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - One GlobalCounter row per counter_type (UNIQUE uq_global_counter_type).
    - One ScopedCounter row per (owner_key, sequence_type, fiscal_year)
      (UNIQUE uq_scoped_counter_key).  A new fiscal year is a new row that
      starts at 1; existing rows are never reset.
    - current_value is never negative (CHECK constraints).

Failure modes:
    - IntegrityError when two transactions race to create the same row.
      CounterStore absorbs this with a savepoint retry.

Audit relevance:
    current_value is the high-water mark of every number ever handed out for
    the key.  Only CounterStore mutates these rows, and only by an atomic
    increment.
"""

from sqlalchemy import BigInteger, CheckConstraint, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from numbering_kernel.db.base import Base


class GlobalCounter(Base):
    """
    Cross-client counter for one entity type.

    Contract:
        Created once per entity type at bootstrap (or lazily on first use)
        and then only ever incremented by one.
    """

    __tablename__ = "global_counters"

    __table_args__ = (
        UniqueConstraint("counter_type", name="uq_global_counter_type"),
        CheckConstraint("current_value >= 0", name="ck_global_counter_non_negative"),
    )

    # CLIENT / INVOICE / QUOTATION
    counter_type: Mapped[str] = mapped_column(String(20), nullable=False)

    current_value: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)

    def __repr__(self) -> str:
        return f"<GlobalCounter {self.counter_type}={self.current_value}>"


class ScopedCounter(Base):
    """
    Counter local to one owner, entity type and period.

    For invoices and quotations the owner is the client id and the period is
    the fiscal-year label.  For client codes the owner is
    ``<project>-<country>`` and the period is the compact month code.
    """

    __tablename__ = "scoped_counters"

    __table_args__ = (
        UniqueConstraint(
            "owner_key",
            "sequence_type",
            "fiscal_year",
            name="uq_scoped_counter_key",
        ),
        CheckConstraint("current_value >= 0", name="ck_scoped_counter_non_negative"),
    )

    owner_key: Mapped[str] = mapped_column(String(64), nullable=False)

    sequence_type: Mapped[str] = mapped_column(String(20), nullable=False)

    # FY label (FY26) or compact period code (259)
    fiscal_year: Mapped[str] = mapped_column(String(10), nullable=False)

    current_value: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)

    def __repr__(self) -> str:
        return (
            f"<ScopedCounter {self.owner_key}/{self.sequence_type}/"
            f"{self.fiscal_year}={self.current_value}>"
        )
