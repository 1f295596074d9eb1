"""
CounterStore -- crash-safe monotonic counters via atomic increment-and-fetch.

Responsibility:
    Hands out strictly increasing integers for two granularities:
    one global counter per entity type, and one scoped counter per
    (owner, entity type, period) tuple.  Also exposes read-only peeks for
    the reissue path and the bootstrap of the global rows.

Architecture position:
    Kernel > Services -- imperative shell infrastructure.
    Called only by AllocationCoordinator (and create_tables for bootstrap).

Invariants enforced:
    - Atomic increment: every reservation is ONE statement,
      ``UPDATE ... SET current_value = current_value + 1 ... RETURNING``.
      The read-modify-write never happens in Python, so two transactions
      can never read the same old value.  The aggregate-max-plus-one
      anti-pattern is never used.
    - Lazy creation: the first reservation for a key INSERTs the row at 1
      inside a SAVEPOINT.  A concurrent creator makes that INSERT fail with
      IntegrityError; the savepoint is rolled back and the atomic UPDATE is
      retried against the row the winner created.
    - Transactional: a value is only spent when the caller's transaction
      commits.  Rollback returns the counter to its previous value.
    - Disjoint keys never contend: each call touches exactly one row.

Failure modes:
    - IntegrityError: concurrent creation race (absorbed here).
    - OperationalError: lock wait timeout / deadlock / SQLite busy.
      Propagated; AllocationCoordinator owns the bounded retry.

Audit relevance:
    Counter rows are the high-water marks for every number ever issued.
    Creation is logged at INFO (``counter_created``), each reservation at
    DEBUG (``counter_reserved``).
"""

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from numbering_kernel.domain.values import EntityType
from numbering_kernel.logging_config import get_logger
from numbering_kernel.models.counter import GlobalCounter, ScopedCounter

logger = get_logger("services.counter_store")


class CounterStore:
    """
    Service for reserving counter values.

    Contract:
        ``next_global`` / ``next_scoped`` return the next value for their key
        and make it visible to other transactions only on commit.

    Guarantees:
        - Two concurrent callers for the same key never receive the same
          value.
        - A value, once committed, is never returned again.
        - Peeks never mutate anything.

    Non-goals:
        - Does NOT call ``session.commit()`` -- caller controls boundaries.
        - Does NOT guarantee gap-freedom for the global counters across
          aborted allocations (gaps are acceptable, duplicates are not).

    Usage:
        with session.begin():
            seq = CounterStore(session).next_global(EntityType.INVOICE)
    """

    def __init__(self, session: Session):
        self._session = session

    # ------------------------------------------------------------------
    # Reservation
    # ------------------------------------------------------------------

    def _increment(self, model, key: dict[str, str]) -> int:
        """Atomically increment the row identified by ``key``, creating it at 1."""
        conditions = [getattr(model, column) == value for column, value in key.items()]
        increment = (
            update(model)
            .where(*conditions)
            .values(current_value=model.current_value + 1)
            .returning(model.current_value)
            .execution_options(synchronize_session=False)
        )

        value = self._session.execute(increment).scalar_one_or_none()
        if value is not None:
            return value

        # First use of this key.  Savepoint so a lost creation race does not
        # roll back the caller's other work.
        savepoint = self._session.begin_nested()
        try:
            self._session.add(model(current_value=1, **key))
            self._session.flush()
            savepoint.commit()
        except IntegrityError:
            savepoint.rollback()
            logger.debug(
                "counter_creation_race_retry",
                extra={"table": model.__tablename__, **key},
            )
            return self._session.execute(increment).scalar_one()

        logger.info(
            "counter_created",
            extra={"table": model.__tablename__, **key},
        )
        return 1

    def next_global(self, counter_type: EntityType | str) -> int:
        """
        Reserve the next global value for ``counter_type``.

        Preconditions:
            - The caller is within an active database transaction.

        Postconditions:
            - Returns an integer > 0 strictly greater than any value
              previously committed for this counter type.
        """
        counter_type = EntityType(counter_type).value
        value = self._increment(GlobalCounter, {"counter_type": counter_type})
        logger.debug(
            "counter_reserved",
            extra={"scope": "global", "counter_type": counter_type, "value": value},
        )
        return value

    def next_scoped(
        self,
        owner_key: str,
        sequence_type: EntityType | str,
        fiscal_year: str,
    ) -> int:
        """
        Reserve the next value for one (owner, type, period) tuple.

        The first reservation for a tuple returns 1.
        """
        if not owner_key or not fiscal_year:
            raise ValueError("owner_key and fiscal_year are required")
        sequence_type = EntityType(sequence_type).value
        value = self._increment(
            ScopedCounter,
            {
                "owner_key": owner_key,
                "sequence_type": sequence_type,
                "fiscal_year": fiscal_year,
            },
        )
        logger.debug(
            "counter_reserved",
            extra={
                "scope": "scoped",
                "owner_key": owner_key,
                "counter_type": sequence_type,
                "fiscal_year": fiscal_year,
                "value": value,
            },
        )
        return value

    # ------------------------------------------------------------------
    # Read-only access
    # ------------------------------------------------------------------

    def peek_global(self, counter_type: EntityType | str) -> int | None:
        """Current high-water mark, or None if the counter does not exist."""
        return self._session.execute(
            select(GlobalCounter.current_value).where(
                GlobalCounter.counter_type == EntityType(counter_type).value
            )
        ).scalar_one_or_none()

    def peek_scoped(
        self,
        owner_key: str,
        sequence_type: EntityType | str,
        fiscal_year: str,
    ) -> int | None:
        return self._session.execute(
            select(ScopedCounter.current_value).where(
                ScopedCounter.owner_key == owner_key,
                ScopedCounter.sequence_type == EntityType(sequence_type).value,
                ScopedCounter.fiscal_year == fiscal_year,
            )
        ).scalar_one_or_none()

    def global_values(self) -> dict[str, int]:
        """All global high-water marks keyed by counter type."""
        rows = self._session.execute(
            select(GlobalCounter.counter_type, GlobalCounter.current_value)
            .order_by(GlobalCounter.counter_type)
        ).all()
        return {counter_type: value for counter_type, value in rows}

    def scoped_values(self, owner_key: str | None = None) -> list[tuple[str, str, str, int]]:
        """Scoped high-water marks as (owner, type, period, value) tuples."""
        query = select(
            ScopedCounter.owner_key,
            ScopedCounter.sequence_type,
            ScopedCounter.fiscal_year,
            ScopedCounter.current_value,
        ).order_by(
            ScopedCounter.owner_key,
            ScopedCounter.sequence_type,
            ScopedCounter.fiscal_year,
        )
        if owner_key is not None:
            query = query.where(ScopedCounter.owner_key == owner_key)
        return [tuple(row) for row in self._session.execute(query).all()]

    # ------------------------------------------------------------------
    # Bootstrap
    # ------------------------------------------------------------------

    def initialize_counters(self) -> None:
        """
        Create one GlobalCounter row per entity type at zero.

        Existing rows are left untouched.  Called during database setup.
        """
        for entity_type in EntityType:
            if self.peek_global(entity_type) is not None:
                continue
            savepoint = self._session.begin_nested()
            try:
                self._session.add(
                    GlobalCounter(counter_type=entity_type.value, current_value=0)
                )
                self._session.flush()
                savepoint.commit()
            except IntegrityError:
                # Another bootstrap created it first.
                savepoint.rollback()
                continue
            logger.info(
                "counter_created",
                extra={"table": GlobalCounter.__tablename__, "counter_type": entity_type.value},
            )
