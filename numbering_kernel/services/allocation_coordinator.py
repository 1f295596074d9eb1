"""
AllocationCoordinator -- the single entry point for minting identifiers.

Responsibility:
    Validates nothing twice, reserves counters, formats the human id and
    records it -- all inside one database transaction per attempt -- and
    guarantees that a retried business event gets back exactly the
    identifier it was given the first time.

Architecture position:
    Kernel > Services -- imperative shell, owns transaction boundaries.
    Composes CounterStore, IdentifierFormatter, the fiscal resolver and
    IdentifierSelector.  Every entity-creation workflow (client onboarding,
    quotation and invoice authoring) calls ``allocate()``.

State machine (one pass per attempt, logged at each transition):

    RECEIVED -> COUNTERS_RESERVED -> FORMATTED -> PERSISTED -> ACKNOWLEDGED
         \\              \\               \\            \\
          +--------------+---------------+------------+--> ROLLED_BACK

    The reissue path skips COUNTERS_RESERVED: it reuses the prior
    identifier's numbers and only bumps the version.

Invariants enforced:
    - Atomic reserve-and-record: both counter reservations, the
      IssuedIdentifier insert and the caller's ``persist_with`` writes commit
      together or not at all.  A failure before ACKNOWLEDGED leaves every
      counter exactly as if the call never ran.
    - Idempotency: the idempotency key is UNIQUE on issued_identifiers.  A
      replay (before the insert, or after losing an insert race) returns the
      stored record verbatim and touches no counter.  A reused key with a
      different request fingerprint is rejected.
    - Reissue preserves numbering: global/scoped sequence, fiscal year and
      scope are copied from the prior row; version = prior.version + 1.
    - Bounded retry: only transient lock/busy/deadlock/serialization errors
      are retried, at most ``max_attempts`` times.

Failure modes:
    - ValidationError subclasses: raised by request construction, before
      any counter is touched.
    - IdempotencyKeyConflictError: same key, different request.
    - UnknownIdentifierError / StaleReissueError: bad reissue target.
    - FormatOverflowError: reserved value does not fit the layout; the
      reservation is rolled back.
    - ConcurrencyConflictError: transient conflicts outlasted the retry bound.
    - PersistenceError: any other database failure.

Audit relevance:
    Every attempt runs under a bound LogContext (correlation_id,
    idempotency_key, entity_type, client_id, actor_id), and emits
    ``allocation_started`` ... ``allocation_completed`` (with duration_ms),
    ``allocation_replayed``, ``allocation_retry`` or
    ``allocation_rolled_back``.

Usage:
    coordinator = AllocationCoordinator(clock=SystemClock())
    record = coordinator.allocate(
        InvoiceIdRequest(
            idempotency_key="invoice-authoring:INVOICE:7c1e...",
            client_id=client_id,
            request_date=date(2025, 6, 1),
        ),
        persist_with=lambda session, rec: session.add(Invoice(number=rec.human_id)),
    )
"""

from __future__ import annotations

import time
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from enum import Enum
from typing import Any
from uuid import uuid4

from sqlalchemy import select
from sqlalchemy.exc import DBAPIError, IntegrityError, OperationalError
from sqlalchemy.orm import Session, sessionmaker

from numbering_kernel.db.engine import get_session_factory
from numbering_kernel.db.immutability import register_immutability_listeners
from numbering_kernel.domain.clock import Clock, SystemClock
from numbering_kernel.domain.dtos import IssuedIdentifierRecord
from numbering_kernel.domain.fiscal import resolve_fiscal_period
from numbering_kernel.domain.formatter import IdentifierFormatter, NumberingLayout
from numbering_kernel.domain.requests import (
    AllocationRequest,
    ClientIdRequest,
    parse_allocation_request,
)
from numbering_kernel.domain.values import EntityType
from numbering_kernel.exceptions import (
    ConcurrencyConflictError,
    DuplicateRequestError,
    IdempotencyKeyConflictError,
    PersistenceError,
    RequestValidationError,
    StaleReissueError,
    UnknownIdentifierError,
)
from numbering_kernel.logging_config import LogContext, get_logger
from numbering_kernel.models.client_code import ClientCode
from numbering_kernel.models.issued_identifier import IssuedIdentifier
from numbering_kernel.selectors.identifier_selector import IdentifierSelector
from numbering_kernel.services.counter_store import CounterStore
from numbering_kernel.utils.hashing import hash_payload

logger = get_logger("services.allocation_coordinator")

PersistCallback = Callable[[Session, IssuedIdentifierRecord], Any]

# Substrings of driver messages for conflicts that a fresh attempt can win.
_TRANSIENT_MARKERS = (
    "database is locked",
    "database table is locked",
    "busy",
    "deadlock",
    "could not serialize",
    "lock timeout",
    "lock not available",
)


class AllocationState(str, Enum):
    """Progress of one allocation attempt."""

    RECEIVED = "received"
    COUNTERS_RESERVED = "counters_reserved"
    FORMATTED = "formatted"
    PERSISTED = "persisted"
    ACKNOWLEDGED = "acknowledged"
    ROLLED_BACK = "rolled_back"


@dataclass(frozen=True)
class _Numbers:
    global_sequence: int
    scoped_sequence: int
    fiscal_year: str
    scope_owner: str
    scope_period: str
    version: int


def is_transient_db_error(exc: BaseException) -> bool:
    """True for lock/busy/deadlock/serialization failures worth retrying."""
    if not isinstance(exc, OperationalError):
        return False
    message = str(exc.orig if exc.orig is not None else exc).lower()
    return any(marker in message for marker in _TRANSIENT_MARKERS)


class AllocationCoordinator:
    """
    Facade every entity-creation workflow calls to obtain an identifier.

    Contract:
        ``allocate(request)`` returns an IssuedIdentifierRecord that is
        already committed.  Calling it again with the same idempotency key
        returns the same record.

    Guarantees:
        - Exactly one IssuedIdentifier row per idempotency key.
        - No counter advances unless its IssuedIdentifier row commits.
        - Disjoint counters (different clients, different entity types) are
          never serialized behind a system-wide lock.

    Non-goals:
        - Does NOT accept a caller-owned session: each attempt opens its own
          so that a retry never inherits a poisoned transaction.
        - Does NOT retry domain errors; only transient database conflicts.
    """

    def __init__(
        self,
        session_factory: sessionmaker[Session] | None = None,
        clock: Clock | None = None,
        layout: NumberingLayout | None = None,
        max_attempts: int = 5,
        backoff_seconds: float = 0.05,
        max_backoff_seconds: float = 1.0,
    ):
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self._session_factory = session_factory or get_session_factory()
        self._clock = clock or SystemClock()
        self._formatter = IdentifierFormatter(layout)
        self._max_attempts = max_attempts
        self._backoff_seconds = backoff_seconds
        self._max_backoff_seconds = max_backoff_seconds
        register_immutability_listeners()

    @property
    def session_factory(self) -> sessionmaker[Session]:
        return self._session_factory

    @property
    def formatter(self) -> IdentifierFormatter:
        return self._formatter

    @property
    def clock(self) -> Clock:
        return self._clock

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def allocate_payload(
        self,
        payload: Mapping[str, Any],
        persist_with: PersistCallback | None = None,
    ) -> IssuedIdentifierRecord:
        """Validate a loose portal payload, then allocate."""
        return self.allocate(parse_allocation_request(payload), persist_with=persist_with)

    def allocate(
        self,
        request: AllocationRequest,
        persist_with: PersistCallback | None = None,
    ) -> IssuedIdentifierRecord:
        """
        Allocate (or replay) the identifier for one business event.

        Preconditions:
            - ``request`` is a validated ClientIdRequest, InvoiceIdRequest
              or QuotationIdRequest.

        Postconditions:
            - The returned record is committed, together with anything
              ``persist_with(session, record)`` wrote.
            - On any exception nothing was committed by this call.

        Raises:
            IdempotencyKeyConflictError, UnknownIdentifierError,
            StaleReissueError, FormatOverflowError, ConcurrencyConflictError,
            PersistenceError, and anything ``persist_with`` raises.
        """
        request_hash = hash_payload(request.fingerprint())

        with LogContext.bind(
            correlation_id=str(uuid4()),
            idempotency_key=request.idempotency_key,
            entity_type=request.entity_type.value,
            client_id=request.client_id,
            actor_id=request.actor_id,
        ):
            logger.info(
                "allocation_started",
                extra={
                    "state": AllocationState.RECEIVED.value,
                    "is_reissue": request.is_reissue,
                    "request_date": request.request_date,
                },
            )
            t0 = time.monotonic()

            for attempt in range(1, self._max_attempts + 1):
                try:
                    record = self._attempt(request, request_hash, persist_with)
                except DuplicateRequestError as dup:
                    logger.info(
                        "allocation_replayed",
                        extra={
                            "human_id": dup.original.human_id,
                            "duration_ms": round((time.monotonic() - t0) * 1000, 2),
                        },
                    )
                    return dup.original
                except OperationalError as exc:
                    if not is_transient_db_error(exc):
                        raise PersistenceError("allocate", str(exc.orig)) from exc
                    if attempt >= self._max_attempts:
                        logger.error(
                            "allocation_failed",
                            extra={
                                "attempts": attempt,
                                "duration_ms": round((time.monotonic() - t0) * 1000, 2),
                            },
                        )
                        raise ConcurrencyConflictError(
                            request.idempotency_key, attempt
                        ) from exc
                    delay = min(
                        self._backoff_seconds * (2 ** (attempt - 1)),
                        self._max_backoff_seconds,
                    )
                    logger.warning(
                        "allocation_retry",
                        extra={"attempt": attempt, "delay_s": delay, "reason": str(exc.orig)},
                    )
                    time.sleep(delay)
                    continue
                except DBAPIError as exc:
                    raise PersistenceError("allocate", str(exc.orig)) from exc

                logger.info(
                    "allocation_completed",
                    extra={
                        "state": AllocationState.ACKNOWLEDGED.value,
                        "human_id": record.human_id,
                        "global_sequence": record.global_sequence,
                        "scoped_sequence": record.scoped_sequence,
                        "version": record.version,
                        "attempts": attempt,
                        "duration_ms": round((time.monotonic() - t0) * 1000, 2),
                    },
                )
                return record

        raise AssertionError("unreachable: retry loop exits by return or raise")

    # ------------------------------------------------------------------
    # One attempt = one transaction
    # ------------------------------------------------------------------

    def _attempt(
        self,
        request: AllocationRequest,
        request_hash: str,
        persist_with: PersistCallback | None,
    ) -> IssuedIdentifierRecord:
        session = self._session_factory()
        state = AllocationState.RECEIVED
        try:
            self._raise_if_replay(session, request, request_hash)

            if request.is_reissue:
                numbers = self._reuse_prior(session, request)
            else:
                numbers = self._reserve(session, request)
                state = AllocationState.COUNTERS_RESERVED
                logger.info(
                    "counter_reserved",
                    extra={
                        "state": state.value,
                        "global_sequence": numbers.global_sequence,
                        "scoped_sequence": numbers.scoped_sequence,
                        "scope_owner": numbers.scope_owner,
                        "scope_period": numbers.scope_period,
                    },
                )

            human_id = self._format(request, numbers)
            state = AllocationState.FORMATTED
            logger.info("identifier_formatted", extra={"state": state.value, "human_id": human_id})

            row = IssuedIdentifier(
                entity_type=request.entity_type.value,
                human_id=human_id,
                global_sequence=numbers.global_sequence,
                scoped_sequence=numbers.scoped_sequence,
                fiscal_year=numbers.fiscal_year,
                scope_owner=numbers.scope_owner,
                scope_period=numbers.scope_period,
                version=numbers.version,
                issued_at=self._clock.now(),
                request_date=request.request_date,
                owner_client_id=request.client_id,
                client_code=self._client_code_for(session, request, human_id),
                idempotency_key=request.idempotency_key,
                request_hash=request_hash,
            )
            session.add(row)
            session.flush()
            state = AllocationState.PERSISTED
            record = IssuedIdentifierRecord.from_row(row)
            logger.info("identifier_persisted", extra={"state": state.value, "human_id": human_id})

            if persist_with is not None:
                persist_with(session, record)
                session.flush()

            session.commit()
            return record

        except DuplicateRequestError:
            session.rollback()
            raise
        except IntegrityError as exc:
            session.rollback()
            self._log_rollback(state, exc)
            self._resolve_integrity_error(session, request, request_hash, exc)
            raise  # _resolve_integrity_error always raises
        except Exception as exc:
            session.rollback()
            self._log_rollback(state, exc)
            raise
        finally:
            session.close()

    @staticmethod
    def _log_rollback(state: AllocationState, exc: BaseException) -> None:
        logger.warning(
            "allocation_rolled_back",
            extra={
                "state": AllocationState.ROLLED_BACK.value,
                "state_reached": state.value,
                "error_type": type(exc).__name__,
                "error_code": getattr(exc, "code", None),
            },
        )

    # ------------------------------------------------------------------
    # Steps
    # ------------------------------------------------------------------

    def _raise_if_replay(
        self, session: Session, request: AllocationRequest, request_hash: str
    ) -> None:
        existing = IdentifierSelector(session).get_by_idempotency_key(request.idempotency_key)
        if existing is None:
            return
        if existing.request_hash != request_hash:
            raise IdempotencyKeyConflictError(
                request.idempotency_key, existing.request_hash, request_hash
            )
        raise DuplicateRequestError(request.idempotency_key, existing)

    def _reserve(self, session: Session, request: AllocationRequest) -> _Numbers:
        period = resolve_fiscal_period(request.request_date)
        if request.entity_type is EntityType.CLIENT:
            scope_period = period.period_code
        else:
            scope_period = period.fiscal_year

        counters = CounterStore(session)
        # Fixed lock order (scoped row, then global row) across all callers.
        scoped_sequence = counters.next_scoped(
            request.owner_key, request.entity_type, scope_period
        )
        global_sequence = counters.next_global(request.entity_type)
        return _Numbers(
            global_sequence=global_sequence,
            scoped_sequence=scoped_sequence,
            fiscal_year=period.fiscal_year,
            scope_owner=request.owner_key,
            scope_period=scope_period,
            version=1,
        )

    def _reuse_prior(self, session: Session, request: AllocationRequest) -> _Numbers:
        selector = IdentifierSelector(session)
        prior = selector.get_by_human_id(request.entity_type, request.prior_identifier)
        if prior is None:
            raise UnknownIdentifierError(request.entity_type.value, request.prior_identifier)
        if prior.owner_client_id != request.client_id:
            raise RequestValidationError([{
                "field": "priorIdentifier",
                "message": f"{prior.human_id} belongs to a different client",
            }])

        latest = selector.latest_version(request.entity_type, prior.global_sequence)
        if latest is not None and latest > prior.version:
            raise StaleReissueError(prior.human_id, latest)

        new_version = prior.version + 1
        if request.version not in (1, new_version):
            raise RequestValidationError([{
                "field": "version",
                "message": f"reissue of {prior.human_id} must be version {new_version}",
            }])

        counters = CounterStore(session)
        high_global = counters.peek_global(request.entity_type)
        high_scoped = counters.peek_scoped(
            prior.scope_owner, request.entity_type, prior.scope_period
        )
        if (
            high_global is None
            or high_global < prior.global_sequence
            or high_scoped is None
            or high_scoped < prior.scoped_sequence
        ):
            raise PersistenceError(
                "reissue",
                f"counters are behind issued identifier {prior.human_id}",
            )

        return _Numbers(
            global_sequence=prior.global_sequence,
            scoped_sequence=prior.scoped_sequence,
            fiscal_year=prior.fiscal_year,
            scope_owner=prior.scope_owner,
            scope_period=prior.scope_period,
            version=new_version,
        )

    def _format(self, request: AllocationRequest, numbers: _Numbers) -> str:
        if isinstance(request, ClientIdRequest):
            return self._formatter.format_client_id(
                project_code=request.project_code.value,
                platform_code=request.platform_code.value,
                country_code=request.country_code,
                period_code=numbers.scope_period,
                scoped_seq=numbers.scoped_sequence,
            )
        return self._formatter.format_document_id(
            request.entity_type,
            numbers.fiscal_year,
            numbers.global_sequence,
            numbers.version,
        )

    @staticmethod
    def _client_code_for(
        session: Session, request: AllocationRequest, human_id: str
    ) -> str | None:
        if request.entity_type is EntityType.CLIENT:
            return human_id
        return session.execute(
            select(ClientCode.human_code).where(ClientCode.client_id == request.client_id)
        ).scalar_one_or_none()

    def _resolve_integrity_error(
        self,
        session: Session,
        request: AllocationRequest,
        request_hash: str,
        exc: IntegrityError,
    ) -> None:
        """Classify a lost insert race after rollback.  Always raises."""
        # A concurrent call with the same key committed first.
        self._raise_if_replay(session, request, request_hash)

        if request.is_reissue:
            selector = IdentifierSelector(session)
            prior = selector.get_by_human_id(request.entity_type, request.prior_identifier)
            if prior is not None:
                latest = selector.latest_version(request.entity_type, prior.global_sequence)
                if latest is not None and latest > prior.version:
                    raise StaleReissueError(prior.human_id, latest) from exc

        raise PersistenceError("persist_identifier", str(exc.orig)) from exc
