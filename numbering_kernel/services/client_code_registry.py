"""
ClientCodeRegistry -- derive and freeze a client's human code at onboarding.

Responsibility:
    Turns (project, platform, country, onboarding date) into a CLIENT
    identifier through AllocationCoordinator and stores it as an immutable
    ClientCode row in the same transaction.  Serves later lookups by client
    id or by human code.

Architecture position:
    Kernel > Services.  Delegates every write to AllocationCoordinator via
    its ``persist_with`` hook; reads use short-lived sessions of their own.

Invariants enforced:
    - Exactly one ClientCode per client, created once and never regenerated.
      The ClientCode row commits if and only if its IssuedIdentifier commits.
    - The scoped counter for client codes is keyed by project and country
      and scoped by the compact period code, not by a fiscal-year label.
    - A retried onboarding (same idempotency key) returns the stored code.

Failure modes:
    - ValidationError subclasses for bad codes or dates (nothing reserved).
    - ImmutabilityViolationError if the client already holds a code under a
      different idempotency key.
    - ClientCodeNotFoundError from ``get()`` / ``get_by_human_code()``.
"""

from __future__ import annotations

from datetime import date
from uuid import uuid4

from sqlalchemy import select
from sqlalchemy.orm import Session, sessionmaker

from numbering_kernel.domain.dtos import ClientCodeRecord, IssuedIdentifierRecord
from numbering_kernel.domain.requests import ClientIdRequest
from numbering_kernel.domain.values import DEFAULT_COUNTRY_CODE, EntityType
from numbering_kernel.exceptions import ClientCodeNotFoundError, ImmutabilityViolationError
from numbering_kernel.logging_config import get_logger
from numbering_kernel.models.client_code import ClientCode
from numbering_kernel.services.allocation_coordinator import (
    AllocationCoordinator,
    PersistCallback,
)
from numbering_kernel.utils.idempotency import generate_idempotency_key

logger = get_logger("services.client_code_registry")

ONBOARDING_WORKFLOW = "client-onboarding"


class ClientCodeRegistry:
    """
    Onboarding-time registry of frozen client codes.

    Contract:
        ``register()`` returns the ClientCodeRecord for the client, minting
        it on the first call and returning the stored one on a replay.

    Guarantees:
        - The returned code is committed.
        - Nothing about an existing code ever changes.

    Non-goals:
        - Does NOT re-derive a code when the client's project, platform or
          country change later.
    """

    def __init__(
        self,
        coordinator: AllocationCoordinator,
        session_factory: sessionmaker[Session] | None = None,
    ):
        self._coordinator = coordinator
        self._session_factory = session_factory or coordinator.session_factory

    def register(
        self,
        project_code: str,
        platform_code: str,
        country_code: str = DEFAULT_COUNTRY_CODE,
        request_date: date | None = None,
        *,
        client_id: str | None = None,
        idempotency_key: str | None = None,
        actor_id: str | None = None,
        persist_with: PersistCallback | None = None,
    ) -> ClientCodeRecord:
        """
        Mint and store the client code for one onboarding.

        Args:
            project_code: One of the ProjectCode letters (E, S, M, P).
            platform_code: One of the PlatformCode letters (A, W, B, H).
            country_code: Three upper-case letters, ``IND`` by default.
            request_date: Onboarding date; defaults to the coordinator
                clock's today.
            client_id: Portal client id. When omitted it is derived from
                ``idempotency_key``, or is a new UUID if that is omitted too.
            idempotency_key: Defaults to one derived from the client id.
            persist_with: Extra writes (e.g. the client business row) to
                commit in the same transaction.
        """
        if client_id is None and idempotency_key is None:
            client_id = str(uuid4())
        if request_date is None:
            request_date = self._coordinator.clock.today()
        if idempotency_key is None:
            idempotency_key = generate_idempotency_key(
                ONBOARDING_WORKFLOW, EntityType.CLIENT.value, client_id
            )

        request = ClientIdRequest(
            idempotency_key=idempotency_key,
            request_date=request_date,
            project_code=project_code,
            platform_code=platform_code,
            country_code=country_code,
            client_id=client_id,
            actor_id=actor_id,
        )

        created: list[ClientCodeRecord] = []

        def _persist(session: Session, record: IssuedIdentifierRecord) -> None:
            existing = session.execute(
                select(ClientCode).where(ClientCode.client_id == request.client_id)
            ).scalar_one_or_none()
            if existing is not None:
                raise ImmutabilityViolationError(
                    entity_type="ClientCode",
                    entity_id=str(existing.id),
                    reason=f"client {request.client_id} already holds {existing.human_code}",
                )
            row = ClientCode(
                client_id=request.client_id,
                human_code=record.human_id,
                project_code=request.project_code.value,
                platform_code=request.platform_code.value,
                country_code=request.country_code,
                period_code=record.scope_period,
                scoped_seq=record.scoped_sequence,
                global_sequence=record.global_sequence,
                created_at=record.issued_at,
            )
            session.add(row)
            session.flush()
            created.append(ClientCodeRecord.from_row(row))
            if persist_with is not None:
                persist_with(session, record)

        record = self._coordinator.allocate(request, persist_with=_persist)

        if not created or created[-1].human_code != record.human_id:
            # Replay: the code was stored by the original call.
            return self.get(record.owner_client_id)

        client_code = created[-1]
        logger.info(
            "client_code_registered",
            extra={
                "client_id": client_code.client_id,
                "human_code": client_code.human_code,
                "period_code": client_code.period_code,
                "scoped_seq": client_code.scoped_seq,
            },
        )
        return client_code

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def find(self, client_id: str) -> ClientCodeRecord | None:
        with self._session_factory() as session:
            row = session.execute(
                select(ClientCode).where(ClientCode.client_id == client_id)
            ).scalar_one_or_none()
            return ClientCodeRecord.from_row(row) if row is not None else None

    def get(self, client_id: str) -> ClientCodeRecord:
        """The stored code for ``client_id``; raises ClientCodeNotFoundError."""
        record = self.find(client_id)
        if record is None:
            raise ClientCodeNotFoundError(client_id)
        return record

    def get_by_human_code(self, human_code: str) -> ClientCodeRecord:
        with self._session_factory() as session:
            row = session.execute(
                select(ClientCode).where(ClientCode.human_code == human_code)
            ).scalar_one_or_none()
            if row is None:
                raise ClientCodeNotFoundError(human_code)
            return ClientCodeRecord.from_row(row)
