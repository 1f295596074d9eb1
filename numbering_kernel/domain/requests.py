"""
Requests -- the closed, validated request union for identifier allocation.

Responsibility:
    Defines one frozen request type per entity kind and the boundary parser
    that turns a loosely-typed portal payload into exactly one of them.
    Everything here runs before any counter is touched.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.
    Consumed by AllocationCoordinator, ClientCodeRegistry and the CLI.

Invariants enforced:
    - Document requests (invoice, quotation) always carry an owning client.
    - A fresh allocation is always version 1; a higher version is only
      reachable through ``prior_identifier`` (reissue).
    - CLIENT identifiers cannot be reissued.
    - Request dates are inside the supported fiscal range.

Failure modes:
    - RequestValidationError: one or more payload fields are missing or of
      the wrong shape (all field errors are reported together).
    - InvalidEntityTypeError: entityType is not CLIENT, INVOICE or QUOTATION.
    - MissingClientIdError: document request without clientId.
    - InvalidFiscalDateError: date outside the supported range.
    - ReissueNotAllowedError: priorIdentifier supplied for a CLIENT request.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from datetime import date, datetime
from typing import Any, ClassVar, Union
from uuid import NAMESPACE_URL, uuid5

from numbering_kernel.domain.dtos import IssuedIdentifierRecord
from numbering_kernel.domain.fiscal import coerce_request_date
from numbering_kernel.domain.values import (
    DEFAULT_COUNTRY_CODE,
    EntityType,
    PlatformCode,
    ProjectCode,
    is_valid_country_code,
)
from numbering_kernel.exceptions import (
    InvalidEntityTypeError,
    MissingClientIdError,
    ReissueNotAllowedError,
    RequestValidationError,
)

MAX_IDEMPOTENCY_KEY_LENGTH = 255
MAX_CLIENT_ID_LENGTH = 64


def _require_text(errors: list[dict], field_name: str, value: Any, max_length: int) -> None:
    if not isinstance(value, str) or not value.strip():
        errors.append({"field": field_name, "message": "must be a non-empty string"})
    elif len(value) > max_length:
        errors.append(
            {"field": field_name, "message": f"must be at most {max_length} characters"}
        )


def derive_client_id(idempotency_key: str) -> str:
    """Stable client id for an onboarding that did not name one."""
    return str(uuid5(NAMESPACE_URL, f"numbering-engine:client:{idempotency_key}"))


@dataclass(frozen=True)
class ClientIdRequest:
    """
    Allocate the human code for a newly onboarded client.

    When ``client_id`` is omitted it is derived from the idempotency key, so
    a retried onboarding fingerprints the same and replays.
    """

    idempotency_key: str
    request_date: date
    project_code: ProjectCode
    platform_code: PlatformCode
    country_code: str = DEFAULT_COUNTRY_CODE
    client_id: str | None = None
    actor_id: str | None = None

    entity_type: ClassVar[EntityType] = EntityType.CLIENT
    version: ClassVar[int] = 1
    prior_identifier: ClassVar[None] = None

    def __post_init__(self) -> None:
        errors: list[dict] = []
        _require_text(errors, "idempotencyKey", self.idempotency_key, MAX_IDEMPOTENCY_KEY_LENGTH)
        if self.client_id is None and isinstance(self.idempotency_key, str):
            object.__setattr__(self, "client_id", derive_client_id(self.idempotency_key))
        _require_text(errors, "clientId", self.client_id, MAX_CLIENT_ID_LENGTH)
        try:
            object.__setattr__(self, "project_code", ProjectCode(self.project_code))
        except ValueError:
            errors.append({
                "field": "projectCode",
                "message": f"must be one of {[p.value for p in ProjectCode]}",
            })
        try:
            object.__setattr__(self, "platform_code", PlatformCode(self.platform_code))
        except ValueError:
            errors.append({
                "field": "platformCode",
                "message": f"must be one of {[p.value for p in PlatformCode]}",
            })
        if not is_valid_country_code(self.country_code):
            errors.append({"field": "countryCode", "message": "must be three upper-case letters"})
        if errors:
            raise RequestValidationError(errors)
        object.__setattr__(self, "request_date", coerce_request_date(self.request_date))

    @property
    def is_reissue(self) -> bool:
        return False

    @property
    def owner_key(self) -> str:
        """Scoped counter owner: client numbers run per project and country."""
        return f"{self.project_code.value}-{self.country_code}"

    def fingerprint(self) -> dict[str, Any]:
        """Fields that identify the logical request (actor excluded)."""
        return {
            "entity_type": self.entity_type.value,
            "client_id": self.client_id,
            "request_date": self.request_date.isoformat(),
            "project_code": self.project_code.value,
            "platform_code": self.platform_code.value,
            "country_code": self.country_code,
        }


@dataclass(frozen=True)
class _DocumentIdRequest:
    idempotency_key: str
    client_id: str
    request_date: date
    version: int = 1
    prior_identifier: str | None = None
    actor_id: str | None = None

    entity_type: ClassVar[EntityType]

    def __post_init__(self) -> None:
        if self.client_id is None or (
            isinstance(self.client_id, str) and not self.client_id.strip()
        ):
            raise MissingClientIdError(self.entity_type.value)

        if isinstance(self.prior_identifier, IssuedIdentifierRecord):
            if self.prior_identifier.entity_type is not self.entity_type:
                raise RequestValidationError([{
                    "field": "priorIdentifier",
                    "message": f"must be a {self.entity_type.value} identifier",
                }])
            object.__setattr__(self, "prior_identifier", self.prior_identifier.human_id)

        errors: list[dict] = []
        _require_text(errors, "idempotencyKey", self.idempotency_key, MAX_IDEMPOTENCY_KEY_LENGTH)
        _require_text(errors, "clientId", self.client_id, MAX_CLIENT_ID_LENGTH)
        if isinstance(self.version, bool) or not isinstance(self.version, int) or self.version < 1:
            errors.append({"field": "version", "message": "must be an integer >= 1"})
        elif self.prior_identifier is None and self.version != 1:
            errors.append({
                "field": "version",
                "message": "a fresh allocation is always version 1; pass priorIdentifier to reissue",
            })
        if self.prior_identifier is not None and (
            not isinstance(self.prior_identifier, str) or not self.prior_identifier.strip()
        ):
            errors.append({"field": "priorIdentifier", "message": "must be a non-empty string"})
        if errors:
            raise RequestValidationError(errors)
        object.__setattr__(self, "request_date", coerce_request_date(self.request_date))

    @property
    def is_reissue(self) -> bool:
        return self.prior_identifier is not None

    @property
    def owner_key(self) -> str:
        return self.client_id

    def fingerprint(self) -> dict[str, Any]:
        return {
            "entity_type": self.entity_type.value,
            "client_id": self.client_id,
            "request_date": self.request_date.isoformat(),
            "version": self.version,
            "prior_identifier": self.prior_identifier,
        }


@dataclass(frozen=True)
class InvoiceIdRequest(_DocumentIdRequest):
    """Allocate (or reissue) an invoice number for one client."""

    entity_type: ClassVar[EntityType] = EntityType.INVOICE


@dataclass(frozen=True)
class QuotationIdRequest(_DocumentIdRequest):
    """Allocate (or reissue) a quotation number for one client."""

    entity_type: ClassVar[EntityType] = EntityType.QUOTATION


AllocationRequest = Union[ClientIdRequest, InvoiceIdRequest, QuotationIdRequest]

_DOCUMENT_REQUEST_TYPES: dict[EntityType, type[_DocumentIdRequest]] = {
    EntityType.INVOICE: InvoiceIdRequest,
    EntityType.QUOTATION: QuotationIdRequest,
}


# ---------------------------------------------------------------------------
# Boundary parsing
# ---------------------------------------------------------------------------


def _parse_date(errors: list[dict], value: Any) -> date | None:
    if value is None:
        errors.append({"field": "date", "message": "is required"})
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        text = value.strip()
        try:
            return date.fromisoformat(text)
        except ValueError:
            pass
        # Full ISO timestamps are accepted; anything else is rejected whole.
        if "T" in text or " " in text:
            try:
                return datetime.fromisoformat(text).date()
            except ValueError:
                pass
    errors.append({"field": "date", "message": "must be an ISO date (YYYY-MM-DD)"})
    return None


def _parse_version(errors: list[dict], value: Any) -> int | None:
    if value is None:
        return 1
    if isinstance(value, str) and value.strip().isdigit():
        value = int(value.strip())
    if isinstance(value, bool) or not isinstance(value, int) or value < 1:
        errors.append({"field": "version", "message": "must be an integer >= 1"})
        return None
    return value


def _optional_text(errors: list[dict], field_name: str, value: Any) -> str | None:
    if value is None:
        return None
    if not isinstance(value, str) or not value.strip():
        errors.append({"field": field_name, "message": "must be a non-empty string"})
        return None
    return value.strip()


def parse_allocation_request(payload: Mapping[str, Any]) -> AllocationRequest:
    """
    Validate a loosely-typed portal payload and build the matching request.

    Recognized keys: ``entityType``, ``clientId``, ``date``, ``version``,
    ``priorIdentifier``, ``idempotencyKey``, ``actorId`` and, for CLIENT,
    ``projectCode``, ``platformCode``, ``countryCode`` (default ``IND``).

    Raises:
        RequestValidationError, InvalidEntityTypeError, MissingClientIdError,
        InvalidFiscalDateError, ReissueNotAllowedError.
    """
    if not isinstance(payload, Mapping):
        raise RequestValidationError(
            [{"field": "<payload>", "message": "must be a JSON object"}]
        )

    raw_type = payload.get("entityType")
    if raw_type is None:
        raise RequestValidationError([{"field": "entityType", "message": "is required"}])
    try:
        entity_type = EntityType(str(raw_type).strip().upper())
    except ValueError:
        raise InvalidEntityTypeError(str(raw_type)) from None

    errors: list[dict] = []
    if payload.get("idempotencyKey") is None:
        errors.append({"field": "idempotencyKey", "message": "is required"})
    idempotency_key = _optional_text(errors, "idempotencyKey", payload.get("idempotencyKey"))
    request_date = _parse_date(errors, payload.get("date"))
    actor_id = _optional_text(errors, "actorId", payload.get("actorId"))
    client_id = _optional_text(errors, "clientId", payload.get("clientId"))

    if entity_type is EntityType.CLIENT:
        if payload.get("priorIdentifier") is not None:
            raise ReissueNotAllowedError(
                entity_type.value, "client codes are frozen at onboarding"
            )
        version = _parse_version(errors, payload.get("version"))
        if version is not None and version != 1:
            errors.append({"field": "version", "message": "client identifiers are always version 1"})

        project_code = str(payload.get("projectCode") or "").strip().upper()
        platform_code = str(payload.get("platformCode") or "").strip().upper()
        country_code = str(payload.get("countryCode") or DEFAULT_COUNTRY_CODE).strip().upper()
        if project_code not in {p.value for p in ProjectCode}:
            errors.append({
                "field": "projectCode",
                "message": f"must be one of {[p.value for p in ProjectCode]}",
            })
        if platform_code not in {p.value for p in PlatformCode}:
            errors.append({
                "field": "platformCode",
                "message": f"must be one of {[p.value for p in PlatformCode]}",
            })
        if not is_valid_country_code(country_code):
            errors.append({"field": "countryCode", "message": "must be three letters"})
        if errors:
            raise RequestValidationError(errors)

        kwargs: dict[str, Any] = {}
        if client_id is not None:
            kwargs["client_id"] = client_id
        return ClientIdRequest(
            idempotency_key=idempotency_key,
            request_date=request_date,
            project_code=ProjectCode(project_code),
            platform_code=PlatformCode(platform_code),
            country_code=country_code,
            actor_id=actor_id,
            **kwargs,
        )

    if payload.get("clientId") is None:
        if not errors:
            raise MissingClientIdError(entity_type.value)
        errors.append({"field": "clientId", "message": "is required"})
    version = _parse_version(errors, payload.get("version"))
    prior_identifier = _optional_text(errors, "priorIdentifier", payload.get("priorIdentifier"))
    if errors:
        raise RequestValidationError(errors)

    return _DOCUMENT_REQUEST_TYPES[entity_type](
        idempotency_key=idempotency_key,
        client_id=client_id,
        request_date=request_date,
        version=version,
        prior_identifier=prior_identifier,
        actor_id=actor_id,
    )
