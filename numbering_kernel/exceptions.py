"""
Typed Exception Hierarchy for the Numbering Kernel.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

An identifier allocator sits underneath every client, quotation and invoice
creation workflow. Callers must be able to react to a failure precisely:
retry the whole allocation on a concurrency conflict, reject the form on a
validation error, page an operator on a format overflow. Parsing message
strings for that is fragile, so:

  1. Every error has a TYPED exception class (catch by type, not message)
  2. Every exception has a CODE attribute (machine-readable, API-safe)
  3. Exceptions carry structured DATA (not just a message string)

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

All exceptions inherit from NumberingKernelError:

    NumberingKernelError (base)
    |
    +-- ValidationError
    |   +-- RequestValidationError
    |   +-- InvalidEntityTypeError
    |   +-- MissingClientIdError
    |   +-- InvalidFiscalDateError
    |
    +-- IdempotencyError
    |   +-- DuplicateRequestError
    |   +-- IdempotencyKeyConflictError
    |
    +-- ConcurrencyError
    |   +-- ConcurrencyConflictError
    |
    +-- PersistenceError
    |
    +-- FormatError
    |   +-- FormatOverflowError  (alias: ExhaustedFormatError)
    |   +-- MalformedIdentifierError
    |
    +-- ReissueError
    |   +-- UnknownIdentifierError
    |   +-- StaleReissueError
    |   +-- ReissueNotAllowedError
    |
    +-- ClientCodeError
    |   +-- ClientCodeNotFoundError
    |
    +-- ImmutabilityError
        +-- ImmutabilityViolationError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category        | Code                        | When Raised
----------------|-----------------------------|-----------------------------------------
Validation      | REQUEST_VALIDATION_FAILED   | Boundary payload has field errors
                | INVALID_ENTITY_TYPE         | entityType not CLIENT/INVOICE/QUOTATION
                | MISSING_CLIENT_ID           | Document request without owner client
                | INVALID_FISCAL_DATE         | Date missing or outside supported range
----------------|-----------------------------|-----------------------------------------
Idempotency     | DUPLICATE_REQUEST           | Key already allocated (idempotent success)
                | IDEMPOTENCY_KEY_CONFLICT    | Same key, different request
----------------|-----------------------------|-----------------------------------------
Concurrency     | CONCURRENCY_CONFLICT        | Bounded retry loop exhausted
----------------|-----------------------------|-----------------------------------------
Persistence     | PERSISTENCE_ERROR           | Storage unavailable, counters rolled back
----------------|-----------------------------|-----------------------------------------
Format          | FORMAT_OVERFLOW             | Value wider than its fixed-width field
                | MALFORMED_IDENTIFIER        | Human id does not match its layout
----------------|-----------------------------|-----------------------------------------
Reissue         | UNKNOWN_IDENTIFIER          | Prior identifier was never issued
                | STALE_REISSUE               | Prior identifier already superseded
                | REISSUE_NOT_ALLOWED         | Entity type cannot be reissued
----------------|-----------------------------|-----------------------------------------
Client code     | CLIENT_CODE_NOT_FOUND       | No ClientCode for the given client
----------------|-----------------------------|-----------------------------------------
Immutability    | IMMUTABILITY_VIOLATION      | Modifying an issued id or client code

===============================================================================
HANDLING PATTERNS
===============================================================================

1. RETRY ON CONCURRENCY (same idempotency key):

    try:
        record = coordinator.allocate(request)
    except ConcurrencyConflictError:
        record = coordinator.allocate(request)

2. NEVER CREATE THE BUSINESS ROW ON FAILURE:

    except NumberingKernelError as e:
        return api_error(code=e.code)

3. FORMAT OVERFLOW IS FATAL (widen the layout, do not truncate):

    except FormatOverflowError as e:
        alert_operator(e.field, e.value, e.width)
"""


class NumberingKernelError(Exception):
    """
    Base exception for all numbering kernel errors.

    All subclasses must have a `code` class attribute
    for machine-readable error identification.
    """

    code: str = "NUMBERING_KERNEL_ERROR"


# Validation exceptions


class ValidationError(NumberingKernelError):
    """Request rejected before any counter was touched."""

    code: str = "VALIDATION_ERROR"


class RequestValidationError(ValidationError):
    """Boundary payload failed validation; carries every field error."""

    code: str = "REQUEST_VALIDATION_FAILED"

    def __init__(self, field_errors: list[dict]):
        self.field_errors = field_errors
        summary = "; ".join(f"{e['field']}: {e['message']}" for e in field_errors)
        super().__init__(f"Allocation request rejected: {summary}")


class InvalidEntityTypeError(ValidationError):
    """entityType is not one of the allocatable kinds."""

    code: str = "INVALID_ENTITY_TYPE"

    def __init__(self, entity_type: str):
        self.entity_type = entity_type
        super().__init__(f"Unsupported entity type: {entity_type!r}")


class MissingClientIdError(ValidationError):
    """Invoice and quotation requests require an owning client."""

    code: str = "MISSING_CLIENT_ID"

    def __init__(self, entity_type: str):
        self.entity_type = entity_type
        super().__init__(f"{entity_type} allocation requires a client id")


class InvalidFiscalDateError(ValidationError):
    """Date is missing, of the wrong type, or outside the supported range."""

    code: str = "INVALID_FISCAL_DATE"

    def __init__(self, value: object, reason: str):
        self.value = value
        self.reason = reason
        super().__init__(f"Invalid fiscal date {value!r}: {reason}")


# Idempotency exceptions


class IdempotencyError(NumberingKernelError):
    """Base exception for idempotency key handling."""

    code: str = "IDEMPOTENCY_ERROR"


class DuplicateRequestError(IdempotencyError):
    """
    Idempotency key was already allocated (idempotent success).

    Carries the original record so the coordinator can return it verbatim.
    """

    code: str = "DUPLICATE_REQUEST"

    def __init__(self, idempotency_key: str, original):
        self.idempotency_key = idempotency_key
        self.original = original
        super().__init__(
            f"Request {idempotency_key} already allocated {original.human_id}"
        )


class IdempotencyKeyConflictError(IdempotencyError):
    """Idempotency key reused for a different request."""

    code: str = "IDEMPOTENCY_KEY_CONFLICT"

    def __init__(self, idempotency_key: str, expected_hash: str, received_hash: str):
        self.idempotency_key = idempotency_key
        self.expected_hash = expected_hash
        self.received_hash = received_hash
        super().__init__(
            f"Idempotency key {idempotency_key} was used for a different request: "
            f"expected {expected_hash}, received {received_hash}"
        )


# Concurrency exceptions


class ConcurrencyError(NumberingKernelError):
    """Base exception for concurrency-related errors."""

    code: str = "CONCURRENCY_ERROR"


class ConcurrencyConflictError(ConcurrencyError):
    """Bounded retry loop exhausted; caller should retry the whole allocation."""

    code: str = "CONCURRENCY_CONFLICT"

    def __init__(self, idempotency_key: str, attempts: int):
        self.idempotency_key = idempotency_key
        self.attempts = attempts
        super().__init__(
            f"Allocation {idempotency_key} gave up after {attempts} attempts "
            "due to concurrent writers"
        )


# Persistence exceptions


class PersistenceError(NumberingKernelError):
    """Storage failed; every counter reservation was rolled back."""

    code: str = "PERSISTENCE_ERROR"

    def __init__(self, operation: str, reason: str):
        self.operation = operation
        self.reason = reason
        super().__init__(f"Persistence failure during {operation}: {reason}")


# Format exceptions


class FormatError(NumberingKernelError):
    """Base exception for identifier layout errors."""

    code: str = "FORMAT_ERROR"


class FormatOverflowError(FormatError):
    """
    Value does not fit its fixed-width field.

    Fatal: truncating would risk a collision, so the layout must be widened.
    """

    code: str = "FORMAT_OVERFLOW"

    def __init__(self, field: str, value: int, width: int):
        self.field = field
        self.value = value
        self.width = width
        super().__init__(
            f"{field}={value} does not fit a {width}-digit field"
        )


ExhaustedFormatError = FormatOverflowError


class MalformedIdentifierError(FormatError):
    """Human id does not match the layout for its entity kind."""

    code: str = "MALFORMED_IDENTIFIER"

    def __init__(self, entity_type: str, human_id: object):
        self.entity_type = entity_type
        self.human_id = human_id
        super().__init__(f"Malformed {entity_type} identifier: {human_id!r}")


# Reissue exceptions


class ReissueError(NumberingKernelError):
    """Base exception for reissue (version bump) errors."""

    code: str = "REISSUE_ERROR"


class UnknownIdentifierError(ReissueError):
    """Prior identifier was never issued by this store."""

    code: str = "UNKNOWN_IDENTIFIER"

    def __init__(self, entity_type: str, human_id: str):
        self.entity_type = entity_type
        self.human_id = human_id
        super().__init__(f"No issued {entity_type} identifier {human_id}")


class StaleReissueError(ReissueError):
    """A newer version of the prior identifier already exists."""

    code: str = "STALE_REISSUE"

    def __init__(self, human_id: str, latest_version: int):
        self.human_id = human_id
        self.latest_version = latest_version
        super().__init__(
            f"Cannot reissue {human_id}: version {latest_version} already exists"
        )


class ReissueNotAllowedError(ReissueError):
    """Entity type does not support reissue."""

    code: str = "REISSUE_NOT_ALLOWED"

    def __init__(self, entity_type: str, reason: str):
        self.entity_type = entity_type
        self.reason = reason
        super().__init__(f"{entity_type} identifiers cannot be reissued: {reason}")


# Client code exceptions


class ClientCodeError(NumberingKernelError):
    """Base exception for client code registry errors."""

    code: str = "CLIENT_CODE_ERROR"


class ClientCodeNotFoundError(ClientCodeError):
    """No ClientCode registered for the client."""

    code: str = "CLIENT_CODE_NOT_FOUND"

    def __init__(self, client_id: str):
        self.client_id = client_id
        super().__init__(f"Client code not found for client {client_id}")


# Immutability exceptions


class ImmutabilityError(NumberingKernelError):
    """Base exception for immutability violations."""

    code: str = "IMMUTABILITY_ERROR"


class ImmutabilityViolationError(ImmutabilityError):
    """
    Attempted to modify or delete an immutable record.

    Issued identifiers are append-only and client codes are frozen at
    onboarding.
    """

    code: str = "IMMUTABILITY_VIOLATION"

    def __init__(self, entity_type: str, entity_id: str, reason: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.reason = reason
        super().__init__(
            f"Immutability violation on {entity_type} {entity_id}: {reason}"
        )
