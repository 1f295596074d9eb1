"""
IdentifierFormatter -- canonical human-id layouts and their exact inverses.

Responsibility:
    Renders reserved (or reused) counter values plus fiscal metadata into the
    canonical display string for each entity kind, and parses display strings
    back into their components.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.
    Called by AllocationCoordinator after counters are reserved and by the
    read side (selectors, CLI) to decode stored identifiers.

Layouts (defaults, widths and markers come from NumberingLayout):

    CLIENT     <project><scoped:03d>-<country>-<period>       E001-IND-259
    INVOICE    IN1-<fiscal year>-<global:06d>[-V<version>]    IN1-FY25-000123
    QUOTATION  QN1-<fiscal year>-<global:06d>[-V<version>]    QN1-FY25-000123-V2

Invariants enforced:
    - Fixed-width numeric fields: a value that does not fit raises
      FormatOverflowError.  Values are never truncated.
    - The version suffix appears only when version > 1.  ``-V1`` is not a
      valid rendering and is rejected by the parser.
    - ``parse_x(format_x(...))`` returns exactly the rendered components.
    - Invoice and quotation markers differ, so equal numbers never render to
      the same string across kinds.

Failure modes:
    - FormatOverflowError: sequence wider than its field.
    - MalformedIdentifierError: parse input does not match the layout.
    - RequestValidationError: a component passed to ``format_x`` has the
      wrong shape (lower-case country, bad period code, ...).
"""

from __future__ import annotations

import re
from dataclasses import dataclass

from numbering_kernel.domain.fiscal import FISCAL_YEAR_LABEL_RE, PERIOD_CODE_RE
from numbering_kernel.domain.values import EntityType, is_valid_country_code
from numbering_kernel.exceptions import (
    FormatOverflowError,
    MalformedIdentifierError,
    RequestValidationError,
)

_PROJECT_CODE_RE = re.compile(r"^[A-Z]$")
_PLATFORM_CODE_RE = re.compile(r"^[A-Z]$")


@dataclass(frozen=True)
class NumberingLayout:
    """
    Markers and field widths for every identifier kind.

    Widening a field is the only sanctioned response to FormatOverflowError.
    """

    invoice_marker: str = "IN1"
    quotation_marker: str = "QN1"
    version_prefix: str = "V"
    client_sequence_width: int = 3
    document_sequence_width: int = 6

    def __post_init__(self) -> None:
        if self.invoice_marker == self.quotation_marker:
            raise ValueError("Invoice and quotation markers must differ")
        for name in ("client_sequence_width", "document_sequence_width"):
            if getattr(self, name) < 1:
                raise ValueError(f"{name} must be at least 1")
        if not self.version_prefix or not self.version_prefix.isalpha():
            raise ValueError("version_prefix must be a non-empty alphabetic string")

    def marker_for(self, entity_type: EntityType) -> str:
        if entity_type is EntityType.INVOICE:
            return self.invoice_marker
        if entity_type is EntityType.QUOTATION:
            return self.quotation_marker
        raise ValueError(f"{entity_type.value} identifiers carry no document marker")


@dataclass(frozen=True)
class ClientIdParts:
    """Components rendered into a client id."""

    project_code: str
    scoped_sequence: int
    country_code: str
    period_code: str


@dataclass(frozen=True)
class DocumentIdParts:
    """Components rendered into an invoice or quotation id."""

    entity_type: EntityType
    fiscal_year: str
    global_sequence: int
    version: int


class IdentifierFormatter:
    """
    Stateless renderer/parser for human ids.

    Contract:
        Each ``format_*`` method has an exact inverse ``parse_*`` method.

    Guarantees:
        - Never truncates: overflow is a typed error.
        - Never guesses: malformed input is a typed error.

    Non-goals:
        - Does NOT reserve counter values (see CounterStore).
        - Does NOT render the client's platform code or human code into
          document ids; that linkage lives on the IssuedIdentifier row.
    """

    def __init__(self, layout: NumberingLayout | None = None):
        self._layout = layout or NumberingLayout()
        w = self._layout
        self._client_re = re.compile(
            rf"^([A-Z])(\d{{{w.client_sequence_width}}})-([A-Z]{{3}})-(\d{{2}}[1-9ABC])$"
        )
        self._document_res = {
            entity_type: re.compile(
                rf"^{re.escape(w.marker_for(entity_type))}-(FY\d{{2}})"
                rf"-(\d{{{w.document_sequence_width}}})"
                rf"(?:-{re.escape(w.version_prefix)}(\d+))?$"
            )
            for entity_type in (EntityType.INVOICE, EntityType.QUOTATION)
        }

    @property
    def layout(self) -> NumberingLayout:
        return self._layout

    # ------------------------------------------------------------------
    # Rendering
    # ------------------------------------------------------------------

    @staticmethod
    def _render_number(field: str, value: int, width: int) -> str:
        if isinstance(value, bool) or not isinstance(value, int):
            raise TypeError(f"{field} must be an int, got {type(value).__name__}")
        if value < 1:
            raise ValueError(f"{field} must be positive, got {value}")
        if value >= 10**width:
            raise FormatOverflowError(field=field, value=value, width=width)
        return f"{value:0{width}d}"

    def format_client_id(
        self,
        project_code: str,
        platform_code: str,
        country_code: str,
        period_code: str,
        scoped_seq: int,
    ) -> str:
        """
        Render ``<project><scoped_seq>-<country>-<period>``.

        ``platform_code`` is validated but not rendered; it is kept on the
        ClientCode row.
        """
        errors = []
        if not isinstance(project_code, str) or not _PROJECT_CODE_RE.match(project_code):
            errors.append({"field": "projectCode", "message": "must be one upper-case letter"})
        if not isinstance(platform_code, str) or not _PLATFORM_CODE_RE.match(platform_code):
            errors.append({"field": "platformCode", "message": "must be one upper-case letter"})
        if not is_valid_country_code(country_code):
            errors.append({"field": "countryCode", "message": "must be three upper-case letters"})
        if not isinstance(period_code, str) or not PERIOD_CODE_RE.match(period_code):
            errors.append({"field": "periodCode", "message": "must be <yy><1-9|A|B|C>"})
        if errors:
            raise RequestValidationError(errors)

        seq = self._render_number(
            "scoped_sequence", scoped_seq, self._layout.client_sequence_width
        )
        return f"{project_code}{seq}-{country_code}-{period_code}"

    def format_document_id(
        self,
        entity_type: EntityType,
        fiscal_year: str,
        global_seq: int,
        version: int = 1,
    ) -> str:
        """Render an invoice or quotation id; suffix only when version > 1."""
        entity_type = EntityType(entity_type)
        marker = self._layout.marker_for(entity_type)
        if not isinstance(fiscal_year, str) or not FISCAL_YEAR_LABEL_RE.match(fiscal_year):
            raise RequestValidationError(
                [{"field": "fiscalYear", "message": "must look like FY25"}]
            )
        if isinstance(version, bool) or not isinstance(version, int) or version < 1:
            raise RequestValidationError(
                [{"field": "version", "message": "must be an integer >= 1"}]
            )

        seq = self._render_number(
            "global_sequence", global_seq, self._layout.document_sequence_width
        )
        human_id = f"{marker}-{fiscal_year}-{seq}"
        if version > 1:
            human_id = f"{human_id}-{self._layout.version_prefix}{version}"
        return human_id

    def format_invoice_id(self, fiscal_year: str, global_seq: int, version: int = 1) -> str:
        """
        Render ``IN1-FY<yy>-<global_seq>[-V<version>]``.

        The owning client's human code is not part of the rendered id, so it
        takes no client-code argument and ``parse_invoice_id`` round-trips
        only (fiscal year, global sequence, version).  The client code is
        recorded on ``IssuedIdentifier.client_code`` when the allocation is
        persisted.  The same holds for ``format_quotation_id``.
        """
        return self.format_document_id(EntityType.INVOICE, fiscal_year, global_seq, version)

    def format_quotation_id(self, fiscal_year: str, global_seq: int, version: int = 1) -> str:
        return self.format_document_id(EntityType.QUOTATION, fiscal_year, global_seq, version)

    # ------------------------------------------------------------------
    # Parsing
    # ------------------------------------------------------------------

    def parse_client_id(self, human_id: str) -> ClientIdParts:
        match = self._client_re.match(human_id) if isinstance(human_id, str) else None
        if match is None or int(match.group(2)) == 0:
            raise MalformedIdentifierError(EntityType.CLIENT.value, human_id)
        return ClientIdParts(
            project_code=match.group(1),
            scoped_sequence=int(match.group(2)),
            country_code=match.group(3),
            period_code=match.group(4),
        )

    def parse_document_id(self, entity_type: EntityType, human_id: str) -> DocumentIdParts:
        entity_type = EntityType(entity_type)
        if not entity_type.is_document:
            raise ValueError(f"{entity_type.value} is not a document kind")
        pattern = self._document_res[entity_type]
        match = pattern.match(human_id) if isinstance(human_id, str) else None
        if match is None:
            raise MalformedIdentifierError(entity_type.value, human_id)

        global_seq = int(match.group(2))
        raw_version = match.group(3)
        if global_seq == 0:
            raise MalformedIdentifierError(entity_type.value, human_id)
        if raw_version is None:
            version = 1
        else:
            # Leading zeros and an explicit V1 are never produced by format_*.
            if raw_version.startswith("0") or int(raw_version) < 2:
                raise MalformedIdentifierError(entity_type.value, human_id)
            version = int(raw_version)

        return DocumentIdParts(
            entity_type=entity_type,
            fiscal_year=match.group(1),
            global_sequence=global_seq,
            version=version,
        )

    def parse_invoice_id(self, human_id: str) -> DocumentIdParts:
        return self.parse_document_id(EntityType.INVOICE, human_id)

    def parse_quotation_id(self, human_id: str) -> DocumentIdParts:
        return self.parse_document_id(EntityType.QUOTATION, human_id)

    def parse(self, human_id: str) -> ClientIdParts | DocumentIdParts:
        """Detect the kind of ``human_id`` from its shape and parse it."""
        if isinstance(human_id, str):
            for entity_type in (EntityType.INVOICE, EntityType.QUOTATION):
                if human_id.startswith(f"{self._layout.marker_for(entity_type)}-"):
                    return self.parse_document_id(entity_type, human_id)
        return self.parse_client_id(human_id)
