"""
Request construction and boundary payload parsing.

Everything here must fail before any counter is touched, so none of these
tests need a database.
"""

from datetime import date, datetime, timezone

import pytest

from numbering_kernel.domain.requests import (
    ClientIdRequest,
    InvoiceIdRequest,
    QuotationIdRequest,
    derive_client_id,
    parse_allocation_request,
)
from numbering_kernel.domain.values import EntityType, PlatformCode, ProjectCode
from numbering_kernel.exceptions import (
    InvalidEntityTypeError,
    InvalidFiscalDateError,
    MissingClientIdError,
    ReissueNotAllowedError,
    RequestValidationError,
    ValidationError,
)
from numbering_kernel.utils.hashing import hash_payload


def _fields(exc_info) -> set[str]:
    return {e["field"] for e in exc_info.value.field_errors}


class TestClientIdRequest:

    def test_codes_coerced_to_enums(self):
        request = ClientIdRequest(
            idempotency_key="k-1",
            request_date=date(2025, 9, 10),
            project_code="E",
            platform_code="W",
        )
        assert request.project_code is ProjectCode.ENTERPRISE
        assert request.platform_code is PlatformCode.WEB
        assert request.country_code == "IND"
        assert request.entity_type is EntityType.CLIENT
        assert request.owner_key == "E-IND"
        assert not request.is_reissue

    def test_client_id_derived_from_key_when_omitted(self):
        a = ClientIdRequest("k-1", date(2025, 9, 10), "E", "W")
        b = ClientIdRequest("k-2", date(2025, 9, 10), "E", "W")
        assert a.client_id and b.client_id and a.client_id != b.client_id
        assert a.client_id == derive_client_id("k-1")

    def test_omitted_client_id_fingerprints_identically_on_retry(self):
        first = ClientIdRequest("onboard-42", date(2025, 9, 10), "E", "W")
        retry = ClientIdRequest("onboard-42", date(2025, 9, 10), "E", "W")
        assert retry.client_id == first.client_id
        assert hash_payload(retry.fingerprint()) == hash_payload(first.fingerprint())

    def test_explicit_client_id_wins(self):
        request = ClientIdRequest("k-1", date(2025, 9, 10), "E", "W", client_id="client-x")
        assert request.client_id == "client-x"

    def test_every_bad_field_reported(self):
        with pytest.raises(RequestValidationError) as exc_info:
            ClientIdRequest("", date(2025, 9, 10), "X", "Z", country_code="india")
        assert _fields(exc_info) == {"idempotencyKey", "projectCode", "platformCode", "countryCode"}

    def test_datetime_truncated(self):
        request = ClientIdRequest(
            "k-1", datetime(2025, 9, 10, 23, 0, tzinfo=timezone.utc), "E", "W"
        )
        assert request.request_date == date(2025, 9, 10)


class TestDocumentRequests:

    def test_missing_client(self):
        with pytest.raises(MissingClientIdError) as exc_info:
            InvoiceIdRequest(idempotency_key="k", client_id="", request_date=date(2025, 6, 1))
        assert exc_info.value.code == "MISSING_CLIENT_ID"
        assert isinstance(exc_info.value, ValidationError)

    def test_fresh_request_must_be_version_one(self):
        with pytest.raises(RequestValidationError) as exc_info:
            InvoiceIdRequest("k", "client-x", date(2025, 6, 1), version=2)
        assert _fields(exc_info) == {"version"}

    def test_reissue_accepts_higher_version(self):
        request = QuotationIdRequest(
            "k", "client-x", date(2025, 6, 1), version=2, prior_identifier="QN1-FY26-000001"
        )
        assert request.is_reissue
        assert request.owner_key == "client-x"

    def test_out_of_range_date(self):
        with pytest.raises(InvalidFiscalDateError):
            InvoiceIdRequest("k", "client-x", date(1999, 12, 31))

    def test_fingerprint_ignores_actor(self):
        a = InvoiceIdRequest("k", "client-x", date(2025, 6, 1), actor_id="alice")
        b = InvoiceIdRequest("k", "client-x", date(2025, 6, 1), actor_id="bob")
        assert hash_payload(a.fingerprint()) == hash_payload(b.fingerprint())

    def test_fingerprint_distinguishes_dates(self):
        a = InvoiceIdRequest("k", "client-x", date(2025, 6, 1))
        b = InvoiceIdRequest("k", "client-x", date(2025, 6, 2))
        assert hash_payload(a.fingerprint()) != hash_payload(b.fingerprint())


class TestParseAllocationRequest:

    def test_client_payload(self):
        request = parse_allocation_request({
            "entityType": "client",
            "date": "2025-09-10",
            "projectCode": "e",
            "platformCode": "w",
            "idempotencyKey": "onboard-1",
        })
        assert isinstance(request, ClientIdRequest)
        assert request.project_code is ProjectCode.ENTERPRISE
        assert request.country_code == "IND"

    def test_invoice_payload(self):
        request = parse_allocation_request({
            "entityType": "INVOICE",
            "clientId": "client-x",
            "date": "2025-06-01T10:15:00Z",
            "idempotencyKey": "inv-1",
        })
        assert isinstance(request, InvoiceIdRequest)
        assert request.request_date == date(2025, 6, 1)
        assert request.version == 1

    def test_reissue_payload(self):
        request = parse_allocation_request({
            "entityType": "QUOTATION",
            "clientId": "client-x",
            "date": "2025-06-01",
            "version": "2",
            "priorIdentifier": "QN1-FY26-000001",
            "idempotencyKey": "quo-1-v2",
        })
        assert isinstance(request, QuotationIdRequest)
        assert request.version == 2
        assert request.prior_identifier == "QN1-FY26-000001"

    def test_missing_entity_type(self):
        with pytest.raises(RequestValidationError) as exc_info:
            parse_allocation_request({"idempotencyKey": "k"})
        assert _fields(exc_info) == {"entityType"}

    def test_unknown_entity_type(self):
        with pytest.raises(InvalidEntityTypeError):
            parse_allocation_request({"entityType": "RECEIPT", "idempotencyKey": "k"})

    def test_document_without_client(self):
        with pytest.raises(MissingClientIdError):
            parse_allocation_request(
                {"entityType": "INVOICE", "date": "2025-06-01", "idempotencyKey": "k"}
            )

    def test_missing_client_reported_with_other_errors(self):
        with pytest.raises(RequestValidationError) as exc_info:
            parse_allocation_request({"entityType": "INVOICE", "date": "June 1st"})
        assert _fields(exc_info) == {"idempotencyKey", "date", "clientId"}

    def test_client_cannot_be_reissued(self):
        with pytest.raises(ReissueNotAllowedError):
            parse_allocation_request({
                "entityType": "CLIENT",
                "date": "2025-09-10",
                "projectCode": "E",
                "platformCode": "W",
                "priorIdentifier": "E001-IND-259",
                "idempotencyKey": "k",
            })

    def test_client_field_errors(self):
        with pytest.raises(RequestValidationError) as exc_info:
            parse_allocation_request({
                "entityType": "CLIENT",
                "date": "2025-09-10",
                "projectCode": "Q",
                "countryCode": "IN",
                "idempotencyKey": "k",
            })
        assert _fields(exc_info) == {"projectCode", "platformCode", "countryCode"}

    def test_non_mapping_payload(self):
        with pytest.raises(RequestValidationError):
            parse_allocation_request(["INVOICE"])

    @pytest.mark.parametrize(
        "raw",
        ["2025-06-01garbage", "2025-06-01 junk", "2025-06-0", "01/06/2025", "2025-06-01T25:00"],
    )
    def test_malformed_date_rejected_whole(self, raw):
        with pytest.raises(RequestValidationError) as exc_info:
            parse_allocation_request({
                "entityType": "INVOICE",
                "clientId": "client-x",
                "date": raw,
                "idempotencyKey": "k",
            })
        assert _fields(exc_info) == {"date"}

    @pytest.mark.parametrize(
        "raw", [" 2025-06-01 ", "2025-06-01T23:59:59", "2025-06-01T10:15:00+05:30", "2025-06-01 08:00"]
    )
    def test_iso_dates_and_timestamps_accepted(self, raw):
        request = parse_allocation_request({
            "entityType": "INVOICE",
            "clientId": "client-x",
            "date": raw,
            "idempotencyKey": "k",
        })
        assert request.request_date == date(2025, 6, 1)

    def test_client_payload_without_client_id_is_stable(self):
        payload = {
            "entityType": "CLIENT",
            "projectCode": "E",
            "platformCode": "W",
            "countryCode": "IND",
            "date": "2025-09-10",
            "idempotencyKey": "onboard-42",
        }
        first = parse_allocation_request(payload)
        retry = parse_allocation_request(dict(payload))
        assert first.client_id == retry.client_id == derive_client_id("onboard-42")
