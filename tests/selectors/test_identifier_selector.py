"""IdentifierSelector read paths over committed allocations."""

from datetime import date

import pytest

from numbering_kernel.domain.requests import InvoiceIdRequest, QuotationIdRequest
from numbering_kernel.domain.values import EntityType
from numbering_kernel.selectors.identifier_selector import IdentifierSelector


@pytest.fixture
def history(coordinator):
    """client-a: two invoices (the first reissued once) and a quotation; client-b: one invoice."""
    inv1 = coordinator.allocate(
        InvoiceIdRequest(idempotency_key="a-inv-1", client_id="client-a", request_date=date(2025, 6, 1))
    )
    inv1_v2 = coordinator.allocate(
        InvoiceIdRequest(
            idempotency_key="a-inv-1-v2",
            client_id="client-a",
            request_date=date(2025, 6, 3),
            prior_identifier=inv1,
        )
    )
    inv2 = coordinator.allocate(
        InvoiceIdRequest(idempotency_key="a-inv-2", client_id="client-a", request_date=date(2025, 6, 2))
    )
    quote = coordinator.allocate(
        QuotationIdRequest(idempotency_key="a-quo-1", client_id="client-a", request_date=date(2025, 6, 2))
    )
    other = coordinator.allocate(
        InvoiceIdRequest(idempotency_key="b-inv-1", client_id="client-b", request_date=date(2026, 4, 2))
    )
    return {"inv1": inv1, "inv1_v2": inv1_v2, "inv2": inv2, "quote": quote, "other": other}


@pytest.fixture
def selector(session_factory, history):
    with session_factory() as s:
        yield IdentifierSelector(s)


def test_get_by_human_id(selector, history):
    assert selector.get_by_human_id(EntityType.INVOICE, "IN1-FY26-000001-V2") == history["inv1_v2"]
    assert selector.get_by_human_id("QUOTATION", "IN1-FY26-000001") is None


def test_get_by_idempotency_key(selector, history):
    assert selector.get_by_idempotency_key("a-quo-1") == history["quote"]
    assert selector.get_by_idempotency_key("missing") is None


def test_exists_is_informational(selector):
    assert selector.exists(EntityType.INVOICE, "IN1-FY26-000002")
    assert not selector.exists(EntityType.INVOICE, "IN1-FY26-000099")


def test_version_history_and_latest(selector, history):
    versions = selector.version_history(EntityType.INVOICE, history["inv1"].global_sequence)
    assert [v.human_id for v in versions] == ["IN1-FY26-000001", "IN1-FY26-000001-V2"]
    assert selector.latest_version(EntityType.INVOICE, history["inv1"].global_sequence) == 2
    assert selector.latest_version(EntityType.INVOICE, 404) is None


def test_list_for_client(selector):
    all_docs = selector.list_for_client("client-a")
    assert [r.human_id for r in all_docs] == [
        "IN1-FY26-000001",
        "IN1-FY26-000001-V2",
        "IN1-FY26-000002",
        "QN1-FY26-000001",
    ]
    invoices = selector.list_for_client("client-b", entity_type=EntityType.INVOICE, fiscal_year="FY27")
    assert [r.human_id for r in invoices] == ["IN1-FY27-000003"]
    assert selector.list_for_client("client-b", fiscal_year="FY26") == []


def test_scoped_sequences_skip_reissues(selector):
    assert selector.scoped_sequences("client-a", EntityType.INVOICE, "FY26") == [1, 2]
