"""
Two-layer immutability of issued identifiers and client codes.

Layer 1 is the ORM listeners (ImmutabilityViolationError before any SQL is
sent).  Layer 2 is the database triggers, which still hold when raw SQL
bypasses the ORM.
"""

from datetime import date, datetime, timezone

import pytest
from sqlalchemy import text
from sqlalchemy.exc import DBAPIError

from numbering_kernel.db.immutability import (
    register_immutability_listeners,
    unregister_immutability_listeners,
)
from numbering_kernel.db.triggers import (
    ALL_TRIGGER_NAMES,
    get_installed_triggers,
    get_missing_triggers,
    triggers_installed,
)
from numbering_kernel.exceptions import ImmutabilityViolationError
from numbering_kernel.models.client_code import ClientCode
from numbering_kernel.models.issued_identifier import IssuedIdentifier

_NOW = datetime(2025, 6, 1, 9, 0, tzinfo=timezone.utc)


@pytest.fixture
def issued(session) -> IssuedIdentifier:
    row = IssuedIdentifier(
        entity_type="INVOICE",
        human_id="IN1-FY26-000001",
        global_sequence=1,
        scoped_sequence=1,
        fiscal_year="FY26",
        scope_owner="client-x",
        scope_period="FY26",
        version=1,
        issued_at=_NOW,
        request_date=date(2025, 6, 1),
        owner_client_id="client-x",
        client_code=None,
        idempotency_key="inv-1",
        request_hash="0" * 64,
    )
    session.add(row)
    session.flush()
    return row


@pytest.fixture
def client_code(session) -> ClientCode:
    row = ClientCode(
        client_id="client-x",
        human_code="E001-IND-259",
        project_code="E",
        platform_code="W",
        country_code="IND",
        period_code="259",
        scoped_seq=1,
        global_sequence=1,
        created_at=_NOW,
    )
    session.add(row)
    session.flush()
    return row


@pytest.fixture
def without_orm_listeners():
    unregister_immutability_listeners()
    yield
    register_immutability_listeners()


class TestOrmLayer:

    def test_issued_identifier_update_blocked(self, session, issued):
        issued.human_id = "IN1-FY26-000002"
        with pytest.raises(ImmutabilityViolationError) as exc_info:
            session.flush()
        assert exc_info.value.entity_type == "IssuedIdentifier"
        assert exc_info.value.code == "IMMUTABILITY_VIOLATION"

    def test_issued_identifier_delete_blocked(self, session, issued):
        session.delete(issued)
        with pytest.raises(ImmutabilityViolationError):
            session.flush()

    def test_client_code_update_blocked(self, session, client_code):
        client_code.country_code = "USA"
        with pytest.raises(ImmutabilityViolationError) as exc_info:
            session.flush()
        assert "frozen" in exc_info.value.reason

    def test_client_code_delete_blocked(self, session, client_code):
        session.delete(client_code)
        with pytest.raises(ImmutabilityViolationError):
            session.flush()

    def test_violation_is_logged(self, session, issued, captured_logs):
        issued.version = 2
        with pytest.raises(ImmutabilityViolationError):
            session.flush()
        blocked = [r for r in captured_logs() if r["message"] == "immutability_violation_blocked"]
        assert blocked and blocked[0]["operation"] == "UPDATE"

    def test_registration_is_idempotent(self):
        register_immutability_listeners()
        register_immutability_listeners()


class TestDatabaseLayer:

    def test_all_triggers_installed(self, engine):
        assert triggers_installed(engine)
        assert get_missing_triggers(engine) == []
        assert sorted(get_installed_triggers(engine)) == sorted(ALL_TRIGGER_NAMES)

    @pytest.mark.parametrize(
        "statement",
        [
            "UPDATE issued_identifiers SET human_id = 'IN1-FY26-000009'",
            "DELETE FROM issued_identifiers",
        ],
    )
    def test_raw_sql_on_issued_identifiers_rejected(
        self, session, issued, without_orm_listeners, statement
    ):
        with pytest.raises(DBAPIError) as exc_info:
            session.execute(text(statement))
        assert "IMMUTABILITY_VIOLATION" in str(exc_info.value)

    @pytest.mark.parametrize(
        "statement",
        [
            "UPDATE client_codes SET country_code = 'USA'",
            "DELETE FROM client_codes",
        ],
    )
    def test_raw_sql_on_client_codes_rejected(
        self, session, client_code, without_orm_listeners, statement
    ):
        with pytest.raises(DBAPIError) as exc_info:
            session.execute(text(statement))
        assert "IMMUTABILITY_VIOLATION" in str(exc_info.value)

    def test_counters_remain_mutable(self, session):
        result = session.execute(
            text("UPDATE global_counters SET current_value = current_value WHERE counter_type = 'INVOICE'")
        )
        assert result.rowcount == 1
