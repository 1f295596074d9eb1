"""Value vocabularies, the deterministic clock, hashing and idempotency keys."""

from datetime import date, datetime, timezone
from enum import Enum
from uuid import UUID

import pytest

from numbering_kernel.domain.clock import DeterministicClock
from numbering_kernel.domain.values import (
    EntityType,
    PlatformCode,
    ProjectCode,
    is_valid_country_code,
)
from numbering_kernel.utils import (
    canonicalize_json,
    generate_idempotency_key,
    hash_payload,
    parse_idempotency_key,
)


class TestVocabularies:

    def test_project_codes(self):
        assert {p.value for p in ProjectCode} == {"E", "S", "M", "P"}

    def test_platform_codes(self):
        assert {p.value for p in PlatformCode} == {"A", "W", "B", "H"}

    def test_document_kinds(self):
        assert EntityType.INVOICE.is_document
        assert EntityType.QUOTATION.is_document
        assert not EntityType.CLIENT.is_document

    @pytest.mark.parametrize("code, ok", [("IND", True), ("USA", True), ("ind", False), ("IN", False), (None, False)])
    def test_country_codes(self, code, ok):
        assert is_valid_country_code(code) is ok


class TestDeterministicClock:

    def test_fixed_and_advanceable(self):
        start = datetime(2025, 3, 31, 23, 0, tzinfo=timezone.utc)
        clock = DeterministicClock(start)
        assert clock.now() == start
        assert clock.today() == date(2025, 3, 31)
        clock.advance(2 * 3600)
        assert clock.today() == date(2025, 4, 1)


class TestHashing:

    def test_key_order_does_not_matter(self):
        assert hash_payload({"a": 1, "b": 2}) == hash_payload({"b": 2, "a": 1})

    def test_rich_types_serialize(self):
        class Color(Enum):
            RED = "red"

        payload = {
            "when": date(2025, 6, 1),
            "id": UUID("12345678-1234-5678-1234-567812345678"),
            "color": Color.RED,
        }
        assert '"color":"red"' in canonicalize_json(payload)
        assert len(hash_payload(payload)) == 64


class TestIdempotencyKeys:

    def test_round_trip(self):
        key = generate_idempotency_key("invoice-authoring", "INVOICE", "order:77")
        assert key == "invoice-authoring:INVOICE:order:77"
        assert parse_idempotency_key(key) == ("invoice-authoring", "INVOICE", "order:77")

    @pytest.mark.parametrize("bad", ["", "a:b", "a::c"])
    def test_rejects_malformed(self, bad):
        with pytest.raises(ValueError):
            parse_idempotency_key(bad)
