"""
Fiscal period resolution.

April-March fiscal years labelled by the calendar year in which they end,
and compact month codes for client scoping.
"""

from datetime import date, datetime, timedelta, timezone

import pytest
from hypothesis import given
from hypothesis import strategies as st

from numbering_kernel.domain.fiscal import (
    FISCAL_YEAR_LABEL_RE,
    MAX_SUPPORTED_DATE,
    MIN_SUPPORTED_DATE,
    PERIOD_CODE_RE,
    month_from_period_code,
    resolve_compact_period_code,
    resolve_fiscal_period,
    resolve_fiscal_year,
)
from numbering_kernel.exceptions import InvalidFiscalDateError

supported_dates = st.dates(min_value=MIN_SUPPORTED_DATE, max_value=MAX_SUPPORTED_DATE)


class TestResolveFiscalYear:

    @pytest.mark.parametrize(
        "d, expected",
        [
            (date(2025, 6, 1), "FY26"),
            (date(2025, 3, 31), "FY25"),
            (date(2025, 4, 1), "FY26"),
            (date(2024, 12, 31), "FY25"),
            (date(2000, 1, 1), "FY00"),
            (date(2099, 3, 31), "FY99"),
        ],
    )
    def test_april_to_march_labelled_by_end_year(self, d, expected):
        assert resolve_fiscal_year(d) == expected

    def test_datetime_is_truncated_to_its_date(self):
        assert resolve_fiscal_year(datetime(2025, 3, 31, 23, 59, tzinfo=timezone.utc)) == "FY25"

    @pytest.mark.parametrize("d", [date(1999, 12, 31), date(2099, 4, 1), date(2150, 1, 1)])
    def test_out_of_range_dates_rejected(self, d):
        with pytest.raises(InvalidFiscalDateError) as exc_info:
            resolve_fiscal_year(d)
        assert exc_info.value.code == "INVALID_FISCAL_DATE"

    def test_non_date_rejected(self):
        with pytest.raises(InvalidFiscalDateError):
            resolve_fiscal_year("2025-06-01")

    @given(supported_dates)
    def test_label_always_matches_pattern(self, d):
        assert FISCAL_YEAR_LABEL_RE.match(resolve_fiscal_year(d))

    @given(supported_dates)
    def test_consecutive_days_share_label_except_at_april_first(self, d):
        nxt = d + timedelta(days=1)
        if nxt > MAX_SUPPORTED_DATE:
            return
        same = resolve_fiscal_year(d) == resolve_fiscal_year(nxt)
        assert same == (not (nxt.month == 4 and nxt.day == 1))


class TestCompactPeriodCode:

    @pytest.mark.parametrize(
        "d, expected",
        [
            (date(2025, 9, 10), "259"),
            (date(2025, 12, 1), "25C"),
            (date(2025, 10, 31), "25A"),
            (date(2025, 11, 15), "25B"),
            (date(2026, 1, 1), "261"),
            (date(2005, 4, 30), "054"),
        ],
    )
    def test_month_encoding(self, d, expected):
        assert resolve_compact_period_code(d) == expected

    @given(supported_dates)
    def test_round_trips_through_month_decoder(self, d):
        code = resolve_compact_period_code(d)
        assert PERIOD_CODE_RE.match(code)
        assert month_from_period_code(code) == (d.year % 100, d.month)

    @pytest.mark.parametrize("bad", ["", "25", "250", "25D", "2A9", None])
    def test_decoder_rejects_malformed_codes(self, bad):
        with pytest.raises(ValueError):
            month_from_period_code(bad)


class TestResolveFiscalPeriod:

    def test_bounds_and_tokens(self):
        period = resolve_fiscal_period(date(2025, 9, 10))
        assert period.fiscal_year == "FY26"
        assert period.period_code == "259"
        assert period.fiscal_year_start == date(2025, 4, 1)
        assert period.fiscal_year_end == date(2026, 3, 31)

    @given(supported_dates)
    def test_date_lies_within_its_fiscal_year(self, d):
        period = resolve_fiscal_period(d)
        assert period.fiscal_year_start <= d <= period.fiscal_year_end
