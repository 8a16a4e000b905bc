"""
Tests for the UTC datetime helpers
"""

from datetime import datetime, timedelta, timezone

import pytest

from utils.datetime_utils import ensure_utc, parse_utc_iso, utc_from_timestamp, utc_now


class TestDatetimeUtils:

    def test_utc_now_is_aware(self):
        assert utc_now().tzinfo == timezone.utc

    def test_webhook_timestamp_string(self):
        assert utc_from_timestamp('1700000000') == datetime(2023, 11, 14, 22, 13, 20, tzinfo=timezone.utc)

    def test_naive_values_are_treated_as_utc(self):
        naive = datetime(2024, 5, 1, 12, 0)
        assert ensure_utc(naive) == datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)
        assert ensure_utc(None) is None

    def test_offsets_are_converted(self):
        sao_paulo = timezone(timedelta(hours=-3))
        assert ensure_utc(datetime(2024, 5, 1, 9, 0, tzinfo=sao_paulo)).hour == 12

    @pytest.mark.parametrize('value', ['2024-05-01T12:00:00Z', '2024-05-01T09:00:00-03:00'])
    def test_parse_iso(self, value):
        assert parse_utc_iso(value) == datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)

