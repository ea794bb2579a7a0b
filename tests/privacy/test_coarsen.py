"""Tests for quote and timestamp coarsening."""

from __future__ import annotations

from datetime import UTC, date, datetime, timedelta, timezone

from murmur.privacy.coarsen import prep_quote, round_to_day, round_to_hour


class TestPrepQuote:
    def test_weekday_with_time(self):
        assert prep_quote("On Tuesday at 3pm the build broke") == "On earlier this week the build broke"

    def test_clock_time(self):
        assert prep_quote("standup ran until 10:45") == "standup ran until at some point"

    def test_full_date(self):
        assert prep_quote("since 2026-10-01 nothing shipped") == "since recently nothing shipped"

    def test_big_numbers_masked(self):
        assert prep_quote("ticket 48213 is stuck") == "ticket ≈xxxxx is stuck"

    def test_small_numbers_kept(self):
        assert prep_quote("3 sprints in a row") == "3 sprints in a row"

    def test_whitespace_collapsed(self):
        assert prep_quote("  too   many\n\nmeetings ") == "too many meetings"

    def test_truncated(self):
        quote = prep_quote("word " * 100, max_length=20)
        assert len(quote) == 20
        assert quote.endswith("…")

    def test_empty(self):
        assert prep_quote(None) == ""
        assert prep_quote("") == ""


class TestRounding:
    def test_round_to_day(self):
        assert round_to_day(datetime(2026, 10, 19, 23, 59, tzinfo=UTC)) == "2026-10-19"

    def test_round_to_day_converts_to_utc(self):
        moment = datetime(2026, 10, 19, 22, 0, tzinfo=timezone(timedelta(hours=-4)))
        assert round_to_day(moment) == "2026-10-20"

    def test_naive_treated_as_utc(self):
        assert round_to_hour(datetime(2026, 10, 19, 14, 37)) == "2026-10-19 14:00"

    def test_iso_string(self):
        assert round_to_day("2026-10-19T08:00:00Z") == "2026-10-19"

    def test_date(self):
        assert round_to_hour(date(2026, 10, 19)) == "2026-10-19 00:00"

    def test_none(self):
        assert round_to_day(None) is None
        assert round_to_hour("") is None
