"""Tests for recbot.search filters and query engine."""

from __future__ import annotations

from recbot.search.filters import (
    SQLITE_MAX_INT,
    RecordingFilters,
    normalize_date,
    normalize_time,
)
from recbot.search.query import query_files

from conftest import KEY_1, KEY_2, KEY_3


class TestNormalization:
    def test_normalize_date(self):
        assert normalize_date("9_26_2025") == "2025-09-26"
        assert normalize_date("2025-9-6") == "2025-09-06"
        assert normalize_date("2025-02-30") is None
        assert normalize_date("yesterday") is None
        assert normalize_date("") is None

    def test_normalize_time(self):
        assert normalize_time("14:05") == "14:05:00"
        assert normalize_time("2:05 PM") == "14:05:00"
        assert normalize_time("9:47:43 am") == "09:47:43"
        assert normalize_time("25:00") is None

    def test_from_params_drops_malformed_values(self):
        filters = RecordingFilters.from_params(
            date_start="nonsense", duration_min="abc", limit="x", offset="-5",
            sort_column="bogus", sort_direction="sideways", time_mode="Later",
        )
        assert filters.date_start is None
        assert filters.duration_seconds is None
        assert filters.limit == 25
        assert filters.offset == 0
        assert filters.sort_column == "date"
        assert filters.sort_direction == "desc"
        assert filters.time_mode == "range"

    def test_from_params_clamps_limit(self):
        assert RecordingFilters.from_params(limit="100000").limit == 1000

    def test_direct_construction_normalizes_dates_and_times(self):
        filters = RecordingFilters(
            date_start="9_26_2025", date_end="2025-9-27", time_start="2:00 PM", time_end="bogus"
        )
        assert filters.date_start == "2025-09-26"
        assert filters.date_end == "2025-09-27"
        assert filters.time_start == "14:00:00"
        assert filters.time_end is None

    def test_huge_offset_and_limit_clamped(self):
        filters = RecordingFilters.from_params(offset="99999999999999999999")
        assert filters.offset == SQLITE_MAX_INT
        assert RecordingFilters(limit=10 ** 30).limit == SQLITE_MAX_INT

    def test_no_filters_no_clauses(self):
        clause, params = RecordingFilters().to_sql_clauses()
        assert clause == ""
        assert params == []

    def test_like_wildcards_escaped(self):
        _, params = RecordingFilters(phone="20%_").to_sql_clauses()
        assert params == ["%20\\%\\_%"]


class TestQuery:
    def test_default_order_newest_first(self, tmp_db, sample_records):
        result = query_files(tmp_db)
        dates = [r.call_date for r in result.rows]
        assert dates == sorted(dates, reverse=True)
        assert result.rows[0].file_path == KEY_3
        # Same day: later time first
        assert [r.file_path for r in result.rows[1:3]] == [KEY_2, KEY_1]

    def test_date_range(self, tmp_db, sample_records):
        result = query_files(tmp_db, RecordingFilters(date_start="9_26_2025", date_end="2025-09-26"))
        assert {r.file_path for r in result.rows} == {KEY_1, KEY_2}
        assert result.total_count == 2

    def test_phone_substring(self, tmp_db, sample_records):
        result = query_files(tmp_db, RecordingFilters(phone="5550"))
        assert [r.file_path for r in result.rows] == [KEY_2]

    def test_email_case_insensitive(self, tmp_db, sample_records):
        result = query_files(tmp_db, RecordingFilters(email="USER@"))
        assert {r.file_path for r in result.rows} == {KEY_1, KEY_3}

    def test_duration_min(self, tmp_db, sample_records):
        result = query_files(tmp_db, RecordingFilters(duration_seconds=30))
        assert all(r.duration_ms >= 30000 for r in result.rows)
        assert result.total_count == 3

    def test_duration_max_excludes_longer_calls(self, tmp_db, sample_records):
        filters = RecordingFilters.from_params(duration_min="30", duration_mode="max")
        result = query_files(tmp_db, filters)
        assert result.rows
        assert all(r.duration_ms <= 30000 for r in result.rows)
        assert KEY_2 not in {r.file_path for r in result.rows}

    def test_time_range(self, tmp_db, sample_records):
        filters = RecordingFilters.from_params(time_start="9:00 AM", time_end="12:00 PM")
        result = query_files(tmp_db, filters)
        assert {r.file_path for r in result.rows} == {KEY_1, KEY_3}

    def test_time_older(self, tmp_db, sample_records):
        filters = RecordingFilters.from_params(time_start="10:00", time_mode="Older")
        result = query_files(tmp_db, filters)
        assert {r.call_time for r in result.rows} == {"09:47:43", "08:00:00"}

    def test_time_newer(self, tmp_db, sample_records):
        filters = RecordingFilters.from_params(time_start="10:00", time_mode="Newer")
        result = query_files(tmp_db, filters)
        assert {r.file_path for r in result.rows} == {KEY_2, KEY_3}

    def test_time_filter_skips_unknown_times(self, tmp_db, sample_records):
        filters = RecordingFilters.from_params(time_end="23:59", time_mode="Older")
        result = query_files(tmp_db, filters)
        assert all(r.call_time for r in result.rows)
        assert result.total_count == 4

    def test_sort_by_duration_ascending(self, tmp_db, sample_records):
        filters = RecordingFilters(sort_column="durationMs", sort_direction="asc")
        durations = [r.duration_ms for r in query_files(tmp_db, filters).rows]
        assert durations == sorted(durations)

    def test_pagination(self, tmp_db, sample_records):
        first = query_files(tmp_db, RecordingFilters(limit=2, offset=0))
        second = query_files(tmp_db, RecordingFilters(limit=2, offset=2))
        last = query_files(tmp_db, RecordingFilters(limit=2, offset=4))
        assert first.has_more is True
        assert second.has_more is True
        assert last.has_more is False
        seen = [r.file_path for r in first.rows + second.rows + last.rows]
        assert len(seen) == len(set(seen)) == 5

    def test_count_matches_unpaged_rows(self, tmp_db, sample_records):
        filters = RecordingFilters(email="user", limit=1)
        paged = query_files(tmp_db, filters)
        everything = query_files(tmp_db, RecordingFilters(email="user", limit=None))
        assert paged.total_count == len(everything.rows) == 2
        assert len(paged.rows) == 1

    def test_huge_offset_returns_empty_page(self, tmp_db, sample_records):
        result = query_files(tmp_db, RecordingFilters.from_params(offset="99999999999999999999"))
        assert result.rows == []
        assert result.total_count == 5
        assert result.has_more is False

    def test_empty_index(self, tmp_db):
        result = query_files(tmp_db)
        assert result.rows == []
        assert result.total_count == 0
        assert result.has_more is False
