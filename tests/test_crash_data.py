"""
Tests for crash_data: CSV loading, year derivation, option lists and the
independent ward boundary load.
"""

import json
import logging

import pytest

from crash_data import (
    WardBoundaries,
    build_working_set,
    is_known_ward,
    load_crash_data,
    load_ward_boundaries,
    parse_coordinate,
    to_number,
)
from tests.conftest import write_crash_csv


# ── to_number / parse_coordinate ──────────────────────────────────────────────

class TestToNumber:
    @pytest.mark.parametrize("value,expected", [
        ("3", 3.0),
        (" 2 ", 2.0),
        ("1.5", 1.5),
        ("", 0.0),
        ("   ", 0.0),
        ("abc", 0.0),
        ("nan", 0.0),
        (None, 0.0),
        (4, 4.0),
    ])
    def test_values(self, value, expected):
        assert to_number(value) == expected


class TestParseCoordinate:
    def test_valid(self):
        assert parse_coordinate("38.9072") == pytest.approx(38.9072)

    @pytest.mark.parametrize("value", ["abc", "", "  ", None, "nan", "inf"])
    def test_invalid_is_none(self, value):
        assert parse_coordinate(value) is None


class TestIsKnownWard:
    @pytest.mark.parametrize("ward", ["", "unknown", "Unknown", "NULL", "null"])
    def test_sentinels(self, ward):
        assert not is_known_ward(ward)

    def test_real_ward(self):
        assert is_known_ward("Ward 3")


# ── load_crash_data ───────────────────────────────────────────────────────────

class TestLoadCrashData:
    def test_year_is_first_four_characters_of_date(self, working_set):
        for record in working_set.records:
            assert record['year'] == record['DATE'][:4]

    def test_2018_excluded(self, working_set):
        assert all(r['year'] != "2018" for r in working_set.records)
        assert len(working_set) == 6

    def test_year_universe_sorted(self, working_set):
        assert working_set.years == ["2023", "2024", "2025"]

    def test_ward_universe_skips_sentinels(self, working_set):
        assert working_set.wards == ["Ward 1", "Ward 2"]

    def test_default_year_2025(self, working_set):
        assert working_set.default_year == "2025"

    def test_no_default_year_without_2025(self, tmp_path):
        path = write_crash_csv(tmp_path / "old.csv", [{'DATE': '2023/01/01', 'WARD': 'Ward 1'}])
        assert load_crash_data(path).default_year is None

    def test_values_stay_strings(self, working_set):
        first = working_set.records[0]
        assert first['FATAL_DRIVER'] == "1"
        assert first['MAJORINJURIES_DRIVER'] == ""

    def test_short_date_gives_short_year(self, tmp_path):
        path = write_crash_csv(tmp_path / "short.csv", [{'DATE': '20', 'WARD': 'Ward 1'}])
        working_set = load_crash_data(path)
        assert working_set.records[0]['year'] == "20"
        assert working_set.years == ["20"]

    def test_missing_file_gives_empty_working_set(self, tmp_path, caplog):
        with caplog.at_level(logging.ERROR, logger="crash_data"):
            working_set = load_crash_data(tmp_path / "missing.csv")
        assert len(working_set) == 0
        assert working_set.years == []
        assert working_set.wards == []
        assert working_set.default_year is None
        assert "not found" in caplog.text

    def test_empty_file_gives_empty_working_set(self, tmp_path):
        path = tmp_path / "empty.csv"
        path.write_text("", encoding='utf-8')
        assert len(load_crash_data(path)) == 0

    def test_missing_date_column(self, tmp_path):
        path = tmp_path / "nodate.csv"
        path.write_text("WARD,LATITUDE\nWard 1,38.9\n", encoding='utf-8')
        assert len(load_crash_data(path)) == 0


class TestBuildWorkingSet:
    def test_from_records(self):
        records = [
            {'DATE': '20240101', 'WARD': '3', 'FATAL_DRIVER': '1'},
            {'DATE': '20180101', 'WARD': '3'},
            {'DATE': '20230505', 'WARD': '1'},
        ]
        working_set = build_working_set(records)
        assert [r['year'] for r in working_set.records] == ["2024", "2023"]
        assert working_set.years == ["2023", "2024"]
        assert working_set.wards == ["1", "3"]


# ── Ward boundaries ───────────────────────────────────────────────────────────

class TestLoadWardBoundaries:
    def test_loads_features(self, ward_geojson):
        geojson = load_ward_boundaries(ward_geojson)
        assert len(geojson['features']) == 3

    def test_missing_file_returns_none(self, tmp_path, caplog):
        with caplog.at_level(logging.ERROR, logger="crash_data"):
            assert load_ward_boundaries(tmp_path / "missing.geojson") is None
        assert "not found" in caplog.text

    def test_invalid_json_returns_none(self, tmp_path):
        path = tmp_path / "broken.geojson"
        path.write_text("{not json", encoding='utf-8')
        assert load_ward_boundaries(path) is None

    def test_not_a_collection_returns_none(self, tmp_path):
        path = tmp_path / "list.geojson"
        path.write_text(json.dumps([1, 2, 3]), encoding='utf-8')
        assert load_ward_boundaries(path) is None


class TestWardBoundariesCache:
    def test_loaded_once(self, ward_geojson):
        boundaries = WardBoundaries(ward_geojson)
        first = boundaries.load()
        ward_geojson.unlink()
        assert boundaries.load() is first

    def test_failure_is_not_retried(self, tmp_path, ward_geojson, caplog):
        target = tmp_path / "later.geojson"
        boundaries = WardBoundaries(target)
        with caplog.at_level(logging.ERROR, logger="crash_data"):
            assert boundaries.load() is None
            target.write_text(ward_geojson.read_text(encoding='utf-8'), encoding='utf-8')
            assert boundaries.load() is None
            assert boundaries.load() is None
        errors = [r for r in caplog.records if r.levelno == logging.ERROR]
        assert len(errors) == 1
