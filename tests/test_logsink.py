"""
Tests for logsink/record.py and logsink/csv_sink.py.
"""

import csv
from datetime import datetime, timezone

from logsink.csv_sink import CsvLogSink
from logsink.record import BASE_COLUMNS, build_record, column_order

WHEN = datetime(2026, 10, 19, 9, 30, tzinfo=timezone.utc)


def _rows(path):
    with open(path, newline="", encoding="utf-8") as f:
        return list(csv.reader(f))


class TestBuildRecord:

    def test_fixed_fields_then_buttons(self):
        record = build_record(
            {"name": "Ada", "email": "ada@example.com"},
            {"video1": True, "video2": False},
            WHEN,
        )
        assert record == {
            "timestamp": "2026-10-19T09:30:00+00:00",
            "name": "Ada",
            "nationality": "",
            "email": "ada@example.com",
            "phone": "",
            "video1": True,
            "video2": False,
        }

    def test_button_values_are_booleans(self):
        record = build_record({}, {"video1": 1, "video2": None}, WHEN)
        assert record["video1"] is True
        assert record["video2"] is False

    def test_button_key_cannot_shadow_lead_field(self):
        record = build_record({"name": "Ada"}, {"name": True}, WHEN)
        assert record["name"] == "Ada"

    def test_default_timestamp_is_now(self):
        record = build_record({}, {})
        assert datetime.fromisoformat(record["timestamp"]).tzinfo is not None


def test_column_order():
    keys = ["type", "zeta", "video10", "email", "video2", "alpha", "timestamp"]
    assert column_order(keys) == list(BASE_COLUMNS) + ["video2", "video10", "alpha", "zeta"]


class TestCsvLogSink:

    def test_creates_file_with_header(self, tmp_path):
        sink = CsvLogSink(tmp_path / "data.csv")
        sink.append(build_record({"name": "Ada", "email": "a@b.c"}, {"video1": True}, WHEN))

        rows = _rows(tmp_path / "data.csv")
        assert rows[0] == list(BASE_COLUMNS) + ["video1"]
        assert rows[1] == ["2026-10-19T09:30:00+00:00", "Ada", "", "a@b.c", "", "1"]

    def test_new_column_appended_exactly_once(self, tmp_path):
        path = tmp_path / "data.csv"
        sink = CsvLogSink(path)
        sink.append(build_record({}, {"video1": True}, WHEN))
        sink.append(build_record({}, {"video1": False, "video4": True}, WHEN))
        sink.append(build_record({}, {"video4": True}, WHEN))

        rows = _rows(path)
        assert rows[0] == list(BASE_COLUMNS) + ["video1", "video4"]
        assert rows[0].count("video4") == 1
        # the first row predates video4 and has no value for it
        assert len(rows[1]) == len(BASE_COLUMNS) + 1
        assert rows[2][-2:] == ["0", "1"]
        # fewer keys never shrink the header
        assert rows[3][-2:] == ["", "1"]

    def test_type_discriminator_not_logged(self, tmp_path):
        sink = CsvLogSink(tmp_path / "data.csv")
        header = sink.append({"type": "data_log", "timestamp": "t", "video1": True})
        assert "type" not in header

    def test_values_are_quoted(self, tmp_path):
        path = tmp_path / "data.csv"
        sink = CsvLogSink(path)
        sink.append(build_record({"name": 'Lovelace, "Ada"'}, {}, WHEN))
        assert _rows(path)[1][1] == 'Lovelace, "Ada"'

    def test_existing_header_is_kept(self, tmp_path):
        path = tmp_path / "data.csv"
        path.write_text("timestamp,name,legacy\nold,row,x\n")
        sink = CsvLogSink(path)
        header = sink.append(build_record({"name": "Ada"}, {}, WHEN))

        assert header[:3] == ["timestamp", "name", "legacy"]
        rows = _rows(path)
        assert rows[1] == ["old", "row", "x"]
        assert rows[2][2] == ""
