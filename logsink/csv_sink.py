import csv
import io
import logging
import threading
from pathlib import Path

from logsink.record import column_order

log = logging.getLogger("logsink.csv")


def _cell(value) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "1" if value else "0"
    return str(value)


class CsvLogSink:
    """
    Append-only CSV file with a header that only ever grows.

    When a record carries a key the header does not have yet, the header
    line is extended in place and earlier rows simply have no value for the
    new column. Columns are never removed or reordered once written.

    append() blocks on file I/O; the relay calls it from a worker thread.
    """

    def __init__(self, path):
        self.path = Path(path)
        self._lock = threading.Lock()

    def read_header(self) -> list[str]:
        if not self.path.exists():
            return []
        with open(self.path, newline="", encoding="utf-8") as f:
            return next(csv.reader(f), [])

    def append(self, record: dict) -> list[str]:
        """Write one record as a row. Returns the header the row was written under."""
        with self._lock:
            header = self._ensure_header(column_order(record.keys()))
            buf = io.StringIO()
            csv.writer(buf, lineterminator="\n").writerow([_cell(record.get(col)) for col in header])
            with open(self.path, "a", newline="", encoding="utf-8") as f:
                f.write(buf.getvalue())
            log.info("Logged row with %d columns to %s", len(header), self.path)
            return header

    def _ensure_header(self, desired: list[str]) -> list[str]:
        if not self.path.exists():
            self._write_header_line(desired, rest="")
            log.info("Created %s with headers: %s", self.path, desired)
            return desired

        with open(self.path, newline="", encoding="utf-8") as f:
            first_line = f.readline()
            rest = f.read()
        existing = next(csv.reader([first_line]), []) if first_line.strip() else []

        missing = [col for col in desired if col not in existing]
        if not missing:
            return existing

        header = existing + missing
        self._write_header_line(header, rest)
        log.info("Updated CSV header to include new columns: %s", missing)
        return header

    def _write_header_line(self, header: list[str], rest: str) -> None:
        buf = io.StringIO()
        csv.writer(buf, lineterminator="\n").writerow(header)
        with open(self.path, "w", newline="", encoding="utf-8") as f:
            f.write(buf.getvalue())
            f.write(rest)
