import csv
import logging
from pathlib import Path
from typing import List

from .core import RunResult

HEADERS = [
    "Source Path",
    "Status",
    "Destination Path",
    "Date",
    "Date Source",
    "Original (If Duplicate)",
    "Notes",
]


class ReportGenerator:
    def __init__(self, result: RunResult):
        self.result = result

    def rows(self) -> List[list]:
        """One row per executed entry, validator exclusion and content duplicate."""
        rows = []

        for r in self.result.summary.results:
            f = r.entry.file
            rows.append([
                str(f.path), r.status.value, str(r.entry.destination),
                f"{f.date.value:%Y-%m-%d %H:%M:%S}", f.date.source.value,
                "", r.error or "",
            ])

        for skip in self.result.plan.skipped:
            f = skip.file
            note = f"{skip.validator_name}: {skip.reason}" if skip.reason else skip.validator_name
            rows.append([
                str(f.path), "excluded", "",
                f"{f.date.value:%Y-%m-%d %H:%M:%S}", f.date.source.value,
                "", note,
            ])

        for dup in self.result.plan.duplicates:
            f = dup.file
            rows.append([
                str(f.path), "duplicate", "",
                f"{f.date.value:%Y-%m-%d %H:%M:%S}", f.date.source.value,
                str(dup.original.path), f"checksum {f.checksum}",
            ])

        return rows

    def write_csv(self, output_csv: Path) -> int:
        output_csv = Path(output_csv)
        logging.info(f"Writing report -> {output_csv}")
        rows = self.rows()

        with open(output_csv, "w", newline="", encoding="utf-8") as f:
            writer = csv.writer(f)
            writer.writerow(HEADERS)
            writer.writerows(rows)

        logging.info(f"Report complete. {len(rows)} rows.")
        return len(rows)
