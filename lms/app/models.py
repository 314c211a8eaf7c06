from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from pathlib import Path
from typing import List, Optional

from pydantic import BaseModel, Field

TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S"
DISPLAY_DATE_FORMAT = "%m/%d/%Y"

MOISTURE_TEST = "Moisture Content"
SUCTION_TEST = "Soil Suction"


def now_stamp() -> str:
    return datetime.now().strftime(TIMESTAMP_FORMAT)


class Job(BaseModel):
    """One lab assignment. A base number may carry several revisions, each its own job."""

    number: str
    base_number: str
    revision: str = ""
    lab_file: Path
    project_name: str = "Unknown Project"
    engineer: str = "N/A"
    date_assigned: date
    due_date: date

    def format_date_assigned(self) -> str:
        return self.date_assigned.strftime(DISPLAY_DATE_FORMAT)

    def format_due_date(self) -> str:
        return self.due_date.strftime(DISPLAY_DATE_FORMAT)


class Sample(BaseModel):
    boring: str
    depth: str
    tests: List[str] = Field(default_factory=list)

    @property
    def key(self) -> str:
        return f"{self.boring}|{self.depth}"

    @property
    def requires_suction(self) -> bool:
        return any(SUCTION_TEST in test for test in self.tests)

    @property
    def has_other_tests(self) -> bool:
        return any(SUCTION_TEST not in test and "Moisture" not in test for test in self.tests)


class JobSheet(BaseModel):
    """Header block and sample list parsed from a job's main form sheet."""

    job_number: str = ""
    project_name: str = ""
    engineer: str = ""
    date_assigned: str = ""
    due_date: str = ""
    total_samples: int = 0
    samples: List[Sample] = Field(default_factory=list)


@dataclass(frozen=True)
class CellLocation:
    """Sheet plus column letter (column-oriented families) or row number (row-oriented)."""

    sheet: str
    column: Optional[str] = None
    row: Optional[int] = None

    def cell(self, row: Optional[int] = None, column: Optional[str] = None) -> str:
        col = column or self.column
        num = row if row is not None else self.row
        if col is None or num is None:
            raise ValueError(f"Incomplete cell reference on {self.sheet}: column={col!r} row={num!r}")
        return f"{col}{num}"


# ---------- persisted records ----------


class OvenCan(BaseModel):
    can_number: str
    job_number: str
    boring_number: str
    depth: str
    time_in: str = Field(default_factory=now_stamp)
    moisture_sheet: str
    moisture_column: str


class OvenLedgerFile(BaseModel):
    cans: List[OvenCan] = Field(default_factory=list)
    last_updated: str = Field(default_factory=now_stamp)


class SampleBackup(BaseModel):
    job_number: str
    boring_number: str
    depth: str
    can_number: str
    can_weight: str
    wet_weight: str
    suction_can_no: str = ""
    timestamp: str = Field(default_factory=now_stamp)


class BackupFile(BaseModel):
    job_number: str
    last_updated: str = ""
    total_samples: int = 0
    samples: List[SampleBackup] = Field(default_factory=list)


class ProgressFile(BaseModel):
    job_number: str
    current_sample_index: int = 0
    last_saved: str = ""
