from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, Set

from pydantic import BaseModel

from .cell_index import MOISTURE_FAMILY, SUCTION_FAMILY, CellIndex
from .cells import to_number
from .config import LabSettings
from .errors import (
    AlreadyOccupiedError,
    DuplicateUseError,
    LabDataError,
    RecordNotFoundError,
    SessionCompleteError,
    StorageError,
    UnderweightSampleError,
    ValidationError,
)
from .excel import LabWorkbook, MoistureWriter, SoilSuctionWriter
from .formula import MoistureResult, write_dry_weight
from .jobs import ensure_working_copy, job_paths, read_job_samples
from .models import CellLocation, Job, JobSheet, OvenCan, Sample, SampleBackup
from .oven import OvenLedger
from .session_store import BackupStore, ProgressStore
from .suction_export import SuctionExport

logger = logging.getLogger(__name__)


class SampleEntry(BaseModel):
    """Values a technician types for one sample."""

    can_number: str = ""
    can_weight: str = ""
    wet_weight: str = ""
    suction_can_no: str = ""
    override_min_weight: bool = False

    def cleaned(self) -> "SampleEntry":
        return self.model_copy(
            update={
                "can_number": self.can_number.strip(),
                "can_weight": self.can_weight.strip(),
                "wet_weight": self.wet_weight.strip(),
                "suction_can_no": self.suction_can_no.strip(),
            }
        )


class CaptureValidator:
    def __init__(
        self,
        ledger: OvenLedger,
        check_duplicates: bool = True,
        numeric_validation: bool = True,
        min_sample_weight: float = 100.0,
    ):
        self.ledger = ledger
        self.check_duplicates = check_duplicates
        self.numeric_validation = numeric_validation
        self.min_sample_weight = min_sample_weight

    @classmethod
    def from_settings(cls, ledger: OvenLedger, settings: LabSettings) -> "CaptureValidator":
        return cls(
            ledger,
            check_duplicates=settings.check_duplicate_cans,
            numeric_validation=settings.enable_numeric_validation,
            min_sample_weight=settings.min_sample_weight,
        )

    def validate(
        self,
        entry: SampleEntry,
        require_suction: bool,
        used_moisture: Set[str],
        used_suction: Set[str],
        previous: Optional[SampleBackup] = None,
    ) -> None:
        """Raise on the first problem with ``entry``.

        Cans recorded on ``previous`` (the record being edited) do not count
        as duplicates of themselves.
        """
        required = [
            ("can_number", "Can number"),
            ("can_weight", "Can weight"),
            ("wet_weight", "Wet weight + can"),
        ]
        if require_suction:
            required.append(("suction_can_no", "Soil suction can number"))
        for field, label in required:
            if not getattr(entry, field):
                raise ValidationError(f"{label} is required", field=field)

        if self.numeric_validation:
            can_weight = to_number(entry.can_weight)
            if can_weight is None:
                raise ValidationError("Can weight must be a number", field="can_weight", value=entry.can_weight)
            wet_weight = to_number(entry.wet_weight)
            if wet_weight is None:
                raise ValidationError("Wet weight must be a number", field="wet_weight", value=entry.wet_weight)
            if wet_weight <= can_weight:
                raise ValidationError(
                    "Wet weight must be greater than can weight", field="wet_weight", value=entry.wet_weight
                )
            if wet_weight - can_weight < self.min_sample_weight and not entry.override_min_weight:
                raise UnderweightSampleError(wet_weight - can_weight, self.min_sample_weight)

        if not self.check_duplicates:
            return
        own_can = previous.can_number if previous else None
        own_suction = previous.suction_can_no if previous else None
        if entry.can_number != own_can:
            if entry.can_number in used_moisture:
                raise DuplicateUseError(
                    f"Can {entry.can_number} was already used in this session",
                    can_number=entry.can_number,
                    field="can_number",
                )
            occupying = self.ledger.find(entry.can_number)
            if occupying is not None:
                raise AlreadyOccupiedError(entry.can_number, record=occupying)
        if entry.suction_can_no and entry.suction_can_no != own_suction and entry.suction_can_no in used_suction:
            raise DuplicateUseError(
                f"Soil suction can {entry.suction_can_no} was already used in this session",
                can_number=entry.suction_can_no,
                field="suction_can_no",
            )


@dataclass
class CaptureResult:
    sample: Sample
    record: SampleBackup
    moisture_location: CellLocation
    suction_location: Optional[CellLocation] = None
    index: Optional[int] = None
    oven_registered: bool = False


@dataclass(frozen=True)
class SessionTiming:
    elapsed: float
    current_sample: float
    average_per_sample: float
    samples_captured: int


class CaptureSession:
    """One job's data-entry session.

    Owns the open lab workbook; the moisture and soil suction writers only
    borrow it.  ``close`` releases the workbook and the export exactly once.
    """

    def __init__(
        self,
        job: Job,
        settings: LabSettings,
        ledger: Optional[OvenLedger] = None,
        progress: Optional[ProgressStore] = None,
        backups: Optional[BackupStore] = None,
    ):
        self.job = job
        self.settings = settings
        self.paths = job_paths(settings.work_dir, job.number)
        self.ledger = ledger or OvenLedger(settings.oven_ledger_path)
        self.progress = progress or ProgressStore(settings.work_dir)
        self.backups = backups or BackupStore(settings.work_dir)
        self.validator = CaptureValidator.from_settings(self.ledger, settings)

        self.book: Optional[LabWorkbook] = None
        self.export: Optional[SuctionExport] = None
        self.moisture: Optional[MoistureWriter] = None
        self.suction: Optional[SoilSuctionWriter] = None
        self.sheet = JobSheet()
        self.cursor = 0
        self.used_moisture: Set[str] = set()
        self.used_suction: Set[str] = set()
        self.last_captured: Optional[SampleBackup] = None
        self._closed = False
        self._started = time.monotonic()
        self._sample_started = self._started
        self._durations: List[float] = []

    # ---------- lifecycle ----------

    def open(self) -> "CaptureSession":
        lab_file = ensure_working_copy(self.job, self.settings.work_dir)
        self.book = LabWorkbook(lab_file)
        try:
            moisture_index = CellIndex.scan(self.book, MOISTURE_FAMILY)
            suction_index = CellIndex.scan(self.book, SUCTION_FAMILY)
            self.sheet = read_job_samples(lab_file, max_samples=self.settings.max_samples_per_job)
            self.export = SuctionExport(self.paths.suction_export, self.settings.suction_page_capacity)
            if any(sample.requires_suction for sample in self.sheet.samples):
                self.export.open()
            self.moisture = MoistureWriter(self.book, moisture_index)
            self.suction = SoilSuctionWriter(self.book, suction_index, export=self.export)
            self.cursor = min(self.progress.load(self.job.number), len(self.sheet.samples))
            # Cans already dried out of the oven are free to be reused.
            for can in self.ledger.list_cans():
                if can.job_number == self.job.number:
                    self.used_moisture.add(can.can_number)
        except Exception:
            self.close()
            raise
        if not moisture_index:
            logger.warning("Job %s has no mapped moisture samples", self.job.number)
        logger.info(
            "Opened capture session for job %s at sample %d of %d",
            self.job.number, self.cursor, len(self.sheet.samples),
        )
        self._started = self._sample_started = time.monotonic()
        return self

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        if self.export is not None:
            self.export.close()
        if self.book is not None:
            self.book.close()
        logger.info("Closed capture session for job %s", self.job.number)

    @property
    def closed(self) -> bool:
        return self._closed

    def __enter__(self) -> "CaptureSession":
        return self.open()

    def __exit__(self, *exc) -> None:
        self.close()

    # ---------- state ----------

    @property
    def samples(self) -> List[Sample]:
        return self.sheet.samples

    @property
    def total(self) -> int:
        return len(self.sheet.samples)

    @property
    def complete(self) -> bool:
        return self.cursor >= self.total

    @property
    def current_sample(self) -> Optional[Sample]:
        return None if self.complete else self.sheet.samples[self.cursor]

    def timing(self) -> SessionTiming:
        now = time.monotonic()
        captured = len(self._durations)
        return SessionTiming(
            elapsed=now - self._started,
            current_sample=now - self._sample_started,
            average_per_sample=sum(self._durations) / captured if captured else 0.0,
            samples_captured=captured,
        )

    def _ensure_open(self) -> None:
        if self._closed or self.moisture is None or self.suction is None:
            raise LabDataError(f"Capture session for job {self.job.number} is not open")

    def find_sample(self, boring: str, depth: str) -> Optional[Sample]:
        for sample in self.sheet.samples:
            if sample.boring == boring and sample.depth == depth:
                return sample
        return None

    def _latest_record(self, boring: str, depth: str) -> Optional[SampleBackup]:
        for record in reversed(self.backups.samples(self.job.number)):
            if record.boring_number == boring and record.depth == depth:
                return record
        return None

    # ---------- capture ----------

    def capture(self, entry: SampleEntry) -> CaptureResult:
        self._ensure_open()
        assert self.moisture is not None and self.suction is not None
        if self.complete:
            raise SessionCompleteError(f"All {self.total} samples of job {self.job.number} are captured")
        sample = self.sheet.samples[self.cursor]
        entry = entry.cleaned()
        self.validator.validate(entry, sample.requires_suction, self.used_moisture, self.used_suction)

        # Resolve every location up front so a missing mapping writes nothing.
        moisture_location = self.moisture.location(sample.boring, sample.depth)
        suction_location = None
        if sample.requires_suction:
            suction_location = self.suction.location(sample.boring, sample.depth)

        self.moisture.write_sample(
            sample.boring, sample.depth, entry.can_number, entry.can_weight, entry.wet_weight
        )
        if sample.requires_suction:
            self.suction.write_sample(sample.boring, sample.depth, entry.suction_can_no)

        record = SampleBackup(
            job_number=self.job.number,
            boring_number=sample.boring,
            depth=sample.depth,
            can_number=entry.can_number,
            can_weight=entry.can_weight,
            wet_weight=entry.wet_weight,
            suction_can_no=entry.suction_can_no if sample.requires_suction else "",
        )
        if self.settings.backup_on_save:
            self.backups.append(record)

        index = self.cursor
        self.progress.save(self.job.number, index + 1)
        self.cursor = index + 1

        self.used_moisture.add(entry.can_number)
        if record.suction_can_no:
            self.used_suction.add(record.suction_can_no)
        self.last_captured = record
        now = time.monotonic()
        self._durations.append(now - self._sample_started)
        self._sample_started = now

        oven_registered = self._register_can(record, moisture_location)
        logger.info(
            "Captured sample %d/%d for job %s: %s|%s can %s",
            index + 1, self.total, self.job.number, sample.boring, sample.depth, entry.can_number,
        )
        return CaptureResult(
            sample=sample,
            record=record,
            moisture_location=moisture_location,
            suction_location=suction_location,
            index=index,
            oven_registered=oven_registered,
        )

    def _register_can(self, record: SampleBackup, location: CellLocation) -> bool:
        can = OvenCan(
            can_number=record.can_number,
            job_number=record.job_number,
            boring_number=record.boring_number,
            depth=record.depth,
            moisture_sheet=location.sheet,
            moisture_column=location.column or "",
        )
        try:
            self.ledger.add(can)
        except AlreadyOccupiedError as exc:
            logger.warning(
                "Can %s not registered in oven, already held by job %s (%s|%s)",
                record.can_number,
                getattr(exc.record, "job_number", "?"),
                getattr(exc.record, "boring_number", "?"),
                getattr(exc.record, "depth", "?"),
            )
            return False
        except StorageError as exc:
            logger.error("Can %s not registered in oven: %s", record.can_number, exc)
            return False
        return True

    # ---------- edits ----------

    def edit_sample(self, boring: str, depth: str, entry: SampleEntry) -> CaptureResult:
        """Correct a captured sample, identified by boring and depth."""
        self._ensure_open()
        assert self.moisture is not None and self.suction is not None
        previous = self._latest_record(boring, depth)
        if previous is None:
            raise RecordNotFoundError(
                f"No captured sample {boring}|{depth} in job {self.job.number}", key=f"{boring}|{depth}"
            )
        sample = self.find_sample(boring, depth) or Sample(boring=boring, depth=depth)
        entry = entry.cleaned()
        self.validator.validate(entry, False, self.used_moisture, self.used_suction, previous=previous)

        suction_changed = bool(entry.suction_can_no) and entry.suction_can_no != previous.suction_can_no
        moisture_location = self.moisture.location(boring, depth)
        suction_location = self.suction.location(boring, depth) if suction_changed else None

        self.moisture.write_sample(boring, depth, entry.can_number, entry.can_weight, entry.wet_weight)
        if suction_changed:
            self.suction.write_sample(boring, depth, entry.suction_can_no)
        record = self.backups.edit(
            self.job.number,
            boring,
            depth,
            can_number=entry.can_number,
            can_weight=entry.can_weight,
            wet_weight=entry.wet_weight,
            suction_can_no=entry.suction_can_no or None,
        )

        oven_registered = self._move_can(previous, record, moisture_location)

        self.used_moisture.discard(previous.can_number)
        self.used_moisture.add(record.can_number)
        if suction_changed:
            self.used_suction.discard(previous.suction_can_no)
            self.used_suction.add(record.suction_can_no)
        if (
            self.last_captured is not None
            and self.last_captured.boring_number == boring
            and self.last_captured.depth == depth
        ):
            self.last_captured = record
        logger.info("Edited sample %s|%s for job %s", boring, depth, self.job.number)
        return CaptureResult(
            sample=sample,
            record=record,
            moisture_location=moisture_location,
            suction_location=suction_location,
            oven_registered=oven_registered,
        )

    def _move_can(self, previous: SampleBackup, record: SampleBackup, location: CellLocation) -> bool:
        held = self.ledger.find(previous.can_number)
        owned = (
            held is not None
            and held.job_number == self.job.number
            and held.boring_number == previous.boring_number
            and held.depth == previous.depth
        )
        if previous.can_number == record.can_number:
            return owned
        if not owned:
            return False
        removed = self.ledger.remove(previous.can_number)
        moved = removed.model_copy(
            update={
                "can_number": record.can_number,
                "moisture_sheet": location.sheet,
                "moisture_column": location.column or removed.moisture_column,
            }
        )
        try:
            self.ledger.add(moved)
        except AlreadyOccupiedError:
            logger.warning(
                "Can %s already in oven; keeping can %s registered for %s|%s",
                record.can_number, previous.can_number, previous.boring_number, previous.depth,
            )
            self.ledger.restore(removed)
            return False
        logger.info("Moved oven entry from can %s to can %s", previous.can_number, record.can_number)
        return True

    def edit_last(self, entry: SampleEntry) -> CaptureResult:
        if self.last_captured is None:
            raise RecordNotFoundError(f"No sample captured yet in this session for job {self.job.number}")
        return self.edit_sample(self.last_captured.boring_number, self.last_captured.depth, entry)


@dataclass(frozen=True)
class DryWeightResult:
    can: OvenCan
    result: MoistureResult


def record_dry_weight(
    ledger: OvenLedger,
    settings: LabSettings,
    can_number: str,
    dry_weight: str,
    book: Optional[LabWorkbook] = None,
) -> DryWeightResult:
    """Take a can out of the oven and complete its moisture column.

    ``book`` is the job's already open workbook when a capture session holds
    it.  If the write fails the can goes back into the ledger.
    """
    dry = to_number(dry_weight)
    if dry is None:
        raise ValidationError("Dry weight must be a number", field="dry_weight", value=dry_weight)
    can = ledger.remove(can_number.strip())
    try:
        if book is not None:
            result = write_dry_weight(book, can.moisture_sheet, can.moisture_column, dry)
        else:
            lab_file: Path = job_paths(settings.work_dir, can.job_number).lab_file
            with LabWorkbook(lab_file) as own_book:
                result = write_dry_weight(own_book, can.moisture_sheet, can.moisture_column, dry)
    except Exception:
        logger.exception("Failed to write dry weight for can %s; returning it to the oven", can.can_number)
        ledger.restore(can)
        raise
    logger.info(
        "Recorded dry weight for can %s (job %s, %s|%s): moisture %.2f%%",
        can.can_number, can.job_number, can.boring_number, can.depth, result.moisture_content,
    )
    return DryWeightResult(can=can, result=result)
