"""Per-job resumable state: the progress cursor and the append-only backup log.

Both live as JSON files in the job's working directory and are rewritten
whole on every change.
"""
from __future__ import annotations

import logging
import os
import threading
from pathlib import Path
from typing import List, Optional, Type, TypeVar

from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from .errors import MalformedFileError, RecordNotFoundError, StorageError
from .jobs import job_paths
from .models import BackupFile, ProgressFile, SampleBackup, now_stamp

logger = logging.getLogger(__name__)

M = TypeVar("M", bound=BaseModel)


def read_model(path: Path, model: Type[M]) -> Optional[M]:
    """Load ``path`` into ``model``; None when the file does not exist."""
    try:
        raw = Path(path).read_bytes()
    except FileNotFoundError:
        return None
    except OSError as exc:
        raise StorageError(f"Failed to read {path}: {exc}", path=path, operation="read") from exc
    try:
        text = raw.decode("utf-8")
    except UnicodeDecodeError as exc:
        raise MalformedFileError(f"{path} is not valid UTF-8: {exc}", path=path) from exc
    try:
        return model.model_validate_json(text)
    except PydanticValidationError as exc:
        raise MalformedFileError(f"{path} is not a valid {model.__name__}: {exc}", path=path) from exc


def write_model(path: Path, data: BaseModel) -> None:
    path = Path(path)
    tmp = path.with_name(f".{path.name}.tmp")
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        tmp.write_text(data.model_dump_json(indent=2), encoding="utf-8")
        os.replace(tmp, path)
    except OSError as exc:
        logger.error("Failed to write %s: %s", path, exc)
        raise StorageError(f"Failed to write {path}: {exc}", path=path, operation="write") from exc


class ProgressStore:
    def __init__(self, work_dir: Path):
        self.work_dir = Path(work_dir)

    def path(self, job_number: str) -> Path:
        return job_paths(self.work_dir, job_number).progress

    def load(self, job_number: str) -> int:
        """Index of the next unsaved sample; 0 when there is no usable progress file."""
        path = self.path(job_number)
        try:
            progress = read_model(path, ProgressFile)
        except MalformedFileError as exc:
            logger.warning("Ignoring unreadable progress file %s: %s", path, exc)
            return 0
        if progress is None:
            return 0
        logger.info("Loaded progress for job %s: sample index %d", job_number, progress.current_sample_index)
        return max(progress.current_sample_index, 0)

    def save(self, job_number: str, index: int) -> None:
        progress = ProgressFile(
            job_number=job_number,
            current_sample_index=index,
            last_saved=os.environ.get("USER") or os.environ.get("USERNAME") or now_stamp(),
        )
        write_model(self.path(job_number), progress)
        logger.info("Saved progress for job %s: sample index %d", job_number, index)


class BackupStore:
    """Append-only log of every captured sample, editable by (boring, depth)."""

    _lock = threading.RLock()

    def __init__(self, work_dir: Path):
        self.work_dir = Path(work_dir)

    def path(self, job_number: str) -> Path:
        return job_paths(self.work_dir, job_number).backup

    def load(self, job_number: str) -> BackupFile:
        path = self.path(job_number)
        try:
            backup = read_model(path, BackupFile)
        except MalformedFileError as exc:
            logger.warning("Backup log %s is corrupt, starting a new one: %s", path, exc)
            backup = None
        return backup if backup is not None else BackupFile(job_number=job_number)

    def samples(self, job_number: str) -> List[SampleBackup]:
        return list(self.load(job_number).samples)

    def append(self, record: SampleBackup) -> BackupFile:
        with self._lock:
            backup = self.load(record.job_number)
            backup.samples.append(record)
            backup.total_samples = len(backup.samples)
            backup.last_updated = now_stamp()
            write_model(self.path(record.job_number), backup)
        logger.info(
            "Backed up sample %s|%s for job %s (%d total)",
            record.boring_number, record.depth, record.job_number, backup.total_samples,
        )
        return backup

    def edit(
        self,
        job_number: str,
        boring: str,
        depth: str,
        can_number: str,
        can_weight: str,
        wet_weight: str,
        suction_can_no: Optional[str] = None,
    ) -> SampleBackup:
        """Replace the entered values of the most recent record for (boring, depth).

        The record keeps its original timestamp; other records are untouched.
        """
        with self._lock:
            backup = self.load(job_number)
            for record in reversed(backup.samples):
                if record.boring_number == boring and record.depth == depth:
                    break
            else:
                raise RecordNotFoundError(
                    f"No backup record for {boring}|{depth} in job {job_number}", key=f"{boring}|{depth}"
                )
            record.can_number = can_number
            record.can_weight = can_weight
            record.wet_weight = wet_weight
            if suction_can_no is not None:
                record.suction_can_no = suction_can_no
            backup.last_updated = now_stamp()
            write_model(self.path(job_number), backup)
        logger.info("Updated backup record %s|%s for job %s", boring, depth, job_number)
        return record
