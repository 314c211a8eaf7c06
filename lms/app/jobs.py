"""Job discovery and main-form parsing for lab workbooks.

A project directory ``projects/<base>/`` may hold several revisions of the
lab workbook (``Lab_25490.xlsm``, ``Lab_25490_03.xlsm``).  Every revision is
an independent job with its own working directory under ``ex_project/``.
"""
from __future__ import annotations

import logging
import shutil
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from pathlib import Path
from typing import Iterable, List, Optional, Sequence

from openpyxl import load_workbook

from .cells import cell_text
from .errors import NotFoundError, StorageError
from .models import Job, JobSheet, Sample

logger = logging.getLogger(__name__)

MAIN_FORM_SHEETS = ("Main Form", "!Main Form")
LAB_FILE_PREFIX = "Lab_"
LAB_FILE_SUFFIX = ".xlsm"

# Header rows end before row 8; blank-first-cell rows from there on are samples.
FIRST_CONTINUATION_ROW = 8

# 0-based column index -> test name, as marked with an "x" on the main form.
TEST_COLUMNS = (
    (2, "Atterberg Limit"),
    (3, "Atterberg Limit (w/ lime)"),
    (4, "Moisture Content"),
    (5, "Absorption Pressure Swell"),
    (6, "QU"),
    (7, "Gradation"),
    (9, "Soil Suction"),
)

DATE_FORMATS = (
    "%m/%d/%Y",
    "%Y-%m-%d",
    "%m-%d-%Y",
    "%b %d, %Y",
    "%B %d, %Y",
)


@dataclass(frozen=True)
class JobPaths:
    root: Path
    lab_file: Path
    suction_export: Path
    backup: Path
    progress: Path


def job_paths(work_dir: Path, job_number: str) -> JobPaths:
    root = Path(work_dir) / job_number
    return JobPaths(
        root=root,
        lab_file=root / f"{LAB_FILE_PREFIX}{job_number}{LAB_FILE_SUFFIX}",
        suction_export=root / f"SoilSuction_{job_number}.xlsx",
        backup=root / "backup.json",
        progress=root / "progress.json",
    )


def ensure_working_copy(job: Job, work_dir: Path) -> Path:
    """Copy the source workbook into the job's working directory on first use only."""
    paths = job_paths(work_dir, job.number)
    try:
        paths.root.mkdir(parents=True, exist_ok=True)
        if paths.lab_file.exists():
            logger.info("Reusing working copy %s", paths.lab_file)
            return paths.lab_file
        shutil.copy2(job.lab_file, paths.lab_file)
    except OSError as exc:
        logger.error("Failed to prepare working copy for job %s: %s", job.number, exc)
        raise StorageError(
            f"Failed to copy {job.lab_file} to {paths.lab_file}: {exc}",
            path=paths.lab_file,
            operation="copy",
        ) from exc
    logger.info("Copied lab file to %s", paths.lab_file)
    return paths.lab_file


def parse_sheet_date(text: str) -> Optional[date]:
    text = (text or "").strip()
    if not text:
        return None
    for fmt in DATE_FORMATS:
        try:
            return datetime.strptime(text, fmt).date()
        except ValueError:
            continue
    return None


def _main_form(book):
    for name in MAIN_FORM_SHEETS:
        if name in book.sheetnames:
            return book[name]
    ws = book.worksheets[0]
    logger.info("Main Form sheet not found, using first sheet: %s", ws.title)
    return ws


def _row_texts(ws) -> Iterable[List[str]]:
    for row in ws.iter_rows(values_only=True):
        yield [cell_text(value) for value in row]


def _at(row: Sequence[str], idx: int) -> str:
    return row[idx] if idx < len(row) else ""


def _token_after(text: str, label: str) -> str:
    idx = text.find(label)
    if idx == -1:
        return ""
    parts = text[idx + len(label):].split()
    return parts[0] if parts else ""


def extract_job_info(lab_file: Path, job_number: str, base_number: str, revision: str = "") -> Job:
    today = date.today()
    info = {
        "project_name": "Unknown Project",
        "engineer": "N/A",
        "date_assigned": today,
        "due_date": today + timedelta(days=14),
    }
    book = load_workbook(lab_file, data_only=True)
    try:
        for row in _row_texts(_main_form(book)):
            if not any(row):
                continue
            row_text = " ".join(row)
            if "Project Name." in row_text:
                name = _at(row, 2)
                if name:
                    info["project_name"] = name
                engineer = _token_after(row_text, "Engineer.")
                if engineer:
                    info["engineer"] = engineer
                assigned = parse_sheet_date(_token_after(row_text, "Date"))
                if assigned:
                    info["date_assigned"] = assigned
            if "Due Date" in row_text:
                due = parse_sheet_date(_token_after(row_text, "Due Date"))
                if due:
                    info["due_date"] = due
    finally:
        book.close()
    return Job(number=job_number, base_number=base_number, revision=revision, lab_file=lab_file, **info)


def _job_number_for(lab_file: Path, base_number: str) -> Optional[str]:
    stem = lab_file.stem
    if not stem.startswith(LAB_FILE_PREFIX):
        return None
    number = stem[len(LAB_FILE_PREFIX):]
    if number == base_number or number.startswith(f"{base_number}_"):
        return number
    return None


def discover_jobs(projects_dir: Path) -> List[Job]:
    """Scan ``projects/<base>/Lab_<base>[_<rev>].xlsm`` files; unreadable files are skipped."""
    projects_dir = Path(projects_dir)
    jobs: List[Job] = []
    if not projects_dir.is_dir():
        logger.info("Projects directory does not exist: %s", projects_dir)
        return jobs

    for entry in sorted(projects_dir.iterdir()):
        if not entry.is_dir():
            continue
        base_number = entry.name
        for lab_file in sorted(entry.glob(f"{LAB_FILE_PREFIX}*{LAB_FILE_SUFFIX}")):
            if lab_file.name.startswith("~$"):
                continue
            job_number = _job_number_for(lab_file, base_number)
            if job_number is None:
                continue
            revision = job_number[len(base_number) + 1:] if job_number != base_number else ""
            try:
                job = extract_job_info(lab_file, job_number, base_number, revision)
            except Exception as exc:
                logger.error("Failed to extract job info from %s: %s", lab_file, exc)
                continue
            jobs.append(job)
            logger.info("Discovered job: %s - %s", job.number, job.project_name)

    jobs.sort(key=lambda j: j.number)
    logger.info("Discovered %d jobs in %s", len(jobs), projects_dir)
    return jobs


def find_job(projects_dir: Path, job_number: str) -> Job:
    for job in discover_jobs(projects_dir):
        if job.number == job_number:
            return job
    raise NotFoundError(f"Job {job_number} not found in {projects_dir}", key=job_number)


def parse_job_rows(rows: Iterable[Sequence[str]], max_samples: Optional[int] = None) -> JobSheet:
    """Parse main-form rows (already rendered as text) into the header block and samples.

    Boring numbers are written once per group; rows without one belong to
    the nearest preceding boring.  A run before any boring keeps ``""``.
    """
    sheet = JobSheet()
    for row_number, row in enumerate(rows, start=1):
        if not any(row):
            continue
        first = _at(row, 0)
        if first == "Job No." and len(row) > 2:
            sheet.job_number = _at(row, 2)
        elif first == "Project Name." and len(row) > 2:
            sheet.project_name = _at(row, 2)
            sheet.engineer = _at(row, 5)
            sheet.date_assigned = _at(row, 9)
        elif "Due Date" in first and len(row) > 9:
            sheet.due_date = _at(row, 9)
        elif first.startswith("B-") or (row_number >= FIRST_CONTINUATION_ROW and first == ""):
            depth = _at(row, 1)
            if not depth:
                continue
            tests = [name for col, name in TEST_COLUMNS if _at(row, col).lower() == "x"]
            boring = first if first.startswith("B-") else ""
            sheet.samples.append(Sample(boring=boring, depth=depth, tests=tests))

    current = ""
    for sample in sheet.samples:
        if sample.boring:
            current = sample.boring
        else:
            sample.boring = current

    if max_samples is not None and len(sheet.samples) > max_samples:
        logger.warning(
            "Job sheet lists %d samples; keeping the first %d", len(sheet.samples), max_samples
        )
        sheet.samples = sheet.samples[:max_samples]
    sheet.total_samples = len(sheet.samples)
    return sheet


def read_job_samples(lab_file: Path, max_samples: Optional[int] = None) -> JobSheet:
    book = load_workbook(lab_file, data_only=True)
    try:
        sheet = parse_job_rows(_row_texts(_main_form(book)), max_samples=max_samples)
    finally:
        book.close()
    logger.info("Loaded %d samples from %s", sheet.total_samples, lab_file)
    return sheet
