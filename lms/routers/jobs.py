from __future__ import annotations

from typing import Any, Dict, List

from fastapi import APIRouter, HTTPException

from ..app.errors import LabDataError
from ..app.jobs import discover_jobs, find_job, job_paths, read_job_samples
from ..app.models import Job
from ..app.session_store import BackupStore, ProgressStore
from ..services.session_registry import session_registry
from .common import http_error

router = APIRouter(prefix="/api/jobs", tags=["jobs"])


def _job_dict(job: Job) -> Dict[str, Any]:
    return {
        "number": job.number,
        "base_number": job.base_number,
        "revision": job.revision,
        "project_name": job.project_name,
        "engineer": job.engineer,
        "date_assigned": job.format_date_assigned(),
        "due_date": job.format_due_date(),
        "lab_file": str(job.lab_file),
    }


@router.get("")
def list_jobs() -> List[Dict[str, Any]]:
    settings = session_registry.settings
    return [_job_dict(job) for job in discover_jobs(settings.projects_dir)]


@router.get("/{job_number}")
def get_job(job_number: str) -> Dict[str, Any]:
    """Job metadata, its sample list and how far capture has progressed."""
    settings = session_registry.settings
    try:
        job = find_job(settings.projects_dir, job_number)
        working = job_paths(settings.work_dir, job.number).lab_file
        source = working if working.exists() else job.lab_file
        sheet = read_job_samples(source, max_samples=settings.max_samples_per_job)
        cursor = ProgressStore(settings.work_dir).load(job.number)
        backup = BackupStore(settings.work_dir).load(job.number)
    except LabDataError as e:
        raise http_error(e)
    except Exception as e:  # pragma: no cover
        raise HTTPException(status_code=500, detail=f"Failed to read job {job_number}: {e}")
    return {
        **_job_dict(job),
        "samples": [
            {
                "boring": s.boring,
                "depth": s.depth,
                "tests": s.tests,
                "requires_suction": s.requires_suction,
                "has_other_tests": s.has_other_tests,
            }
            for s in sheet.samples
        ],
        "total_samples": sheet.total_samples,
        "current_sample_index": cursor,
        "backup_count": len(backup.samples),
        "session_open": job.number in session_registry.open_jobs(),
    }
