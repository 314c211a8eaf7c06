from __future__ import annotations

from typing import Any, Dict, List

from fastapi import APIRouter

from ..app.errors import LabDataError
from ..app.services import CaptureResult, CaptureSession, SampleEntry
from ..services.session_registry import session_registry
from .common import http_error, location_dict

router = APIRouter(prefix="/api/capture", tags=["capture"])


class EditBody(SampleEntry):
    boring: str
    depth: str


def _state(session: CaptureSession) -> Dict[str, Any]:
    current = session.current_sample
    timing = session.timing()
    return {
        "job_number": session.job.number,
        "project_name": session.job.project_name,
        "current_sample_index": session.cursor,
        "total_samples": session.total,
        "complete": session.complete,
        "current_sample": None
        if current is None
        else {
            "boring": current.boring,
            "depth": current.depth,
            "tests": current.tests,
            "requires_suction": current.requires_suction,
            "has_other_tests": current.has_other_tests,
        },
        "last_captured": session.last_captured.model_dump() if session.last_captured else None,
        "timing": {
            "elapsed": timing.elapsed,
            "current_sample": timing.current_sample,
            "average_per_sample": timing.average_per_sample,
            "samples_captured": timing.samples_captured,
        },
    }


def _result(result: CaptureResult, session: CaptureSession) -> Dict[str, Any]:
    return {
        "ok": True,
        "index": result.index,
        "record": result.record.model_dump(),
        "moisture_location": location_dict(result.moisture_location),
        "suction_location": location_dict(result.suction_location),
        "oven_registered": result.oven_registered,
        "state": _state(session),
    }


@router.post("/{job_number}/open")
def open_session(job_number: str) -> Dict[str, Any]:
    with session_registry.locked():
        try:
            session = session_registry.open(job_number)
        except LabDataError as e:
            raise http_error(e)
        return _state(session)


@router.get("/{job_number}")
def get_state(job_number: str) -> Dict[str, Any]:
    with session_registry.locked():
        try:
            session = session_registry.get(job_number)
        except LabDataError as e:
            raise http_error(e)
        return _state(session)


@router.post("/{job_number}/samples")
def capture_sample(job_number: str, body: SampleEntry) -> Dict[str, Any]:
    """Save the current sample and advance to the next one."""
    with session_registry.locked():
        try:
            session = session_registry.get(job_number)
            result = session.capture(body)
        except LabDataError as e:
            raise http_error(e)
        return _result(result, session)


@router.put("/{job_number}/samples")
def edit_sample(job_number: str, body: EditBody) -> Dict[str, Any]:
    entry = SampleEntry(**body.model_dump(exclude={"boring", "depth"}))
    with session_registry.locked():
        try:
            session = session_registry.get(job_number)
            result = session.edit_sample(body.boring.strip(), body.depth.strip(), entry)
        except LabDataError as e:
            raise http_error(e)
        return _result(result, session)


@router.put("/{job_number}/samples/last")
def edit_last_sample(job_number: str, body: SampleEntry) -> Dict[str, Any]:
    with session_registry.locked():
        try:
            session = session_registry.get(job_number)
            result = session.edit_last(body)
        except LabDataError as e:
            raise http_error(e)
        return _result(result, session)


@router.get("/{job_number}/backup")
def list_backup(job_number: str) -> List[Dict[str, Any]]:
    with session_registry.locked():
        try:
            session = session_registry.get(job_number)
        except LabDataError as e:
            raise http_error(e)
        return [record.model_dump() for record in session.backups.samples(job_number)]


@router.delete("/{job_number}")
def close_session(job_number: str) -> Dict[str, Any]:
    with session_registry.locked():
        closed = session_registry.close(job_number)
    return {"ok": True, "closed": closed}
