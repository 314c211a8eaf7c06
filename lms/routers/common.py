from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from fastapi import HTTPException

from ..app.errors import (
    AlreadyOccupiedError,
    DuplicateUseError,
    LabDataError,
    MalformedFileError,
    NotFoundError,
    SessionCompleteError,
    StorageError,
    UnderweightSampleError,
    ValidationError,
)
from ..app.models import CellLocation, OvenCan

logger = logging.getLogger(__name__)


def http_error(exc: LabDataError) -> HTTPException:
    """Translate a core error into the HTTP status the UI acts on."""
    if isinstance(exc, NotFoundError):
        return HTTPException(status_code=404, detail=str(exc))
    if isinstance(exc, AlreadyOccupiedError):
        record = exc.record.model_dump() if isinstance(exc.record, OvenCan) else None
        return HTTPException(status_code=409, detail={"message": str(exc), "can": record})
    if isinstance(exc, (DuplicateUseError, SessionCompleteError)):
        return HTTPException(status_code=409, detail=str(exc))
    if isinstance(exc, UnderweightSampleError):
        return HTTPException(
            status_code=422,
            detail={
                "message": str(exc),
                "sample_weight": exc.sample_weight,
                "minimum": exc.minimum,
                "override": "override_min_weight",
            },
        )
    if isinstance(exc, ValidationError):
        return HTTPException(status_code=400, detail={"message": str(exc), "field": exc.field})
    if isinstance(exc, (StorageError, MalformedFileError)):
        logger.error("Storage failure: %s", exc)
        return HTTPException(status_code=500, detail=str(exc))
    return HTTPException(status_code=400, detail=str(exc))


def location_dict(location: Optional[CellLocation]) -> Optional[Dict[str, Any]]:
    if location is None:
        return None
    return {"sheet": location.sheet, "column": location.column, "row": location.row}
