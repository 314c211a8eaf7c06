from __future__ import annotations

from typing import Any, Dict

from fastapi import APIRouter
from pydantic import BaseModel

from ..app.errors import LabDataError
from ..app.services import record_dry_weight
from ..services.session_registry import session_registry
from .common import http_error

router = APIRouter(prefix="/api/oven", tags=["oven"])


class DryWeightBody(BaseModel):
    dry_weight: str


@router.get("")
def list_oven() -> Dict[str, Any]:
    with session_registry.locked():
        cans = session_registry.ledger().list_cans()
    return {"count": len(cans), "cans": [can.model_dump() for can in cans]}


@router.get("/{can_number}")
def query_can(can_number: str) -> Dict[str, Any]:
    with session_registry.locked():
        in_oven, can = session_registry.ledger().query(can_number.strip())
    return {"can_number": can_number, "in_oven": in_oven, "can": can.model_dump() if can else None}


@router.post("/{can_number}/dry-weight")
def enter_dry_weight(can_number: str, body: DryWeightBody) -> Dict[str, Any]:
    """Morning count: take the can out and finish its moisture column."""
    with session_registry.locked():
        ledger = session_registry.ledger()
        held = ledger.find(can_number.strip())
        book = session_registry.book_for(held.job_number) if held else None
        try:
            done = record_dry_weight(ledger, session_registry.settings, can_number, body.dry_weight, book=book)
        except LabDataError as e:
            raise http_error(e)
    result = done.result
    return {
        "ok": True,
        "can": done.can.model_dump(),
        "dry_and_can": result.dry_and_can,
        "water_weight": result.water_weight,
        "dry_soil_weight": result.dry_soil_weight,
        "moisture_content": result.moisture_content,
    }


@router.delete("/{can_number}")
def remove_can(can_number: str) -> Dict[str, Any]:
    with session_registry.locked():
        try:
            removed = session_registry.ledger().remove(can_number.strip())
        except LabDataError as e:
            raise http_error(e)
    return {"ok": True, "can": removed.model_dump()}
