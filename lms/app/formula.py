from __future__ import annotations

import logging
from dataclasses import dataclass

from .cells import to_number
from .excel import (
    ROW_CAN_WEIGHT,
    ROW_DRY_AND_CAN,
    ROW_DRY_SOIL,
    ROW_MOISTURE_CONTENT,
    ROW_WATER,
    ROW_WET_AND_CAN,
    LabWorkbook,
)
from .models import CellLocation

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class MoistureResult:
    wet_and_can: float
    dry_and_can: float
    can_weight: float
    water_weight: float
    dry_soil_weight: float
    moisture_content: float


def compute_moisture(wet_and_can: float, can_weight: float, dry_and_can: float) -> MoistureResult:
    """Water weight, dry soil weight and moisture content (%) of one can.

    Moisture content is 0 when the dry soil weight is not positive.
    """
    water = wet_and_can - dry_and_can
    dry_soil = dry_and_can - can_weight
    moisture = (water / dry_soil) * 100.0 if dry_soil > 0 else 0.0
    return MoistureResult(
        wet_and_can=wet_and_can,
        dry_and_can=dry_and_can,
        can_weight=can_weight,
        water_weight=water,
        dry_soil_weight=dry_soil,
        moisture_content=moisture,
    )


def _stored(ws, ref: str) -> float:
    value = to_number(ws[ref].value)
    if value is None:
        logger.warning("Cell %s!%s holds no number (%r); using 0", ws.title, ref, ws[ref].value)
        return 0.0
    return value


def write_dry_weight(book: LabWorkbook, sheet: str, column: str, dry_and_can: float) -> MoistureResult:
    """Complete a moisture column from the entered dry weight and save the workbook."""
    location = CellLocation(sheet=sheet, column=column)
    ws = book[sheet]
    result = compute_moisture(
        wet_and_can=_stored(ws, location.cell(ROW_WET_AND_CAN)),
        can_weight=_stored(ws, location.cell(ROW_CAN_WEIGHT)),
        dry_and_can=dry_and_can,
    )
    ws[location.cell(ROW_DRY_AND_CAN)] = result.dry_and_can
    ws[location.cell(ROW_WATER)] = result.water_weight
    ws[location.cell(ROW_DRY_SOIL)] = result.dry_soil_weight
    ws[location.cell(ROW_MOISTURE_CONTENT)] = result.moisture_content
    book.save()
    logger.info(
        "Wrote dry weight to %s column %s: Dry=%.2f, Water=%.2f, DrySoil=%.2f, Moisture=%.2f%%",
        sheet, column, result.dry_and_can, result.water_weight, result.dry_soil_weight, result.moisture_content,
    )
    return result
