from __future__ import annotations

import logging
import os
from datetime import date
from pathlib import Path
from typing import Optional

from openpyxl import load_workbook

from .cell_index import CellIndex
from .cells import to_number
from .errors import NotFoundError, StorageError
from .models import CellLocation

logger = logging.getLogger(__name__)

# Moisture sheet rows under the boring (9) and depth (10) header rows.
ROW_CAN_NO = 11
ROW_WET_AND_CAN = 12
ROW_DRY_AND_CAN = 13
ROW_WATER = 14
ROW_CAN_WEIGHT = 15
ROW_DRY_SOIL = 16
ROW_MOISTURE_CONTENT = 17

# Soil suction sheets take the suction can number in column D of the sample row.
SUCTION_CAN_COLUMN = "D"


class LabWorkbook:
    """The single open handle on a job's working lab workbook.

    Both writers share one instance; the session that opened it is the only
    one that closes it.
    """

    def __init__(self, path: Path):
        self.path = Path(path)
        self._closed = False
        try:
            self.book = load_workbook(self.path, keep_vba=self.path.suffix.lower() == ".xlsm")
        except FileNotFoundError as exc:
            raise StorageError(f"Lab workbook not found: {self.path}", path=self.path, operation="open") from exc
        except Exception as exc:
            logger.error("Failed to open lab workbook %s: %s", self.path, exc)
            raise StorageError(f"Failed to open {self.path}: {exc}", path=self.path, operation="open") from exc
        logger.info("Opened lab workbook %s", self.path)

    @property
    def sheetnames(self):
        return self.book.sheetnames

    def __getitem__(self, sheet_name: str):
        if sheet_name not in self.book.sheetnames:
            raise NotFoundError(f"Sheet {sheet_name} not found in {self.path.name}", key=sheet_name)
        return self.book[sheet_name]

    @property
    def closed(self) -> bool:
        return self._closed

    def save(self) -> None:
        """Write to a sibling temp file, then replace, so a failed save keeps the last good file."""
        if self._closed:
            raise StorageError(f"Workbook {self.path} is closed", path=self.path, operation="save")
        tmp = self.path.with_name(f".{self.path.stem}.saving{self.path.suffix}")
        try:
            self.book.save(tmp)
            os.replace(tmp, self.path)
        except Exception as exc:
            logger.error("Failed to save lab workbook %s: %s", self.path, exc)
            try:
                tmp.unlink()
            except OSError:
                pass
            raise StorageError(f"Failed to save {self.path}: {exc}", path=self.path, operation="save") from exc

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self.book.close()
        logger.info("Closed lab workbook %s", self.path)

    def __enter__(self) -> "LabWorkbook":
        return self

    def __exit__(self, *exc) -> None:
        self.close()


def _entry_value(text: str):
    number = to_number(text)
    return number if number is not None else text


class MoistureWriter:
    def __init__(self, book: LabWorkbook, index: CellIndex):
        self.book = book
        self.index = index

    def location(self, boring: str, depth: str) -> CellLocation:
        return self.index.lookup(boring, depth)

    def write_sample(self, boring: str, depth: str, can_no: str, can_weight: str, wet_weight: str) -> CellLocation:
        location = self.index.lookup(boring, depth)
        ws = self.book[location.sheet]
        ws[location.cell(ROW_CAN_NO)] = can_no
        ws[location.cell(ROW_WET_AND_CAN)] = _entry_value(wet_weight)
        ws[location.cell(ROW_CAN_WEIGHT)] = _entry_value(can_weight)
        self.book.save()
        logger.info(
            "Wrote moisture sample to %s column %s: Boring=%s, Depth=%s, Can#=%s, CanWt=%s, WetWt=%s",
            location.sheet, location.column, boring, depth, can_no, can_weight, wet_weight,
        )
        return location


class SoilSuctionWriter:
    def __init__(self, book: LabWorkbook, index: CellIndex, export=None):
        self.book = book
        self.index = index
        self.export = export

    def location(self, boring: str, depth: str) -> CellLocation:
        return self.index.lookup(boring, depth)

    def write_sample(
        self, boring: str, depth: str, suction_can_no: str, on: Optional[date] = None
    ) -> CellLocation:
        location = self.index.lookup(boring, depth)
        ws = self.book[location.sheet]
        ws[location.cell(column=SUCTION_CAN_COLUMN)] = suction_can_no
        self.book.save()
        logger.info(
            "Wrote soil suction can number to %s row %s: Boring=%s, Depth=%s, SuctionCan#=%s",
            location.sheet, location.row, boring, depth, suction_can_no,
        )
        if self.export is not None:
            self.export.append(boring, depth, suction_can_no, on=on)
        return location
