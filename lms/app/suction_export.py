"""Paginated soil suction export workbook.

Each page is a sheet holding a header row plus at most ``page_capacity``
data rows.  The cursor (current page, next free row) is never stored; it is
rebuilt from the last page whenever the file is reopened.
"""
from __future__ import annotations

import logging
import os
from datetime import date
from pathlib import Path
from typing import Optional

from openpyxl import Workbook, load_workbook
from openpyxl.styles import Font, PatternFill

from .errors import StorageError

logger = logging.getLogger(__name__)

PAGE_CAPACITY = 37
BASE_PAGE_NAME = "Soil Suction"
HEADERS = ("Date", "Boring", "Depth", "Can No", "Top", "Bottom", "Top", "Bottom")
COLUMN_WIDTH = 12
HEADER_FONT = Font(bold=True)
HEADER_FILL = PatternFill(fill_type="solid", start_color="CCCCCC", end_color="CCCCCC")
EXPORT_DATE_FORMAT = "%m/%d/%Y"


def page_name(page: int) -> str:
    return BASE_PAGE_NAME if page <= 1 else f"{BASE_PAGE_NAME} {page}"


def _style_page(ws) -> None:
    for col, title in enumerate(HEADERS, start=1):
        cell = ws.cell(row=1, column=col, value=title)
        cell.font = HEADER_FONT
        cell.fill = HEADER_FILL
        ws.column_dimensions[cell.column_letter].width = COLUMN_WIDTH


def _last_used_row(ws) -> int:
    for row in range(ws.max_row, 0, -1):
        if any(ws.cell(row=row, column=col).value not in (None, "") for col in range(1, len(HEADERS) + 1)):
            return row
    return 0


class SuctionExport:
    def __init__(self, path: Path, page_capacity: int = PAGE_CAPACITY):
        if page_capacity < 1:
            raise ValueError("page_capacity must be at least 1")
        self.path = Path(path)
        self.page_capacity = page_capacity
        self.book: Optional[Workbook] = None
        self.page = 1
        self.next_row = 2

    def open(self) -> "SuctionExport":
        if self.path.exists():
            try:
                self.book = load_workbook(self.path)
            except Exception as exc:
                logger.error("Failed to open soil suction export %s: %s", self.path, exc)
                raise StorageError(f"Failed to open {self.path}: {exc}", path=self.path, operation="open") from exc
            self.page = len(self.book.sheetnames)
            ws = self.book.worksheets[-1]
            self.next_row = max(_last_used_row(ws), 1) + 1
            logger.info(
                "Opened soil suction export %s, page %d, next row %d", self.path, self.page, self.next_row
            )
        else:
            self.book = Workbook()
            ws = self.book.active
            ws.title = page_name(1)
            _style_page(ws)
            self.page, self.next_row = 1, 2
            self._save()
            logger.info("Created soil suction export %s", self.path)
        return self

    @property
    def page_full(self) -> bool:
        return self.next_row > self.page_capacity + 1

    @property
    def current_page_name(self) -> str:
        assert self.book is not None
        return self.book.sheetnames[-1]

    def _new_page(self) -> None:
        assert self.book is not None
        self.page += 1
        ws = self.book.create_sheet(page_name(self.page))
        _style_page(ws)
        self.next_row = 2
        logger.info("Created new page '%s' in soil suction export", ws.title)

    def append(self, boring: str, depth: str, can_no: str, on: Optional[date] = None) -> tuple[str, int]:
        if self.book is None:
            self.open()
        assert self.book is not None
        if self.page_full:
            self._new_page()
        ws = self.book.worksheets[-1]
        row = self.next_row
        ws.cell(row=row, column=1, value=(on or date.today()).strftime(EXPORT_DATE_FORMAT))
        ws.cell(row=row, column=2, value=boring)
        ws.cell(row=row, column=3, value=depth)
        ws.cell(row=row, column=4, value=can_no)
        # Top/Bottom columns stay blank for the bench readings.
        self._save()
        self.next_row += 1
        logger.info("Wrote soil suction to export sheet '%s' row %d", ws.title, row)
        return ws.title, row

    def _save(self) -> None:
        assert self.book is not None
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self.path.with_name(f".{self.path.stem}.saving{self.path.suffix}")
        try:
            self.book.save(tmp)
            os.replace(tmp, self.path)
        except Exception as exc:
            logger.error("Failed to save soil suction export %s: %s", self.path, exc)
            raise StorageError(f"Failed to save {self.path}: {exc}", path=self.path, operation="save") from exc

    def close(self) -> None:
        if self.book is not None:
            self.book.close()
            self.book = None
