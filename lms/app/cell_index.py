from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Dict, Iterator, List, Optional, Tuple

from openpyxl.utils import get_column_letter

from .cells import cell_text
from .errors import NoMappingError
from .models import CellLocation

logger = logging.getLogger(__name__)

SampleKey = Tuple[str, str]

COLUMN_ORIENTED = "column"
ROW_ORIENTED = "row"


@dataclass(frozen=True)
class SheetFamily:
    """Layout of one family of same-purpose sheets (Moisture, Moisture2, ...).

    Column-oriented families carry boring/depth labels in two header rows and
    one sample per column from ``first_index`` on.  Row-oriented families carry
    them in two columns and one sample per row from ``first_index`` on.
    """

    name: str
    orientation: str
    boring_at: int
    depth_at: int
    first_index: int

    def matches(self, sheet_name: str) -> bool:
        # "Moisture2" belongs to the family, "Moisture Summary" does not.
        if sheet_name == self.name:
            return True
        if not sheet_name.startswith(self.name):
            return False
        return " " not in sheet_name[len(self.name):]


MOISTURE_FAMILY = SheetFamily("Moisture", COLUMN_ORIENTED, boring_at=9, depth_at=10, first_index=2)
SUCTION_FAMILY = SheetFamily("Soil Suction", ROW_ORIENTED, boring_at=2, depth_at=3, first_index=10)


class CellIndex:
    """Lookup from (boring, depth) to the cell block holding that sample."""

    def __init__(self, family: SheetFamily, mapping: Optional[Dict[SampleKey, CellLocation]] = None):
        self.family = family
        self._mapping: Dict[SampleKey, CellLocation] = dict(mapping or {})

    @classmethod
    def scan(cls, book, family: SheetFamily) -> "CellIndex":
        """Build the index from every sheet of ``family`` in workbook order.

        A key seen on two sheets of the family keeps the later sheet's location.
        """
        index = cls(family)
        for sheet_name in book.sheetnames:
            if not family.matches(sheet_name):
                continue
            try:
                entries = list(_scan_sheet(book[sheet_name], family))
            except Exception as exc:
                logger.warning("Skipping %s sheet %s: %s", family.name, sheet_name, exc)
                continue
            for key, location in entries:
                previous = index._mapping.get(key)
                if previous is not None and previous.sheet != location.sheet:
                    logger.warning(
                        "Sample %s|%s mapped on both %s and %s; keeping %s",
                        key[0], key[1], previous.sheet, location.sheet, location.sheet,
                    )
                index._mapping[key] = location
                logger.debug("Mapped sample %s|%s to %s", key[0], key[1], location)
        logger.info("Indexed %d %s sample locations", len(index), family.name)
        return index

    def get(self, boring: str, depth: str) -> Optional[CellLocation]:
        return self._mapping.get((boring.strip(), depth.strip()))

    def lookup(self, boring: str, depth: str) -> CellLocation:
        location = self.get(boring, depth)
        if location is None:
            logger.error("No %s mapping found for sample %s|%s", self.family.name, boring, depth)
            raise NoMappingError(boring, depth, self.family.name)
        return location

    def __contains__(self, key: SampleKey) -> bool:
        return self.get(*key) is not None

    def __len__(self) -> int:
        return len(self._mapping)

    def __iter__(self) -> Iterator[SampleKey]:
        return iter(self._mapping)

    def items(self) -> List[Tuple[SampleKey, CellLocation]]:
        return list(self._mapping.items())

    def as_dict(self) -> Dict[SampleKey, CellLocation]:
        return dict(self._mapping)


def _scan_sheet(ws, family: SheetFamily) -> Iterator[Tuple[SampleKey, CellLocation]]:
    if family.orientation == COLUMN_ORIENTED:
        if ws.max_row < family.depth_at:
            return
        for col in range(family.first_index, ws.max_column + 1):
            boring = cell_text(ws.cell(row=family.boring_at, column=col).value)
            depth = cell_text(ws.cell(row=family.depth_at, column=col).value)
            if boring and depth:
                yield (boring, depth), CellLocation(sheet=ws.title, column=get_column_letter(col))
    elif family.orientation == ROW_ORIENTED:
        if ws.max_column < family.depth_at:
            return
        for row in range(family.first_index, ws.max_row + 1):
            boring = cell_text(ws.cell(row=row, column=family.boring_at).value)
            depth = cell_text(ws.cell(row=row, column=family.depth_at).value)
            if boring and depth:
                yield (boring, depth), CellLocation(sheet=ws.title, row=row)
    else:
        raise ValueError(f"Unknown sheet orientation {family.orientation!r}")
