from __future__ import annotations

from datetime import date
from pathlib import Path

import pytest
from openpyxl import load_workbook

from lms.app.cell_index import MOISTURE_FAMILY, SUCTION_FAMILY, CellIndex
from lms.app.errors import NoMappingError, StorageError
from lms.app.excel import LabWorkbook, MoistureWriter, SoilSuctionWriter
from lms.app.suction_export import SuctionExport

from tests.lab_workbooks import build_lab_workbook


@pytest.fixture()
def lab_path(tmp_path: Path) -> Path:
    return build_lab_workbook(tmp_path / "Lab_25490.xlsm")


def test_moisture_write_lands_under_header_rows(lab_path: Path) -> None:
    with LabWorkbook(lab_path) as book:
        writer = MoistureWriter(book, CellIndex.scan(book, MOISTURE_FAMILY))
        location = writer.write_sample("B-2", "4-6", "C12", "15.2", "180.5")
    assert location.sheet == "Moisture2"
    assert location.column == "C"

    wb = load_workbook(lab_path)
    ws = wb["Moisture2"]
    assert ws["C11"].value == "C12"
    assert ws["C12"].value == pytest.approx(180.5)
    assert ws["C15"].value == pytest.approx(15.2)
    assert ws["C13"].value is None
    wb.close()


def test_reopened_index_finds_the_same_location(lab_path: Path) -> None:
    with LabWorkbook(lab_path) as book:
        writer = MoistureWriter(book, CellIndex.scan(book, MOISTURE_FAMILY))
        written = writer.write_sample("B-1", "2-4", "7", "10", "150")

    with LabWorkbook(lab_path) as book:
        again = CellIndex.scan(book, MOISTURE_FAMILY).lookup("B-1", "2-4")
    assert again == written


def test_moisture_write_without_mapping_touches_nothing(lab_path: Path) -> None:
    before = lab_path.read_bytes()
    with LabWorkbook(lab_path) as book:
        writer = MoistureWriter(book, CellIndex.scan(book, MOISTURE_FAMILY))
        with pytest.raises(NoMappingError):
            writer.write_sample("B-8", "0-2", "7", "10", "150")
    assert lab_path.read_bytes() == before


def test_suction_write_fills_can_column_and_export(lab_path: Path, tmp_path: Path) -> None:
    export = SuctionExport(tmp_path / "SoilSuction_25490.xlsx").open()
    with LabWorkbook(lab_path) as book:
        writer = SoilSuctionWriter(book, CellIndex.scan(book, SUCTION_FAMILY), export=export)
        location = writer.write_sample("B-2", "4-6", "S44", on=date(2025, 3, 4))
    export.close()
    assert location.row == 11

    wb = load_workbook(lab_path)
    assert wb["Soil Suction"]["D11"].value == "S44"
    wb.close()

    exported = load_workbook(tmp_path / "SoilSuction_25490.xlsx")
    ws = exported["Soil Suction"]
    assert [c.value for c in ws[2]][:4] == ["03/04/2025", "B-2", "4-6", "S44"]
    exported.close()


def test_writers_share_one_save_unit(lab_path: Path) -> None:
    with LabWorkbook(lab_path) as book:
        moisture = MoistureWriter(book, CellIndex.scan(book, MOISTURE_FAMILY))
        suction = SoilSuctionWriter(book, CellIndex.scan(book, SUCTION_FAMILY))
        moisture.write_sample("B-1", "0-2", "A1", "10", "200")
        suction.write_sample("B-1", "0-2", "S1")

    wb = load_workbook(lab_path)
    assert wb["Moisture"]["B11"].value == "A1"
    assert wb["Soil Suction"]["D10"].value == "S1"
    wb.close()


def test_closed_workbook_refuses_to_save(lab_path: Path) -> None:
    book = LabWorkbook(lab_path)
    book.close()
    book.close()
    assert book.closed
    with pytest.raises(StorageError):
        book.save()


def test_missing_workbook_is_a_storage_error(tmp_path: Path) -> None:
    with pytest.raises(StorageError) as excinfo:
        LabWorkbook(tmp_path / "Lab_missing.xlsm")
    assert excinfo.value.operation == "open"
