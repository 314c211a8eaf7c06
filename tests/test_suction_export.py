from __future__ import annotations

from datetime import date
from pathlib import Path

import pytest
from openpyxl import load_workbook

from lms.app.suction_export import HEADERS, SuctionExport, page_name


@pytest.fixture()
def export_path(tmp_path: Path) -> Path:
    return tmp_path / "SoilSuction_25490.xlsx"


def _fill(export: SuctionExport, count: int, start: int = 0) -> None:
    for n in range(start, start + count):
        export.append("B-1", f"{n}-{n + 1}", f"S{n}", on=date(2025, 5, 1))


def test_new_export_has_styled_header(export_path: Path) -> None:
    SuctionExport(export_path).open().close()
    wb = load_workbook(export_path)
    assert wb.sheetnames == ["Soil Suction"]
    ws = wb["Soil Suction"]
    assert tuple(c.value for c in ws[1]) == HEADERS
    assert ws["A1"].font.bold
    assert ws["A1"].fill.start_color.rgb.endswith("CCCCCC")
    assert ws.column_dimensions["H"].width == 12
    wb.close()


def test_38_samples_spill_onto_a_second_page(export_path: Path) -> None:
    export = SuctionExport(export_path, page_capacity=37).open()
    _fill(export, 38)
    export.close()

    wb = load_workbook(export_path)
    assert wb.sheetnames == ["Soil Suction", "Soil Suction 2"]
    first, second = wb["Soil Suction"], wb["Soil Suction 2"]
    assert first.max_row == 38
    assert first["D38"].value == "S36"
    assert tuple(c.value for c in second[1]) == HEADERS
    assert second["A2"].value == "05/01/2025"
    assert second["D2"].value == "S37"
    assert second["A3"].value is None
    wb.close()


def test_reopen_resumes_after_last_row(export_path: Path) -> None:
    export = SuctionExport(export_path, page_capacity=5).open()
    _fill(export, 7)
    export.close()

    reopened = SuctionExport(export_path, page_capacity=5).open()
    assert reopened.page == 2
    assert reopened.current_page_name == page_name(2)
    assert reopened.next_row == 4
    sheet, row = reopened.append("B-2", "0-2", "S99")
    reopened.close()
    assert (sheet, row) == ("Soil Suction 2", 4)


def test_reopen_with_full_last_page_opens_next_page_on_append(export_path: Path) -> None:
    export = SuctionExport(export_path, page_capacity=3).open()
    _fill(export, 3)
    export.close()

    reopened = SuctionExport(export_path, page_capacity=3).open()
    assert reopened.page_full
    sheet, row = reopened.append("B-2", "0-2", "S99")
    reopened.close()
    assert (sheet, row) == ("Soil Suction 2", 2)


def test_append_opens_lazily(export_path: Path) -> None:
    export = SuctionExport(export_path)
    assert export.append("B-1", "0-2", "S1") == ("Soil Suction", 2)
    export.close()
    assert export_path.exists()


def test_page_names() -> None:
    assert page_name(1) == "Soil Suction"
    assert page_name(3) == "Soil Suction 3"
