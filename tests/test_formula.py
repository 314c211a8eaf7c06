from __future__ import annotations

from pathlib import Path

import pytest
from openpyxl import load_workbook

from lms.app.excel import LabWorkbook
from lms.app.formula import compute_moisture, write_dry_weight

from tests.lab_workbooks import build_lab_workbook


def test_compute_moisture() -> None:
    result = compute_moisture(wet_and_can=50.0, can_weight=10.0, dry_and_can=40.0)
    assert result.water_weight == pytest.approx(10.0)
    assert result.dry_soil_weight == pytest.approx(30.0)
    assert result.moisture_content == pytest.approx(33.3333, rel=1e-4)


@pytest.mark.parametrize("dry_and_can", [10.0, 8.0])
def test_non_positive_dry_soil_gives_zero_moisture(dry_and_can: float) -> None:
    result = compute_moisture(wet_and_can=50.0, can_weight=10.0, dry_and_can=dry_and_can)
    assert result.dry_soil_weight <= 0
    assert result.moisture_content == 0.0


def test_write_dry_weight_completes_column(tmp_path: Path) -> None:
    lab = build_lab_workbook(tmp_path / "Lab_25490.xlsm")
    wb = load_workbook(lab, keep_vba=True)
    wb["Moisture"]["C12"] = 50
    wb["Moisture"]["C15"] = "10"
    wb.save(lab)
    wb.close()

    with LabWorkbook(lab) as book:
        result = write_dry_weight(book, "Moisture", "C", 40.0)
    assert result.moisture_content == pytest.approx(100 / 3)

    wb = load_workbook(lab)
    ws = wb["Moisture"]
    assert ws["C13"].value == pytest.approx(40.0)
    assert ws["C14"].value == pytest.approx(10.0)
    assert ws["C16"].value == pytest.approx(30.0)
    assert ws["C17"].value == pytest.approx(33.3333, rel=1e-4)
    wb.close()


def test_write_dry_weight_with_blank_cells_uses_zero(tmp_path: Path) -> None:
    lab = build_lab_workbook(tmp_path / "Lab_25490.xlsm")
    with LabWorkbook(lab) as book:
        result = write_dry_weight(book, "Moisture", "B", 40.0)
    assert result.water_weight == pytest.approx(-40.0)
    assert result.dry_soil_weight == pytest.approx(40.0)
    assert result.moisture_content == pytest.approx(-100.0)
