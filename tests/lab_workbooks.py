"""Synthetic lab workbooks shaped like the bench templates."""
from __future__ import annotations

from pathlib import Path
from typing import Dict, List, Sequence, Tuple

from openpyxl import Workbook

from lms.app.jobs import TEST_COLUMNS

MC = "Moisture Content"
SS = "Soil Suction"
AL = "Atterberg Limit"

# (boring as written on the form, depth, tests); "" continues the boring above.
MAIN_FORM_ROWS: List[Tuple[str, str, Sequence[str]]] = [
    ("B-1", "0-2", (MC, SS)),
    ("", "2-4", (MC,)),
    ("B-2", "0-2", (AL, MC)),
    ("", "4-6", (MC, SS)),
]

MOISTURE_LAYOUT: Dict[str, List[Tuple[str, str]]] = {
    "Moisture": [("B-1", "0-2"), ("B-1", "2-4")],
    "Moisture2": [("B-2", "0-2"), ("B-2", "4-6")],
}

SUCTION_ROWS: List[Tuple[str, str]] = [("B-1", "0-2"), ("B-2", "4-6")]

_TEST_COLUMN = {name: idx + 1 for idx, name in TEST_COLUMNS}


def build_lab_workbook(
    path: Path,
    job_number: str = "25490",
    project_name: str = "Test Project",
    rows: Sequence[Tuple[str, str, Sequence[str]]] = MAIN_FORM_ROWS,
    moisture: Dict[str, List[Tuple[str, str]]] = MOISTURE_LAYOUT,
    suction: Sequence[Tuple[str, str]] = SUCTION_ROWS,
) -> Path:
    wb = Workbook()
    form = wb.active
    form.title = "Main Form"
    form["A1"], form["C1"] = "Job No.", job_number
    form["A2"], form["C2"] = "Project Name.", project_name
    form["E2"], form["F2"] = "Engineer.", "JD"
    form["I2"], form["J2"] = "Date", "01/15/2025"
    form["A3"], form["J3"] = "Due Date", "02/01/2025"
    form["A5"], form["B5"] = "Boring", "Depth"
    for offset, (boring, depth, tests) in enumerate(rows):
        row = 7 + offset
        if boring:
            form.cell(row=row, column=1, value=boring)
        form.cell(row=row, column=2, value=depth)
        for test in tests:
            form.cell(row=row, column=_TEST_COLUMN[test], value="x")

    for sheet_name, keys in moisture.items():
        ws = wb.create_sheet(sheet_name)
        ws["A1"] = "MOISTURE CONTENT"
        ws["A9"], ws["A10"] = "Boring No.", "Depth"
        for col, (boring, depth) in enumerate(keys, start=2):
            ws.cell(row=9, column=col, value=boring)
            ws.cell(row=10, column=col, value=depth)

    summary = wb.create_sheet("Moisture Summary")
    summary["B9"], summary["B10"] = "B-9", "9-9"

    ws = wb.create_sheet("Soil Suction")
    ws["A1"] = "SOIL SUCTION"
    ws["B9"], ws["C9"], ws["D9"] = "Boring", "Depth", "Can No"
    for row, (boring, depth) in enumerate(suction, start=10):
        ws.cell(row=row, column=2, value=boring)
        ws.cell(row=row, column=3, value=depth)

    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    wb.save(path)
    return path


def make_project(root: Path, job_number: str = "25490", base_number: str = "", **kwargs) -> Path:
    """Place ``Lab_<job_number>.xlsm`` under ``root/projects/<base_number>/``."""
    base = base_number or job_number.split("_")[0]
    return build_lab_workbook(Path(root) / "projects" / base / f"Lab_{job_number}.xlsm", job_number, **kwargs)
