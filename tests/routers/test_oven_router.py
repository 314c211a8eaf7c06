from __future__ import annotations

import pytest
from fastapi import HTTPException
from openpyxl import load_workbook

from lms.app.config import LabSettings
from lms.app.jobs import job_paths
from lms.app.models import OvenCan
from lms.app.oven import OvenLedger
from lms.app.services import SampleEntry
from lms.routers import capture as capture_router
from lms.routers import oven as oven_router
from lms.services.session_registry import session_registry

from tests.lab_workbooks import make_project


@pytest.fixture(autouse=True)
def isolate_registry(tmp_path, monkeypatch):
    make_project(tmp_path, "25490")
    settings = LabSettings.for_root(tmp_path)
    monkeypatch.setattr(session_registry, "_settings", settings)
    yield settings
    session_registry.close_all()


def _capture_first_sample() -> None:
    capture_router.open_session("25490")
    capture_router.capture_sample(
        "25490", SampleEntry(can_number="101", can_weight="10", wet_weight="150", suction_can_no="S1")
    )


def test_list_and_query() -> None:
    assert oven_router.list_oven() == {"count": 0, "cans": []}
    _capture_first_sample()

    listing = oven_router.list_oven()
    assert listing["count"] == 1
    assert listing["cans"][0]["can_number"] == "101"

    found = oven_router.query_can("101")
    assert found["in_oven"] is True
    assert found["can"]["moisture_sheet"] == "Moisture"
    assert oven_router.query_can("999") == {"can_number": "999", "in_oven": False, "can": None}


def test_dry_weight_uses_open_session_workbook(isolate_registry: LabSettings) -> None:
    _capture_first_sample()
    payload = oven_router.enter_dry_weight("101", oven_router.DryWeightBody(dry_weight="120"))
    assert payload["ok"] is True
    assert payload["moisture_content"] == pytest.approx(30 / 110 * 100)
    assert oven_router.list_oven()["count"] == 0

    # The session keeps saving through the same handle without losing the dry weight.
    capture_router.capture_sample("25490", SampleEntry(can_number="102", can_weight="10", wet_weight="150"))
    wb = load_workbook(job_paths(isolate_registry.work_dir, "25490").lab_file)
    assert wb["Moisture"]["B13"].value == pytest.approx(120)
    assert wb["Moisture"]["C11"].value == "102"
    wb.close()


def test_dry_weight_after_session_closed() -> None:
    _capture_first_sample()
    capture_router.close_session("25490")
    payload = oven_router.enter_dry_weight("101", oven_router.DryWeightBody(dry_weight="120"))
    assert payload["dry_soil_weight"] == pytest.approx(110)


def test_dry_weight_errors() -> None:
    with pytest.raises(HTTPException) as excinfo:
        oven_router.enter_dry_weight("404", oven_router.DryWeightBody(dry_weight="120"))
    assert excinfo.value.status_code == 404

    _capture_first_sample()
    with pytest.raises(HTTPException) as excinfo:
        oven_router.enter_dry_weight("101", oven_router.DryWeightBody(dry_weight="dry"))
    assert excinfo.value.status_code == 400
    assert oven_router.query_can("101")["in_oven"] is True


def test_occupied_can_from_other_job_is_409(isolate_registry: LabSettings) -> None:
    OvenLedger(isolate_registry.oven_ledger_path).add(
        OvenCan(
            can_number="101",
            job_number="30001",
            boring_number="B-4",
            depth="2-4",
            moisture_sheet="Moisture",
            moisture_column="E",
        )
    )
    capture_router.open_session("25490")
    with pytest.raises(HTTPException) as excinfo:
        capture_router.capture_sample(
            "25490", SampleEntry(can_number="101", can_weight="10", wet_weight="150", suction_can_no="S1")
        )
    assert excinfo.value.status_code == 409
    assert excinfo.value.detail["can"]["job_number"] == "30001"


def test_manual_removal() -> None:
    _capture_first_sample()
    payload = oven_router.remove_can("101")
    assert payload["can"]["can_number"] == "101"
    with pytest.raises(HTTPException) as excinfo:
        oven_router.remove_can("101")
    assert excinfo.value.status_code == 404
