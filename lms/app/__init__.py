from __future__ import annotations

from .config import LabSettings, get_lab_settings, load_config
from .errors import LabDataError
from .services import CaptureSession, SampleEntry, record_dry_weight

__all__ = [
    "CaptureSession",
    "LabDataError",
    "LabSettings",
    "SampleEntry",
    "get_lab_settings",
    "load_config",
    "record_dry_weight",
]
