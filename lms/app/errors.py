from __future__ import annotations

from pathlib import Path
from typing import Any, Optional


class LabDataError(Exception):
    """Base exception for every failure the capture core reports to its caller."""


class NotFoundError(LabDataError):
    """Raised when a keyed lookup (mapping, backup record, oven can) has no match."""

    def __init__(self, message: str, key: Optional[str] = None):
        super().__init__(message)
        self.key = key


class NoMappingError(NotFoundError):
    """The (boring, depth) pair has no cell in the indexed workbook."""

    def __init__(self, boring: str, depth: str, family: str = ""):
        label = f" on {family} sheets" if family else ""
        super().__init__(f"No cell mapping for {boring}|{depth}{label}", key=f"{boring}|{depth}")
        self.boring = boring
        self.depth = depth
        self.family = family


class RecordNotFoundError(NotFoundError):
    pass


class NotOccupiedError(NotFoundError):
    def __init__(self, can_number: str):
        super().__init__(f"Can {can_number} is not in the oven", key=can_number)
        self.can_number = can_number


class AlreadyOccupiedError(LabDataError):
    """The can number is already registered in the oven ledger."""

    def __init__(self, can_number: str, record: Any = None):
        super().__init__(f"Can {can_number} is already in the oven")
        self.can_number = can_number
        self.record = record


class DuplicateUseError(LabDataError):
    def __init__(self, message: str, can_number: str, field: str):
        super().__init__(message)
        self.can_number = can_number
        self.field = field


class MalformedFileError(LabDataError):
    def __init__(self, message: str, path: Optional[Path] = None):
        super().__init__(message)
        self.path = path


class StorageError(LabDataError):
    """Underlying read/write failure. Always surfaced, never swallowed."""

    def __init__(self, message: str, path: Optional[Path] = None, operation: Optional[str] = None):
        super().__init__(message)
        self.path = path
        self.operation = operation


class ValidationError(LabDataError):
    def __init__(self, message: str, field: Optional[str] = None, value: Any = None):
        super().__init__(message)
        self.field = field
        self.value = value


class UnderweightSampleError(ValidationError):
    """Sample weight is below the recommended minimum; retry with an explicit override."""

    def __init__(self, sample_weight: float, minimum: float):
        super().__init__(
            f"Sample weight {sample_weight:.2f}g is below the recommended {minimum:.0f}g minimum",
            field="wet_weight",
            value=sample_weight,
        )
        self.sample_weight = sample_weight
        self.minimum = minimum


class SessionCompleteError(LabDataError):
    pass
