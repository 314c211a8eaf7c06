from __future__ import annotations

import logging
import threading
from contextlib import contextmanager
from typing import Dict, Iterator, List, Optional

from ..app.config import LabSettings, get_lab_settings
from ..app.errors import NotFoundError
from ..app.excel import LabWorkbook
from ..app.jobs import find_job
from ..app.oven import OvenLedger
from ..app.services import CaptureSession

logger = logging.getLogger(__name__)


class SessionRegistry:
    """Open capture sessions keyed by job number, at most one per job.

    Every request that touches a session or the oven ledger runs under the
    registry lock so read-modify-write cycles never interleave.
    """

    def __init__(self, settings: Optional[LabSettings] = None):
        self._lock = threading.RLock()
        self._settings = settings
        self._sessions: Dict[str, CaptureSession] = {}

    def configure(self, settings: LabSettings) -> None:
        with self._lock:
            self.close_all()
            self._settings = settings

    @property
    def settings(self) -> LabSettings:
        if self._settings is None:
            self._settings = get_lab_settings()
        return self._settings

    def ledger(self) -> OvenLedger:
        return OvenLedger(self.settings.oven_ledger_path)

    @contextmanager
    def locked(self) -> Iterator["SessionRegistry"]:
        with self._lock:
            yield self

    def open(self, job_number: str) -> CaptureSession:
        with self._lock:
            session = self._sessions.get(job_number)
            if session is not None and not session.closed:
                return session
            job = find_job(self.settings.projects_dir, job_number)
            session = CaptureSession(job, self.settings, ledger=self.ledger()).open()
            self._sessions[job_number] = session
            return session

    def get(self, job_number: str) -> CaptureSession:
        with self._lock:
            session = self._sessions.get(job_number)
            if session is None or session.closed:
                raise NotFoundError(f"No open capture session for job {job_number}", key=job_number)
            return session

    def book_for(self, job_number: str) -> Optional[LabWorkbook]:
        with self._lock:
            session = self._sessions.get(job_number)
            if session is None or session.closed:
                return None
            return session.book

    def open_jobs(self) -> List[str]:
        with self._lock:
            return [number for number, session in self._sessions.items() if not session.closed]

    def close(self, job_number: str) -> bool:
        with self._lock:
            session = self._sessions.pop(job_number, None)
            if session is None:
                return False
            session.close()
            return True

    def close_all(self) -> None:
        with self._lock:
            for number in list(self._sessions):
                try:
                    self.close(number)
                except Exception as exc:
                    logger.error("Failed to close capture session for job %s: %s", number, exc)


session_registry = SessionRegistry()
