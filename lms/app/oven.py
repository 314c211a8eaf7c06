"""Global ledger of cans currently drying in the oven.

A can number is unique across the whole ledger regardless of job.  Every
mutation reloads the file, applies the change and rewrites it.
"""
from __future__ import annotations

import logging
import threading
from pathlib import Path
from typing import List, Optional, Tuple

from .errors import AlreadyOccupiedError, MalformedFileError, NotOccupiedError
from .models import OvenCan, OvenLedgerFile, now_stamp
from .session_store import read_model, write_model

logger = logging.getLogger(__name__)


class OvenLedger:
    _lock = threading.RLock()

    def __init__(self, path: Path):
        self.path = Path(path)

    def load(self) -> OvenLedgerFile:
        try:
            ledger = read_model(self.path, OvenLedgerFile)
        except MalformedFileError as exc:
            logger.warning("Oven ledger %s is corrupt, starting empty: %s", self.path, exc)
            ledger = None
        return ledger if ledger is not None else OvenLedgerFile(cans=[])

    def _save(self, ledger: OvenLedgerFile) -> None:
        ledger.last_updated = now_stamp()
        write_model(self.path, ledger)

    def add(self, can: OvenCan) -> OvenCan:
        with self._lock:
            ledger = self.load()
            for existing in ledger.cans:
                if existing.can_number == can.can_number:
                    raise AlreadyOccupiedError(can.can_number, record=existing)
            ledger.cans.append(can)
            self._save(ledger)
        logger.info(
            "Added can %s to oven (job %s, %s|%s)", can.can_number, can.job_number, can.boring_number, can.depth
        )
        return can

    def remove(self, can_number: str) -> OvenCan:
        """Take the can out of the oven and return its record."""
        with self._lock:
            ledger = self.load()
            for idx, existing in enumerate(ledger.cans):
                if existing.can_number == can_number:
                    removed = ledger.cans.pop(idx)
                    break
            else:
                raise NotOccupiedError(can_number)
            self._save(ledger)
        logger.info("Removed can %s from oven (job %s)", removed.can_number, removed.job_number)
        return removed

    def restore(self, can: OvenCan) -> None:
        """Put back a record taken out by ``remove`` whose follow-up failed."""
        with self._lock:
            ledger = self.load()
            if any(existing.can_number == can.can_number for existing in ledger.cans):
                logger.warning("Can %s was re-registered before it could be restored", can.can_number)
                return
            ledger.cans.append(can)
            self._save(ledger)
        logger.info("Restored can %s to oven", can.can_number)

    def find(self, can_number: str) -> Optional[OvenCan]:
        for can in self.load().cans:
            if can.can_number == can_number:
                return can
        return None

    def query(self, can_number: str) -> Tuple[bool, Optional[OvenCan]]:
        can = self.find(can_number)
        return can is not None, can

    def list_cans(self) -> List[OvenCan]:
        return list(self.load().cans)

    def count(self) -> int:
        return len(self.load().cans)
