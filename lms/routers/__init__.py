from __future__ import annotations

from fastapi import APIRouter

from . import capture, jobs, oven

router = APIRouter()
router.include_router(jobs.router)
router.include_router(capture.router)
router.include_router(oven.router)
