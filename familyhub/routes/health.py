from __future__ import annotations

import os
from fastapi import APIRouter

from .. import db
from ..config import get_settings


router = APIRouter(tags=["health"])


@router.get("/health")
def health():
    s = get_settings()
    return {
        "status": "ok",
        "service": s.app_name,
        "env": s.environment,
        "database": "configured" if db.SessionLocal is not None else "missing",
        "cache": "redis" if s.redis_url else "memory",
        "pid": os.getpid(),
    }
