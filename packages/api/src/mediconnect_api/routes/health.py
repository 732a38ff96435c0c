"""Liveness and readiness probe."""

from fastapi import APIRouter, Depends
from mediconnect_db import DatabaseService, get_db_service

router = APIRouter()


@router.get("/")
async def health(db: DatabaseService = Depends(get_db_service)) -> dict:
    """Report service status. Degraded when the database is unreachable."""
    database_ok = await db.health_check()
    return {
        "status": "ok" if database_ok else "degraded",
        "database": database_ok,
    }
