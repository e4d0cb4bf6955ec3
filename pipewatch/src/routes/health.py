from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import text

from pipewatch.src.db.database import get_db
from pipewatch.src.routes.deps import get_engine
from pipewatch.src.services.engine import ReconciliationEngine
from pipewatch.src.services.mailer import describe

router = APIRouter(tags=["health"])

@router.get("/health")
async def health_check():
    return {"status": "healthy", "service": "pipewatch"}

@router.get("/health/db")
async def db_health_check(db: AsyncSession = Depends(get_db)):
    try:
        await db.execute(text("SELECT 1"))
        return {"status": "healthy", "database": "connected"}
    except Exception as e:
        return {"status": "unhealthy", "database": str(e)}

@router.get("/health/poller")
async def poller_health_check(engine: ReconciliationEngine = Depends(get_engine)):
    return {
        "status": "healthy",
        "poller": engine.poller.status(),
        "live_listeners": engine.broadcaster.listener_count,
        "mail": describe(engine.mailer),
    }
