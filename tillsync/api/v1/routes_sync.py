# tillsync/api/v1/routes_sync.py
from fastapi import APIRouter, Depends
from pydantic import BaseModel

from tillsync.api.deps import get_engine
from tillsync.domain.reports.service import DailySummary, daily_summary
from tillsync.domain.sync.engine import ReconciliationEngine
from tillsync.domain.sync.schemas import SyncStatus


router = APIRouter(prefix="/api/v1", tags=["sync"])


class DrainOut(BaseModel):
    attempted: int
    confirmed: int
    skipped: int
    failed: int
    pending: int


class InitSyncOut(BaseModel):
    ok: bool


@router.get("/sync/status", response_model=SyncStatus)
async def sync_status_endpoint(engine: ReconciliationEngine = Depends(get_engine)):
    return engine.status()


@router.post("/sync/drain", response_model=DrainOut)
async def drain_endpoint(engine: ReconciliationEngine = Depends(get_engine)):
    report = await engine.drain()
    return DrainOut(
        attempted=report.attempted,
        confirmed=report.confirmed,
        skipped=report.skipped,
        failed=len(report.failures),
        pending=len(engine.queue),
    )


@router.post("/sync/online", response_model=SyncStatus, status_code=202)
async def online_endpoint(engine: ReconciliationEngine = Depends(get_engine)):
    # host-side "back online" event
    engine.notify_online()
    return engine.status()


@router.post("/sync/init", response_model=InitSyncOut)
async def init_sync_endpoint(engine: ReconciliationEngine = Depends(get_engine)):
    return InitSyncOut(ok=await engine.init_sync())


@router.get("/reports/today", response_model=DailySummary)
async def today_report_endpoint(engine: ReconciliationEngine = Depends(get_engine)):
    return daily_summary(engine.orders)
