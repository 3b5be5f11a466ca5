"""System API: health check, monitor status, manual tick, start/stop."""

from fastapi import APIRouter, Depends

from automator.api.deps import get_broker, get_monitor
from automator.engine.trade_monitor import TradeMonitor
from automator.services.oanda_client import OandaClient

router = APIRouter(prefix="/api/system", tags=["system"])


@router.get("/health")
def health_check(broker: OandaClient = Depends(get_broker)):
    return {"status": "ok", "broker_mode": "mock" if broker.mock_mode else "live"}


@router.get("/monitor")
def monitor_status(monitor: TradeMonitor = Depends(get_monitor)):
    """Current monitor state with job details and the last tick report."""
    return monitor.status()


@router.post("/monitor/tick")
async def trigger_tick(monitor: TradeMonitor = Depends(get_monitor)):
    """Run one monitor pass now. Skipped if a tick is already in flight."""
    report = await monitor.run_tick()
    return {
        "skipped": report.skipped,
        "evaluated": report.evaluated,
        "transitions": report.transitions,
        "errors": report.errors,
    }


@router.post("/monitor/start")
async def start_monitor(monitor: TradeMonitor = Depends(get_monitor)):
    monitor.start()
    return {"running": monitor.running}


@router.post("/monitor/stop")
async def stop_monitor(monitor: TradeMonitor = Depends(get_monitor)):
    monitor.stop()
    return {"running": monitor.running}
