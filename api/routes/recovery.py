"""
Recovery endpoints.

GET  /api/v1/recovery          → pending count, ledger summary, recent notices
POST /api/v1/recovery/run      → run a recovery pass now ("Recover Data")
POST /api/v1/recovery/online   → connectivity restored; rescan after settling
"""

from fastapi import APIRouter, Depends

from api.models import RecoveryStatusOut
from api.services import Services, get_services

router = APIRouter(prefix="/recovery", tags=["recovery"])


@router.get("", response_model=RecoveryStatusOut, summary="Recovery status")
def recovery_status(services: Services = Depends(get_services)) -> RecoveryStatusOut:
    """Ledger metadata only; payloads stay on the device."""
    scan = services.ledger.scan()
    monitor = services.monitor
    return RecoveryStatusOut(
        pending=len(scan.entries),
        is_recovering=monitor.is_recovering,
        entries=[e.summary() for e in scan.entries],
        malformed=scan.malformed,
        notices=[n.to_dict() for n in monitor.notices],
        last_report=monitor.last_report.to_dict() if monitor.last_report else None,
    )


@router.post("/run", summary="Run a recovery pass now")
def run_recovery(services: Services = Depends(get_services)) -> dict:
    """Returns ``status: already_running`` if a pass is in progress."""
    return services.monitor.recover().to_dict()


@router.post("/online", status_code=202, summary="Report that connectivity returned")
def report_online(services: Services = Depends(get_services)) -> dict:
    services.monitor.notify_online()
    return {
        "status": "scheduled",
        "scan_in_seconds": services.config.recovery_settle_seconds,
    }
