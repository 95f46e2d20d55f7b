"""
Cadences API Endpoints
Operator trigger for running a cadence immediately
"""
import logging

from fastapi import APIRouter, Depends, HTTPException

from outreach.api.v1.dependencies import get_scheduler
from outreach.workers.orchestration_scheduler import CADENCES, CadenceRunResult, OrchestrationScheduler

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/cadences", tags=["cadences"])


@router.get("/")
async def list_cadences(scheduler: OrchestrationScheduler = Depends(get_scheduler)):
    return {
        "cadences": [
            {
                "name": name,
                "running": scheduler.is_running(name),
                "last_run": scheduler.last_results.get(name),
            }
            for name in CADENCES
        ]
    }


@router.post("/{name}/run")
async def run_cadence(
    name: str,
    scheduler: OrchestrationScheduler = Depends(get_scheduler),
) -> CadenceRunResult:
    """Run a cadence now. Returns skipped=true if it is already running."""
    if name not in CADENCES:
        raise HTTPException(status_code=404, detail=f"Unknown cadence: {name}")

    logger.info(f"Manual run of cadence {name}")
    return await scheduler.run_cadence(name)
