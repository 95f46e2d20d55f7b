"""
API Dependencies
Shared dependencies for the engine container and the cadence scheduler
"""
from fastapi import Depends, Request

from outreach.services.engine import OutreachEngine, get_engine
from outreach.workers.orchestration_scheduler import OrchestrationScheduler


def get_outreach_engine() -> OutreachEngine:
    """Process-wide engine (overridden in tests)."""
    return get_engine()


def get_scheduler(
    request: Request,
    engine: OutreachEngine = Depends(get_outreach_engine),
) -> OrchestrationScheduler:
    """
    Scheduler started by the app lifespan, or a runner over the same engine
    when the background scheduler is disabled.
    """
    scheduler = getattr(request.app.state, "scheduler", None)
    if scheduler is None:
        scheduler = OrchestrationScheduler(engine)
        request.app.state.scheduler = scheduler
    return scheduler
