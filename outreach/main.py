"""
FastAPI Application Entry Point
"""
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from outreach.api.v1.routes import api_router
from outreach.core.config import get_settings

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan - startup and shutdown events.

    Startup:
    - Validates all provider configurations
    - Builds the outreach engine
    - Starts the orchestration scheduler (unless disabled)

    Shutdown:
    - Stops the scheduler
    - Closes provider clients
    """
    # ========================
    # STARTUP
    # ========================
    logger.info("Starting Outreach Engine...")

    settings = get_settings()
    strict_validation = settings.environment == "production"

    try:
        from outreach.core.validation import validate_providers_on_startup
        validate_providers_on_startup(settings, strict=strict_validation)
    except RuntimeError as e:
        if strict_validation:
            logger.error(f"Startup failed: {e}")
            raise
        logger.warning(f"Configuration warnings (non-fatal in {settings.environment}): {e}")

    from outreach.services.engine import get_engine
    from outreach.workers.orchestration_scheduler import OrchestrationScheduler

    engine = get_engine()
    await engine.voice_provider.initialize()

    scheduler = OrchestrationScheduler(engine)
    app.state.scheduler = scheduler
    if settings.scheduler_enabled:
        scheduler.start()
    else:
        logger.info("Background scheduler not started; run outreach-scheduler or set SCHEDULER_ENABLED=true")

    logger.info("Outreach Engine started successfully")

    yield  # Application is running

    # ========================
    # SHUTDOWN
    # ========================
    logger.info("Shutting down Outreach Engine...")

    try:
        scheduler.shutdown()
        await engine.close()
    except Exception as e:
        logger.error(f"Error during shutdown: {e}")

    logger.info("Outreach Engine shutdown complete")


app = FastAPI(
    title="Outreach Engine",
    description="Lead scoring, compliant multi-channel outreach and inbound support automation",
    version="1.0.0",
    lifespan=lifespan
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Configure in production
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include API routes
app.include_router(api_router, prefix=get_settings().api_prefix)


@app.get("/")
async def root():
    return {"message": "Outreach Engine API", "status": "running"}


if __name__ == "__main__":
    import uvicorn
    logging.basicConfig(
        level=logging.INFO,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )
    uvicorn.run(app, host="0.0.0.0", port=8000)
