"""
Ticketflow - Main Application
=============================

Workflow configuration and SLA tracking service.

Modules:
- Workflow Builder: Status registry, workflow graphs and template cloning
- SLA Tracking: Response/resolution clocks, escalation split, breach reports

Clean Architecture Layers:
- Interfaces: FastAPI controllers
- Application: Services and DTOs
- Domain: Entities, value objects and the pure SLA engine
- Infrastructure: Database, config watcher, scheduler, metrics export
"""

from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware

# Configuration and Core
from ticketflow.config import settings
from ticketflow.core import ApplicationException

# Infrastructure
from ticketflow.infrastructure.database import close_database, create_tables, init_database

# SLA Module - External services
from ticketflow.sla.infrastructure.external import (
    BreachSnapshotJob,
    SLAScheduler,
    sla_config_manager,
)

# Module Routers
from ticketflow.sla.interfaces import sla_router
from ticketflow.workflow.interfaces import workflow_router

# Shared
from ticketflow.shared.api.middleware import (
    CorrelationIDMiddleware,
    LoggingMiddleware,
    application_exception_handler,
    global_exception_handler,
)
from ticketflow.shared.infrastructure.grafana import init_grafana_exporter
from ticketflow.shared.infrastructure.logging import get_logger, setup_logging

logger = get_logger(__name__)

# Global service instances
sla_scheduler = None


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator:
    """
    Application lifespan manager.

    STARTUP:
    1. Setup structured logging
    2. Initialize database
    3. Create database tables
    4. Load SLA configuration and watch the file
    5. Initialize Grafana exporter
    6. Start breach snapshot scheduler

    SHUTDOWN:
    1. Stop scheduler
    2. Stop config watcher
    3. Close database connections
    """
    global sla_scheduler

    # === STARTUP ===
    setup_logging(settings.log_level, settings.environment)
    logger.info("Starting Ticketflow", extra={
        "version": settings.app_version,
        "environment": settings.environment
    })

    init_database()

    # Create tables (for development - use Alembic in production)
    await create_tables()

    logger.info("Loading SLA configuration", extra={"path": str(settings.sla_config_path)})
    sla_config_manager.load(settings.sla_config_path)
    sla_config_manager.start_watching()

    if settings.grafana_host and settings.grafana_api_key and settings.grafana_instance_id:
        init_grafana_exporter(
            host=settings.grafana_host,
            api_key=settings.grafana_api_key,
            instance_id=settings.grafana_instance_id
        )

    if settings.sla_report_interval > 0:
        sla_scheduler = SLAScheduler(interval_seconds=settings.sla_report_interval)
        await sla_scheduler.start(BreachSnapshotJob(sla_config_manager))

    app.state.settings = settings
    logger.info("Ticketflow started successfully")

    yield  # Application runs here

    # === SHUTDOWN ===
    logger.info("Shutting down Ticketflow")

    if sla_scheduler:
        await sla_scheduler.stop()
        sla_scheduler = None

    sla_config_manager.stop_watching()

    await close_database()

    logger.info("Ticketflow shutdown complete")


# Create FastAPI application
app = FastAPI(
    title="Ticketflow API",
    description="""
    ## Workflow Configuration & SLA Tracking

    ---

    ### Workflow Builder

    **Endpoints:**
    - `GET/POST /workflow/statuses` - Status registry
    - `GET/POST /workflow/graphs` - Workflow graphs (templates and instances)
    - `POST /workflow/graphs/{id}/nodes` - Bind a status into a graph
    - `POST /workflow/graphs/{id}/transitions` - Add a guarded transition
    - `POST /workflow/templates/{id}/clone` - Clone a template into an instance

    ---

    ### SLA Tracking

    **Endpoints:**
    - `POST /sla/tickets` - Ingest ticket history for SLA tracking
    - `GET /sla/tickets/{id}` - Evaluate a single ticket
    - `POST /sla/actors` - Register actor names and support tiers
    - `GET /sla/report` - Breach report with per-agent/priority/day breakdowns

    **Default Resolution Targets (Minutes):**

    | Priority | Resolution | Response |
    |----------|-----------|----------|
    | Critical | 60        | 15       |
    | Urgent   | 60        | 15       |
    | High     | 240       | 60       |
    | Medium   | 480       | 120      |
    | Low      | 960       | 240      |

    *Response target = resolution target / 4*
    """,
    version=settings.app_version,
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan
)

# === CORS Middleware ===
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# === Custom Middleware (from shared) ===
app.add_middleware(LoggingMiddleware)
app.add_middleware(CorrelationIDMiddleware)
app.add_exception_handler(ApplicationException, application_exception_handler)
app.add_exception_handler(Exception, global_exception_handler)

# === Include Module Routers ===
app.include_router(workflow_router)
app.include_router(sla_router)


# === Health Check Endpoint ===

@app.get("/health", tags=["Health"], responses={
    200: {
        "description": "Service is healthy",
        "content": {
            "application/json": {
                "example": {
                    "status": "healthy",
                    "version": "1.0.0",
                    "environment": "development",
                    "checks": {
                        "sla_config": "loaded",
                        "sla_scheduler": "running"
                    }
                }
            }
        }
    }
})
async def health_check(request: Request):
    """
    Health check endpoint for load balancers and orchestrators.

    Returns service health status including:
    - SLA configuration status
    - Scheduler state
    """
    try:
        sla_config_manager.get_config()
        config_state = "loaded"
    except RuntimeError:
        config_state = "not_loaded"

    checks = {
        "sla_config": config_state,
        "sla_scheduler": "running" if sla_scheduler and sla_scheduler.is_running else "stopped",
    }

    return {
        "status": "healthy",
        "version": settings.app_version,
        "environment": settings.environment,
        "checks": checks
    }


@app.get("/", tags=["Root"])
async def root():
    """Root endpoint with API information."""
    return {
        "service": "Ticketflow",
        "version": settings.app_version,
        "architecture": "Clean Architecture / Modular Monolith",
        "docs": "/docs",
        "health": "/health",
        "modules": {
            "workflow": {"prefix": "/workflow"},
            "sla": {"prefix": "/sla"}
        }
    }


# === Development Entry Point ===

if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "ticketflow.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.environment == "development",
        log_level="info"
    )
