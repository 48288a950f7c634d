"""
Activity Scheduler API Server - REST API over the scheduling engine.
"""
# ruff: noqa: S104
# S104: Development server binding (guarded by __name__ check)

import logging
import os

import uvicorn
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from activity_scheduler import config_store, paths
from activity_scheduler.observability import CorrelationIdMiddleware, configure_logging
from activity_scheduler.task_store import TaskNotFound
from api.scheduling_router import router as scheduling_router
from api.task_router import router as task_router

logger = logging.getLogger(__name__)

# FastAPI app initialization
app = FastAPI(
    title="Activity Scheduler API",
    description="Capacity-constrained scheduling, stage gates and rescheduling",
    version="1.0.0",
)

# CORS middleware - configurable via CORS_ORIGINS env var
cors_origins_env = os.getenv("CORS_ORIGINS", "*")
cors_origins = (
    ["*"] if cors_origins_env == "*" else [o.strip() for o in cors_origins_env.split(",")]
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.add_middleware(CorrelationIdMiddleware)

app.include_router(scheduling_router, prefix="/api")
app.include_router(task_router, prefix="/api")


@app.exception_handler(TaskNotFound)
async def task_not_found_handler(request: Request, exc: TaskNotFound):
    return JSONResponse(status_code=404, content={"detail": str(exc)})


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    logger.error(f"Unhandled error on {request.url.path}: {exc}", exc_info=True)
    return JSONResponse(status_code=500, content={"detail": "Internal server error"})


@app.on_event("startup")
async def log_startup():
    """Log where config and data come from."""
    logger.info("=== Activity Scheduler Startup ===")
    logger.info(f"Config path: {paths.config_path()}")
    logger.info(f"DB path: {paths.db_path()}")
    valid, errors = config_store.validate_config(config_store.load_config())
    if not valid:
        for error in errors:
            logger.warning(f"Config: {error}")


@app.get("/api/health")
async def health():
    return {"status": "ok"}


# ==== Main ====


def main():
    """Run the server."""
    configure_logging(os.environ.get("LOG_LEVEL", "INFO"))
    port = int(os.environ.get("PORT", 8420))
    uvicorn.run(app, host="0.0.0.0", port=port)


if __name__ == "__main__":
    main()
