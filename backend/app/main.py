"""
FastAPI application entry point
"""
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.core.config import settings
from app.api.v1.api import api_router
from app.core.logger import logger
from app.db.database import SessionLocal, init_db
from app.services.scheduler import judgment_sync_scheduler
from app.services.sync_run_tracker import sync_run_tracker

app = FastAPI(
    title=settings.APP_NAME,
    version="1.0.0",
    docs_url="/docs" if settings.DEBUG else None,
    redoc_url="/redoc" if settings.DEBUG else None,
    openapi_url="/openapi.json" if settings.DEBUG else None,
)

# ── Routers ───────────────────────────────────────────────────────────────────
app.include_router(api_router, prefix="/api/v1")

# ── CORS ──────────────────────────────────────────────────────────────────────
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.get("/")
def read_root():
    return {"message": f"{settings.APP_NAME} API is running", "version": "1.0.0", "docs": "/docs"}


@app.get("/health")
def health_check():
    return {"status": "healthy"}


# ── Startup / Shutdown ────────────────────────────────────────────────────────

def _recover_abandoned_runs() -> None:
    """A process that died mid-run leaves its row `running`; fail it once it is stale."""
    db = SessionLocal()
    try:
        recovered = sync_run_tracker.recover_stale_runs(db)
        if recovered:
            logger.info("Marked %d abandoned sync runs as failed", recovered)
    except Exception:
        logger.exception("Stale sync run recovery failed")
    finally:
        db.close()


@app.on_event("startup")
async def startup_event():
    logger.info("%s API started", settings.APP_NAME)
    init_db()
    _recover_abandoned_runs()
    if settings.JUDGMENT_SYNC_SCHEDULER_ENABLED:
        judgment_sync_scheduler.start()
    else:
        logger.info("Judgment sync scheduler disabled")


@app.on_event("shutdown")
async def shutdown_event():
    logger.info("%s API shutdown", settings.APP_NAME)
    judgment_sync_scheduler.shutdown()
