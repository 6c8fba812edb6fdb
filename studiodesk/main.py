import asyncio
import logging
from contextlib import asynccontextmanager

from arq import create_pool
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

# Import all models to ensure they're registered with SQLAlchemy Base
from . import (
    models,  # noqa: F401
    models_invoice,  # noqa: F401
)
from .clock import SystemClock
from .config import JOB_BACKEND, JOB_MAX_ATTEMPTS, WORKER_POLL_INTERVAL_SECONDS
from .database import (
    ENABLE_QUERY_LOGGING,
    Base,
    QueryMetrics,
    SessionLocal,
    engine,
    install_query_metrics,
    remove_query_metrics,
)
from .domain.bookings.router import router as bookings_router
from .domain.invoices.router import router as invoices_router
from .domain.public.router import router as public_router
from .domain.scheduling.jobs import BackoffPolicy
from .domain.scheduling.queue import ArqJobQueue, InMemoryJobQueue
from .domain.scheduling.runner import InProcessWorker, SessionJobRunner
from .domain.scheduling.scheduler import JobScheduler
from .domain.scheduling.sweeper import run_sweep_loop
from .errors import (
    InvalidOperation,
    InvalidTransition,
    NotFound,
    SlotConflict,
    StudioDeskError,
)
from .services.notification_service import EmailNotificationDispatcher
from .worker import get_redis_settings

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

# Reduce verbosity of third-party libraries
logging.getLogger("httpx").setLevel(logging.WARNING)
logging.getLogger("httpcore").setLevel(logging.WARNING)


def start_in_process_jobs(app: FastAPI) -> list[asyncio.Task]:
    """Run the job poller and the reconciliation sweeps inside this process"""
    queue = InMemoryJobQueue()
    app.state.job_queue = queue
    clock = app.state.clock

    worker = InProcessWorker(
        queue,
        SessionJobRunner(SessionLocal, app.state.dispatcher),
        clock,
        BackoffPolicy(),
    )
    scheduler = JobScheduler(queue, clock, JOB_MAX_ATTEMPTS)
    return [
        asyncio.create_task(worker.run_forever(WORKER_POLL_INTERVAL_SECONDS)),
        asyncio.create_task(run_sweep_loop(SessionLocal, scheduler, clock)),
    ]


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Application starting up...")
    try:
        Base.metadata.create_all(bind=engine, checkfirst=True)
        logger.info("Database tables created successfully")
    except Exception as e:
        error_msg = str(e)
        if "already exists" in error_msg or "duplicate key" in error_msg:
            logger.info("Database tables already exist (created by another worker)")
        else:
            logger.error(f"Failed to create database tables: {e}")

    app.state.clock = SystemClock()
    app.state.dispatcher = EmailNotificationDispatcher()
    app.state.metrics = QueryMetrics()
    if ENABLE_QUERY_LOGGING:
        install_query_metrics(engine, app.state.metrics)

    tasks: list[asyncio.Task] = []
    pool = None
    if JOB_BACKEND == "inprocess":
        tasks = start_in_process_jobs(app)
        logger.info("Background jobs running in-process")
    else:
        pool = await create_pool(get_redis_settings())
        app.state.job_queue = ArqJobQueue(pool)
        logger.info("Background jobs queued on arq")

    yield

    logger.info("Application shutting down...")
    for task in tasks:
        task.cancel()
    await asyncio.gather(*tasks, return_exceptions=True)
    if pool is not None:
        await pool.close()
    remove_query_metrics(engine, app.state.metrics)


app = FastAPI(title="StudioDesk API", version="1.0.0", lifespan=lifespan)


def error_status(exc: StudioDeskError) -> int:
    if isinstance(exc, NotFound):
        return 404
    elif isinstance(exc, SlotConflict):
        return 409
    elif isinstance(exc, (InvalidTransition, InvalidOperation)):
        return 400
    return 500


@app.exception_handler(StudioDeskError)
async def domain_exception_handler(request: Request, exc: StudioDeskError):
    status_code = error_status(exc)
    if status_code >= 500:
        logger.error(f"{request.method} {request.url.path} - Error: {exc.message}")
    else:
        logger.warning(f"{request.method} {request.url.path} - {status_code}: {exc.message}")
    return JSONResponse(status_code=status_code, content={"detail": exc.message})


# Routes
app.include_router(bookings_router)
app.include_router(public_router)
app.include_router(invoices_router)


@app.get("/")
def root():
    return {"message": "StudioDesk API is running"}


@app.get("/health")
def health(request: Request):
    metrics = getattr(request.app.state, "metrics", None)
    return {
        "status": "healthy",
        "queries": metrics.snapshot() if metrics else None,
    }
