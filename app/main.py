"""AnyChange AI OCR backend - FastAPI application."""

import asyncio
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.config import settings
from app.api.v1.router import v1_router
from app.api.v1.health import router as health_root_router
from app.api.v1 import health as health_api
from app.api.v1 import jobs as jobs_api
from app.api.v1 import storage as storage_api
from app.jobs.manager import JobManager
from app.jobs.scheduler import LoopScheduler
from app.ocr.providers import build_provider
from app.storage.supabase_storage import SupabaseStorage

logging.basicConfig(
    level=logging.DEBUG if settings.debug_logging else logging.INFO,
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    datefmt="%H:%M:%S",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown logic."""
    logger.info("Starting %s on port %s (%s)", settings.app_name, settings.port, settings.app_env)
    logger.info(
        "Job timeout %ss, cleanup delay %ss",
        settings.job_timeout_seconds,
        settings.job_cleanup_delay_seconds,
    )

    # One manager per process, timers on this event loop
    manager = JobManager(
        LoopScheduler(asyncio.get_running_loop()),
        timeout_seconds=settings.job_timeout_seconds,
        cleanup_delay_seconds=settings.job_cleanup_delay_seconds,
    )
    storage = SupabaseStorage(
        settings.supabase_storage_bucket,
        signed_url_ttl=settings.signed_url_ttl_seconds,
    )
    provider = build_provider(
        settings,
        url_resolver=storage.create_signed_url,
        document_loader=storage.download,
    )
    logger.info("OCR provider: %s", provider.name if provider else "none")

    # Wire components into API endpoints
    jobs_api.set_job_manager(manager)
    jobs_api.set_ocr_provider(provider)
    health_api.set_job_manager(manager)
    storage_api.set_storage(storage)

    yield

    # Shutdown
    logger.info("Shutting down %s", settings.app_name)
    manager.shutdown()


app = FastAPI(
    title="AnyChange AI API",
    description="Document upload, OCR and export backend",
    version=settings.app_version,
    lifespan=lifespan,
)

# CORS: allow frontend dev server and any configured origins
app.add_middleware(
    CORSMiddleware,
    allow_origins=["http://localhost:3000", "*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Mount routers
app.include_router(health_root_router, tags=["health"])  # GET /health at root
app.include_router(v1_router)  # All /api/v1/* endpoints
