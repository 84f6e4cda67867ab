"""Health, status and version endpoints."""

import os
import platform
import sys
import time
from datetime import datetime, timezone
from typing import Optional

from fastapi import APIRouter

from app.config import settings
from app.jobs.manager import JobManager

router = APIRouter()

_started = time.monotonic()

# Set by main.py during lifespan
_job_manager: Optional[JobManager] = None


def set_job_manager(manager: JobManager):
    global _job_manager
    _job_manager = manager


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _ocr_status() -> str:
    if not settings.ocr_configured:
        return "not-configured"
    # Tesseract runs in-process, nothing to authenticate
    return "ready" if settings.ocr_provider.strip().lower() == "tesseract" else "configured"


@router.get("/health")
async def health_check():
    """Liveness plus a check that the OCR provider is usable."""
    missing = []
    if not settings.ocr_configured:
        missing.append("MISTRAL_API_KEY" if settings.ocr_provider.strip().lower() == "mistral" else "OCR_PROVIDER")

    return {
        "status": "ok" if not missing else "degraded",
        "message": f"{settings.app_name} is healthy" if not missing else "Missing configuration",
        "missing": missing,
        "environment": settings.app_env,
        "ocr_provider": settings.ocr_provider,
        "python_version": sys.version,
        "platform": platform.platform(),
        "timestamp": _now(),
    }


@router.get("/status")
async def service_status():
    """Detailed status: job counts, configured services and file limits."""
    jobs = _job_manager.get_job_counts().model_dump() if _job_manager else None
    if _job_manager is not None:
        timeout = _job_manager.timeout_seconds
        cleanup_delay = _job_manager.cleanup_delay_seconds
    else:
        timeout = settings.job_timeout_seconds
        cleanup_delay = settings.job_cleanup_delay_seconds
    return {
        "api": {
            "status": "operational",
            "version": settings.app_version,
            "environment": settings.app_env,
            "uptime_seconds": round(time.monotonic() - _started, 1),
        },
        "jobs": jobs,
        "services": {
            "ocr": {
                "provider": settings.ocr_provider,
                "status": _ocr_status(),
            },
            "storage": {
                "bucket": settings.supabase_storage_bucket,
                "status": "configured" if settings.supabase_url else "not-configured",
            },
        },
        "limits": {
            "max_file_size": f"{settings.max_file_size / 1024 / 1024:.1f}MB",
            "max_pages": settings.max_pages,
            "allowed_types": settings.allowed_types,
            "job_timeout_seconds": timeout,
            "job_cleanup_delay_seconds": cleanup_delay,
        },
        "timestamp": _now(),
    }


@router.get("/version")
async def version_info():
    return {
        "version": settings.app_version,
        "environment": settings.app_env,
        "commit": os.environ.get("GIT_COMMIT_SHA", "local-dev"),
        "branch": os.environ.get("GIT_BRANCH", "local"),
    }


@router.get("/info")
async def api_info():
    """General information about the API and where its endpoints live."""
    return {
        "name": f"{settings.app_name} API",
        "version": settings.app_version,
        "description": "Document upload, OCR and export backend",
        "status": "active",
        "endpoints": {
            "health": "/api/v1/health",
            "status": "/api/v1/status",
            "info": "/api/v1/info",
            "version": "/api/v1/version",
            "jobs": "/api/v1/jobs",
            "storage_presign": "/api/v1/storage/presign",
            "storage_upload": "/api/v1/storage/upload",
            "storage_test": "/api/v1/storage/test",
        },
        "documentation": {"swagger": "/docs", "redoc": "/redoc"},
        "timestamp": _now(),
    }
