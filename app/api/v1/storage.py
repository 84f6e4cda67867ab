"""Document storage API for presigned uploads and direct uploads to Supabase.

  POST /storage/presign: validate file metadata, return a signed upload URL
  POST /storage/upload: receive the file itself and store it
  GET  /storage/test: check the Supabase connection and the bucket

The supabase client is synchronous, so every storage call is pushed to the
threadpool.

The returned storage path is what clients pass to POST /jobs as
source_reference.
"""

import logging
from dataclasses import asdict
from datetime import datetime, timezone
from typing import Optional

from fastapi import APIRouter, File, HTTPException, UploadFile
from fastapi.responses import JSONResponse
from pydantic import BaseModel
from starlette.concurrency import run_in_threadpool

from app.config import settings
from app.storage.supabase_storage import StorageError, SupabaseStorage
from app.storage.validation import (
    FileValidationError,
    extension_from_name,
    extension_from_type,
    generate_file_path,
    validate_file,
)

logger = logging.getLogger(__name__)

router = APIRouter()

# Wired in during lifespan (same pattern as jobs.py)
_storage: Optional[SupabaseStorage] = None


def set_storage(storage: SupabaseStorage):
    global _storage
    _storage = storage


def _get_storage() -> SupabaseStorage:
    if _storage is None:
        raise HTTPException(status_code=503, detail="Storage not initialized")
    return _storage


def _error(status_code: int, message: str, **extra) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"success": False, "error": message, **extra},
    )


def _validation_error(exc: FileValidationError) -> JSONResponse:
    if exc.allowed_types is not None:
        return _error(400, str(exc), allowed_types=exc.allowed_types)
    return _error(400, str(exc))


class PresignRequest(BaseModel):
    file_name: str
    file_type: str
    file_size: int


# ---------------------------------------------------------------------------
# POST /storage/presign
# ---------------------------------------------------------------------------

@router.post("/storage/presign")
async def presign_upload(request: PresignRequest):
    """Return a signed URL the browser can upload the document to."""
    storage = _get_storage()
    try:
        validate_file(
            extension_from_type(request.file_type),
            request.file_size,
            settings.allowed_types,
            settings.max_file_size,
        )
    except FileValidationError as exc:
        return _validation_error(exc)

    path = generate_file_path(request.file_name)
    try:
        signed = await run_in_threadpool(storage.create_signed_upload_url, path)
    except StorageError as exc:
        return _error(500, str(exc))

    return {
        "success": True,
        "data": {
            "url": signed.url,
            "token": signed.token,
            "path": signed.path,
            "fields": {
                "file_name": request.file_name,
                "file_type": request.file_type,
                "file_size": request.file_size,
            },
        },
    }


# ---------------------------------------------------------------------------
# POST /storage/upload
# ---------------------------------------------------------------------------

@router.post("/storage/upload")
async def upload_document(file: UploadFile = File(...)):
    """Accept a document upload and store it in the configured bucket."""
    storage = _get_storage()
    file_name = file.filename or "upload"
    extension = extension_from_name(file_name)

    try:
        validate_file(extension, 0, settings.allowed_types, settings.max_file_size)
    except FileValidationError as exc:
        return _validation_error(exc)

    # Chunked read, capped at max_file_size
    chunks = []
    total = 0
    while True:
        chunk = await file.read(1024 * 1024)
        if not chunk:
            break
        total += len(chunk)
        if total > settings.max_file_size:
            try:
                validate_file(extension, total, settings.allowed_types, settings.max_file_size)
            except FileValidationError as exc:
                return _validation_error(exc)
        chunks.append(chunk)
    content = b"".join(chunks)

    path = generate_file_path(file_name)
    content_type = file.content_type or "application/octet-stream"
    try:
        stored_path = await run_in_threadpool(storage.upload, path, content, content_type)
        public_url = await run_in_threadpool(storage.get_public_url, stored_path)
    except StorageError as exc:
        return _error(500, "Failed to upload file to storage", details=str(exc))

    return {
        "success": True,
        "message": "File uploaded successfully",
        "file": {
            "original_name": file_name,
            "size": total,
            "type": content_type,
            "storage_path": stored_path,
            "bucket": storage.bucket,
            "public_url": public_url,
            "uploaded_at": datetime.now(timezone.utc).isoformat(),
        },
    }


# ---------------------------------------------------------------------------
# GET /storage/test
# ---------------------------------------------------------------------------

@router.get("/storage/test")
async def check_storage():
    """Verify the Supabase connection and that the documents bucket exists."""
    storage = _get_storage()
    try:
        buckets = await run_in_threadpool(storage.list_buckets)
    except StorageError as exc:
        logger.error("Storage check failed: %s", exc)
        return _error(500, "Failed to connect to Supabase storage", details=str(exc))

    bucket = next((b for b in buckets if b.name == storage.bucket), None)
    if bucket is None:
        return _error(
            404,
            f"Bucket '{storage.bucket}' not found",
            available_buckets=[b.name for b in buckets],
            instruction=f"Please create a bucket named '{storage.bucket}' in your Supabase dashboard",
        )

    try:
        files = await run_in_threadpool(storage.list_files, "", 1)
    except StorageError as exc:
        return _error(500, "Failed to access bucket contents", details=str(exc), bucket=asdict(bucket))

    return {
        "success": True,
        "message": "Supabase storage is properly configured",
        "bucket": asdict(bucket),
        "files_in_bucket": len(files),
        "test_time": datetime.now(timezone.utc).isoformat(),
    }
