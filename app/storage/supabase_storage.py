"""Supabase Storage access for uploaded source documents."""

import logging
from dataclasses import dataclass
from typing import Callable, List, Optional

from supabase import create_client, Client

from app.config import settings

logger = logging.getLogger(__name__)

_client: Client | None = None


class StorageError(Exception):
    """Raised when Supabase Storage rejects or fails a request."""


def get_supabase() -> Client:
    """Get or create the service-role client. Server side only."""
    global _client
    if _client is None:
        if not settings.supabase_url or not settings.supabase_service_role_key:
            raise StorageError(
                "Missing Supabase server configuration: set SUPABASE_URL and "
                "SUPABASE_SERVICE_ROLE_KEY"
            )
        _client = create_client(settings.supabase_url, settings.supabase_service_role_key)
    return _client


@dataclass
class SignedUpload:
    url: str
    token: str
    path: str


@dataclass
class BucketInfo:
    name: str
    id: Optional[str] = None
    public: bool = False
    created_at: Optional[str] = None
    updated_at: Optional[str] = None


def _pick(data, *keys) -> Optional[str]:
    # storage3 has returned both camelCase and snake_case keys across releases
    for key in keys:
        value = data.get(key) if isinstance(data, dict) else getattr(data, key, None)
        if value:
            return value
    return None


def _as_text(value) -> Optional[str]:
    if value is None:
        return None
    return value.isoformat() if hasattr(value, "isoformat") else str(value)


class SupabaseStorage:
    """Thin wrapper over one Supabase Storage bucket."""

    def __init__(
        self,
        bucket: str,
        client_factory: Callable[[], Client] = get_supabase,
        signed_url_ttl: int = 3600,
    ):
        self.bucket = bucket
        self._client_factory = client_factory
        self._signed_url_ttl = signed_url_ttl

    def _bucket(self):
        return self._client_factory().storage.from_(self.bucket)

    def create_signed_upload_url(self, path: str) -> SignedUpload:
        """Presigned URL the browser can PUT the file to directly."""
        try:
            data = self._bucket().create_signed_upload_url(path)
        except StorageError:
            raise
        except Exception as exc:
            logger.error("Presign failed for %s/%s: %s", self.bucket, path, exc)
            raise StorageError("Failed to generate presigned URL") from exc

        return SignedUpload(
            url=_pick(data, "signed_url", "signedUrl", "signedURL") or "",
            token=_pick(data, "token") or "",
            path=_pick(data, "path") or path,
        )

    def upload(self, path: str, content: bytes, content_type: str) -> str:
        """Upload bytes without overwriting. Returns the stored path."""
        try:
            response = self._bucket().upload(
                path,
                content,
                file_options={
                    "content-type": content_type,
                    "cache-control": "3600",
                    "upsert": "false",
                },
            )
        except StorageError:
            raise
        except Exception as exc:
            logger.error("Upload failed for %s/%s: %s", self.bucket, path, exc)
            raise StorageError(f"Failed to upload file to storage: {exc}") from exc

        logger.info("Uploaded %d bytes to %s/%s", len(content), self.bucket, path)
        return getattr(response, "path", None) or path

    def create_signed_url(self, path: str, expires_in: Optional[int] = None) -> str:
        """Time-limited download URL, e.g. for handing a document to OCR."""
        try:
            data = self._bucket().create_signed_url(path, expires_in or self._signed_url_ttl)
        except StorageError:
            raise
        except Exception as exc:
            raise StorageError(f"Failed to sign download URL for {path}") from exc

        url = _pick(data, "signedURL", "signedUrl", "signed_url")
        if not url:
            raise StorageError(f"Storage returned no signed URL for {path}")
        return url

    def get_public_url(self, path: str) -> str:
        """Public URL of the object. Only reachable for public buckets."""
        try:
            return self._bucket().get_public_url(path)
        except StorageError:
            raise
        except Exception as exc:
            raise StorageError(f"Failed to build public URL for {path}") from exc

    def download(self, path: str) -> bytes:
        """Raw bytes of a stored object."""
        try:
            return self._bucket().download(path)
        except StorageError:
            raise
        except Exception as exc:
            logger.error("Download failed for %s/%s: %s", self.bucket, path, exc)
            raise StorageError(f"Failed to download {path}: {exc}") from exc

    def list_buckets(self) -> List[BucketInfo]:
        """Every bucket visible to the service-role key."""
        try:
            buckets = self._client_factory().storage.list_buckets()
        except StorageError:
            raise
        except Exception as exc:
            raise StorageError(f"Failed to connect to Supabase storage: {exc}") from exc

        return [
            BucketInfo(
                name=_pick(b, "name") or "",
                id=_pick(b, "id"),
                public=bool(_pick(b, "public")),
                created_at=_as_text(_pick(b, "created_at")),
                updated_at=_as_text(_pick(b, "updated_at")),
            )
            for b in buckets or []
        ]

    def list_files(self, prefix: str = "", limit: int = 1) -> list:
        """Objects under prefix in this bucket, at most limit of them."""
        try:
            return self._bucket().list(prefix, {"limit": limit}) or []
        except StorageError:
            raise
        except Exception as exc:
            raise StorageError(f"Failed to access bucket contents: {exc}") from exc
