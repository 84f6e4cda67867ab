import re

import pytest

from app.storage.supabase_storage import StorageError, SupabaseStorage
from app.storage.validation import (
    FileValidationError,
    extension_from_name,
    extension_from_type,
    generate_file_path,
    validate_file,
)

ALLOWED = ["pdf", "jpg", "jpeg", "png"]
TEN_MB = 10 * 1024 * 1024


class FakeBucket:
    def __init__(self, fail=False):
        self.fail = fail
        self.uploads = []

    def create_signed_upload_url(self, path):
        if self.fail:
            raise RuntimeError("bucket missing")
        return {"signed_url": f"https://store.example/{path}?token=t", "token": "t", "path": path}

    def upload(self, path, content, file_options=None):
        if self.fail:
            raise RuntimeError("duplicate")
        self.uploads.append((path, content, file_options))
        return type("UploadResponse", (), {"path": path})()

    def create_signed_url(self, path, expires_in):
        return {"signedURL": f"https://store.example/{path}?exp={expires_in}"}

    def get_public_url(self, path):
        return f"https://store.example/public/{path}"

    def download(self, path):
        if self.fail:
            raise RuntimeError("object not found")
        return b"%PDF-1.4 " + path.encode()

    def list(self, path, options=None):
        if self.fail:
            raise RuntimeError("permission denied")
        return [{"name": "a.pdf"}, {"name": "b.pdf"}][: options["limit"]]


class FakeClient:
    def __init__(self, bucket):
        self.bucket = bucket
        self.buckets = [
            {"name": "documents", "id": "documents", "public": False, "created_at": "2024-01-01T00:00:00Z"},
            {"name": "avatars", "id": "avatars", "public": True},
        ]
        self.storage = self
        self.requested = []

    def from_(self, name):
        self.requested.append(name)
        return self.bucket

    def list_buckets(self):
        return self.buckets


def make_storage(fail=False):
    client = FakeClient(FakeBucket(fail=fail))
    return SupabaseStorage("documents", client_factory=lambda: client, signed_url_ttl=600), client


@pytest.mark.parametrize(
    "file_type, expected",
    [
        ("image/jpeg", "jpeg"),
        ("image/png", "png"),
        ("application/pdf", "pdf"),
        ("image/tiff", "tiff"),
        ("PDF", "pdf"),
        (".png", "png"),
    ],
)
def test_extension_from_type(file_type, expected):
    assert extension_from_type(file_type) == expected


def test_extension_from_name():
    assert extension_from_name("Scan.Final.PDF") == "pdf"
    assert extension_from_name("noext") == ""


def test_validate_file_rejects_type():
    with pytest.raises(FileValidationError) as exc_info:
        validate_file("exe", 10, ALLOWED, TEN_MB)
    assert str(exc_info.value) == "File type 'exe' not allowed"
    assert exc_info.value.allowed_types == ALLOWED


def test_validate_file_rejects_size():
    with pytest.raises(FileValidationError, match=r"File size 12\.0MB exceeds limit of 10\.0MB"):
        validate_file("pdf", 12 * 1024 * 1024, ALLOWED, TEN_MB)


def test_validate_file_accepts_limit():
    validate_file("pdf", TEN_MB, ALLOWED, TEN_MB)


def test_generate_file_path():
    path = generate_file_path("My Scan.PDF")
    assert re.match(r"^uploads/\d{13}-[0-9a-f]{12}\.pdf$", path)
    assert generate_file_path("a.png") != generate_file_path("a.png")


def test_signed_upload_url():
    storage, client = make_storage()
    signed = storage.create_signed_upload_url("uploads/x.pdf")
    assert signed.url == "https://store.example/uploads/x.pdf?token=t"
    assert signed.token == "t"
    assert signed.path == "uploads/x.pdf"
    assert client.requested == ["documents"]


def test_upload_does_not_overwrite():
    storage, client = make_storage()
    path = storage.upload("uploads/x.pdf", b"%PDF", "application/pdf")
    assert path == "uploads/x.pdf"
    _, content, options = client.bucket.uploads[0]
    assert content == b"%PDF"
    assert options["upsert"] == "false"
    assert options["content-type"] == "application/pdf"


def test_signed_download_url_uses_ttl():
    storage, _ = make_storage()
    assert storage.create_signed_url("uploads/x.pdf") == "https://store.example/uploads/x.pdf?exp=600"


def test_download_returns_bytes():
    storage, _ = make_storage()
    assert storage.download("uploads/x.pdf") == b"%PDF-1.4 uploads/x.pdf"


def test_list_buckets_and_files():
    storage, client = make_storage()
    buckets = storage.list_buckets()
    assert [b.name for b in buckets] == ["documents", "avatars"]
    assert buckets[0].public is False
    assert buckets[0].created_at == "2024-01-01T00:00:00Z"
    assert buckets[1].public is True
    assert buckets[1].updated_at is None

    assert storage.list_files() == [{"name": "a.pdf"}]
    assert len(storage.list_files(limit=5)) == 2


def test_list_buckets_failure():
    storage, client = make_storage()

    def broken():
        raise RuntimeError("connection refused")

    client.list_buckets = broken
    with pytest.raises(StorageError, match="connection refused"):
        storage.list_buckets()

def test_client_errors_become_storage_errors():
    storage, _ = make_storage(fail=True)
    with pytest.raises(StorageError):
        storage.create_signed_upload_url("uploads/x.pdf")
    with pytest.raises(StorageError):
        storage.upload("uploads/x.pdf", b"", "application/pdf")
    with pytest.raises(StorageError, match="object not found"):
        storage.download("uploads/x.pdf")
    with pytest.raises(StorageError, match="Failed to access bucket contents"):
        storage.list_files()


def test_missing_configuration(monkeypatch):
    from app.storage import supabase_storage

    monkeypatch.setattr(supabase_storage, "_client", None)
    monkeypatch.setattr(supabase_storage.settings, "supabase_url", "")
    with pytest.raises(StorageError):
        supabase_storage.get_supabase()
