import io
from unittest.mock import MagicMock

import pytest
from fastapi import UploadFile
from starlette.datastructures import Headers

import reviewdesk.services.storage_service as storage_service
from reviewdesk.core.errors import StorageUnavailable


def _upload(name: str, content: bytes = b"%PDF-1.4 test", content_type: str = "application/pdf") -> UploadFile:
    return UploadFile(file=io.BytesIO(content), filename=name, headers=Headers({"content-type": content_type}))


@pytest.mark.asyncio
async def test_memory_backend_records_placeholder_url(monkeypatch):
    monkeypatch.setattr(storage_service, "app_config", MagicMock(store_backend="memory"))
    desc = await storage_service.store_upload(_upload("my paper.pdf"), key="author-1/abc")
    assert desc.filename == "my paper.pdf"
    assert desc.url == "/uploads/author-1/abc/my%20paper.pdf"
    assert desc.size == len(b"%PDF-1.4 test")
    assert desc.mime_type == "application/pdf"
    assert desc.uploaded_at is not None


@pytest.mark.asyncio
async def test_path_separators_are_removed_from_filename(monkeypatch):
    monkeypatch.setattr(storage_service, "app_config", MagicMock(store_backend="memory"))
    desc = await storage_service.store_upload(_upload("../../etc/passwd"), key="k")
    assert "/" not in desc.filename


@pytest.mark.asyncio
async def test_supabase_backend_uploads_to_bucket(monkeypatch):
    monkeypatch.setattr(
        storage_service, "app_config", MagicMock(store_backend="supabase", manuscript_bucket="manuscripts")
    )
    calls = []

    def _fake_upload(**kwargs):
        calls.append(kwargs)
        return "https://files.example.org/manuscripts/k/paper.pdf"

    monkeypatch.setattr(storage_service, "upload_bytes", _fake_upload)
    desc = await storage_service.store_upload(_upload("paper.pdf"), key="k")
    assert desc.url == "https://files.example.org/manuscripts/k/paper.pdf"
    assert calls[0]["bucket"] == "manuscripts"
    assert calls[0]["path"] == "k/paper.pdf"
    assert calls[0]["content_type"] == "application/pdf"


@pytest.mark.asyncio
async def test_supabase_upload_failure_is_storage_unavailable(monkeypatch):
    monkeypatch.setattr(
        storage_service, "app_config", MagicMock(store_backend="supabase", manuscript_bucket="manuscripts")
    )

    def _boom(**kwargs):
        raise RuntimeError("bucket offline")

    monkeypatch.setattr(storage_service, "upload_bytes", _boom)
    with pytest.raises(StorageUnavailable):
        await storage_service.store_upload(_upload("paper.pdf"), key="k")
