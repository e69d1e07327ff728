from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Optional
from urllib.parse import quote

from fastapi import UploadFile

from reviewdesk.core.config import app_config
from reviewdesk.core.errors import StorageUnavailable
from reviewdesk.models.manuscript import FileDescriptor

logger = logging.getLogger("reviewdesk")


def _safe_filename(name: Optional[str]) -> str:
    cleaned = (name or "file").replace("/", "_").replace("\\", "_").strip()
    return cleaned or "file"


def ensure_bucket_exists(*, bucket: str, public: bool = False) -> None:
    """
    确保 Storage bucket 存在（开发/演示环境兜底）。

    中文注释:
    - 正式环境建议用 migration / Dashboard 创建 bucket。
    - 但为了减少“缺桶导致上传失败”的踩坑，这里做一次性兜底创建。
    """
    from reviewdesk.lib.api_client import supabase_admin

    storage = getattr(supabase_admin, "storage", None)
    if storage is None or not hasattr(storage, "get_bucket") or not hasattr(storage, "create_bucket"):
        return

    try:
        storage.get_bucket(bucket)
        return
    except Exception:
        pass

    try:
        storage.create_bucket(bucket, options={"public": bool(public)})
    except Exception as e:
        text = str(e).lower()
        if "already" in text or "exists" in text or "duplicate" in text:
            return
        raise


def upload_bytes(*, bucket: str, path: str, content: bytes, content_type: str) -> str:
    """
    上传到 Supabase Storage，返回对象 URL。
    """
    from reviewdesk.lib.api_client import supabase_admin

    ensure_bucket_exists(bucket=bucket, public=False)
    # storage3 期望 header value 为字符串
    opts = {"content-type": content_type, "upsert": "true"}
    supabase_admin.storage.from_(bucket).upload(path, content, opts)
    return str(supabase_admin.storage.from_(bucket).get_public_url(path))


async def store_upload(upload: UploadFile, *, key: str) -> FileDescriptor:
    """
    把上传文件写入 blob 存储，返回不透明的文件描述（filename/url/size/mime_type/uploaded_at）。

    中文注释:
    - memory 后端不落盘，只记录占位 URL（/uploads/<key>/<filename>），用于本地开发与测试。
    """
    filename = _safe_filename(upload.filename)
    content = await upload.read()
    mime_type = upload.content_type or "application/octet-stream"

    if app_config.store_backend == "supabase":
        path = f"{key}/{filename}"
        try:
            url = upload_bytes(
                bucket=app_config.manuscript_bucket,
                path=path,
                content=content,
                content_type=mime_type,
            )
        except Exception as e:
            logger.error(f"[Storage] upload failed: {path}: {e}")
            raise StorageUnavailable("Failed to upload file, please retry") from e
    else:
        url = f"/uploads/{quote(key)}/{quote(filename)}"

    return FileDescriptor(
        filename=filename,
        url=url,
        size=len(content),
        mime_type=mime_type,
        uploaded_at=datetime.now(timezone.utc),
    )
