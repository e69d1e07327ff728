import json
from typing import Any, Optional

from fastapi import APIRouter, Body, Depends, Query, Request
from pydantic import ValidationError
from starlette.datastructures import UploadFile

from reviewdesk.core.auth import get_current_user
from reviewdesk.core.errors import ValidationFailed, validation_details
from reviewdesk.core.role_matrix import ensure_allowed
from reviewdesk.lib.entity_store import EntityStore, get_entity_store, new_id
from reviewdesk.models.manuscript import FileDescriptor, ManuscriptFiles, normalize_status
from reviewdesk.models.user import Identity
from reviewdesk.schemas.manuscript import ManuscriptDraftUpdate, ManuscriptSubmission, PublishPayload
from reviewdesk.services.manuscript_service import ManuscriptService
from reviewdesk.services.storage_service import store_upload

router = APIRouter(tags=["Manuscripts"])

SUPPLEMENTARY_PREFIX = "supplementary"


def get_manuscript_service(store: EntityStore = Depends(get_entity_store)) -> ManuscriptService:
    return ManuscriptService(store)


async def _read_multipart(request: Request) -> tuple[Optional[dict[str, Any]], dict[str, Any]]:
    """
    解析 multipart：data 字段为 JSON 文本，文件字段为 manuscript / cover_letter / supplementary*。
    """
    form = await request.form()
    raw = form.get("data")
    data: Optional[dict[str, Any]] = None
    if raw is not None:
        if isinstance(raw, UploadFile):
            raw = (await raw.read()).decode("utf-8", errors="replace")
        try:
            data = json.loads(raw)
        except ValueError as e:
            raise ValidationFailed(
                "Validation failed",
                details=[{"field": "data", "message": f"Invalid JSON: {e}"}],
            ) from e
        if not isinstance(data, dict):
            raise ValidationFailed(
                "Validation failed",
                details=[{"field": "data", "message": "Expected a JSON object"}],
            )

    uploads: dict[str, Any] = {"supplementary": []}
    for name, value in form.multi_items():
        if not isinstance(value, UploadFile) or not value.filename:
            continue
        if name in ("manuscript", "cover_letter"):
            uploads[name] = value
        elif name.startswith(SUPPLEMENTARY_PREFIX):
            uploads["supplementary"].append(value)
    return data, uploads


async def _store_files(uploads: dict[str, Any], *, key: str) -> dict[str, Any]:
    stored: dict[str, Any] = {"supplementary": []}
    for name in ("manuscript", "cover_letter"):
        if uploads.get(name) is not None:
            stored[name] = await store_upload(uploads[name], key=f"{key}/{name}")
    for upload in uploads.get("supplementary") or []:
        descriptor: FileDescriptor = await store_upload(upload, key=f"{key}/supplementary")
        stored["supplementary"].append(descriptor)
    return stored


@router.post("/manuscripts/submit", status_code=201)
async def create_manuscript(
    request: Request,
    current_user: Identity = Depends(get_current_user),
    service: ManuscriptService = Depends(get_manuscript_service),
):
    """
    新建稿件（multipart）：status=draft 保存草稿，status=submitted 直接提交（需附稿件文件）。
    """
    ensure_allowed(current_user, "manuscript:create")
    data, uploads = await _read_multipart(request)
    if data is None:
        raise ValidationFailed(
            "Validation failed",
            details=[{"field": "data", "message": "Field required"}],
        )
    try:
        payload = ManuscriptSubmission.model_validate(data)
    except ValidationError as e:
        raise ValidationFailed("Validation failed", details=validation_details(e)) from e

    if payload.status == "submitted" and uploads.get("manuscript") is None:
        raise ValidationFailed(
            "Validation failed",
            details=[{"field": "files.manuscript", "message": "A manuscript file is required for submission"}],
        )

    stored = await _store_files(uploads, key=f"{current_user.id}/{new_id()}")
    manuscript = service.create(current_user, payload, ManuscriptFiles(**stored))
    return {
        "success": True,
        "message": "Manuscript submitted successfully" if payload.status == "submitted" else "Draft saved",
        "manuscript_id": manuscript.id,
        "data": manuscript.to_document(),
    }


@router.get("/manuscripts")
async def list_manuscripts(
    status: Optional[str] = Query(None, description="按状态过滤"),
    limit: int = Query(10, ge=1, le=100),
    skip: int = Query(0, ge=0),
    current_user: Identity = Depends(get_current_user),
    service: ManuscriptService = Depends(get_manuscript_service),
):
    normalized = normalize_status(status) if status else None
    if status and normalized is None:
        raise ValidationFailed(
            "Validation failed",
            details=[{"field": "status", "message": f"Unknown status: {status}"}],
        )
    result = service.list_manuscripts(current_user, status=normalized, limit=limit, skip=skip)
    return {"success": True, **result}


@router.get("/manuscripts/stats")
async def manuscript_stats(
    current_user: Identity = Depends(get_current_user),
    service: ManuscriptService = Depends(get_manuscript_service),
):
    return {"success": True, "role": current_user.role, "stats": service.stats(current_user)}


@router.get("/manuscripts/{manuscript_id}")
async def get_manuscript(
    manuscript_id: str,
    current_user: Identity = Depends(get_current_user),
    service: ManuscriptService = Depends(get_manuscript_service),
):
    return {"success": True, "manuscript": service.get(current_user, manuscript_id)}


@router.patch("/manuscripts/{manuscript_id}")
async def update_draft(
    manuscript_id: str,
    request: Request,
    current_user: Identity = Depends(get_current_user),
    service: ManuscriptService = Depends(get_manuscript_service),
):
    """
    编辑自己的草稿：JSON 局部字段，或 multipart（data + 替换文件）。
    """
    content_type = (request.headers.get("content-type") or "").lower()
    uploads: dict[str, Any] = {}
    if content_type.startswith("multipart/"):
        data, uploads = await _read_multipart(request)
        data = data or {}
    else:
        try:
            data = await request.json()
        except ValueError as e:
            raise ValidationFailed(
                "Validation failed",
                details=[{"field": "body", "message": "Invalid JSON body"}],
            ) from e
    try:
        update = ManuscriptDraftUpdate.model_validate(data or {})
    except ValidationError as e:
        raise ValidationFailed("Validation failed", details=validation_details(e)) from e

    # 先做归属/状态校验，再上传文件
    current = service.load(manuscript_id)
    ensure_allowed(current_user, "manuscript:update_draft", current)
    service.ensure_draft(current)
    files = None
    if uploads.get("manuscript") or uploads.get("cover_letter") or uploads.get("supplementary"):
        files = await _store_files(uploads, key=f"{current_user.id}/{manuscript_id}")

    manuscript = service.update_draft(current_user, manuscript_id, update, files)
    return {"success": True, "message": "Draft updated", "manuscript": manuscript.to_document()}


@router.post("/manuscripts/{manuscript_id}/submit")
async def submit_draft(
    manuscript_id: str,
    current_user: Identity = Depends(get_current_user),
    service: ManuscriptService = Depends(get_manuscript_service),
):
    manuscript = service.submit(current_user, manuscript_id)
    return {
        "success": True,
        "message": "Manuscript submitted successfully",
        "manuscript": manuscript.to_document(),
    }


@router.post("/manuscripts/{manuscript_id}/publish")
async def publish_manuscript(
    manuscript_id: str,
    payload: Optional[PublishPayload] = Body(None),
    current_user: Identity = Depends(get_current_user),
    service: ManuscriptService = Depends(get_manuscript_service),
):
    manuscript = service.publish(current_user, manuscript_id, payload or PublishPayload())
    return {"success": True, "message": "Manuscript published", "manuscript": manuscript.to_document()}
