from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Optional

from pydantic import ValidationError

from reviewdesk.core.errors import Conflict, NotFound, ValidationFailed, validation_details
from reviewdesk.core.role_matrix import ensure_allowed
from reviewdesk.lib.entity_store import MANUSCRIPTS, USERS, EntityStore, Populate, get_entity_store
from reviewdesk.models.manuscript import (
    Author,
    Manuscript,
    ManuscriptFiles,
    ManuscriptStatus,
    ReviewerStatus,
    SuggestedReviewer,
)
from reviewdesk.models.user import Identity, UserRole
from reviewdesk.schemas.manuscript import (
    ManuscriptDraftUpdate,
    ManuscriptFields,
    ManuscriptSubmission,
    PublishPayload,
)

logger = logging.getLogger("reviewdesk")

MANUSCRIPT_POPULATE = (
    Populate("submitted_by", USERS, ("name", "email"), "submitter"),
    Populate("assigned_editor", USERS, ("name", "email"), "editor"),
    Populate("reviewers.user_id", USERS, ("name", "email", "profile"), "user"),
)

LIST_FIELDS = (
    "title",
    "abstract",
    "status",
    "manuscript_type",
    "submitted_by",
    "created_at",
    "updated_at",
    "authors",
    "keywords",
)

# 编辑默认能看到的状态（草稿永远不对编辑开放）
EDITOR_VISIBLE_STATUSES = tuple(s.value for s in ManuscriptStatus if s != ManuscriptStatus.DRAFT)
EDITOR_QUEUE_STATUSES = (
    ManuscriptStatus.SUBMITTED.value,
    ManuscriptStatus.UNDER_REVIEW.value,
    ManuscriptStatus.REVISION_REQUIRED.value,
)


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def validate_for_submission(manuscript: Manuscript) -> None:
    """
    正式提交前的完整校验：字段规则与草稿保存一致，另外要求已上传稿件文件。
    """
    details: list[dict[str, str]] = []
    try:
        ManuscriptFields.model_validate(
            {
                "title": manuscript.title,
                "abstract": manuscript.abstract,
                "manuscript_type": manuscript.manuscript_type,
                "category": manuscript.category,
                "authors": [a.model_dump() for a in manuscript.authors],
                "keywords": list(manuscript.keywords),
                "suggested_reviewers": [s.model_dump() for s in manuscript.suggested_reviewers],
            }
        )
    except ValidationError as e:
        details.extend(validation_details(e))
    if manuscript.files.manuscript is None:
        details.append({"field": "files.manuscript", "message": "A manuscript file is required for submission"})
    if details:
        raise ValidationFailed("Validation failed", details=details)


class ManuscriptService:
    """
    稿件状态机的作者侧与读取侧操作。

    中文注释:
    - 遵循章程：核心状态流转逻辑必须显性可见，避免散落在 API 层。
    - 每个写操作都是“读 -> 校验 -> 改 -> 单文档写回”，写回时以读到的 status 作为前置条件。
    """

    def __init__(self, store: Optional[EntityStore] = None) -> None:
        self.store = store or get_entity_store()

    # --- helpers ---

    def load(self, manuscript_id: str) -> Manuscript:
        doc = self.store.find_by_id(MANUSCRIPTS, manuscript_id)
        if not doc:
            raise NotFound("Manuscript not found")
        return Manuscript.from_document(doc)

    def persist(self, manuscript: Manuscript, *, expected_status: str) -> Manuscript:
        saved = self.store.save(
            MANUSCRIPTS,
            manuscript.to_document(),
            expected={"status": expected_status},
        )
        if saved is None:
            # 条件写未命中：文档已被删除，或状态已被并发请求改变
            if self.store.find_by_id(MANUSCRIPTS, manuscript.id, project=["status"]) is None:
                raise NotFound("Manuscript not found")
            raise Conflict(
                "Manuscript was modified by another request, please reload and retry",
                details={"expected_status": expected_status},
            )
        return Manuscript.from_document(saved)

    @staticmethod
    def ensure_draft(manuscript: Manuscript) -> None:
        if manuscript.status != ManuscriptStatus.DRAFT:
            raise Conflict(
                "Only draft manuscripts can be edited",
                details={"status": manuscript.status.value},
            )

    # --- author operations ---

    def create(
        self,
        identity: Identity,
        payload: ManuscriptSubmission,
        files: Optional[ManuscriptFiles] = None,
    ) -> Manuscript:
        ensure_allowed(identity, "manuscript:create")
        files = files or ManuscriptFiles()
        if payload.status == ManuscriptStatus.SUBMITTED.value and files.manuscript is None:
            raise ValidationFailed(
                "Validation failed",
                details=[{"field": "files.manuscript", "message": "A manuscript file is required for submission"}],
            )

        now = _utc_now()
        manuscript = Manuscript(
            title=payload.title,
            abstract=payload.abstract,
            keywords=list(payload.keywords),
            authors=[Author(**a.model_dump()) for a in payload.authors],
            submitted_by=identity.id,
            manuscript_type=payload.manuscript_type,
            category=payload.category,
            files=files,
            suggested_reviewers=[SuggestedReviewer(**s.model_dump()) for s in payload.suggested_reviewers],
        )
        if payload.status == ManuscriptStatus.SUBMITTED.value:
            manuscript.transition_to(ManuscriptStatus.SUBMITTED)
            manuscript.snapshot_version(now=now)
            manuscript.append_timeline("Manuscript submitted", actor=identity.id, now=now)
        else:
            manuscript.append_timeline("Draft created", actor=identity.id, now=now)

        doc = self.store.create(MANUSCRIPTS, manuscript.to_document())
        logger.info(f"[Workflow] manuscript {doc['id']} created as {manuscript.status.value} by {identity.id}")
        return Manuscript.from_document(doc)

    def update_draft(
        self,
        identity: Identity,
        manuscript_id: str,
        update: ManuscriptDraftUpdate,
        files: Optional[dict[str, Any]] = None,
    ) -> Manuscript:
        manuscript = self.load(manuscript_id)
        ensure_allowed(identity, "manuscript:update_draft", manuscript)
        self.ensure_draft(manuscript)

        changes = update.model_dump(exclude_unset=True)
        merged = {
            "title": manuscript.title,
            "abstract": manuscript.abstract,
            "manuscript_type": manuscript.manuscript_type,
            "category": manuscript.category,
            "authors": [a.model_dump() for a in manuscript.authors],
            "keywords": list(manuscript.keywords),
            "suggested_reviewers": [s.model_dump() for s in manuscript.suggested_reviewers],
            **changes,
        }
        try:
            fields = ManuscriptFields.model_validate(merged)
        except ValidationError as e:
            raise ValidationFailed("Validation failed", details=validation_details(e)) from e

        manuscript.title = fields.title
        manuscript.abstract = fields.abstract
        manuscript.manuscript_type = fields.manuscript_type
        manuscript.category = fields.category
        manuscript.authors = [Author(**a.model_dump()) for a in fields.authors]
        manuscript.keywords = list(fields.keywords)
        manuscript.suggested_reviewers = [SuggestedReviewer(**s.model_dump()) for s in fields.suggested_reviewers]

        for key in ("manuscript", "cover_letter"):
            if files and files.get(key) is not None:
                setattr(manuscript.files, key, files[key])
        if files and files.get("supplementary"):
            manuscript.files.supplementary = list(files["supplementary"])

        manuscript.append_timeline(
            "Draft updated",
            actor=identity.id,
            metadata={"fields": sorted(changes)} if changes else None,
        )
        return self.persist(manuscript, expected_status=ManuscriptStatus.DRAFT.value)

    def submit(self, identity: Identity, manuscript_id: str) -> Manuscript:
        """
        draft -> submitted：完整校验通过后生成版本快照并写入时间线。
        """
        manuscript = self.load(manuscript_id)
        ensure_allowed(identity, "manuscript:submit", manuscript)
        if manuscript.status != ManuscriptStatus.DRAFT:
            raise Conflict(
                f"Manuscript has already been submitted (status: {manuscript.status.value})",
                details={"status": manuscript.status.value},
            )
        validate_for_submission(manuscript)

        now = _utc_now()
        manuscript.transition_to(ManuscriptStatus.SUBMITTED)
        manuscript.snapshot_version(now=now)
        manuscript.append_timeline("Manuscript submitted", actor=identity.id, now=now)
        saved = self.persist(manuscript, expected_status=ManuscriptStatus.DRAFT.value)
        logger.info(f"[Workflow] manuscript {manuscript_id}: draft -> submitted by {identity.id}")
        return saved

    # --- reads ---

    def get(self, identity: Identity, manuscript_id: str) -> dict[str, Any]:
        doc = self.store.find_by_id(MANUSCRIPTS, manuscript_id, populate=MANUSCRIPT_POPULATE)
        if not doc:
            raise NotFound("Manuscript not found")
        ensure_allowed(identity, "manuscript:read", Manuscript.from_document(doc))
        return doc

    def _scope_filters(self, identity: Identity, status: Optional[str]) -> Optional[dict[str, Any]]:
        role = identity.role
        filters: dict[str, Any] = {}
        if role == UserRole.AUTHOR.value:
            filters["submitted_by"] = identity.id
        elif role == UserRole.REVIEWER.value:
            filters["reviewers"] = {"$elem": {"user_id": identity.id}}
        elif role == UserRole.EDITOR.value:
            if status and status not in EDITOR_VISIBLE_STATUSES:
                return None
            filters["status"] = {"$in": list(EDITOR_QUEUE_STATUSES)}

        if status:
            filters["status"] = status
        return filters

    def list_manuscripts(
        self,
        identity: Identity,
        *,
        status: Optional[str] = None,
        limit: int = 10,
        skip: int = 0,
    ) -> dict[str, Any]:
        ensure_allowed(identity, "manuscript:list")
        limit = max(1, min(int(limit or 10), 100))
        skip = max(0, int(skip or 0))
        filters = self._scope_filters(identity, status)
        if filters is None:
            return {"manuscripts": [], "pagination": {"total": 0, "limit": limit, "skip": skip, "has_more": False}}

        docs = self.store.find(
            MANUSCRIPTS,
            filters,
            sort=[("created_at", True)],
            limit=limit,
            skip=skip,
            project=LIST_FIELDS,
            populate=MANUSCRIPT_POPULATE[:1],
        )
        total = self.store.count(MANUSCRIPTS, filters)
        return {
            "manuscripts": docs,
            "pagination": {"total": total, "limit": limit, "skip": skip, "has_more": total > skip + limit},
        }

    def stats(self, identity: Identity) -> dict[str, int]:
        ensure_allowed(identity, "stats:view")
        count = self.store.count
        uid = identity.id
        if identity.role == UserRole.AUTHOR.value:
            mine = {"submitted_by": uid}
            return {
                "total_submissions": count(MANUSCRIPTS, mine),
                "under_review": count(MANUSCRIPTS, {**mine, "status": ManuscriptStatus.UNDER_REVIEW.value}),
                "accepted": count(MANUSCRIPTS, {**mine, "status": ManuscriptStatus.ACCEPTED.value}),
                "revision_required": count(MANUSCRIPTS, {**mine, "status": ManuscriptStatus.REVISION_REQUIRED.value}),
                "rejected": count(MANUSCRIPTS, {**mine, "status": ManuscriptStatus.REJECTED.value}),
            }
        if identity.role == UserRole.REVIEWER.value:

            def _with(status: ReviewerStatus) -> int:
                return count(MANUSCRIPTS, {"reviewers": {"$elem": {"user_id": uid, "status": status.value}}})

            return {
                "total_reviews": count(MANUSCRIPTS, {"reviewers": {"$elem": {"user_id": uid}}}),
                "pending_reviews": _with(ReviewerStatus.INVITED) + _with(ReviewerStatus.ACCEPTED),
                "completed_reviews": _with(ReviewerStatus.COMPLETED),
            }
        if identity.role == UserRole.EDITOR.value:
            return {
                "new_submissions": count(MANUSCRIPTS, {"status": ManuscriptStatus.SUBMITTED.value}),
                "under_review": count(MANUSCRIPTS, {"status": ManuscriptStatus.UNDER_REVIEW.value}),
                "awaiting_revision": count(MANUSCRIPTS, {"status": ManuscriptStatus.REVISION_REQUIRED.value}),
                "total_managed": count(MANUSCRIPTS, {"assigned_editor": uid}),
            }
        return {s.value: count(MANUSCRIPTS, {"status": s.value}) for s in ManuscriptStatus}

    # --- administrative ---

    def publish(self, identity: Identity, manuscript_id: str, payload: PublishPayload) -> Manuscript:
        """
        accepted -> published：人工/管理操作，同时写入出版元数据。
        """
        ensure_allowed(identity, "manuscript:publish")
        manuscript = self.load(manuscript_id)
        from_status = manuscript.transition_to(ManuscriptStatus.PUBLISHED)

        now = _utc_now()
        manuscript.doi = payload.doi or manuscript.doi
        manuscript.issue = payload.issue or manuscript.issue
        manuscript.volume = payload.volume or manuscript.volume
        manuscript.pages = payload.pages or manuscript.pages
        manuscript.published_date = now
        manuscript.append_timeline("Manuscript published", actor=identity.id, now=now)
        saved = self.persist(manuscript, expected_status=from_status)
        logger.info(f"[Workflow] manuscript {manuscript_id}: accepted -> published by {identity.id}")
        return saved
