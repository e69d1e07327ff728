from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Literal, Optional

from pydantic import BaseModel, Field, field_validator

from reviewdesk.models.review import Review, ReviewContent
from reviewdesk.models.user import UserRole


class ReviewSubmission(ReviewContent):
    """
    审稿提交载荷：
    - overall_recommendation: accept / minor_revision / major_revision / reject
    - ratings: originality / methodology / clarity / significance / references（1..5 整数）
    - comments: strengths / weaknesses / suggestions（>= 50 字符）+ confidential_comments（仅编辑可见）
    """


class ReviewerInvite(BaseModel):
    user_id: str = Field(..., min_length=1)
    deadline: Optional[datetime] = None

    @field_validator("user_id", mode="before")
    @classmethod
    def strip_user_id(cls, value):
        return str(value).strip() if value is not None else value

    @field_validator("deadline")
    @classmethod
    def assume_utc(cls, value: Optional[datetime]) -> Optional[datetime]:
        if value is not None and value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value


class InviteReviewersPayload(BaseModel):
    reviewers: list[ReviewerInvite] = Field(..., min_length=1)


class RespondInvitationPayload(BaseModel):
    action: Literal["accept", "decline"]


# 中文注释: 机密评论只对编辑侧开放，作者侧（含审稿人自己之外的任何非编辑角色）一律剔除
CONFIDENTIAL_VIEWER_ROLES = frozenset({UserRole.EDITOR.value, UserRole.ADMIN.value})


def _strip_confidential(content: Optional[dict[str, Any]]) -> Optional[dict[str, Any]]:
    if not content:
        return content
    comments = dict(content.get("comments") or {})
    comments.pop("confidential_comments", None)
    return {**content, "comments": comments}


def serialize_review(review: Review, *, viewer_role: str, now: datetime | None = None) -> dict[str, Any]:
    """
    Review 的读出口：附加派生字段 is_late，并按查看者角色裁剪机密评论。
    """
    data = review.to_document()
    data["is_late"] = review.is_late(now)
    if viewer_role not in CONFIDENTIAL_VIEWER_ROLES:
        data["content"] = _strip_confidential(data.get("content"))
        data["revision_history"] = [
            {**entry, "content": _strip_confidential(entry.get("content"))}
            for entry in data.get("revision_history") or []
        ]
    return data
