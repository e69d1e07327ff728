from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


Recommendation = Literal["accept", "minor_revision", "major_revision", "reject"]

RATING_CRITERIA = ("originality", "methodology", "clarity", "significance", "references")
MIN_COMMENT_LENGTH = 50


class ReviewStatus(str, Enum):
    INVITED = "invited"
    IN_PROGRESS = "in_progress"
    SUBMITTED = "submitted"
    COMPLETED = "completed"


class ReviewRatings(BaseModel):
    originality: int = Field(..., ge=1, le=5)
    methodology: int = Field(..., ge=1, le=5)
    clarity: int = Field(..., ge=1, le=5)
    significance: int = Field(..., ge=1, le=5)
    references: int = Field(..., ge=1, le=5)

    def mean(self) -> float:
        values = [getattr(self, name) for name in RATING_CRITERIA]
        return sum(values) / len(values)


class ReviewComments(BaseModel):
    strengths: str
    weaknesses: str
    suggestions: str
    confidential_comments: Optional[str] = None

    @field_validator("strengths", "weaknesses", "suggestions")
    @classmethod
    def validate_detailed(cls, value: str, info) -> str:
        # 中文注释: 三个公开评论字段都必须足够详细（>= 50 字符，去除首尾空白后计算）
        trimmed = (value or "").strip()
        if len(trimmed) < MIN_COMMENT_LENGTH:
            raise ValueError(
                f"Please provide detailed {info.field_name} (at least {MIN_COMMENT_LENGTH} characters)"
            )
        return trimmed

    @field_validator("confidential_comments", mode="before")
    @classmethod
    def normalize_confidential(cls, value):
        if value is None:
            return None
        if isinstance(value, str):
            return value.strip() or None
        return value


class ReviewContent(BaseModel):
    overall_recommendation: Recommendation
    ratings: ReviewRatings
    comments: ReviewComments


class RevisionEntry(BaseModel):
    model_config = ConfigDict(frozen=True)

    version: int
    submitted_at: Optional[datetime] = None
    content: ReviewContent


class Invitation(BaseModel):
    sent_at: datetime = Field(default_factory=_utc_now)
    deadline: datetime
    status: Literal["pending", "accepted", "declined"] = "pending"
    responded_at: Optional[datetime] = None


def is_late(deadline: datetime | None, status: ReviewStatus | str, now: datetime | None = None) -> bool:
    """
    逾期判定（纯函数）：已提交/已完成的审稿永不逾期；否则 now > deadline 即逾期。
    """
    value = status.value if isinstance(status, ReviewStatus) else str(status or "")
    if value in {ReviewStatus.SUBMITTED.value, ReviewStatus.COMPLETED.value}:
        return False
    if deadline is None:
        return False
    current = now or _utc_now()
    if deadline.tzinfo is None:
        deadline = deadline.replace(tzinfo=timezone.utc)
    return current > deadline


class Review(BaseModel):
    """
    一个 (manuscript, reviewer) 对应至多一个 Review 文档。
    """

    id: Optional[str] = None
    manuscript_id: str
    reviewer_id: str
    invitation: Invitation
    review_type: Literal["single-blind", "double-blind", "open"] = "double-blind"
    content: Optional[ReviewContent] = None
    revision_history: tuple[RevisionEntry, ...] = ()
    current_round: int = 1
    status: ReviewStatus = ReviewStatus.INVITED
    submitted_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @classmethod
    def from_document(cls, doc: dict[str, Any]) -> "Review":
        return cls.model_validate(doc)

    def to_document(self) -> dict[str, Any]:
        return self.model_dump(mode="json")

    def is_late(self, now: datetime | None = None) -> bool:
        return is_late(self.invitation.deadline, self.status, now)

    def next_revision_version(self) -> int:
        return max((r.version for r in self.revision_history), default=0) + 1

    def resubmit(self, content: ReviewContent, *, now: datetime | None = None) -> RevisionEntry:
        """
        覆盖 content，把上一版内容追加到 revision_history（版本号连续递增，不复用不跳号）。
        """
        if self.content is None:
            raise ValueError("resubmit requires an existing content")
        stamp = now or _utc_now()
        entry = RevisionEntry(
            version=self.next_revision_version(),
            submitted_at=self.submitted_at,
            content=self.content,
        )
        self.revision_history = (*self.revision_history, entry)
        self.content = content
        self.current_round = entry.version + 1
        self.submitted_at = stamp
        self.completed_at = stamp
        self.status = ReviewStatus.COMPLETED
        return entry
