from __future__ import annotations

from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

from reviewdesk.core.errors import Conflict


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class ManuscriptStatus(str, Enum):
    """
    稿件生命周期状态枚举。

    中文注释:
    - 所有状态写入必须经过 Manuscript.transition_to()，由 allowed_next() 校验。
    - 任何流转都不允许回到 draft。
    """

    DRAFT = "draft"
    SUBMITTED = "submitted"
    UNDER_REVIEW = "under_review"
    REVISION_REQUIRED = "revision_required"
    ACCEPTED = "accepted"
    REJECTED = "rejected"
    PUBLISHED = "published"

    @classmethod
    def allowed_next(cls, current: str) -> set[str]:
        """
        状态机规则（显性可见）：
        - draft -> submitted（作者显式提交）
        - submitted -> under_review（首次邀请审稿人时自动流转）
        - under_review -> accepted / revision_required / rejected（编辑决定）
        - revision_required -> under_review（重新邀请审稿人）/ accepted / revision_required / rejected
        - accepted -> published（人工发布）
        - rejected / published 为终态
        """
        c = (current or "").strip().lower()
        if c == cls.DRAFT.value:
            return {cls.SUBMITTED.value}
        if c == cls.SUBMITTED.value:
            return {cls.UNDER_REVIEW.value}
        if c == cls.UNDER_REVIEW.value:
            return {cls.ACCEPTED.value, cls.REVISION_REQUIRED.value, cls.REJECTED.value}
        if c == cls.REVISION_REQUIRED.value:
            return {
                cls.UNDER_REVIEW.value,
                cls.ACCEPTED.value,
                cls.REVISION_REQUIRED.value,
                cls.REJECTED.value,
            }
        if c == cls.ACCEPTED.value:
            return {cls.PUBLISHED.value}
        return set()


# 编辑决定只能在这两个状态上做出
DECIDABLE_STATUSES = frozenset(
    {ManuscriptStatus.UNDER_REVIEW.value, ManuscriptStatus.REVISION_REQUIRED.value}
)
# 可以（继续）邀请审稿人的状态
INVITABLE_STATUSES = frozenset(
    {
        ManuscriptStatus.SUBMITTED.value,
        ManuscriptStatus.UNDER_REVIEW.value,
        ManuscriptStatus.REVISION_REQUIRED.value,
    }
)


def normalize_status(value: str | None) -> str | None:
    if value is None:
        return None
    v = str(value).strip().lower().replace("-", "_")
    if not v:
        return None
    try:
        return ManuscriptStatus(v).value
    except ValueError:
        return None


ManuscriptType = Literal["research", "review", "case-study", "short-communication"]


class Author(BaseModel):
    name: str
    email: str
    affiliation: Optional[str] = None
    corresponding: bool = False


class SuggestedReviewer(BaseModel):
    name: str
    email: str
    affiliation: Optional[str] = None
    expertise: Optional[str] = None


class FileDescriptor(BaseModel):
    filename: str
    url: str
    size: int = 0
    mime_type: str = "application/octet-stream"
    uploaded_at: datetime = Field(default_factory=_utc_now)


class ManuscriptFiles(BaseModel):
    manuscript: Optional[FileDescriptor] = None
    cover_letter: Optional[FileDescriptor] = None
    supplementary: list[FileDescriptor] = Field(default_factory=list)


class VersionFiles(BaseModel):
    model_config = ConfigDict(frozen=True)

    manuscript: Optional[FileDescriptor] = None
    supplementary: tuple[FileDescriptor, ...] = ()


class Version(BaseModel):
    model_config = ConfigDict(frozen=True)

    version: int
    date: datetime
    files: VersionFiles
    changelog: Optional[str] = None


class ReviewerStatus(str, Enum):
    INVITED = "invited"
    ACCEPTED = "accepted"
    DECLINED = "declined"
    COMPLETED = "completed"


class ReviewerEntry(BaseModel):
    """
    稿件上的审稿人邀请子状态：invited -> accepted -> completed，或 invited -> declined。
    """

    user_id: str
    status: ReviewerStatus = ReviewerStatus.INVITED
    invited_at: datetime = Field(default_factory=_utc_now)
    deadline: datetime
    responded_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None

    @classmethod
    def invite(
        cls,
        user_id: str,
        *,
        deadline: datetime | None = None,
        default_days: int = 14,
        now: datetime | None = None,
    ) -> "ReviewerEntry":
        invited_at = now or _utc_now()
        return cls(
            user_id=str(user_id),
            invited_at=invited_at,
            deadline=deadline or invited_at + timedelta(days=default_days),
        )

    def respond(self, *, accept: bool, now: datetime | None = None) -> None:
        if self.status != ReviewerStatus.INVITED:
            raise Conflict(
                f"You have already {self.status.value} this invitation",
                details={"status": self.status.value},
            )
        self.status = ReviewerStatus.ACCEPTED if accept else ReviewerStatus.DECLINED
        self.responded_at = now or _utc_now()

    def complete(self, *, now: datetime | None = None) -> None:
        if self.status != ReviewerStatus.ACCEPTED:
            raise Conflict(
                "You must accept the invitation before submitting a review",
                details={"status": self.status.value},
            )
        self.status = ReviewerStatus.COMPLETED
        self.completed_at = now or _utc_now()


class TimelineEvent(BaseModel):
    model_config = ConfigDict(frozen=True)

    event: str
    actor: Optional[str] = None
    date: datetime = Field(default_factory=_utc_now)
    metadata: Optional[dict[str, Any]] = None


DecisionKind = Literal["accept", "reject", "revision"]


class EditorialDecision(BaseModel):
    model_config = ConfigDict(frozen=True)

    editor: str
    decision: DecisionKind
    revision_type: Optional[Literal["minor", "major"]] = None
    comments: str
    date: datetime = Field(default_factory=_utc_now)


class Manuscript(BaseModel):
    """
    稿件聚合根。

    中文注释:
    - timeline / editorial_decisions 使用 tuple + frozen 条目，只能通过 append_* 追加。
    - reviewers 条目按 user_id 唯一。
    """

    id: Optional[str] = None
    title: str
    abstract: str
    keywords: list[str] = Field(default_factory=list)
    authors: list[Author] = Field(default_factory=list)
    submitted_by: str
    status: ManuscriptStatus = ManuscriptStatus.DRAFT
    manuscript_type: ManuscriptType
    category: Optional[str] = None
    files: ManuscriptFiles = Field(default_factory=ManuscriptFiles)
    versions: tuple[Version, ...] = ()
    current_version: int = 0
    assigned_editor: Optional[str] = None
    reviewers: list[ReviewerEntry] = Field(default_factory=list)
    suggested_reviewers: list[SuggestedReviewer] = Field(default_factory=list)
    editorial_decisions: tuple[EditorialDecision, ...] = ()
    timeline: tuple[TimelineEvent, ...] = ()
    doi: Optional[str] = None
    published_date: Optional[datetime] = None
    issue: Optional[str] = None
    volume: Optional[str] = None
    pages: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @classmethod
    def from_document(cls, doc: dict[str, Any]) -> "Manuscript":
        return cls.model_validate(doc)

    def to_document(self) -> dict[str, Any]:
        return self.model_dump(mode="json")

    def transition_to(self, to_status: ManuscriptStatus | str) -> str:
        """
        校验并应用状态流转，返回流转前的状态。非法流转抛 Conflict，状态保持不变。
        """
        to_norm = normalize_status(to_status.value if isinstance(to_status, ManuscriptStatus) else to_status)
        if to_norm is None:
            raise Conflict(f"Unknown manuscript status: {to_status}")
        from_status = self.status.value
        allowed = ManuscriptStatus.allowed_next(from_status)
        if to_norm not in allowed:
            raise Conflict(
                f"Invalid transition: {from_status} -> {to_norm}",
                details={"from": from_status, "to": to_norm, "allowed": sorted(allowed)},
            )
        self.status = ManuscriptStatus(to_norm)
        return from_status

    def append_timeline(
        self,
        event: str,
        *,
        actor: str | None,
        metadata: dict[str, Any] | None = None,
        now: datetime | None = None,
    ) -> TimelineEvent:
        entry = TimelineEvent(event=event, actor=actor, date=now or _utc_now(), metadata=metadata)
        self.timeline = (*self.timeline, entry)
        return entry

    def append_decision(self, decision: EditorialDecision) -> None:
        self.editorial_decisions = (*self.editorial_decisions, decision)

    def snapshot_version(self, *, changelog: str | None = None, now: datetime | None = None) -> Version:
        number = max((v.version for v in self.versions), default=0) + 1
        version = Version(
            version=number,
            date=now or _utc_now(),
            files=VersionFiles(
                manuscript=self.files.manuscript,
                supplementary=tuple(self.files.supplementary),
            ),
            changelog=changelog,
        )
        self.versions = (*self.versions, version)
        self.current_version = number
        return version

    def reviewer_entry(self, user_id: str) -> ReviewerEntry | None:
        for entry in self.reviewers:
            if entry.user_id == str(user_id):
                return entry
        return None

    def has_reviewer(self, user_id: str) -> bool:
        return self.reviewer_entry(user_id) is not None

    def add_reviewer(self, entry: ReviewerEntry) -> None:
        if self.has_reviewer(entry.user_id):
            raise Conflict(f"Reviewer {entry.user_id} has already been invited")
        self.reviewers.append(entry)
