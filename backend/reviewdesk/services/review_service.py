from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Iterable, Optional

from pydantic import BaseModel, Field

from reviewdesk.core.errors import Conflict
from reviewdesk.core.role_matrix import ensure_allowed
from reviewdesk.lib.entity_store import REVIEWS, USERS, EntityStore, Populate
from reviewdesk.models.manuscript import DECIDABLE_STATUSES
from reviewdesk.models.review import (
    RATING_CRITERIA,
    Invitation,
    Review,
    ReviewContent,
    ReviewStatus,
)
from reviewdesk.models.user import Identity
from reviewdesk.schemas.review import serialize_review
from reviewdesk.services.manuscript_service import ManuscriptService

logger = logging.getLogger("reviewdesk")

RECOMMENDATIONS = ("accept", "minor_revision", "major_revision", "reject")

REVIEWER_POPULATE = (Populate("reviewer_id", USERS, ("name", "email", "profile"), "reviewer"),)


class ReviewScore(BaseModel):
    review_id: Optional[str] = None
    reviewer_id: str
    recommendation: str
    mean_rating: float


class ReviewSummary(BaseModel):
    """
    只读汇总，供编辑做决定时参考；不会据此自动生成决定。
    """

    submitted_count: int = 0
    per_review: list[ReviewScore] = Field(default_factory=list)
    overall_mean: Optional[float] = None
    criterion_means: dict[str, float] = Field(default_factory=dict)
    recommendation_counts: dict[str, int] = Field(default_factory=lambda: {r: 0 for r in RECOMMENDATIONS})


def summarize_reviews(reviews: Iterable[Review]) -> ReviewSummary:
    submitted = [r for r in reviews if r.content is not None]
    summary = ReviewSummary(submitted_count=len(submitted))
    if not submitted:
        return summary

    for review in submitted:
        content = review.content
        summary.per_review.append(
            ReviewScore(
                review_id=review.id,
                reviewer_id=review.reviewer_id,
                recommendation=content.overall_recommendation,
                mean_rating=round(content.ratings.mean(), 2),
            )
        )
        summary.recommendation_counts[content.overall_recommendation] += 1

    means = [r.content.ratings.mean() for r in submitted]
    summary.overall_mean = round(sum(means) / len(means), 2)
    summary.criterion_means = {
        name: round(sum(getattr(r.content.ratings, name) for r in submitted) / len(submitted), 2)
        for name in RATING_CRITERIA
    }
    return summary


class ReviewService:
    """
    审稿提交与读取。

    中文注释:
    - 先写 Review，再把稿件上的审稿人条目推进到 completed；
      第二步失败时条目仍为 accepted，审稿人重试会走“再次提交”分支（追加 revision_history）。
    - 读出口统一走 serialize_review：附加 is_late、按角色剔除机密评论。
    """

    def __init__(self, store: Optional[EntityStore] = None) -> None:
        self.manuscripts = ManuscriptService(store)
        self.store = self.manuscripts.store

    def _find_review(self, manuscript_id: str, reviewer_id: str) -> Optional[Review]:
        docs = self.store.find(
            REVIEWS,
            {"manuscript_id": manuscript_id, "reviewer_id": reviewer_id},
            limit=1,
        )
        return Review.from_document(docs[0]) if docs else None

    def submit_review(self, identity: Identity, manuscript_id: str, content: ReviewContent) -> Review:
        manuscript = self.manuscripts.load(manuscript_id)
        ensure_allowed(identity, "review:submit", manuscript)

        status = manuscript.status.value
        if status not in DECIDABLE_STATUSES:
            raise Conflict(
                f"Manuscript is not accepting reviews (status: {status})",
                details={"status": status},
            )
        entry = manuscript.reviewer_entry(identity.id)
        if entry is None:
            raise Conflict("You are not assigned to review this manuscript")

        now = datetime.now(timezone.utc)
        content = ReviewContent.model_validate(content.model_dump())
        existing = self._find_review(manuscript_id, identity.id)

        if existing is None:
            review = Review(
                manuscript_id=manuscript_id,
                reviewer_id=identity.id,
                invitation=Invitation(
                    sent_at=entry.invited_at,
                    deadline=entry.deadline,
                    status="accepted",
                    responded_at=entry.responded_at,
                ),
                content=content,
                current_round=1,
                status=ReviewStatus.COMPLETED,
                submitted_at=now,
                completed_at=now,
            )
            saved_doc = self.store.create(REVIEWS, review.to_document())
        else:
            round_before = existing.current_round
            existing.resubmit(content, now=now)
            saved_doc = self.store.save(
                REVIEWS,
                existing.to_document(),
                expected={"current_round": round_before},
            )
            if saved_doc is None:
                raise Conflict("Review was updated by another request, please reload and retry")
        review = Review.from_document(saved_doc)

        entry.complete(now=now)
        manuscript.append_timeline(
            "Review submitted",
            actor=identity.id,
            metadata={"round": review.current_round},
            now=now,
        )
        self.manuscripts.persist(manuscript, expected_status=status)
        logger.info(
            f"[Workflow] manuscript {manuscript_id}: review round {review.current_round} submitted by {identity.id}"
        )
        return review

    def get_own_review(self, identity: Identity, manuscript_id: str) -> Optional[dict[str, Any]]:
        manuscript = self.manuscripts.load(manuscript_id)
        ensure_allowed(identity, "review:read_own", manuscript)
        review = self._find_review(manuscript_id, identity.id)
        if review is None:
            return None
        return serialize_review(review, viewer_role=identity.role)

    def list_reviews(self, identity: Identity, manuscript_id: str) -> dict[str, Any]:
        manuscript = self.manuscripts.load(manuscript_id)
        ensure_allowed(identity, "reviews:list", manuscript)

        docs = self.store.find(
            REVIEWS,
            {"manuscript_id": manuscript_id},
            sort=[("submitted_at", True)],
            populate=REVIEWER_POPULATE,
        )
        reviews = [Review.from_document(d) for d in docs]
        out = []
        for doc, review in zip(docs, reviews):
            data = serialize_review(review, viewer_role=identity.role)
            data["reviewer"] = doc.get("reviewer")
            out.append(data)
        return {"reviews": out, "summary": summarize_reviews(reviews).model_dump()}
