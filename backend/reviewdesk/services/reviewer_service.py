from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Optional

from reviewdesk.core.config import app_config
from reviewdesk.core.errors import Conflict, Forbidden, ValidationFailed
from reviewdesk.core.role_matrix import ensure_allowed
from reviewdesk.lib.entity_store import USERS, EntityStore
from reviewdesk.models.manuscript import (
    INVITABLE_STATUSES,
    Manuscript,
    ManuscriptStatus,
    ReviewerEntry,
)
from reviewdesk.models.user import Identity, UserRole
from reviewdesk.schemas.review import InviteReviewersPayload, ReviewerInvite
from reviewdesk.services.manuscript_service import ManuscriptService

logger = logging.getLogger("reviewdesk")


class ReviewerService:
    """
    审稿邀请协议：编辑邀请 -> 审稿人接受/拒绝。

    中文注释:
    - 首次邀请（submitted）或返修后再次邀请（revision_required）会把稿件推进到 under_review。
    - 已在列表中的审稿人自动跳过；若整批都已邀请过则返回冲突。
    """

    def __init__(self, store: Optional[EntityStore] = None, *, deadline_days: Optional[int] = None) -> None:
        self.manuscripts = ManuscriptService(store)
        self.store = self.manuscripts.store
        self.deadline_days = deadline_days or app_config.review_deadline_days

    def _check_invitees(self, manuscript: Manuscript, invites: list[ReviewerInvite], now: datetime) -> None:
        ids = [i.user_id for i in invites]
        users = {
            str(u["id"]): u
            for u in self.store.find(USERS, {"id": {"$in": ids}}, project=("role",))
        }
        details: list[dict[str, str]] = []
        for invite in invites:
            user = users.get(invite.user_id)
            if user is None:
                details.append({"field": invite.user_id, "message": "User not found"})
            elif user.get("role") != UserRole.REVIEWER.value:
                details.append({"field": invite.user_id, "message": "User is not a reviewer"})
            elif invite.user_id == manuscript.submitted_by:
                details.append({"field": invite.user_id, "message": "Authors cannot review their own manuscript"})
            if invite.deadline is not None and invite.deadline <= now:
                details.append({"field": invite.user_id, "message": "Deadline must be in the future"})
        if details:
            raise ValidationFailed("Invalid reviewer selection", details=details)

    def invite(
        self,
        identity: Identity,
        manuscript_id: str,
        payload: InviteReviewersPayload,
    ) -> tuple[Manuscript, list[str]]:
        manuscript = self.manuscripts.load(manuscript_id)
        ensure_allowed(identity, "reviewer:invite", manuscript)

        status = manuscript.status.value
        if status not in INVITABLE_STATUSES:
            raise Conflict(
                f"Reviewers cannot be invited while the manuscript is {status}",
                details={"status": status},
            )

        # 同一批次内按 user_id 去重，保留第一次出现
        unique: dict[str, ReviewerInvite] = {}
        for invite in payload.reviewers:
            unique.setdefault(invite.user_id, invite)
        fresh = [i for i in unique.values() if not manuscript.has_reviewer(i.user_id)]
        if not fresh:
            raise Conflict("All selected reviewers have already been invited")

        now = datetime.now(timezone.utc)
        self._check_invitees(manuscript, fresh, now)

        for invite in fresh:
            manuscript.add_reviewer(
                ReviewerEntry.invite(
                    invite.user_id,
                    deadline=invite.deadline,
                    default_days=self.deadline_days,
                    now=now,
                )
            )
        invited_ids = [i.user_id for i in fresh]
        manuscript.append_timeline(
            f"{len(fresh)} reviewer(s) invited",
            actor=identity.id,
            metadata={"reviewers": invited_ids},
            now=now,
        )
        if status in (ManuscriptStatus.SUBMITTED.value, ManuscriptStatus.REVISION_REQUIRED.value):
            manuscript.transition_to(ManuscriptStatus.UNDER_REVIEW)

        saved = self.manuscripts.persist(manuscript, expected_status=status)
        logger.info(
            f"[Workflow] manuscript {manuscript_id}: invited {invited_ids} by {identity.id}, "
            f"status {status} -> {saved.status.value}"
        )
        return saved, invited_ids

    def respond(self, identity: Identity, manuscript_id: str, action: str) -> Manuscript:
        manuscript = self.manuscripts.load(manuscript_id)
        ensure_allowed(identity, "invitation:respond", manuscript)

        status = manuscript.status.value
        if status not in INVITABLE_STATUSES:
            raise Conflict(
                f"Manuscript is no longer under review (status: {status})",
                details={"status": status},
            )
        entry = manuscript.reviewer_entry(identity.id)
        if entry is None:
            raise Forbidden("You are not invited to review this manuscript")
        now = datetime.now(timezone.utc)
        accept = action == "accept"
        entry.respond(accept=accept, now=now)
        manuscript.append_timeline(
            "Reviewer accepted invitation" if accept else "Reviewer declined invitation",
            actor=identity.id,
            now=now,
        )
        saved = self.manuscripts.persist(manuscript, expected_status=status)
        logger.info(f"[Workflow] manuscript {manuscript_id}: reviewer {identity.id} {entry.status.value} invitation")
        return saved

