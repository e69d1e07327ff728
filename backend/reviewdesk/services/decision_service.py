from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Optional

from reviewdesk.core.errors import Conflict
from reviewdesk.core.role_matrix import ensure_allowed
from reviewdesk.lib.entity_store import EntityStore
from reviewdesk.models.manuscript import DECIDABLE_STATUSES, EditorialDecision, Manuscript
from reviewdesk.models.user import Identity
from reviewdesk.schemas.decision import DECISION_NORMALIZATION, DecisionPayload
from reviewdesk.services.manuscript_service import ManuscriptService

logger = logging.getLogger("reviewdesk")


class DecisionService:
    """
    编辑决定：under_review / revision_required -> accepted / revision_required / rejected。

    中文注释:
    - 决定条目写入后不可变（editorial_decisions 只追加）。
    - assigned_editor 只在为空时设置，不做改派。
    """

    def __init__(self, store: Optional[EntityStore] = None) -> None:
        self.manuscripts = ManuscriptService(store)

    def decide(self, identity: Identity, manuscript_id: str, payload: DecisionPayload) -> Manuscript:
        manuscript = self.manuscripts.load(manuscript_id)
        ensure_allowed(identity, "decision:submit", manuscript)

        status = manuscript.status.value
        if status not in DECIDABLE_STATUSES:
            raise Conflict(
                "Manuscript is not ready for editorial decision",
                details={"status": status, "allowed": sorted(DECIDABLE_STATUSES)},
            )
        manuscript.transition_to(payload.decision)

        now = datetime.now(timezone.utc)
        manuscript.append_decision(
            EditorialDecision(
                editor=identity.id,
                decision=DECISION_NORMALIZATION[payload.decision],
                revision_type=payload.revision_type,
                comments=payload.feedback,
                date=now,
            )
        )
        if not manuscript.assigned_editor:
            manuscript.assigned_editor = identity.id
        manuscript.append_timeline(
            f"Editorial decision: {payload.decision}",
            actor=identity.id,
            metadata={"revision_type": payload.revision_type} if payload.revision_type else None,
            now=now,
        )
        saved = self.manuscripts.persist(manuscript, expected_status=status)
        logger.info(f"[Workflow] manuscript {manuscript_id}: {status} -> {payload.decision} by {identity.id}")
        return saved
