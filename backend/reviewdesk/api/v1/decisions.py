from fastapi import APIRouter, Body, Depends

from reviewdesk.core.auth import get_current_user
from reviewdesk.lib.entity_store import EntityStore, get_entity_store
from reviewdesk.models.user import Identity
from reviewdesk.schemas.decision import DecisionPayload
from reviewdesk.services.decision_service import DecisionService

router = APIRouter(tags=["Editorial Decisions"])


def get_decision_service(store: EntityStore = Depends(get_entity_store)) -> DecisionService:
    return DecisionService(store)


@router.post("/manuscripts/{manuscript_id}/decision")
async def submit_decision(
    manuscript_id: str,
    payload: DecisionPayload = Body(...),
    current_user: Identity = Depends(get_current_user),
    service: DecisionService = Depends(get_decision_service),
):
    """
    编辑决定：accepted / revision_required（需 revision_type）/ rejected。
    """
    manuscript = service.decide(current_user, manuscript_id, payload)
    return {
        "success": True,
        "message": f"Manuscript {payload.decision.replace('_', ' ')}",
        "manuscript": manuscript.to_document(),
    }
