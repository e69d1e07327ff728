from fastapi import APIRouter, Body, Depends

from reviewdesk.core.auth import get_current_user
from reviewdesk.lib.entity_store import EntityStore, get_entity_store
from reviewdesk.models.user import Identity
from reviewdesk.schemas.review import (
    InviteReviewersPayload,
    RespondInvitationPayload,
    ReviewSubmission,
    serialize_review,
)
from reviewdesk.services.review_service import ReviewService
from reviewdesk.services.reviewer_service import ReviewerService

router = APIRouter(tags=["Reviews"])


def get_reviewer_service(store: EntityStore = Depends(get_entity_store)) -> ReviewerService:
    return ReviewerService(store)


def get_review_service(store: EntityStore = Depends(get_entity_store)) -> ReviewService:
    return ReviewService(store)


@router.post("/manuscripts/{manuscript_id}/invite-reviewers")
async def invite_reviewers(
    manuscript_id: str,
    payload: InviteReviewersPayload = Body(...),
    current_user: Identity = Depends(get_current_user),
    service: ReviewerService = Depends(get_reviewer_service),
):
    """
    编辑邀请审稿人；已在列表中的审稿人自动跳过。
    """
    manuscript, invited = service.invite(current_user, manuscript_id, payload)
    return {
        "success": True,
        "message": f"{len(invited)} reviewer(s) invited successfully",
        "invited": invited,
        "manuscript": manuscript.to_document(),
    }


@router.post("/manuscripts/{manuscript_id}/respond-invitation")
async def respond_invitation(
    manuscript_id: str,
    payload: RespondInvitationPayload = Body(...),
    current_user: Identity = Depends(get_current_user),
    service: ReviewerService = Depends(get_reviewer_service),
):
    manuscript = service.respond(current_user, manuscript_id, payload.action)
    entry = manuscript.reviewer_entry(current_user.id)
    return {
        "success": True,
        "message": f"Invitation {entry.status.value if entry else payload.action}",
        "reviewer": entry.model_dump(mode="json") if entry else None,
    }


@router.post("/manuscripts/{manuscript_id}/submit-review")
async def submit_review(
    manuscript_id: str,
    payload: ReviewSubmission = Body(...),
    current_user: Identity = Depends(get_current_user),
    service: ReviewService = Depends(get_review_service),
):
    review = service.submit_review(current_user, manuscript_id, payload)
    return {
        "success": True,
        "message": "Review submitted successfully",
        "review": serialize_review(review, viewer_role=current_user.role),
    }


@router.get("/manuscripts/{manuscript_id}/submit-review")
async def get_own_review(
    manuscript_id: str,
    current_user: Identity = Depends(get_current_user),
    service: ReviewService = Depends(get_review_service),
):
    return {"success": True, "review": service.get_own_review(current_user, manuscript_id)}


@router.get("/manuscripts/{manuscript_id}/reviews")
async def list_reviews(
    manuscript_id: str,
    current_user: Identity = Depends(get_current_user),
    service: ReviewService = Depends(get_review_service),
):
    """
    编辑查看全部审稿意见 + 只读汇总（平均分 / 各维度均分 / 推荐意见计数）。
    """
    result = service.list_reviews(current_user, manuscript_id)
    return {"success": True, **result}
