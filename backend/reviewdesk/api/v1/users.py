from fastapi import APIRouter, Body, Depends, Query

from reviewdesk.core.auth import get_current_user
from reviewdesk.lib.entity_store import EntityStore, get_entity_store
from reviewdesk.models.user import Identity
from reviewdesk.schemas.user import ProfileUpdateRequest
from reviewdesk.services.user_service import UserService

router = APIRouter(tags=["Users"])


def get_user_service(store: EntityStore = Depends(get_entity_store)) -> UserService:
    return UserService(store)


@router.get("/user/profile")
async def get_profile(
    current_user: Identity = Depends(get_current_user),
    service: UserService = Depends(get_user_service),
):
    """
    获取当前登录用户的资料（含 role / profile / stats）。
    """
    return {"success": True, "data": service.get_profile(current_user)}


@router.put("/user/profile")
async def update_profile(
    req: ProfileUpdateRequest = Body(...),
    current_user: Identity = Depends(get_current_user),
    service: UserService = Depends(get_user_service),
):
    # 中文注释: 只能更新自己的资料（id 来自 token），role 不在可更新字段中
    return {"success": True, "data": service.update_profile(current_user, req)}


@router.get("/users/search")
async def search_users(
    query: str = Query("", description="姓名 / 邮箱 / 单位"),
    expertise: str = Query("", description="专长标签"),
    role: str = Query("reviewer"),
    limit: int = Query(20, ge=1, le=100),
    current_user: Identity = Depends(get_current_user),
    service: UserService = Depends(get_user_service),
):
    users = service.search_reviewers(current_user, query=query, expertise=expertise, role=role, limit=limit)
    return {"success": True, "users": users}
