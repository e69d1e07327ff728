from fastapi import APIRouter, Body, Depends, Query

from reviewdesk.core.auth import create_access_token
from reviewdesk.core.config import app_config
from reviewdesk.core.errors import NotFound
from reviewdesk.lib.entity_store import USERS, EntityStore, get_entity_store
from reviewdesk.schemas.user import RegisterRequest
from reviewdesk.services.user_service import UserService

router = APIRouter(prefix="/auth", tags=["Auth"])


@router.post("/register", status_code=201)
async def register(
    req: RegisterRequest = Body(...),
    store: EntityStore = Depends(get_entity_store),
):
    """
    开放注册：role 缺省为 author，admin 不可自选；密码交给认证后端，不写入 users。
    """
    user = UserService(store).register(req)
    return {"success": True, "message": "User registered successfully", "user": user}


@router.get("/dev-login")
async def dev_login(
    email: str = Query(..., description="登录邮箱（仅 development 环境可用）"),
    store: EntityStore = Depends(get_entity_store),
):
    """
    开发环境登录后门：按邮箱查到已注册用户，直接签发 HS256 token。
    """
    if not app_config.is_dev:
        # 中文注释: 非开发环境必须“像不存在一样”
        raise NotFound("Not found")

    rows = store.find(USERS, {"email": email.strip().lower()}, limit=1, project=("email", "name", "role"))
    if not rows:
        raise NotFound("User not found")
    user = rows[0]
    token = create_access_token(user_id=user["id"], email=user.get("email"))
    return {
        "success": True,
        "access_token": token,
        "token_type": "bearer",
        "user": {k: user.get(k) for k in ("id", "name", "email", "role")},
    }
