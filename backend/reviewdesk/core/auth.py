"""
认证模块
功能: 校验 Bearer JWT，并把调用方解析为显式的 Identity(id, role)

中文注释:
- 角色以 users 集合中的文档为准（注册后不可变），不信任 token 中的角色声明。
- HS256 token 本地校验；STORE_BACKEND=supabase 时对非 HS256 token 回退到 Supabase Auth API。
- 不存在任何“全局当前会话”，Identity 作为参数传给每个服务方法。
"""

import logging
from datetime import datetime, timedelta, timezone
from typing import Optional

from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt

from reviewdesk.core.config import app_config
from reviewdesk.core.errors import Unauthorized
from reviewdesk.lib.entity_store import USERS, EntityStore, get_entity_store
from reviewdesk.models.user import Identity

logger = logging.getLogger("reviewdesk")

ALGORITHM = "HS256"
AUDIENCE = "authenticated"

security = HTTPBearer(auto_error=False)


def create_access_token(*, user_id: str, email: Optional[str] = None, expires_in_minutes: int = 60 * 24) -> str:
    now = datetime.now(timezone.utc)
    payload = {
        "sub": str(user_id),
        "email": email,
        "aud": AUDIENCE,
        "iat": int(now.timestamp()),
        "exp": int((now + timedelta(minutes=expires_in_minutes)).timestamp()),
        "role": "authenticated",
    }
    return jwt.encode(payload, app_config.jwt_secret, algorithm=ALGORITHM)


def _resolve_user_id(token: str) -> str:
    try:
        header = jwt.get_unverified_header(token)
    except JWTError as e:
        logger.info(f"[Auth] malformed token: {e}")
        raise Unauthorized("Token 验证失败或已过期")

    if header.get("alg") == ALGORITHM:
        try:
            payload = jwt.decode(token, app_config.jwt_secret, algorithms=[ALGORITHM], audience=AUDIENCE)
        except JWTError as e:
            logger.info(f"[Auth] JWT 验证失败: {e}")
            raise Unauthorized("Token 验证失败或已过期")
        user_id = payload.get("sub")
        if not user_id:
            raise Unauthorized("无效的身份载荷")
        return str(user_id)

    if app_config.store_backend != "supabase":
        raise Unauthorized("Unsupported token algorithm")

    # fallback: 通过 Supabase Auth API 校验并获取用户信息
    from reviewdesk.lib.api_client import supabase

    try:
        response = supabase.auth.get_user(token)
        user = response.user if response else None
    except Exception as e:
        # 中文注释: Supabase 配置缺失/网络异常时不泄露内部错误，统一视为鉴权失败
        logger.warning(f"[Auth] JWT fallback 校验失败: {e}")
        raise Unauthorized("Token 验证失败或已过期")
    if not user:
        raise Unauthorized("无效的身份载荷")
    return str(user.id)


async def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    store: EntityStore = Depends(get_entity_store),
) -> Identity:
    """
    解析 Bearer token -> Identity(id, role)。无 token / token 无效 / 用户未注册均为 401。
    """
    if credentials is None or not credentials.credentials:
        raise Unauthorized("Authentication required")

    user_id = _resolve_user_id(credentials.credentials)
    user = store.find_by_id(USERS, user_id, project=["role"])
    if not user:
        raise Unauthorized("User profile not found")
    return Identity(id=user_id, role=str(user.get("role") or "author"))
