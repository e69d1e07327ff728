from __future__ import annotations

import logging
from typing import Any, Optional

from reviewdesk.core.config import app_config
from reviewdesk.core.errors import Conflict, NotFound, StorageUnavailable
from reviewdesk.core.role_matrix import ensure_allowed
from reviewdesk.lib.entity_store import USERS, EntityStore, get_entity_store, new_id
from reviewdesk.models.user import Identity, User, UserProfile, UserRole
from reviewdesk.schemas.user import ProfileUpdateRequest, RegisterRequest

logger = logging.getLogger("reviewdesk")

SEARCH_FIELDS = ("name", "email", "role", "profile", "stats")


def _public_user(doc: dict[str, Any]) -> dict[str, Any]:
    return {
        "id": doc.get("id"),
        "name": doc.get("name"),
        "email": doc.get("email"),
        "role": doc.get("role"),
    }


class UserService:
    """
    注册 / 审稿人检索 / 个人资料。

    中文注释:
    - 密码从不落到 users 集合：supabase 后端交给 Supabase Auth 托管，memory 后端只用于本地开发。
    - role 注册后不可变，资料更新接口不接受 role 字段。
    """

    def __init__(self, store: Optional[EntityStore] = None) -> None:
        self.store = store or get_entity_store()

    def _create_auth_user(self, req: RegisterRequest) -> str:
        if app_config.store_backend != "supabase":
            return new_id()

        from reviewdesk.lib.api_client import supabase_admin

        try:
            resp = supabase_admin.auth.admin.create_user(
                {"email": req.email, "password": req.password, "email_confirm": True}
            )
        except Exception as e:
            text = str(e).lower()
            if "already" in text or "registered" in text or "exists" in text:
                raise Conflict("User with this email already exists") from e
            logger.error(f"[Users] auth create_user failed: {e}")
            raise StorageUnavailable() from e
        user = getattr(resp, "user", None)
        if not user or not getattr(user, "id", None):
            raise StorageUnavailable("Failed to create auth user")
        return str(user.id)

    def register(self, req: RegisterRequest) -> dict[str, Any]:
        ensure_allowed(None, "user:register")
        if self.store.count(USERS, {"email": req.email}) > 0:
            raise Conflict("User with this email already exists")

        user = User(
            id=self._create_auth_user(req),
            email=req.email,
            name=req.name,
            role=UserRole(req.role or UserRole.AUTHOR.value),
        )
        doc = self.store.create(USERS, user.model_dump(mode="json"))
        logger.info(f"[Users] registered {doc['id']} as {doc['role']}")
        return _public_user(doc)

    def get_profile(self, identity: Identity) -> dict[str, Any]:
        ensure_allowed(identity, "profile:view")
        doc = self.store.find_by_id(USERS, identity.id)
        if not doc:
            raise NotFound("User not found")
        return doc

    def update_profile(self, identity: Identity, req: ProfileUpdateRequest) -> dict[str, Any]:
        ensure_allowed(identity, "profile:view")
        doc = self.store.find_by_id(USERS, identity.id)
        if not doc:
            raise NotFound("User not found")

        changes = req.model_dump(exclude_unset=True)
        name = changes.pop("name", None)
        if name:
            doc["name"] = name.strip()
        profile = UserProfile.model_validate({**(doc.get("profile") or {}), **changes})
        doc["profile"] = profile.model_dump(mode="json")

        saved = self.store.save(USERS, doc)
        if saved is None:
            raise NotFound("User not found")
        return saved

    def search_reviewers(
        self,
        identity: Identity,
        *,
        query: str = "",
        expertise: str = "",
        role: str = UserRole.REVIEWER.value,
        limit: int = 20,
    ) -> list[dict[str, Any]]:
        """
        按姓名/邮箱/单位（大小写不敏感子串）与专长标签检索用户，默认只查 reviewer。
        """
        ensure_allowed(identity, "users:search")
        filters: dict[str, Any] = {"role": (role or UserRole.REVIEWER.value).strip().lower()}
        query = (query or "").strip()
        if query:
            filters["$or"] = [
                {"name": {"$ilike": query}},
                {"email": {"$ilike": query}},
                {"profile.affiliation": {"$ilike": query}},
            ]
        expertise = (expertise or "").strip()
        if expertise:
            filters["profile.expertise"] = {"$ilike": expertise}

        limit = max(1, min(int(limit or 20), 100))
        return self.store.find(USERS, filters, sort=[("name", False)], limit=limit, project=SEARCH_FIELDS)
