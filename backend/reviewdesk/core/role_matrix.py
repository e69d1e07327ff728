from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Optional

from reviewdesk.core.errors import Forbidden, Unauthorized
from reviewdesk.models.manuscript import Manuscript, ManuscriptStatus, ReviewerStatus
from reviewdesk.models.user import Identity, UserRole

# 中文注释：
# - 这里集中定义“角色 -> 动作”权限矩阵，避免权限逻辑散落在各路由。
# - 第二层是资源级规则（归属 / 成员关系 / 资源状态），同样集中在本模块。
# - 纯函数，不读存储、不依赖任何全局会话。

ADMIN_ROLE = UserRole.ADMIN.value

# 无需登录即可执行的动作
PUBLIC_ACTIONS = frozenset({"user:register"})

ROLE_ACTIONS: dict[str, set[str]] = {
    UserRole.AUTHOR.value: {
        "manuscript:create",
        "manuscript:read",
        "manuscript:list",
        "manuscript:update_draft",
        "manuscript:submit",
        "stats:view",
        "profile:view",
    },
    UserRole.REVIEWER.value: {
        "manuscript:read",
        "manuscript:list",
        "invitation:respond",
        "review:submit",
        "review:read_own",
        "stats:view",
        "profile:view",
    },
    UserRole.EDITOR.value: {
        "manuscript:read",
        "manuscript:list",
        "reviewer:invite",
        "reviews:list",
        "decision:submit",
        "users:search",
        "stats:view",
        "profile:view",
    },
    ADMIN_ROLE: {
        "*",
    },
}


@dataclass(frozen=True)
class AccessDecision:
    allowed: bool
    reason: Optional[str] = None
    authenticated: bool = True

    @classmethod
    def allow(cls) -> "AccessDecision":
        return cls(allowed=True)

    @classmethod
    def deny(cls, reason: str, *, authenticated: bool = True) -> "AccessDecision":
        return cls(allowed=False, reason=reason, authenticated=authenticated)


def normalize_role(role: Optional[str]) -> str:
    return str(role or "").strip().lower()


def can_perform_action(*, action: str, role: Optional[str]) -> bool:
    """
    判定角色是否可执行某动作（只看能力表，不看资源）。

    中文注释：
    - admin 拥有全局通配权限；
    - 其余角色按 ROLE_ACTIONS 显式授权。
    """
    normalized = normalize_role(role)
    if normalized == ADMIN_ROLE:
        return True
    allowed = ROLE_ACTIONS.get(normalized) or set()
    return "*" in allowed or action in allowed


# === 资源级规则 ===


def _owns(identity: Identity, manuscript: Manuscript) -> bool:
    return str(manuscript.submitted_by) == str(identity.id)


def _rule_read(identity: Identity, manuscript: Manuscript) -> AccessDecision:
    role = normalize_role(identity.role)
    if role == UserRole.AUTHOR.value and not _owns(identity, manuscript):
        return AccessDecision.deny("Authors may only view their own manuscripts")
    if role == UserRole.REVIEWER.value and not manuscript.has_reviewer(identity.id):
        return AccessDecision.deny("You are not a reviewer of this manuscript")
    if role == UserRole.EDITOR.value and manuscript.status == ManuscriptStatus.DRAFT:
        return AccessDecision.deny("Draft manuscripts are not visible to editors")
    return AccessDecision.allow()


def _rule_owner(identity: Identity, manuscript: Manuscript) -> AccessDecision:
    if not _owns(identity, manuscript):
        return AccessDecision.deny("Only the submitting author may modify this manuscript")
    return AccessDecision.allow()


def _rule_invited(identity: Identity, manuscript: Manuscript) -> AccessDecision:
    if not manuscript.has_reviewer(identity.id):
        return AccessDecision.deny("You are not invited to review this manuscript")
    return AccessDecision.allow()


def _rule_accepted(identity: Identity, manuscript: Manuscript) -> AccessDecision:
    entry = manuscript.reviewer_entry(identity.id)
    if entry is None:
        return AccessDecision.deny("You are not assigned to review this manuscript")
    if entry.status != ReviewerStatus.ACCEPTED:
        return AccessDecision.deny(
            f"You must accept the invitation before submitting a review (current status: {entry.status.value})"
        )
    return AccessDecision.allow()


RESOURCE_RULES: dict[str, Callable[[Identity, Manuscript], AccessDecision]] = {
    "manuscript:read": _rule_read,
    "manuscript:update_draft": _rule_owner,
    "manuscript:submit": _rule_owner,
    "invitation:respond": _rule_invited,
    "review:submit": _rule_accepted,
    "review:read_own": _rule_invited,
}


def authorize(
    identity: Optional[Identity],
    action: str,
    resource: Optional[Manuscript] = None,
) -> AccessDecision:
    """
    authorize(identity, action, resource) -> allow | deny(reason)

    先查能力表，再对给定资源应用归属/成员规则；admin 不受资源规则约束。
    """
    if action in PUBLIC_ACTIONS:
        return AccessDecision.allow()
    if identity is None:
        return AccessDecision.deny("Authentication required", authenticated=False)

    role = normalize_role(identity.role)
    if not can_perform_action(action=action, role=role):
        return AccessDecision.deny(f"Role '{role or 'unknown'}' is not allowed to perform {action}")
    if role == ADMIN_ROLE:
        return AccessDecision.allow()

    rule = RESOURCE_RULES.get(action)
    if rule is not None and resource is not None:
        return rule(identity, resource)
    return AccessDecision.allow()


def ensure_allowed(
    identity: Optional[Identity],
    action: str,
    resource: Optional[Manuscript] = None,
) -> None:
    decision = authorize(identity, action, resource)
    if decision.allowed:
        return
    if not decision.authenticated:
        raise Unauthorized(decision.reason or "Authentication required")
    raise Forbidden(decision.reason or "Access denied", details={"action": action})
