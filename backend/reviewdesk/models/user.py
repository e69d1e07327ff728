from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field


class UserRole(str, Enum):
    AUTHOR = "author"
    REVIEWER = "reviewer"
    EDITOR = "editor"
    ADMIN = "admin"


# 中文注释: admin 不允许在注册时自选，只能由运维在存储层直接写入。
SELF_ASSIGNABLE_ROLES = frozenset(
    {UserRole.AUTHOR.value, UserRole.REVIEWER.value, UserRole.EDITOR.value}
)


@dataclass(frozen=True)
class Identity:
    """
    已验证的调用方身份（由认证层注入，显式传给每个服务方法）。
    """

    id: str
    role: str


class UserProfile(BaseModel):
    affiliation: Optional[str] = None
    orcid: Optional[str] = None
    bio: Optional[str] = None
    expertise: list[str] = Field(default_factory=list)
    website: Optional[str] = None


class UserStats(BaseModel):
    submissions: int = 0
    reviews: int = 0
    citations: int = 0


class User(BaseModel):
    id: Optional[str] = None
    email: str
    name: str
    role: UserRole = UserRole.AUTHOR
    image: Optional[str] = None
    profile: UserProfile = Field(default_factory=UserProfile)
    stats: UserStats = Field(default_factory=UserStats)
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
