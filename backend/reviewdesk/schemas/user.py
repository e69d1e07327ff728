from typing import Optional

from pydantic import BaseModel, EmailStr, Field, field_validator

from reviewdesk.models.user import SELF_ASSIGNABLE_ROLES, UserRole


class RegisterRequest(BaseModel):
    name: str = Field(..., min_length=2, max_length=120)
    email: EmailStr
    password: str = Field(..., min_length=8)
    role: Optional[str] = None

    @field_validator("name", mode="before")
    @classmethod
    def strip_name(cls, value):
        return value.strip() if isinstance(value, str) else value

    @field_validator("email", mode="after")
    @classmethod
    def lower_email(cls, value: str) -> str:
        return str(value).strip().lower()

    @field_validator("role", mode="before")
    @classmethod
    def validate_role(cls, value):
        """
        中文注释:
        - 未填写时默认 author；
        - admin 永远不能通过注册自选。
        """
        if value is None:
            return UserRole.AUTHOR.value
        role = str(value).strip().lower()
        if not role:
            return UserRole.AUTHOR.value
        if role not in SELF_ASSIGNABLE_ROLES:
            raise ValueError(f"role must be one of: {', '.join(sorted(SELF_ASSIGNABLE_ROLES))}")
        return role


class ProfileUpdateRequest(BaseModel):
    name: Optional[str] = Field(default=None, min_length=2, max_length=120)
    affiliation: Optional[str] = Field(default=None, max_length=200)
    orcid: Optional[str] = Field(default=None, pattern=r"^\d{4}-\d{4}-\d{4}-\d{3}[0-9X]$")
    bio: Optional[str] = Field(default=None, max_length=2000)
    expertise: Optional[list[str]] = Field(default=None, max_length=20)
    website: Optional[str] = Field(default=None, max_length=500)

    @field_validator("orcid", "website", "affiliation", "bio", mode="before")
    @classmethod
    def normalize_optional_text_fields(cls, v):
        """
        允许前端传空字符串而不触发 422：
        - "" / "   " -> None
        """
        if v is None:
            return None
        if isinstance(v, str):
            stripped = v.strip()
            return stripped or None
        return v

    @field_validator("expertise")
    @classmethod
    def validate_expertise(cls, v):
        if v is None:
            return v
        tags = [t.strip() for t in v if t and t.strip()]
        for tag in tags:
            if len(tag) > 50:
                raise ValueError("Expertise tag must be less than 50 characters")
        return tags
