from typing import Literal, Optional

from pydantic import BaseModel, EmailStr, Field, field_validator

from reviewdesk.models.manuscript import ManuscriptType


class AuthorIn(BaseModel):
    name: str = Field(..., min_length=2, description="作者姓名")
    email: EmailStr
    affiliation: Optional[str] = None
    corresponding: bool = False

    @field_validator("name", mode="before")
    @classmethod
    def strip_name(cls, value):
        return value.strip() if isinstance(value, str) else value


class SuggestedReviewerIn(BaseModel):
    name: str = Field(..., min_length=2)
    email: EmailStr
    affiliation: Optional[str] = None
    expertise: Optional[str] = None


class ManuscriptFields(BaseModel):
    """稿件可编辑字段（草稿保存与正式提交共用同一套校验）"""

    title: str = Field(..., min_length=10, max_length=500, description="稿件标题")
    abstract: str = Field(..., min_length=50, max_length=3000, description="稿件摘要")
    manuscript_type: ManuscriptType
    category: Optional[str] = None
    authors: list[AuthorIn] = Field(..., min_length=1, description="作者列表")
    keywords: list[str] = Field(..., min_length=1, max_length=10, description="关键词 1-10 个")
    suggested_reviewers: list[SuggestedReviewerIn] = Field(default_factory=list, max_length=5)

    @field_validator("title", "abstract", mode="before")
    @classmethod
    def strip_text(cls, value):
        # 中文注释: 先 trim 再做长度校验，避免用空白凑字数
        return value.strip() if isinstance(value, str) else value

    @field_validator("category", mode="before")
    @classmethod
    def normalize_category(cls, value):
        if value is None:
            return None
        if isinstance(value, str):
            return value.strip() or None
        return value

    @field_validator("authors")
    @classmethod
    def require_corresponding_author(cls, value: list[AuthorIn]) -> list[AuthorIn]:
        if not any(a.corresponding for a in value):
            raise ValueError("At least one corresponding author is required")
        return value

    @field_validator("keywords")
    @classmethod
    def validate_keywords(cls, value: list[str]) -> list[str]:
        out: list[str] = []
        for raw in value:
            kw = (raw or "").strip()
            if len(kw) < 2:
                raise ValueError("Each keyword must be at least 2 characters")
            out.append(kw)
        return out


class ManuscriptSubmission(ManuscriptFields):
    """创建稿件（multipart 中的 data 字段）"""

    status: Literal["draft", "submitted"] = "draft"


class ManuscriptDraftUpdate(BaseModel):
    """
    草稿局部更新：只校验传入的字段，合并后再整体按 ManuscriptFields 复核。
    """

    title: Optional[str] = None
    abstract: Optional[str] = None
    manuscript_type: Optional[ManuscriptType] = None
    category: Optional[str] = None
    authors: Optional[list[AuthorIn]] = None
    keywords: Optional[list[str]] = None
    suggested_reviewers: Optional[list[SuggestedReviewerIn]] = None


class PublishPayload(BaseModel):
    doi: Optional[str] = Field(None, max_length=255)
    issue: Optional[str] = Field(None, max_length=50)
    volume: Optional[str] = Field(None, max_length=50)
    pages: Optional[str] = Field(None, max_length=50)
