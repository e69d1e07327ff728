from typing import Literal, Optional

from pydantic import BaseModel, Field, field_validator, model_validator


DecisionValue = Literal["accepted", "revision_required", "rejected"]

# 对外的决定值 -> editorial_decisions 中存储的归一化值
DECISION_NORMALIZATION: dict[str, str] = {
    "accepted": "accept",
    "rejected": "reject",
    "revision_required": "revision",
}


class DecisionPayload(BaseModel):
    decision: DecisionValue
    feedback: str = Field(..., min_length=50, description="给作者的详细反馈（>= 50 字符）")
    revision_type: Optional[Literal["minor", "major"]] = None

    @field_validator("feedback", mode="before")
    @classmethod
    def strip_feedback(cls, value):
        return value.strip() if isinstance(value, str) else value

    @model_validator(mode="after")
    def require_revision_type(self) -> "DecisionPayload":
        if self.decision == "revision_required" and self.revision_type is None:
            raise ValueError("revision_type (minor or major) is required when requesting a revision")
        if self.decision != "revision_required" and self.revision_type is not None:
            # 中文注释: 非修回决定不记录 revision_type，避免出现语义矛盾的决定条目
            self.revision_type = None
        return self
