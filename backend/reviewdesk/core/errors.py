"""
工作流错误类型。

中文注释:
- 服务层直接抛出 HTTPException 子类（与路由层保持同一套异常语义）。
- 每个错误带稳定的 kind，前端据此区分“未登录 / 无权限 / 状态冲突”等情况。
"""

from __future__ import annotations

from typing import Any, Optional

from fastapi import HTTPException, status


class WorkflowError(HTTPException):
    kind: str = "workflow_error"
    status_code_default: int = status.HTTP_400_BAD_REQUEST

    def __init__(self, message: str, *, details: Optional[Any] = None) -> None:
        super().__init__(status_code=self.status_code_default, detail=message)
        self.message = message
        self.details = details

    def to_payload(self) -> dict[str, Any]:
        error: dict[str, Any] = {"kind": self.kind, "message": self.message}
        if self.details is not None:
            error["details"] = self.details
        return {"success": False, "error": error}


class Unauthorized(WorkflowError):
    kind = "unauthorized"
    status_code_default = status.HTTP_401_UNAUTHORIZED


class Forbidden(WorkflowError):
    kind = "forbidden"
    status_code_default = status.HTTP_403_FORBIDDEN


class NotFound(WorkflowError):
    kind = "not_found"
    status_code_default = status.HTTP_404_NOT_FOUND


class ValidationFailed(WorkflowError):
    kind = "validation_failed"
    status_code_default = 422


class Conflict(WorkflowError):
    kind = "conflict"
    status_code_default = status.HTTP_409_CONFLICT


class StorageUnavailable(WorkflowError):
    kind = "storage_unavailable"
    status_code_default = status.HTTP_503_SERVICE_UNAVAILABLE

    def __init__(self, message: str = "Storage is temporarily unavailable, please retry", **kwargs: Any) -> None:
        super().__init__(message, **kwargs)


def validation_details(exc: Exception) -> list[dict[str, str]]:
    """
    将 pydantic ValidationError 转为 [{field, message}]，保留字段级信息。
    """
    errors = getattr(exc, "errors", None)
    if not callable(errors):
        return [{"field": "", "message": str(exc)}]
    out: list[dict[str, str]] = []
    for err in errors():
        loc = [str(p) for p in (err.get("loc") or ()) if p not in ("body",)]
        msg = str(err.get("msg") or "")
        # pydantic 会给自定义 ValueError 加 "Value error, " 前缀
        if msg.startswith("Value error, "):
            msg = msg[len("Value error, "):]
        out.append({"field": ".".join(loc), "message": msg})
    return out
