"""
可选的 Sentry 错误上报。

中文注释:
- 稿件文件、审稿正文（含机密评论）与编辑反馈都不允许离开服务端。
- 请求体一律不上报；extra / contexts 中的敏感键递归替换为 [Filtered]。
"""

from typing import Any, Optional

from reviewdesk.core.config import SentryConfig

FILTERED = "[Filtered]"

# 凭据类
_CREDENTIAL_KEYS = frozenset(
    {
        "password",
        "access_token",
        "refresh_token",
        "token",
        "authorization",
        "cookie",
        "set-cookie",
        "supabase_key",
        "service_role_key",
        "jwt_secret",
    }
)

# 审稿 / 决定内容类
_REVIEW_CONTENT_KEYS = frozenset({"confidential_comments", "comments", "feedback"})

_MAX_TEXT = 5000


def _redacted_key(key: Any) -> bool:
    lowered = str(key).strip().lower()
    return lowered in _CREDENTIAL_KEYS or lowered in _REVIEW_CONTENT_KEYS


def _scrub(value: Any) -> Any:
    if isinstance(value, (bytes, bytearray)):
        return FILTERED
    if isinstance(value, str):
        return FILTERED if len(value) > _MAX_TEXT else value
    if isinstance(value, dict):
        return {str(k): (FILTERED if _redacted_key(k) else _scrub(v)) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_scrub(v) for v in value]
    return value


def _strip_request(request: dict[str, Any]) -> dict[str, Any]:
    headers = request.get("headers")
    if isinstance(headers, dict):
        request["headers"] = {
            k: v for k, v in headers.items() if str(k).strip().lower() not in _CREDENTIAL_KEYS
        }
    for field in ("cookies", "data", "body"):
        if field in request:
            request[field] = FILTERED
    return request


def _before_send(event: dict[str, Any], hint: dict[str, Any]) -> Optional[dict[str, Any]]:
    if isinstance(event.get("request"), dict):
        event["request"] = _strip_request(event["request"])
    for section in ("extra", "contexts"):
        if isinstance(event.get(section), dict):
            event[section] = _scrub(event[section])
    return event


def _options(cfg: SentryConfig, *, legacy: bool = False) -> dict[str, Any]:
    from sentry_sdk.integrations.fastapi import FastApiIntegration

    options: dict[str, Any] = {
        "dsn": cfg.dsn,
        "environment": cfg.environment,
        "traces_sample_rate": cfg.traces_sample_rate,
        "integrations": [FastApiIntegration()],
        "send_default_pii": False,
        "before_send": _before_send,
    }
    if not legacy:
        options["max_request_body_size"] = "never"
        options["include_local_variables"] = False
    return options


def init_sentry() -> bool:
    """
    未配置 DSN 或 SENTRY_ENABLED=false 时返回 False。

    旧版 sentry-sdk 不认识 max_request_body_size / include_local_variables 时去掉这两项重试；
    其余异常交给调用方（main.py）记录后忽略。
    """
    cfg = SentryConfig.from_env()
    if not (cfg.enabled and cfg.dsn):
        return False

    import sentry_sdk

    try:
        sentry_sdk.init(**_options(cfg))
    except (TypeError, ValueError) as exc:
        message = str(exc)
        if "Unknown option" not in message and "unexpected keyword argument" not in message:
            raise
        sentry_sdk.init(**_options(cfg, legacy=True))
    return True
