"""
Supabase 客户端（按需创建）。

中文注释:
- anon 客户端只用于 Supabase Auth 的 token 回退校验（core/auth.py）。
- admin 客户端（service_role）承载实体存储、文件存储与注册时的 Auth 用户创建。
- STORE_BACKEND=memory 时从不触达这里；缺少 URL/KEY 只在第一次真正使用时报错。
"""

import logging
import os
from functools import lru_cache
from typing import Any

from supabase import Client, create_client

from reviewdesk.core.config import app_config

logger = logging.getLogger("reviewdesk")

ANON = "anon"
ADMIN = "admin"


def _anon_key() -> str:
    # SUPABASE_ANON_KEY 优先，SUPABASE_KEY 作为别名
    return (os.environ.get("SUPABASE_ANON_KEY") or os.environ.get("SUPABASE_KEY") or "").strip()


def _admin_key() -> str:
    return app_config.supabase_key or _anon_key()


@lru_cache(maxsize=None)
def get_client(kind: str = ADMIN) -> Client:
    if not app_config.supabase_url:
        raise RuntimeError("SUPABASE_URL is required when STORE_BACKEND=supabase")
    key = _admin_key() if kind == ADMIN else _anon_key()
    if not key:
        raise RuntimeError(
            "SUPABASE_SERVICE_ROLE_KEY (or SUPABASE_KEY) is required"
            if kind == ADMIN
            else "SUPABASE_ANON_KEY or SUPABASE_KEY is required"
        )
    logger.info(f"[Store] creating supabase {kind} client")
    return create_client(app_config.supabase_url, key)


class _ClientProxy:
    """模块级句柄：属性访问时才创建真实 Client，便于测试直接 patch 模块属性。"""

    def __init__(self, kind: str) -> None:
        self._kind = kind

    def __getattr__(self, item: str) -> Any:
        return getattr(get_client(self._kind), item)


supabase: Client = _ClientProxy(ANON)  # type: ignore[assignment]
supabase_admin: Client = _ClientProxy(ADMIN)  # type: ignore[assignment]
