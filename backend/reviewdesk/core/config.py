import os
from dataclasses import dataclass
from typing import Optional


def _env_bool(key: str, default: bool) -> bool:
    raw = os.environ.get(key)
    if raw is None:
        return default
    lowered = raw.strip().lower()
    return lowered in {"1", "true", "yes", "y", "on"}


def _env_int(key: str, default: int, *, min_value: int = 0) -> int:
    try:
        value = int((os.environ.get(key) or "").strip() or default)
    except ValueError:
        value = default
    return max(min_value, value)


@dataclass(frozen=True)
class AppConfig:
    """
    Application environment config.

    中文注释:
    - store_backend=memory 用于本地开发与测试（进程内存储，无需 Supabase）。
    - store_backend=supabase 时读写 users/manuscripts/reviews 三张表。
    """

    env: str  # 'development', 'staging', 'production'
    is_staging: bool
    store_backend: str
    supabase_url: str
    supabase_key: str
    jwt_secret: str
    review_deadline_days: int
    manuscript_bucket: str

    @property
    def is_dev(self) -> bool:
        return self.env == "development"

    @staticmethod
    def from_env() -> "AppConfig":
        env = (os.environ.get("APP_ENV") or "development").strip().lower()
        is_staging = env == "staging"

        store_backend = (os.environ.get("STORE_BACKEND") or "memory").strip().lower()
        if store_backend not in {"memory", "supabase"}:
            store_backend = "memory"

        supabase_url = (os.environ.get("SUPABASE_URL") or "").strip()
        supabase_key = (os.environ.get("SUPABASE_SERVICE_ROLE_KEY") or "").strip()
        jwt_secret = (
            os.environ.get("SUPABASE_JWT_SECRET") or "mock-secret-replace-later"
        ).strip()

        return AppConfig(
            env=env,
            is_staging=is_staging,
            store_backend=store_backend,
            supabase_url=supabase_url,
            supabase_key=supabase_key,
            jwt_secret=jwt_secret,
            review_deadline_days=_env_int("REVIEW_DEADLINE_DAYS", 14, min_value=1),
            manuscript_bucket=(os.environ.get("MANUSCRIPT_BUCKET") or "manuscripts").strip(),
        )


# Global Config Instance
app_config = AppConfig.from_env()


@dataclass(frozen=True)
class SentryConfig:
    """
    Sentry 错误上报配置（可选）。
    """

    enabled: bool
    dsn: Optional[str]
    environment: str
    traces_sample_rate: float

    @staticmethod
    def from_env() -> "SentryConfig":
        dsn = (os.environ.get("SENTRY_DSN") or "").strip() or None
        enabled = _env_bool("SENTRY_ENABLED", bool(dsn))
        environment = (
            os.environ.get("SENTRY_ENVIRONMENT") or os.environ.get("APP_ENV") or "development"
        ).strip()

        raw_rate = (os.environ.get("SENTRY_TRACES_SAMPLE_RATE") or "0.0").strip()
        try:
            traces_sample_rate = float(raw_rate)
        except ValueError:
            traces_sample_rate = 0.0
        traces_sample_rate = min(1.0, max(0.0, traces_sample_rate))

        return SentryConfig(
            enabled=enabled,
            dsn=dsn,
            environment=environment,
            traces_sample_rate=traces_sample_rate,
        )
