import logging
import os
from contextlib import asynccontextmanager

from dotenv import load_dotenv
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

# 在应用启动前加载环境变量
load_dotenv()

logger = logging.getLogger("reviewdesk")

_SENTRY_ENABLED = False
try:
    from reviewdesk.core.sentry_init import init_sentry

    _SENTRY_ENABLED = init_sentry()
    if _SENTRY_ENABLED:
        logger.info("[sentry] enabled")
except Exception as e:
    # 中文注释: Sentry 任何异常不得阻塞启动
    logger.warning(f"[sentry] init failed (ignored): {e}")

from reviewdesk.api.v1 import auth, decisions, manuscripts, reviews, users
from reviewdesk.core.config import app_config
from reviewdesk.core.middleware import ExceptionHandlerMiddleware, register_exception_handlers
from reviewdesk.lib.entity_store import get_entity_store


@asynccontextmanager
async def lifespan(app: FastAPI):
    # 中文注释: 启动时初始化存储单例，配置错误尽早暴露在日志里
    get_entity_store()
    logger.info(f"[startup] env={app_config.env} store={app_config.store_backend}")
    yield


app = FastAPI(
    title="ReviewDesk API",
    description="Manuscript submission and peer review workflow backend",
    version="1.0.0",
    lifespan=lifespan,
)


def _parse_frontend_origins() -> list[str]:
    """
    解析允许跨域的前端 Origins。

    中文注释:
    - 本地默认: http://localhost:3000
    - 生产/预发: 通过 FRONTEND_ORIGIN 或 FRONTEND_ORIGINS 注入（逗号分隔）
    """
    origins: list[str] = []

    single = (os.environ.get("FRONTEND_ORIGIN") or "").strip()
    if single:
        origins.append(single.rstrip("/"))

    many = (os.environ.get("FRONTEND_ORIGINS") or "").strip()
    for part in many.split(","):
        o = part.strip().rstrip("/")
        if o:
            origins.append(o)

    if not origins:
        origins = ["http://localhost:3000"]

    # 去重保持顺序
    return list(dict.fromkeys(origins))


# === 中间件配置 ===
app.add_middleware(
    CORSMiddleware,
    allow_origins=_parse_frontend_origins(),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.add_middleware(ExceptionHandlerMiddleware)
register_exception_handlers(app)

# === 路由注册 ===
app.include_router(auth.router, prefix="/api/v1")
app.include_router(users.router, prefix="/api/v1")
app.include_router(manuscripts.router, prefix="/api/v1")
app.include_router(reviews.router, prefix="/api/v1")
app.include_router(decisions.router, prefix="/api/v1")


@app.get("/")
async def root():
    return {"message": "ReviewDesk API is running", "docs": "/docs"}
