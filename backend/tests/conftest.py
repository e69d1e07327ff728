import os
import sys
from datetime import datetime, timedelta, timezone
from typing import AsyncGenerator

import jwt
import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

# Import app from the correct location
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))
os.environ["STORE_BACKEND"] = "memory"

from main import app  # noqa: E402
from reviewdesk.core.config import app_config  # noqa: E402
from reviewdesk.lib.entity_store import USERS, get_entity_store  # noqa: E402
from reviewdesk.lib.memory_store import MemoryEntityStore  # noqa: E402
from reviewdesk.models.user import Identity, User, UserProfile  # noqa: E402

# === 全局测试配置 ===
# 中文注释:
# 1. 每个测试拿到独立的 MemoryEntityStore，通过 dependency_overrides 注入到路由。
# 2. JWT 用 PyJWT 按 HS256 + aud=authenticated 签发，与后端 python-jose 校验一致。

LONG_TEXT = (
    "This section is intentionally long enough to satisfy the fifty character minimum."
)


def generate_test_token(user_id: str, *, expired: bool = False) -> str:
    now = datetime.now(timezone.utc)
    exp = now - timedelta(hours=1) if expired else now + timedelta(hours=1)
    payload = {
        "sub": user_id,
        "email": f"{user_id}@uni-example.org",
        "aud": "authenticated",
        "exp": exp,
        "iat": now - timedelta(hours=2) if expired else now,
        "role": "authenticated",
    }
    return jwt.encode(payload, app_config.jwt_secret, algorithm="HS256")


def _seed_user(store, *, id: str, role: str, name: str, email: str, **profile) -> Identity:
    user = User(id=id, email=email, name=name, role=role, profile=UserProfile(**profile))
    store.create(USERS, user.model_dump(mode="json"))
    return Identity(id=id, role=role)


@pytest.fixture
def store() -> MemoryEntityStore:
    return MemoryEntityStore()


@pytest.fixture
def people(store):
    """
    预置一组用户：两位作者、两位审稿人、一位编辑、一位管理员。
    """
    return {
        "author": _seed_user(store, id="author-1", role="author", name="Ada Author", email="ada@uni-example.org"),
        "author2": _seed_user(store, id="author-2", role="author", name="Ben Writer", email="ben@uni-example.org"),
        "reviewer": _seed_user(
            store,
            id="reviewer-1",
            role="reviewer",
            name="Rita Reviewer",
            email="rita@uni-example.org",
            affiliation="Institute of Marine Biology",
            expertise=["oceanography", "statistics"],
        ),
        "reviewer2": _seed_user(
            store,
            id="reviewer-2",
            role="reviewer",
            name="Sam Referee",
            email="sam@uni-example.org",
            affiliation="Northern Polytechnic",
            expertise=["machine learning"],
        ),
        "editor": _seed_user(store, id="editor-1", role="editor", name="Eve Editor", email="eve@uni-example.org"),
        "admin": _seed_user(store, id="admin-1", role="admin", name="Al Admin", email="al@uni-example.org"),
    }


@pytest.fixture
def manuscript_data():
    """
    返回一个可直接提交的稿件字段 dict（可用关键字覆盖）。
    """

    def _build(**overrides):
        data = {
            "title": "Deep currents and their effect on plankton",
            "abstract": "We study how deep ocean currents shape plankton distribution across three basins.",
            "manuscript_type": "research",
            "category": "Oceanography",
            "authors": [
                {
                    "name": "Ada Author",
                    "email": "ada@uni-example.org",
                    "affiliation": "Coastal University",
                    "corresponding": True,
                }
            ],
            "keywords": ["ocean", "plankton"],
            "suggested_reviewers": [],
        }
        data.update(overrides)
        return data

    return _build


@pytest.fixture
def review_data():
    def _build(recommendation: str = "minor_revision", score: int = 4, **ratings):
        return {
            "overall_recommendation": recommendation,
            "ratings": {
                "originality": ratings.get("originality", score),
                "methodology": ratings.get("methodology", score),
                "clarity": ratings.get("clarity", score),
                "significance": ratings.get("significance", score),
                "references": ratings.get("references", score),
            },
            "comments": {
                "strengths": "Strengths: " + LONG_TEXT,
                "weaknesses": "Weaknesses: " + LONG_TEXT,
                "suggestions": "Suggestions: " + LONG_TEXT,
                "confidential_comments": "Possible overlap with an earlier conference paper.",
            },
        }

    return _build


@pytest.fixture
def auth_headers():
    def _headers(identity: Identity) -> dict[str, str]:
        return {"Authorization": f"Bearer {generate_test_token(identity.id)}"}

    return _headers


@pytest.fixture
def make_token():
    return generate_test_token


@pytest.fixture
def expired_token():
    return generate_test_token("author-1", expired=True)


@pytest_asyncio.fixture
async def client(store) -> AsyncGenerator:
    """
    提供一个异步测试客户端，路由使用本测试的内存存储。
    """
    app.dependency_overrides[get_entity_store] = lambda: store
    try:
        async with AsyncClient(transport=ASGITransport(app=app), base_url="http://testserver") as ac:
            yield ac
    finally:
        app.dependency_overrides.pop(get_entity_store, None)
