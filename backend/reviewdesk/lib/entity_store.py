"""
实体存储（users / manuscripts / reviews 三个集合）。

中文注释:
- 对上层只暴露 find_by_id / find / count / create / save 五个操作，全部是单文档原子写。
- filters 语法：
    {"field": value}                   等值（数组字段时匹配任一元素）
    {"field": {"$in": [...]}}          集合成员
    {"field": {"$ilike": "text"}}      大小写不敏感子串匹配（数组字段时匹配任一元素）
    {"field": {"$elem": {...}}}        数组中存在与子文档匹配的元素
    {"$or": [{...}, {...}]}            任一子条件成立
  点号路径用于访问嵌套字段（例如 profile.expertise）。
- find_by_id 未命中返回 None；后端故障统一抛 StorageUnavailable。
"""

from __future__ import annotations

import json
import logging
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime, timezone
from threading import Lock
from typing import Any, Optional, Sequence
from uuid import uuid4

from postgrest.exceptions import APIError

from reviewdesk.core.config import app_config
from reviewdesk.core.errors import Conflict, StorageUnavailable

logger = logging.getLogger("reviewdesk")

USERS = "users"
MANUSCRIPTS = "manuscripts"
REVIEWS = "reviews"
COLLECTIONS = (USERS, MANUSCRIPTS, REVIEWS)

Filters = dict[str, Any]
SortSpec = Sequence[tuple[str, bool]]  # (field, descending)


def _utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def new_id() -> str:
    return str(uuid4())


@dataclass(frozen=True)
class Populate:
    """
    引用展开：把 path 指向的 id 替换为目标集合中的（投影后的）文档，挂在 as_ 键下。

    path 为 "reviewers.user_id" 这种形式时，对数组中的每个条目分别展开。
    """

    path: str
    collection: str
    fields: tuple[str, ...]
    as_: str


class EntityStore(ABC):
    @abstractmethod
    def _find_by_id(self, collection: str, id: str, project: Optional[Sequence[str]]) -> Optional[dict[str, Any]]:
        ...

    @abstractmethod
    def _find(
        self,
        collection: str,
        filters: Optional[Filters],
        sort: Optional[SortSpec],
        limit: Optional[int],
        skip: int,
        project: Optional[Sequence[str]],
    ) -> list[dict[str, Any]]:
        ...

    @abstractmethod
    def count(self, collection: str, filters: Optional[Filters] = None) -> int:
        ...

    @abstractmethod
    def _insert(self, collection: str, doc: dict[str, Any]) -> dict[str, Any]:
        ...

    @abstractmethod
    def _replace(
        self, collection: str, doc: dict[str, Any], expected: Optional[Filters]
    ) -> Optional[dict[str, Any]]:
        ...

    def find_by_id(
        self,
        collection: str,
        id: str,
        *,
        populate: Optional[Sequence[Populate]] = None,
        project: Optional[Sequence[str]] = None,
    ) -> Optional[dict[str, Any]]:
        if not id:
            return None
        doc = self._find_by_id(collection, str(id), project)
        if doc is None:
            return None
        if populate:
            self._populate([doc], populate)
        return doc

    def find(
        self,
        collection: str,
        filters: Optional[Filters] = None,
        *,
        sort: Optional[SortSpec] = None,
        limit: Optional[int] = None,
        skip: int = 0,
        project: Optional[Sequence[str]] = None,
        populate: Optional[Sequence[Populate]] = None,
    ) -> list[dict[str, Any]]:
        docs = self._find(collection, filters, sort, limit, max(0, int(skip or 0)), project)
        if populate and docs:
            self._populate(docs, populate)
        return docs

    def create(self, collection: str, doc: dict[str, Any]) -> dict[str, Any]:
        now = _utc_now_iso()
        payload = dict(doc)
        payload["id"] = str(payload.get("id") or new_id())
        payload["created_at"] = payload.get("created_at") or now
        payload["updated_at"] = now
        return self._insert(collection, payload)

    def save(
        self,
        collection: str,
        doc: dict[str, Any],
        *,
        expected: Optional[Filters] = None,
    ) -> Optional[dict[str, Any]]:
        """
        整体写回文档并刷新 updated_at。

        expected 不为空时作为写前置条件（例如 {"status": "submitted"}）：
        存储中的文档已不满足时不写入，返回 None，由调用方决定如何报告冲突。
        """
        if not doc.get("id"):
            raise ValueError("save() requires a document with an id")
        payload = dict(doc)
        payload["updated_at"] = _utc_now_iso()
        return self._replace(collection, payload, expected)

    def _populate(self, docs: list[dict[str, Any]], specs: Sequence[Populate]) -> None:
        for spec in specs:
            head, _, tail = spec.path.partition(".")
            ids: set[str] = set()
            for doc in docs:
                if tail:
                    for item in doc.get(head) or []:
                        if isinstance(item, dict) and item.get(tail):
                            ids.add(str(item[tail]))
                elif doc.get(head):
                    ids.add(str(doc[head]))
            if not ids:
                continue
            fields = tuple(dict.fromkeys(("id", *spec.fields)))
            refs = {
                str(r["id"]): r
                for r in self._find(spec.collection, {"id": {"$in": sorted(ids)}}, None, None, 0, fields)
            }
            for doc in docs:
                if tail:
                    for item in doc.get(head) or []:
                        if isinstance(item, dict):
                            item[spec.as_] = refs.get(str(item.get(tail)))
                else:
                    doc[spec.as_] = refs.get(str(doc.get(head))) if doc.get(head) else None


# === Supabase (PostgREST) 实现 ===

_OR_UNSAFE = re.compile(r"[,()%*]")


def _column(path: str) -> str:
    # profile.expertise -> profile->>expertise（jsonb 取文本）
    parts = path.split(".")
    if len(parts) == 1:
        return parts[0]
    return "->".join(parts[:-1]) + "->>" + parts[-1]


def _or_clause(path: str, cond: Any) -> str:
    col = _column(path)
    if isinstance(cond, dict) and "$ilike" in cond:
        text = _OR_UNSAFE.sub(" ", str(cond["$ilike"]))
        return f"{col}.ilike.*{text}*"
    return f"{col}.eq.{_OR_UNSAFE.sub(' ', str(cond))}"


class SupabaseEntityStore(EntityStore):
    """
    基于 supabase-py 的实现。嵌套字段（authors/files/reviewers/timeline 等）存为 jsonb 列。
    """

    def __init__(self, client: Any = None) -> None:
        if client is None:
            from reviewdesk.lib.api_client import supabase_admin

            client = supabase_admin
        self.client = client

    def _apply_filters(self, query: Any, filters: Optional[Filters]) -> Any:
        for path, cond in (filters or {}).items():
            if path == "$or":
                clauses = [_or_clause(p, c) for sub in cond for p, c in sub.items()]
                if clauses:
                    query = query.or_(",".join(clauses))
                continue
            col = _column(path)
            if isinstance(cond, dict):
                if "$in" in cond:
                    query = query.in_(col, [str(v) for v in cond["$in"]])
                elif "$ilike" in cond:
                    query = query.ilike(col, f"%{cond['$ilike']}%")
                elif "$elem" in cond:
                    # jsonb @> '[{...}]'，值必须是 JSON 文本
                    query = query.contains(path.split(".")[0], json.dumps([cond["$elem"]]))
                else:
                    raise ValueError(f"Unsupported filter operator for {path}: {sorted(cond)}")
            elif cond is None:
                query = query.is_(col, "null")
            else:
                query = query.eq(col, cond)
        return query

    def _run(self, what: str, fn):
        try:
            return fn()
        except (ValueError, StorageUnavailable):
            raise
        except APIError as e:
            code = getattr(e, "code", None)
            # 23505: unique_violation（例如 users.email 唯一约束）
            if str(code) == "23505":
                raise Conflict("Document already exists", details={"operation": what}) from e
            logger.error(f"[Store] {what} failed: code={code} {e}")
            raise StorageUnavailable() from e
        except Exception as e:
            logger.error(f"[Store] {what} failed: {e}")
            raise StorageUnavailable() from e

    def _find_by_id(self, collection, id, project):
        def _q():
            select = ",".join(dict.fromkeys(("id", *project))) if project else "*"
            resp = self.client.table(collection).select(select).eq("id", id).limit(1).execute()
            rows = getattr(resp, "data", None) or []
            return rows[0] if rows else None

        return self._run(f"find_by_id {collection}", _q)

    def _find(self, collection, filters, sort, limit, skip, project):
        def _q():
            select = ",".join(dict.fromkeys(("id", *project))) if project else "*"
            query = self._apply_filters(self.client.table(collection).select(select), filters)
            for field, desc in sort or ():
                query = query.order(_column(field), desc=desc)
            if limit is not None:
                query = query.range(skip, skip + max(0, int(limit)) - 1)
            elif skip:
                query = query.range(skip, skip + 9999)
            resp = query.execute()
            return list(getattr(resp, "data", None) or [])

        return self._run(f"find {collection}", _q)

    def count(self, collection, filters=None):
        def _q():
            query = self._apply_filters(
                self.client.table(collection).select("id", count="exact"), filters
            )
            resp = query.execute()
            total = getattr(resp, "count", None)
            if total is None:
                total = len(getattr(resp, "data", None) or [])
            return int(total)

        return self._run(f"count {collection}", _q)

    def _insert(self, collection, doc):
        def _q():
            resp = self.client.table(collection).insert(doc).execute()
            rows = getattr(resp, "data", None) or []
            return rows[0] if rows else doc

        return self._run(f"insert {collection}", _q)

    def _replace(self, collection, doc, expected):
        def _q():
            payload = {k: v for k, v in doc.items() if k != "id"}
            query = self.client.table(collection).update(payload).eq("id", doc["id"])
            for field, value in (expected or {}).items():
                query = query.eq(_column(field), value)
            resp = query.execute()
            rows = getattr(resp, "data", None) or []
            return rows[0] if rows else None

        return self._run(f"save {collection}", _q)


_store: Optional[EntityStore] = None
_store_lock = Lock()


def get_entity_store() -> EntityStore:
    """
    进程级单例。FastAPI 路由通过 Depends(get_entity_store) 注入，测试用 dependency_overrides 替换。
    """
    global _store
    if _store is None:
        with _store_lock:
            if _store is None:
                if app_config.store_backend == "supabase":
                    _store = SupabaseEntityStore()
                else:
                    from reviewdesk.lib.memory_store import MemoryEntityStore

                    _store = MemoryEntityStore()
                logger.info(f"[Store] backend={app_config.store_backend}")
    return _store
