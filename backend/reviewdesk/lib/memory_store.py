from __future__ import annotations

import copy
from threading import Lock
from typing import Any, Iterable, Optional

from reviewdesk.lib.entity_store import COLLECTIONS, EntityStore, Filters


_MISSING = object()


def _values_at(doc: Any, path: str) -> list[Any]:
    """
    按点号路径取值；路径途经数组时展开（与文档数据库的语义一致）。
    """
    current: list[Any] = [doc]
    for part in path.split("."):
        nxt: list[Any] = []
        for value in current:
            if isinstance(value, dict):
                got = value.get(part, _MISSING)
                if got is not _MISSING:
                    nxt.append(got)
            elif isinstance(value, list):
                for item in value:
                    if isinstance(item, dict) and part in item:
                        nxt.append(item[part])
        current = nxt
    return current


def _flatten(values: Iterable[Any]) -> list[Any]:
    out: list[Any] = []
    for v in values:
        if isinstance(v, list):
            out.extend(v)
        else:
            out.append(v)
    return out


def _match_cond(doc: dict[str, Any], path: str, cond: Any) -> bool:
    raw = _values_at(doc, path)
    if isinstance(cond, dict):
        if "$in" in cond:
            wanted = {str(v) for v in cond["$in"]}
            return any(str(v) in wanted for v in _flatten(raw))
        if "$ilike" in cond:
            needle = str(cond["$ilike"]).lower()
            return any(isinstance(v, str) and needle in v.lower() for v in _flatten(raw))
        if "$elem" in cond:
            sub = cond["$elem"]
            for value in raw:
                for item in value if isinstance(value, list) else []:
                    if isinstance(item, dict) and all(item.get(k) == v for k, v in sub.items()):
                        return True
            return False
        raise ValueError(f"Unsupported filter operator for {path}: {sorted(cond)}")
    if cond is None:
        return not raw or all(v is None for v in raw)
    return any(v == cond for v in _flatten(raw)) or any(v == cond for v in raw)


def matches(doc: dict[str, Any], filters: Optional[Filters]) -> bool:
    for path, cond in (filters or {}).items():
        if path == "$or":
            if not any(matches(doc, sub) for sub in cond):
                return False
            continue
        if not _match_cond(doc, path, cond):
            return False
    return True


def _project(doc: dict[str, Any], project) -> dict[str, Any]:
    if not project:
        return doc
    keep = ("id", *project)
    return {k: doc[k] for k in keep if k in doc}


class MemoryEntityStore(EntityStore):
    """
    进程内实现（本地开发 / 测试）。

    中文注释:
    - 读写都做 deepcopy，调用方拿到的文档修改不会影响存储中的状态。
    - 单把锁保证“读-比较-写”在 save(expected=...) 中是原子的。
    """

    def __init__(self) -> None:
        self._data: dict[str, dict[str, dict[str, Any]]] = {name: {} for name in COLLECTIONS}
        self._lock = Lock()

    def _table(self, collection: str) -> dict[str, dict[str, Any]]:
        if collection not in self._data:
            raise ValueError(f"Unknown collection: {collection}")
        return self._data[collection]

    def _find_by_id(self, collection, id, project):
        with self._lock:
            doc = self._table(collection).get(id)
            if doc is None:
                return None
            return _project(copy.deepcopy(doc), project)

    def _find(self, collection, filters, sort, limit, skip, project):
        with self._lock:
            rows = [copy.deepcopy(d) for d in self._table(collection).values() if matches(d, filters)]
        # 多键排序：从最后一个键开始做稳定排序
        for field, desc in reversed(list(sort or ())):
            present = [r for r in rows if r.get(field) is not None]
            absent = [r for r in rows if r.get(field) is None]
            present.sort(key=lambda r: r.get(field), reverse=desc)
            rows = present + absent
        rows = rows[skip:]
        if limit is not None:
            rows = rows[: max(0, int(limit))]
        return [_project(r, project) for r in rows]

    def count(self, collection, filters=None):
        with self._lock:
            return sum(1 for d in self._table(collection).values() if matches(d, filters))

    def _insert(self, collection, doc):
        with self._lock:
            table = self._table(collection)
            if doc["id"] in table:
                raise ValueError(f"Duplicate id in {collection}: {doc['id']}")
            table[doc["id"]] = copy.deepcopy(doc)
            return copy.deepcopy(doc)

    def _replace(self, collection, doc, expected):
        with self._lock:
            table = self._table(collection)
            current = table.get(doc["id"])
            if current is None:
                return None
            if expected and not matches(current, expected):
                return None
            merged = {**doc, "created_at": current.get("created_at", doc.get("created_at"))}
            table[doc["id"]] = copy.deepcopy(merged)
            return copy.deepcopy(merged)
