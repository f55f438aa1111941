from __future__ import annotations

import copy
import logging
import os
import uuid
from dataclasses import dataclass
from threading import RLock
from typing import Any, Dict, Iterable, List, Optional, Protocol, Sequence

from ..core.clock import isoformat_utc, utc_now
from .realtime import ChangeEvent, RealtimeNotifier, get_notifier

logger = logging.getLogger(__name__)

TABLES: tuple[str, ...] = (
    "profiles",
    "chat_sessions",
    "messages",
    "digital_products",
    "product_categories",
    "payments",
    "purchases",
    "user_roles",
    "auto_reply_settings",
)

PRIMARY_KEYS: Dict[str, str] = {
    "profiles": "user_id",
    "auto_reply_settings": "professional_id",
}

FILTER_OPS = ("eq", "neq", "in", "gte", "lte", "ilike", "contains")


def primary_key(table: str) -> str:
    return PRIMARY_KEYS.get(table, "id")


def check_table(table: str) -> None:
    if table not in TABLES:
        raise KeyError(f"Unknown table: {table}")


@dataclass(frozen=True)
class Filter:
    column: str
    op: str
    value: Any

    def __post_init__(self) -> None:
        if self.op not in FILTER_OPS:
            raise ValueError(f"Unsupported filter op: {self.op}")

    def matches(self, row: Dict[str, Any]) -> bool:
        actual = row.get(self.column)
        if self.op == "eq":
            return actual == self.value
        if self.op == "neq":
            return actual != self.value
        if self.op == "in":
            return actual in self.value
        if self.op == "contains":
            return isinstance(actual, (list, tuple)) and self.value in actual
        if actual is None:
            return False
        if self.op == "gte":
            return actual >= self.value
        if self.op == "lte":
            return actual <= self.value
        # ilike: case-insensitive substring
        return str(self.value).lower() in str(actual).lower()


def eq(column: str, value: Any) -> Filter:
    return Filter(column, "eq", value)


def neq(column: str, value: Any) -> Filter:
    return Filter(column, "neq", value)


def in_(column: str, values: Iterable[Any]) -> Filter:
    return Filter(column, "in", tuple(values))


def gte(column: str, value: Any) -> Filter:
    return Filter(column, "gte", value)


def lte(column: str, value: Any) -> Filter:
    return Filter(column, "lte", value)


def ilike(column: str, value: str) -> Filter:
    return Filter(column, "ilike", value)


def contains(column: str, value: Any) -> Filter:
    return Filter(column, "contains", value)


def prepare_row(table: str, row: Dict[str, Any]) -> Dict[str, Any]:
    """Copy ``row`` and fill in the primary key and ``created_at`` when absent."""
    out = copy.deepcopy(row)
    key = primary_key(table)
    if not out.get(key):
        out[key] = uuid.uuid4().hex
    out.setdefault("created_at", isoformat_utc(utc_now()))
    return out


def sort_rows(rows: List[Dict[str, Any]], order_by: Optional[str], descending: bool) -> List[Dict[str, Any]]:
    if not order_by:
        return rows
    # Rows missing the column sort last in either direction.
    present = [r for r in rows if r.get(order_by) is not None]
    missing = [r for r in rows if r.get(order_by) is None]
    present.sort(key=lambda r: r[order_by], reverse=descending)
    return present + missing


class TableStore(Protocol):
    def insert(self, table: str, row: Dict[str, Any]) -> Dict[str, Any]: ...

    def select(
        self,
        table: str,
        filters: Sequence[Filter] = (),
        order_by: Optional[str] = None,
        descending: bool = False,
        limit: Optional[int] = None,
    ) -> List[Dict[str, Any]]: ...

    def get(self, table: str, key: str) -> Optional[Dict[str, Any]]: ...

    def update(self, table: str, filters: Sequence[Filter], values: Dict[str, Any]) -> List[Dict[str, Any]]: ...

    def delete(self, table: str, filters: Sequence[Filter]) -> int: ...

    def rpc(self, name: str, **params: Any) -> Any: ...


class InMemoryTableStore:
    def __init__(self, notifier: Optional[RealtimeNotifier] = None) -> None:
        self._tables: Dict[str, Dict[str, Dict[str, Any]]] = {name: {} for name in TABLES}
        self._lock = RLock()
        self._notifier = notifier

    @property
    def notifier(self) -> RealtimeNotifier:
        return self._notifier or get_notifier()

    def _rows(self, table: str) -> Dict[str, Dict[str, Any]]:
        check_table(table)
        return self._tables[table]

    def insert(self, table: str, row: Dict[str, Any]) -> Dict[str, Any]:
        with self._lock:
            rows = self._rows(table)
            stored = prepare_row(table, row)
            key = stored[primary_key(table)]
            if key in rows:
                raise ValueError(f"Duplicate key {key} in {table}")
            rows[key] = stored
            snapshot = copy.deepcopy(stored)
        self.notifier.publish(ChangeEvent(table=table, type="INSERT", new=copy.deepcopy(snapshot)))
        return snapshot

    def select(
        self,
        table: str,
        filters: Sequence[Filter] = (),
        order_by: Optional[str] = None,
        descending: bool = False,
        limit: Optional[int] = None,
    ) -> List[Dict[str, Any]]:
        with self._lock:
            matched = [
                copy.deepcopy(row)
                for row in self._rows(table).values()
                if all(f.matches(row) for f in filters)
            ]
        matched = sort_rows(matched, order_by, descending)
        if limit is not None:
            matched = matched[: max(0, limit)]
        return matched

    def get(self, table: str, key: str) -> Optional[Dict[str, Any]]:
        with self._lock:
            row = self._rows(table).get(key)
            return copy.deepcopy(row) if row is not None else None

    def update(self, table: str, filters: Sequence[Filter], values: Dict[str, Any]) -> List[Dict[str, Any]]:
        events: List[ChangeEvent] = []
        updated: List[Dict[str, Any]] = []
        with self._lock:
            for row in self._rows(table).values():
                if not all(f.matches(row) for f in filters):
                    continue
                old = copy.deepcopy(row)
                row.update(copy.deepcopy(values))
                updated.append(copy.deepcopy(row))
                events.append(ChangeEvent(table=table, type="UPDATE", new=copy.deepcopy(row), old=old))
        for event in events:
            self.notifier.publish(event)
        return updated

    def delete(self, table: str, filters: Sequence[Filter]) -> int:
        with self._lock:
            rows = self._rows(table)
            doomed = [k for k, row in rows.items() if all(f.matches(row) for f in filters)]
            for key in doomed:
                del rows[key]
            return len(doomed)

    def rpc(self, name: str, **params: Any) -> Any:
        if name == "has_role":
            found = self.select(
                "user_roles",
                [eq("user_id", params.get("user_id")), eq("role", params.get("role"))],
                limit=1,
            )
            return bool(found)
        raise KeyError(f"Unknown rpc: {name}")


_store: TableStore | None = None


def get_table_store() -> TableStore:
    global _store
    if _store is not None:
        return _store
    impl = os.getenv("GURUCHAT_TABLE_STORE_IMPL", "memory").lower()
    if impl == "mongo":
        try:
            from .tables_mongo import MongoTableStore

            _store = MongoTableStore()
            return _store
        except Exception:
            logger.warning("mongo_table_store_unavailable; using in-memory tables", exc_info=True)
            _store = None
    if _store is None:
        _store = InMemoryTableStore()
    return _store
