from __future__ import annotations

import logging
import os
import re
from typing import Any, Dict, List, Optional, Sequence

from pymongo import ASCENDING, DESCENDING, MongoClient

from .realtime import ChangeEvent, RealtimeNotifier, get_notifier
from .tables import TABLES, Filter, check_table, eq, prepare_row, primary_key

logger = logging.getLogger(__name__)

_MONGO_OPS = {"neq": "$ne", "in": "$in", "gte": "$gte", "lte": "$lte"}


def to_mongo_query(filters: Sequence[Filter]) -> Dict[str, Any]:
    """Translate table filters into a MongoDB query document."""
    query: Dict[str, Dict[str, Any]] = {}
    for f in filters:
        clause = query.setdefault(f.column, {})
        if f.op in ("eq", "contains"):
            # Equality on an array field matches any element, which is ``contains``.
            clause["$eq"] = f.value
        elif f.op == "ilike":
            clause["$regex"] = re.escape(str(f.value))
            clause["$options"] = "i"
        elif f.op == "in":
            clause["$in"] = list(f.value)
        else:
            clause[_MONGO_OPS[f.op]] = f.value
    return query


class MongoTableStore:
    def __init__(
        self,
        url: Optional[str] = None,
        db_name: Optional[str] = None,
        notifier: Optional[RealtimeNotifier] = None,
    ) -> None:
        mongo_url = url or os.getenv("MONGO_URL", "mongodb://localhost:27017")
        self._client: MongoClient = MongoClient(mongo_url, serverSelectionTimeoutMS=500)
        # Fail fast so the factory can fall back to memory.
        self._client.server_info()
        self._db = self._client[db_name or os.getenv("MONGO_DB", "guruchat")]
        self._notifier = notifier
        for table in TABLES:
            self._db[table].create_index(primary_key(table), unique=True)
        self._db["messages"].create_index([("session_id", ASCENDING), ("created_at", ASCENDING)])
        self._db["chat_sessions"].create_index("helper_id")
        self._db["chat_sessions"].create_index("client_id")
        logger.info("Connected Mongo table store url=%s db=%s", mongo_url, self._db.name)

    @property
    def notifier(self) -> RealtimeNotifier:
        return self._notifier or get_notifier()

    def _collection(self, table: str):
        check_table(table)
        return self._db[table]

    def insert(self, table: str, row: Dict[str, Any]) -> Dict[str, Any]:
        stored = prepare_row(table, row)
        self._collection(table).insert_one(dict(stored))
        self.notifier.publish(ChangeEvent(table=table, type="INSERT", new=dict(stored)))
        return stored

    def select(
        self,
        table: str,
        filters: Sequence[Filter] = (),
        order_by: Optional[str] = None,
        descending: bool = False,
        limit: Optional[int] = None,
    ) -> List[Dict[str, Any]]:
        cursor = self._collection(table).find(to_mongo_query(filters), {"_id": 0})
        if order_by:
            cursor = cursor.sort(order_by, DESCENDING if descending else ASCENDING)
        if limit is not None:
            cursor = cursor.limit(max(0, limit))
        return list(cursor)

    def get(self, table: str, key: str) -> Optional[Dict[str, Any]]:
        return self._collection(table).find_one({primary_key(table): key}, {"_id": 0})

    def update(self, table: str, filters: Sequence[Filter], values: Dict[str, Any]) -> List[Dict[str, Any]]:
        coll = self._collection(table)
        key = primary_key(table)
        before = self.select(table, filters)
        if not before:
            return []
        keys = [row[key] for row in before]
        # Only touch the rows that matched at read time.
        coll.update_many(to_mongo_query([*filters, Filter(key, "in", tuple(keys))]), {"$set": dict(values)})
        after = {row[key]: row for row in self.select(table, [Filter(key, "in", tuple(keys))])}
        updated: List[Dict[str, Any]] = []
        for old in before:
            new = after.get(old[key])
            if new is None or any(new.get(k) != v for k, v in values.items()):
                continue
            updated.append(new)
            self.notifier.publish(ChangeEvent(table=table, type="UPDATE", new=new, old=old))
        return updated

    def delete(self, table: str, filters: Sequence[Filter]) -> int:
        return int(self._collection(table).delete_many(to_mongo_query(filters)).deleted_count)

    def rpc(self, name: str, **params: Any) -> Any:
        if name == "has_role":
            query = to_mongo_query([eq("user_id", params.get("user_id")), eq("role", params.get("role"))])
            return self._collection("user_roles").count_documents(query, limit=1) > 0
        raise KeyError(f"Unknown rpc: {name}")
