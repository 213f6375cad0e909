from __future__ import annotations

import copy
import threading
import uuid
from collections import defaultdict
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Iterable, List, Optional, Union

from management.errors import NotFoundError
from server.security import hash_password, new_session_token, verify_password

Filters = Optional[Dict[str, Any]]

PUBLIC_URL_BASE = "https://storage.local"


def _matches(row: Dict[str, Any], filters: Filters) -> bool:
    for column, expected in (filters or {}).items():
        actual = row.get(column)
        if expected is None:
            if actual is not None:
                return False
        elif isinstance(expected, (list, tuple, set)):
            if actual not in expected:
                return False
        elif actual != expected:
            return False
    return True


def _sort_key(value: Any):
    # None sorts last ascending, like Postgres.
    return (value is None, value if value is not None else 0)


class InMemoryStore:
    """Demo-mode store used when Supabase is unavailable."""

    def __init__(self) -> None:
        self.tables: Dict[str, List[Dict[str, Any]]] = defaultdict(list)
        self.users: Dict[str, Dict[str, Any]] = {}
        self.sessions: Dict[str, str] = {}
        self.objects: Dict[tuple, Dict[str, Any]] = {}
        self._lock = threading.RLock()
        self._last_ts: Optional[datetime] = None

    def _now_iso(self) -> str:
        # Strictly increasing so rows inserted back to back keep their order.
        now = datetime.now(timezone.utc)
        if self._last_ts is not None and now <= self._last_ts:
            now = self._last_ts + timedelta(microseconds=1)
        self._last_ts = now
        return now.isoformat()

    # Table methods ---------------------------------------------------------
    def select(
        self,
        table: str,
        filters: Filters = None,
        *,
        columns: str = "*",
        order: Optional[str] = None,
        desc: bool = False,
        limit: Optional[int] = None,
    ) -> List[Dict[str, Any]]:
        with self._lock:
            rows = [row for row in self.tables[table] if _matches(row, filters)]
            if order:
                rows = sorted(rows, key=lambda r: _sort_key(r.get(order)), reverse=desc)
            if limit:
                rows = rows[:limit]
            return copy.deepcopy(rows)

    def select_one(self, table: str, filters: Filters = None, **kwargs: Any) -> Optional[Dict[str, Any]]:
        rows = self.select(table, filters, limit=1, **kwargs)
        return rows[0] if rows else None

    def count(self, table: str, filters: Filters = None) -> int:
        with self._lock:
            return sum(1 for row in self.tables[table] if _matches(row, filters))

    def insert(self, table: str, values: Dict[str, Any]) -> Dict[str, Any]:
        with self._lock:
            row = copy.deepcopy(values)
            row.setdefault("id", str(uuid.uuid4()))
            row.setdefault("created_at", self._now_iso())
            self.tables[table].append(row)
            return copy.deepcopy(row)

    def insert_many(self, table: str, rows: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
        return [self.insert(table, row) for row in rows]

    def update(self, table: str, values: Dict[str, Any], filters: Dict[str, Any]) -> List[Dict[str, Any]]:
        if not filters:
            raise ValueError("update requires at least one filter")
        with self._lock:
            updated = []
            for row in self.tables[table]:
                if _matches(row, filters):
                    row.update(copy.deepcopy(values))
                    updated.append(copy.deepcopy(row))
        if not updated:
            raise NotFoundError(f"No {table} row matched the update")
        return updated

    def delete(self, table: str, filters: Dict[str, Any]) -> List[Dict[str, Any]]:
        if not filters:
            raise ValueError("delete requires at least one filter")
        with self._lock:
            kept, removed = [], []
            for row in self.tables[table]:
                (removed if _matches(row, filters) else kept).append(row)
            self.tables[table] = kept
            return copy.deepcopy(removed)

    # Auth methods ----------------------------------------------------------
    def _find_auth_user(self, email: str) -> Optional[Dict[str, Any]]:
        for user in self.users.values():
            if user["email"].lower() == email.lower():
                return user
        return None

    @staticmethod
    def _public_auth_user(user: Dict[str, Any]) -> Dict[str, Any]:
        return {"id": user["id"], "email": user["email"], "user_metadata": dict(user["user_metadata"])}

    def sign_up(self, email: str, password: str, full_name: str) -> Dict[str, Any]:
        with self._lock:
            if self._find_auth_user(email):
                raise ValueError("User already registered")
            user_id = str(uuid.uuid4())
            self.users[user_id] = {
                "id": user_id,
                "email": email,
                "password_hash": hash_password(password),
                "user_metadata": {"full_name": full_name},
                "created_at": self._now_iso(),
            }
            return self._public_auth_user(self.users[user_id])

    def sign_in(self, email: str, password: str) -> Optional[Dict[str, Any]]:
        user = self._find_auth_user(email)
        if not user or not verify_password(password, user["password_hash"]):
            return None
        token = new_session_token()
        self.sessions[token] = user["id"]
        return {"access_token": token, "user": self._public_auth_user(user)}

    def get_user(self, token: str) -> Optional[Dict[str, Any]]:
        user_id = self.sessions.get(token)
        user = self.users.get(user_id) if user_id else None
        return self._public_auth_user(user) if user else None

    def sign_out(self, token: str) -> None:
        self.sessions.pop(token, None)

    def update_password(self, user_id: str, password: str) -> None:
        if user_id not in self.users:
            raise ValueError("User not found")
        self.users[user_id]["password_hash"] = hash_password(password)

    # Object storage --------------------------------------------------------
    def upload(self, bucket: str, path: str, data: bytes, content_type: str) -> str:
        self.objects[(bucket, path)] = {"data": data, "content_type": content_type}
        return path

    def public_url(self, bucket: str, path: str) -> str:
        return f"{PUBLIC_URL_BASE}/{bucket}/{path}"

    def remove(self, bucket: str, paths: Union[str, Iterable[str]]) -> None:
        items = [paths] if isinstance(paths, str) else list(paths)
        for path in items:
            self.objects.pop((bucket, path), None)
