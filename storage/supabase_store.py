from __future__ import annotations

from typing import Any, Callable, Dict, Iterable, List, Optional, Union

import httpx
from postgrest import APIError
from supabase import AuthError, Client, ClientOptions, create_client

from management.errors import NotFoundError
from telemetry.logging_utils import get_logger
from telemetry.retry import retry_with_backoff

logger = get_logger(__name__)

Filters = Optional[Dict[str, Any]]
TRANSIENT_ERRORS = (httpx.RemoteProtocolError, httpx.WriteError, httpx.ConnectError, APIError)


class SupabaseStore:
    """Hosted store: Postgres tables, auth and object storage behind one Supabase project."""

    def __init__(self, url: str, key: str) -> None:
        self.url = url
        self.key = key
        self.client: Client = create_client(url, key)
        self._max_retries = 3
        self._retry_backoff_seconds = 0.25

    def _table(self, name: str):
        return self.client.table(name)

    def _bucket(self, name: str):
        return self.client.storage.from_(name)

    def _with_retry(self, fn: Callable[[], Any], operation: Optional[str] = None) -> Any:
        return retry_with_backoff(
            fn,
            retries=self._max_retries,
            base_delay=self._retry_backoff_seconds,
            retry_exceptions=TRANSIENT_ERRORS,
            operation=operation,
        )

    @staticmethod
    def _apply_filters(query, filters: Filters):
        for column, value in (filters or {}).items():
            if value is None:
                query = query.is_(column, "null")
            elif isinstance(value, (list, tuple, set)):
                query = query.in_(column, list(value))
            else:
                query = query.eq(column, value)
        return query

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
        if filters:
            for value in filters.values():
                if isinstance(value, (list, tuple, set)) and not value:
                    return []
        query = self._apply_filters(self._table(table).select(columns), filters)
        if order:
            query = query.order(order, desc=desc)
        if limit:
            query = query.limit(limit)
        resp = self._with_retry(lambda: query.execute(), f"select:{table}")
        return resp.data or []

    def select_one(self, table: str, filters: Filters = None, **kwargs: Any) -> Optional[Dict[str, Any]]:
        rows = self.select(table, filters, limit=1, **kwargs)
        return rows[0] if rows else None

    def count(self, table: str, filters: Filters = None) -> int:
        query = self._apply_filters(self._table(table).select("id", count="exact"), filters)
        resp = self._with_retry(lambda: query.execute(), f"count:{table}")
        return resp.count or 0

    def insert(self, table: str, values: Dict[str, Any]) -> Dict[str, Any]:
        resp = self._with_retry(lambda: self._table(table).insert(values).execute(), f"insert:{table}")
        if not resp.data:
            raise RuntimeError(f"Failed to insert into {table}")
        return resp.data[0]

    def insert_many(self, table: str, rows: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
        if not rows:
            return []
        resp = self._with_retry(lambda: self._table(table).insert(rows).execute(), f"insert:{table}")
        if not resp.data:
            raise RuntimeError(f"Failed to insert into {table}")
        return resp.data

    def update(self, table: str, values: Dict[str, Any], filters: Dict[str, Any]) -> List[Dict[str, Any]]:
        if not filters:
            raise ValueError("update requires at least one filter")
        query = self._apply_filters(self._table(table).update(values), filters)
        resp = self._with_retry(lambda: query.execute(), f"update:{table}")
        if not resp.data:
            raise NotFoundError(f"No {table} row matched the update")
        return resp.data

    def delete(self, table: str, filters: Dict[str, Any]) -> List[Dict[str, Any]]:
        if not filters:
            raise ValueError("delete requires at least one filter")
        query = self._apply_filters(self._table(table).delete(), filters)
        resp = self._with_retry(lambda: query.execute(), f"delete:{table}")
        return resp.data or []

    # Auth methods ----------------------------------------------------------
    def _session_client(self) -> Client:
        # Password sign-in stores the session on the client; keep it off the service client.
        return create_client(
            self.url,
            self.key,
            options=ClientOptions(persist_session=False, auto_refresh_token=False),
        )

    @staticmethod
    def _auth_user(user: Any) -> Dict[str, Any]:
        return {
            "id": user.id,
            "email": user.email,
            "user_metadata": dict(getattr(user, "user_metadata", None) or {}),
        }

    def sign_up(self, email: str, password: str, full_name: str) -> Dict[str, Any]:
        try:
            resp = self._with_retry(
                lambda: self.client.auth.admin.create_user(
                    {
                        "email": email,
                        "password": password,
                        "email_confirm": True,
                        "user_metadata": {"full_name": full_name},
                    }
                ),
                "auth:sign_up",
            )
        except AuthError as exc:
            raise ValueError(str(exc)) from exc
        return self._auth_user(resp.user)

    def sign_in(self, email: str, password: str) -> Optional[Dict[str, Any]]:
        try:
            resp = self._session_client().auth.sign_in_with_password({"email": email, "password": password})
        except AuthError as exc:
            logger.info("auth_sign_in_rejected", extra={"reason": str(exc)})
            return None
        if not resp.session or not resp.user:
            return None
        return {"access_token": resp.session.access_token, "user": self._auth_user(resp.user)}

    def get_user(self, token: str) -> Optional[Dict[str, Any]]:
        try:
            resp = self.client.auth.get_user(token)
        except AuthError:
            return None
        if resp is None or resp.user is None:
            return None
        return self._auth_user(resp.user)

    def sign_out(self, token: str) -> None:
        try:
            self.client.auth.admin.sign_out(token)
        except AuthError as exc:
            logger.info("auth_sign_out_failed", extra={"reason": str(exc)})

    def update_password(self, user_id: str, password: str) -> None:
        try:
            self._with_retry(
                lambda: self.client.auth.admin.update_user_by_id(user_id, {"password": password}),
                "auth:update_password",
            )
        except AuthError as exc:
            raise ValueError(str(exc)) from exc

    # Object storage --------------------------------------------------------
    def upload(self, bucket: str, path: str, data: bytes, content_type: str) -> str:
        self._with_retry(
            lambda: self._bucket(bucket).upload(path, data, {"content-type": content_type, "upsert": "true"}),
            f"upload:{bucket}",
        )
        return path

    def public_url(self, bucket: str, path: str) -> str:
        return self._bucket(bucket).get_public_url(path)

    def remove(self, bucket: str, paths: Union[str, Iterable[str]]) -> None:
        items = [paths] if isinstance(paths, str) else [p for p in paths if p]
        if not items:
            return
        self._with_retry(lambda: self._bucket(bucket).remove(items), f"remove:{bucket}")
