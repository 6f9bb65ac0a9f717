"""
Remote store client - per-row CRUD against the hosted database's REST API
(Supabase / PostgREST).

Calls use requests and run in a worker thread so the event loop is never
blocked. Every method returns a RemoteResult instead of raising.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional

import requests

logger = logging.getLogger(__name__)


@dataclass
class RemoteResult:
    """Result/error pair returned by every remote call."""

    data: Any = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None


class RemoteStore:
    """
    Service for table-oriented CRUD against the remote store.

    Usage:
        remote = RemoteStore("https://xyz.supabase.co", api_key="...")
        result = await remote.insert("orders", {"local_ref": "A1"})
        if not result.ok:
            ...
    """

    def __init__(
        self,
        base_url: str,
        api_key: str = "",
        access_token: str = "",
        timeout: float = 10.0,
        session: Optional[requests.Session] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.access_token = access_token
        self.timeout = timeout
        self.session = session or requests.Session()

    @property
    def health_url(self) -> str:
        return f"{self.base_url}/rest/v1/"

    def _get_headers(self) -> Dict[str, str]:
        token = self.access_token or self.api_key
        return {
            "apikey": self.api_key,
            "Authorization": f"Bearer {token}",
            "Content-Type": "application/json",
            "Prefer": "return=representation",
        }

    def _request(
        self,
        method: str,
        table: str,
        params: Optional[Dict[str, Any]] = None,
        data: Optional[Dict[str, Any]] = None,
    ) -> RemoteResult:
        """Make an authenticated request and convert the outcome into a RemoteResult."""
        if not self.base_url:
            return RemoteResult(error="Remote store URL is not configured")

        url = f"{self.base_url}/rest/v1/{table}"
        try:
            response = self.session.request(
                method=method,
                url=url,
                headers=self._get_headers(),
                params=params,
                json=data,
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            logger.error("Remote request failed: %s %s - %s", method, url, e)
            return RemoteResult(error=str(e))

        if not response.ok:
            try:
                detail = response.json().get("message") or response.text
            except ValueError:
                detail = response.text
            logger.error(
                "Remote store rejected %s %s (%s): %s",
                method, url, response.status_code, detail,
            )
            return RemoteResult(error=f"{response.status_code}: {detail}")

        if response.status_code == 204 or not response.content:
            return RemoteResult(data=None)
        return RemoteResult(data=response.json())

    async def insert(self, table: str, row: Dict[str, Any]) -> RemoteResult:
        return await asyncio.to_thread(self._request, "POST", table, None, row)

    async def update(self, table: str, row: Dict[str, Any], row_id: Any) -> RemoteResult:
        return await asyncio.to_thread(
            self._request, "PATCH", table, {"id": f"eq.{row_id}"}, row
        )

    async def delete(self, table: str, row_id: Any) -> RemoteResult:
        return await asyncio.to_thread(
            self._request, "DELETE", table, {"id": f"eq.{row_id}"}, None
        )

    async def select(self, table: str, query: Optional[Dict[str, Any]] = None) -> RemoteResult:
        """
        Select rows using PostgREST query parameters, e.g.
        {"select": "*", "status": "eq.open", "order": "created_at.desc"}.
        """
        params = {"select": "*"}
        params.update(query or {})
        return await asyncio.to_thread(self._request, "GET", table, params, None)

    def close(self) -> None:
        self.session.close()
