# tillsync/remote/client.py
"""Client side of the remote record store.

The remote store is a PostgREST-style HTTP API (tables under ``/rest/v1``,
edge functions under ``/functions/v1``). The till only depends on the
:class:`RemoteStoreClient` protocol, so tests and alternative back ends can
supply their own implementation.
"""
import asyncio
import logging
from typing import Any, Dict, List, Mapping, Optional, Protocol, Sequence

import requests

logger = logging.getLogger(__name__)


class RemoteError(Exception):
    """Any failure talking to the remote store."""


class RemoteTransportError(RemoteError):
    """The store could not be reached (no network, DNS, timeout)."""


class RemoteStoreError(RemoteError):
    """The store answered but refused the request."""

    def __init__(self, status_code: int, message: str = ""):
        self.status_code = status_code
        self.message = message
        super().__init__(f"{status_code}: {message}" if message else str(status_code))


class RemoteStoreClient(Protocol):
    async def select(
        self,
        collection: str,
        filters: Optional[Mapping[str, Any]] = None,
        order: Optional[str] = None,
        limit: Optional[int] = None,
    ) -> List[Dict[str, Any]]: ...

    async def insert(self, collection: str, records: Sequence[Mapping[str, Any]]) -> int: ...

    async def update(self, collection: str, patch: Mapping[str, Any], match: Mapping[str, Any]) -> int: ...

    async def upsert(self, collection: str, records: Sequence[Mapping[str, Any]], conflict_key: str) -> int: ...

    async def delete(self, collection: str, match: Mapping[str, Any]) -> int: ...

    async def invoke(self, name: str, payload: Mapping[str, Any]) -> Any: ...

    async def ping(self) -> bool: ...


def _eq_params(match: Optional[Mapping[str, Any]]) -> Dict[str, str]:
    return {column: f"eq.{value}" for column, value in (match or {}).items()}


def _error_message(resp: requests.Response) -> str:
    try:
        body = resp.json()
    except ValueError:
        return resp.text[:200]
    if isinstance(body, dict):
        return str(body.get("message") or body.get("msg") or body.get("error") or body)
    return str(body)


class RestRemoteStoreClient:
    """Blocking ``requests`` calls, pushed onto worker threads for asyncio callers."""

    def __init__(
        self,
        base_url: str,
        api_key: str = "",
        timeout: float = 10.0,
        session: Optional[requests.Session] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.session = session or requests.Session()
        self.session.headers.update({"Content-Type": "application/json"})
        if api_key:
            self.session.headers.update({
                "apikey": api_key,
                "Authorization": f"Bearer {api_key}",
            })

    def _request(
        self,
        method: str,
        path: str,
        params: Optional[Mapping[str, Any]] = None,
        json: Any = None,
        prefer: Optional[str] = None,
    ) -> requests.Response:
        headers = {"Prefer": prefer} if prefer else None
        try:
            resp = self.session.request(
                method,
                f"{self.base_url}{path}",
                params=params,
                json=json,
                headers=headers,
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            raise RemoteTransportError(str(e)) from e

        if resp.status_code >= 400:
            raise RemoteStoreError(resp.status_code, _error_message(resp))
        return resp

    async def _call(self, method: str, path: str, **kwargs) -> Any:
        resp = await asyncio.to_thread(self._request, method, path, **kwargs)
        if resp.status_code == 204 or not resp.content:
            return []
        try:
            return resp.json()
        except ValueError as e:
            raise RemoteStoreError(resp.status_code, "response is not JSON") from e

    @staticmethod
    def _count(body: Any) -> int:
        return len(body) if isinstance(body, list) else 0

    async def select(self, collection, filters=None, order=None, limit=None):
        params = {"select": "*", **_eq_params(filters)}
        if order:
            params["order"] = order
        if limit:
            params["limit"] = str(limit)
        body = await self._call("GET", f"/rest/v1/{collection}", params=params)
        if not isinstance(body, list):
            raise RemoteStoreError(200, f"unexpected select payload for {collection}")
        return body

    async def insert(self, collection, records):
        body = await self._call(
            "POST", f"/rest/v1/{collection}",
            json=list(records), prefer="return=representation",
        )
        return self._count(body)

    async def update(self, collection, patch, match):
        body = await self._call(
            "PATCH", f"/rest/v1/{collection}",
            params=_eq_params(match), json=dict(patch), prefer="return=representation",
        )
        return self._count(body)

    async def upsert(self, collection, records, conflict_key):
        body = await self._call(
            "POST", f"/rest/v1/{collection}",
            params={"on_conflict": conflict_key}, json=list(records),
            prefer="resolution=merge-duplicates,return=representation",
        )
        return self._count(body)

    async def delete(self, collection, match):
        body = await self._call(
            "DELETE", f"/rest/v1/{collection}",
            params=_eq_params(match), prefer="return=representation",
        )
        return self._count(body)

    async def invoke(self, name, payload):
        return await self._call("POST", f"/functions/v1/{name}", json=dict(payload))

    async def ping(self) -> bool:
        try:
            await asyncio.to_thread(self.session.head, f"{self.base_url}/rest/v1/", timeout=self.timeout)
        except requests.RequestException as e:
            logger.debug("remote ping failed: %s", e)
            return False
        return True
