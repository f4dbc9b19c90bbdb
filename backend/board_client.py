"""Async HTTP client for the PR Board API.

The session cookie set by login/signup lives in the underlying httpx cookie
jar, so every later call is authenticated automatically.
"""

import logging
from typing import Any, Dict, List, Optional

import httpx

from config import APP_URL

logger = logging.getLogger("pr-board.client")


class BoardClientError(Exception):
    """Non-2xx response from the API."""

    def __init__(self, status_code: int, message: str, code: Optional[str] = None):
        self.status_code = status_code
        self.message = message
        self.code = code
        super().__init__(f"{status_code}: {message}")


class PRBoardClient:
    """HTTP client wrapper for the board API."""

    def __init__(
        self,
        base_url: str = APP_URL,
        timeout: float = 10.0,
        client: Optional[httpx.AsyncClient] = None,
        api_prefix: str = "/api",
    ):
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout
        self._api_prefix = api_prefix
        self._client = client
        self._owns_client = client is None

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(base_url=self._base_url, timeout=self._timeout)
        return self._client

    async def close(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self) -> "PRBoardClient":
        return self

    async def __aexit__(self, *exc) -> None:
        await self.close()

    async def _request(self, method: str, path: str, **kwargs: Any) -> httpx.Response:
        client = await self._get_client()
        response = await client.request(method, f"{self._api_prefix}{path}", **kwargs)
        if response.status_code >= 400:
            message, code = response.reason_phrase, None
            try:
                body = response.json()
                message = body.get("error") or message
                code = body.get("code")
            except ValueError:
                pass
            logger.debug("%s %s -> %d %s", method, path, response.status_code, message)
            raise BoardClientError(response.status_code, message, code)
        return response

    # -------------------------------------------------------------------------
    # Session
    # -------------------------------------------------------------------------

    async def signup(self, email: str, password: str, name: str) -> Dict[str, Any]:
        response = await self._request(
            "POST", "/auth",
            json={"action": "signup", "email": email, "password": password, "name": name},
        )
        return response.json()["user"]

    async def login(self, email: str, password: str) -> Dict[str, Any]:
        response = await self._request(
            "POST", "/auth", json={"action": "login", "email": email, "password": password},
        )
        return response.json()["user"]

    async def me(self) -> Dict[str, Any]:
        return (await self._request("GET", "/auth")).json()["user"]

    async def logout(self) -> None:
        await self._request("DELETE", "/auth")

    # -------------------------------------------------------------------------
    # PRs
    # -------------------------------------------------------------------------

    async def list_prs(self, **filters: Optional[str]) -> List[Dict[str, Any]]:
        params = {k: v for k, v in filters.items() if v}
        return (await self._request("GET", "/prs", params=params)).json()["prs"]

    async def create_pr(self, data: Dict[str, Any]) -> Dict[str, Any]:
        return (await self._request("POST", "/prs", json=data)).json()["pr"]

    async def update_pr(self, pr_id: str, changes: Dict[str, Any], version: Optional[int] = None) -> Dict[str, Any]:
        body = {"id": pr_id, **changes}
        if version is not None:
            body["version"] = version
        return (await self._request("PATCH", "/prs", json=body)).json()["pr"]

    async def delete_pr(self, pr_id: str) -> None:
        await self._request("DELETE", "/prs", params={"id": pr_id})

    # -------------------------------------------------------------------------
    # Workspaces & defaults
    # -------------------------------------------------------------------------

    async def list_workspaces(self, type: Optional[str] = None) -> List[Dict[str, Any]]:
        params = {"type": type} if type else {}
        return (await self._request("GET", "/workspaces", params=params)).json()["items"]

    async def create_workspace(self, name: str, type: str) -> Dict[str, Any]:
        return (await self._request("POST", "/workspaces", json={"name": name, "type": type})).json()["item"]

    async def delete_workspace(self, name: str, type: str) -> None:
        await self._request("DELETE", "/workspaces", params={"name": name, "type": type})

    async def get_defaults(self) -> Dict[str, Any]:
        return (await self._request("GET", "/defaults")).json()["defaults"]

    async def save_defaults(self, **fields: Optional[str]) -> Dict[str, Any]:
        return (await self._request("POST", "/defaults", json=fields)).json()["defaults"]

    # -------------------------------------------------------------------------
    # Share links
    # -------------------------------------------------------------------------

    async def create_share_link(self) -> Dict[str, Any]:
        return (await self._request("POST", "/share")).json()

    async def get_shared_report(self, token: str) -> Dict[str, Any]:
        return (await self._request("GET", "/share", params={"token": token})).json()["data"]
