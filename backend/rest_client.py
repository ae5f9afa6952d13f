"""
EVSCallPro REST client.

Single aiohttp.ClientSession shared for all requests, created in startup().
Used for login, the application-data snapshot (initial load, refetch triggers
and polling fallback) and supervisor actions on agents.

Any 401 raises AuthRejectedError; snapshot failures raise SnapshotFetchError
so the caller can surface them to the user.
"""

from __future__ import annotations
import asyncio
import logging
import time
from typing import Any, Literal

import aiohttp

from backend.auth import TokenAuth
from backend.errors import AuthRejectedError, BackendError, SnapshotFetchError

log = logging.getLogger(__name__)

SupervisorAction = Literal["listen", "barge", "coach", "force-pause", "force-logout"]
SUPERVISOR_ACTIONS: tuple[str, ...] = ("listen", "barge", "coach", "force-pause", "force-logout")


class CallCenterRestClient:
    """
    Async REST client for the EVSCallPro backend (/api).

    Call startup() before use.
    """

    def __init__(self, base_url: str, auth: TokenAuth, timeout_s: float = 10.0) -> None:
        self._base_url = base_url.rstrip("/")
        self._auth = auth
        self._timeout_s = timeout_s
        self._session: aiohttp.ClientSession | None = None

    async def startup(self) -> None:
        self._session = aiohttp.ClientSession(
            connector=aiohttp.TCPConnector(limit=10, keepalive_timeout=60),
            timeout=aiohttp.ClientTimeout(total=self._timeout_s, connect=3),
        )
        log.info("REST client ready for %s", self._base_url)

    async def shutdown(self) -> None:
        if self._session:
            await self._session.close()
            self._session = None

    def _url(self, path: str) -> str:
        return f"{self._base_url}{path}"

    async def _request(
        self,
        method: str,
        path: str,
        json_body: dict | None = None,
        params: dict[str, Any] | None = None,
    ) -> Any:
        assert self._session, "Call startup() first"
        async with self._session.request(
            method,
            self._url(path),
            headers=self._auth.get_headers(),
            json=json_body,
            params=params,
        ) as resp:
            if resp.status == 401:
                body = await _safe_json(resp)
                raise AuthRejectedError(
                    f"{method} {path} rejected with 401",
                    error_code=body.get("errorKey") if isinstance(body, dict) else None,
                    details={"path": path},
                )
            if resp.status >= 400:
                body = await _safe_json(resp)
                message = body.get("error") if isinstance(body, dict) else None
                raise BackendError(
                    message or f"{method} {path} failed with HTTP {resp.status}",
                    error_code=f"HTTP_{resp.status}",
                    details={"path": path, "status": resp.status},
                )
            if resp.status == 204:
                return None
            return await resp.json(content_type=None)

    # ------------------------------------------------------------------
    # Auth
    # ------------------------------------------------------------------

    async def login(self, login_id: str, password: str) -> dict:
        """POST /auth/login. Stores the returned access token on the shared TokenAuth."""
        data = await self._request(
            "POST", "/auth/login", json_body={"loginId": login_id, "password": password}
        )
        token = data.get("accessToken") if isinstance(data, dict) else None
        if not token:
            raise AuthRejectedError("login response carried no accessToken")
        self._auth.set_token(token)
        user = data.get("user", {})
        log.info("Logged in as %s (role=%s)", user.get("loginId", login_id), user.get("role"))
        return user

    async def get_me(self) -> dict:
        data = await self._request("GET", "/auth/me")
        return data.get("user", {}) if isinstance(data, dict) else {}

    async def logout(self) -> None:
        """Best effort: the local session ends even if the backend call fails."""
        try:
            await self._request("POST", "/auth/logout")
        except (BackendError, aiohttp.ClientError) as exc:
            log.warning("Logout API call failed, proceeding with client-side logout: %s", exc)
        finally:
            self._auth.invalidate()

    # ------------------------------------------------------------------
    # Snapshot
    # ------------------------------------------------------------------

    async def get_application_data(self) -> dict:
        """
        Full application-data snapshot. AuthRejectedError passes through;
        every other failure becomes SnapshotFetchError.
        """
        started = time.monotonic()
        try:
            data = await self._request("GET", "/application-data")
        except AuthRejectedError:
            raise
        except (BackendError, aiohttp.ClientError, asyncio.TimeoutError) as exc:
            raise SnapshotFetchError(f"Failed to load application data: {exc}") from exc
        if not isinstance(data, dict):
            raise SnapshotFetchError("application data is not a JSON object")
        log.info("Snapshot fetched in %.0fms", (time.monotonic() - started) * 1000)
        return data

    # ------------------------------------------------------------------
    # Supervision
    # ------------------------------------------------------------------

    async def supervisor_action(self, action: SupervisorAction, agent_id: str) -> str:
        """POST /supervisor/<action> {agentId}. Returns the backend's confirmation message."""
        if action not in SUPERVISOR_ACTIONS:
            raise ValueError(f"unknown supervisor action '{action}'")
        data = await self._request("POST", f"/supervisor/{action}", json_body={"agentId": agent_id})
        message = data.get("message", "") if isinstance(data, dict) else ""
        log.info("Supervisor action %s on agent=%s: %s", action, agent_id, message)
        return message

    async def get_call_history(self, page: int = 1, limit: int = 50) -> dict:
        return await self._request(
            "GET", "/supervisor/call-history", params={"page": page, "limit": limit}
        )


async def _safe_json(resp: aiohttp.ClientResponse) -> Any:
    try:
        return await resp.json(content_type=None)
    except (aiohttp.ContentTypeError, ValueError):
        return None
