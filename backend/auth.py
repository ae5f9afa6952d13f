"""
Bearer-token authentication for the EVSCallPro backend.

REST calls send "Authorization: Bearer <token>". The WebSocket handshake
cannot carry custom headers from a browser, so the backend reads the token
from the query string of the upgrade request: <ws_url>?token=<token>.

The token is obtained either from configuration or from POST /auth/login
(see CallCenterRestClient.login) and is dropped once the backend rejects it.
"""

from __future__ import annotations
import logging
from urllib.parse import parse_qsl, urlencode, urlparse, urlunparse

log = logging.getLogger(__name__)


class TokenAuth:
    __slots__ = ("_token",)

    def __init__(self, token: str | None = None) -> None:
        self._token = token or None

    @property
    def token(self) -> str | None:
        return self._token

    def has_token(self) -> bool:
        return self._token is not None

    def set_token(self, token: str) -> None:
        self._token = token
        log.info("TokenAuth: access token set (len=%d)", len(token))

    def invalidate(self) -> None:
        if self._token is not None:
            log.warning("TokenAuth: access token invalidated")
        self._token = None

    def get_headers(self) -> dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self._token:
            headers["Authorization"] = f"Bearer {self._token}"
        return headers

    def ws_url(self, base_ws_url: str) -> str:
        """Append ?token=... to the WebSocket URL, keeping any existing query."""
        parts = urlparse(base_ws_url)
        query = [(k, v) for k, v in parse_qsl(parts.query) if k != "token"]
        if self._token:
            query.append(("token", self._token))
        return urlunparse(parts._replace(query=urlencode(query)))
