"""
42 intranet API client: authorization code exchange, /v2/me claims, lookup by login.
"""
from __future__ import annotations

import logging
from typing import Any
from urllib.parse import quote

import httpx

from verify_server.logging_setup import mask_sensitive

logger = logging.getLogger(__name__)


class IdentityProviderError(Exception):
    """Transport failure or non-2xx response from the intranet."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


def _error_summary(r: httpx.Response) -> str:
    """Short, non-sensitive description of an error response."""
    try:
        body = r.json()
    except ValueError:
        body = None
    if isinstance(body, dict):
        desc = body.get("error_description") or body.get("error") or body.get("message")
        if desc:
            return str(desc)
    return f"HTTP {r.status_code}"


class FortyTwoClient:
    """Async client for the intranet. Raises IdentityProviderError on any failure."""

    def __init__(
        self,
        client_id: str,
        client_secret: str,
        api_url: str = "https://api.intra.42.fr",
        timeout: float = 10.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.client_id = client_id
        self._client_secret = client_secret
        self.api_url = api_url.rstrip("/")
        self._own_client = client is None
        self._client = client or httpx.AsyncClient(base_url=self.api_url, timeout=timeout)

    async def _request(self, method: str, path: str, **kwargs: Any) -> Any:
        try:
            r = await self._client.request(method, path, **kwargs)
        except httpx.HTTPError as e:
            logger.warning("Intranet %s %s failed: %s", method, path, e)
            raise IdentityProviderError(f"Could not reach the 42 intranet ({type(e).__name__})") from e
        if not r.is_success:
            summary = _error_summary(r)
            logger.warning("Intranet %s %s returned %s: %s", method, path, r.status_code, summary)
            raise IdentityProviderError(summary, status_code=r.status_code)
        try:
            data = r.json()
        except ValueError as e:
            raise IdentityProviderError("Invalid JSON from the 42 intranet", status_code=r.status_code) from e
        logger.debug("Intranet %s %s -> %s %s", method, path, r.status_code, mask_sensitive(data))
        return data

    async def _token(self, data: dict[str, str]) -> str:
        payload = await self._request(
            "POST",
            "/oauth/token",
            data={**data, "client_id": self.client_id, "client_secret": self._client_secret},
            headers={"Accept": "application/json"},
        )
        access_token = payload.get("access_token") if isinstance(payload, dict) else None
        if not access_token:
            raise IdentityProviderError("Token response without access_token")
        return access_token

    async def exchange_code_for_token(self, code: str, redirect_uri: str) -> str:
        """Authorization code grant. Returns the user's access token."""
        return await self._token(
            {"grant_type": "authorization_code", "code": code, "redirect_uri": redirect_uri}
        )

    async def fetch_claims(self, access_token: str) -> dict[str, Any]:
        """GET /v2/me with the user's token."""
        data = await self._request("GET", "/v2/me", headers={"Authorization": f"Bearer {access_token}"})
        if not isinstance(data, dict):
            raise IdentityProviderError("Unexpected /v2/me payload")
        return data

    async def fetch_user_by_login(self, login: str) -> dict[str, Any]:
        """Look a user up by login with an application token (client_credentials grant)."""
        app_token = await self._token({"grant_type": "client_credentials"})
        data = await self._request(
            "GET", f"/v2/users/{quote(login, safe='')}", headers={"Authorization": f"Bearer {app_token}"}
        )
        if not isinstance(data, dict):
            raise IdentityProviderError("Unexpected /v2/users payload")
        return data

    async def aclose(self) -> None:
        if self._own_client:
            await self._client.aclose()
