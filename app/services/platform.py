"""
Adapter for the hosted auth/storage platform.

Request handlers only see the ``AuthPlatform`` protocol; ``SupabasePlatform``
talks to the platform's REST auth (``/auth/v1``) and storage (``/storage/v1``)
endpoints with the service key.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Protocol
from urllib.parse import quote

import httpx

logger = logging.getLogger(__name__)


class PlatformError(RuntimeError):
    """The hosted platform rejected a call or could not be reached."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code


@dataclass(frozen=True)
class Session:
    user_id: str
    access_token: str
    refresh_token: str


class AuthPlatform(Protocol):
    def sign_up(self, email: str, password: str) -> str: ...

    def sign_in(self, email: str, password: str) -> Session: ...

    def refresh(self, refresh_token: str) -> Session: ...

    def get_user_id(self, access_token: str) -> str | None: ...

    def delete_user(self, auth_id: str) -> None: ...

    def upload_object(self, bucket: str, name: str, content: bytes, content_type: str) -> str: ...

    def close(self) -> None: ...


def _error_message(resp: httpx.Response, default: str) -> str:
    try:
        body = resp.json()
    except ValueError:
        return default
    if isinstance(body, dict):
        for key in ("msg", "error_description", "message", "error"):
            if isinstance(body.get(key), str):
                return body[key]
    return default


class SupabasePlatform:
    """Sync httpx client for a Supabase-compatible platform."""

    def __init__(
        self,
        base_url: str,
        service_key: str,
        timeout: float = 20.0,
        client: httpx.Client | None = None,
    ):
        if not base_url or not service_key:
            raise ValueError("Platform URL and service key are required")
        self.base_url = base_url.rstrip("/")
        self.service_key = service_key
        self._client = client or httpx.Client(timeout=timeout)

    def _headers(self, bearer: str | None = None) -> dict[str, str]:
        return {
            "apikey": self.service_key,
            "Authorization": f"Bearer {bearer or self.service_key}",
            "Accept": "application/json",
        }

    def _request(self, method: str, path: str, default_error: str, **kwargs: Any) -> httpx.Response:
        headers = {**self._headers(kwargs.pop("bearer", None)), **kwargs.pop("headers", {})}
        try:
            resp = self._client.request(method, f"{self.base_url}{path}", headers=headers, **kwargs)
        except httpx.HTTPError as exc:
            logger.error("Platform %s %s failed: %s", method, path, exc)
            raise PlatformError(default_error) from exc
        if resp.status_code >= 400:
            raise PlatformError(_error_message(resp, default_error), resp.status_code)
        return resp

    @staticmethod
    def _session(data: dict[str, Any]) -> Session:
        return Session(
            user_id=data["user"]["id"],
            access_token=data["access_token"],
            refresh_token=data["refresh_token"],
        )

    def sign_up(self, email: str, password: str) -> str:
        resp = self._request(
            "POST", "/auth/v1/signup", "Sign up failed",
            json={"email": email, "password": password},
        )
        data = resp.json()
        user = data.get("user") or data
        return user["id"]

    def sign_in(self, email: str, password: str) -> Session:
        resp = self._request(
            "POST", "/auth/v1/token", "Sign in failed",
            params={"grant_type": "password"},
            json={"email": email, "password": password},
        )
        return self._session(resp.json())

    def refresh(self, refresh_token: str) -> Session:
        resp = self._request(
            "POST", "/auth/v1/token", "Token refresh failed",
            params={"grant_type": "refresh_token"},
            json={"refresh_token": refresh_token},
        )
        return self._session(resp.json())

    def get_user_id(self, access_token: str) -> str | None:
        try:
            resp = self._request("GET", "/auth/v1/user", "Token lookup failed", bearer=access_token)
        except PlatformError as exc:
            if exc.status_code in (401, 403):
                return None
            raise
        return resp.json().get("id")

    def delete_user(self, auth_id: str) -> None:
        self._request("DELETE", f"/auth/v1/admin/users/{quote(auth_id)}", "User deletion failed")

    def upload_object(self, bucket: str, name: str, content: bytes, content_type: str) -> str:
        path = f"{quote(bucket)}/{quote(name)}"
        self._request(
            "POST", f"/storage/v1/object/{path}", "Upload failed",
            content=content,
            headers={"Content-Type": content_type, "cache-control": "3600", "x-upsert": "false"},
        )
        return f"{self.base_url}/storage/v1/object/public/{path}"

    def close(self) -> None:
        self._client.close()
