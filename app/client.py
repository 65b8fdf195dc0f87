"""
Caller side of the envelope: a thin portal API client.

Forms hand plaintext to ``PortalClient``; passwords and card fields are
sealed before the request leaves the process. Any ``httpx.Client`` works,
including FastAPI's ``TestClient``.
"""

from __future__ import annotations

import logging
from typing import Any

import httpx

from app.services.encryption import Envelope

logger = logging.getLogger(__name__)

API_PREFIX = "/api/v1"


class PortalError(RuntimeError):
    def __init__(self, status_code: int, message: str):
        super().__init__(f"{status_code}: {message}")
        self.status_code = status_code
        self.message = message


class PortalClient:
    def __init__(self, http: httpx.Client, envelope: Envelope):
        self.http = http
        self.envelope = envelope
        self.token: str | None = None
        self.refresh_token: str | None = None

    def _headers(self) -> dict[str, str]:
        return {"Authorization": f"Bearer {self.token}"} if self.token else {}

    def _call(self, method: str, path: str, **kwargs: Any) -> dict[str, Any]:
        resp = self.http.request(method, f"{API_PREFIX}{path}", headers=self._headers(), **kwargs)
        try:
            body = resp.json()
        except ValueError:
            body = {}
        if resp.status_code >= 400:
            logger.debug("%s %s failed with %s", method, path, resp.status_code)
            raise PortalError(resp.status_code, body.get("message", resp.reason_phrase))
        return body

    def _remember_tokens(self, body: dict[str, Any]) -> dict[str, Any]:
        self.token = body.get("token", self.token)
        self.refresh_token = body.get("refreshToken", self.refresh_token)
        return body

    def register(self, name: str, email: str, password: str, **profile: Any) -> dict[str, Any]:
        payload = {"name": name, "email": email, "password": self.envelope.encrypt(password), **profile}
        return self._remember_tokens(self._call("POST", "/auth/register", json=payload))

    def login(self, email: str, password: str) -> dict[str, Any]:
        payload = {"email": email, "password": self.envelope.encrypt(password)}
        return self._remember_tokens(self._call("POST", "/auth/login", json=payload))

    def refresh(self) -> dict[str, Any]:
        body = self._call("POST", "/auth/refresh", json={"refreshToken": self.refresh_token})
        return self._remember_tokens(body)

    def logout(self) -> None:
        self.token = None
        self.refresh_token = None

    def get_profile(self) -> dict[str, Any]:
        return self._call("GET", "/users/profile")

    def add_payment_method(
        self, cardholder_name: str, card_number: str, expiry_date: str, cvv: str
    ) -> dict[str, Any]:
        payload = {
            "cardholderName": cardholder_name,
            "cardNumber": self.envelope.encrypt(card_number),
            "expiryDate": self.envelope.encrypt(expiry_date),
            "cvv": self.envelope.encrypt(cvv),
        }
        return self._call("POST", "/payments/methods", json=payload)

    def payment_methods(self) -> list[dict[str, Any]]:
        return self._call("GET", "/payments/methods")["methods"]
