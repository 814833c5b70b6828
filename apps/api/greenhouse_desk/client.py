"""Typed HTTP client for the desk API.

Every call carries a timeout. A 401 triggers one token refresh and one retry;
timeouts and connection failures raise ``GatewayUnavailable`` so callers can
offer a retry instead of waiting forever, and never look like a denial.
"""

from __future__ import annotations

import logging
from typing import Any

import httpx

from .core.errors import (
    CorrelationMismatch,
    DeskError,
    GatewayUnavailable,
    NotFound,
    PermissionDenied,
    SessionExpired,
    UnresolvableMessage,
    ValidationFailed,
)

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 8.0

_ERRORS_BY_CODE: dict[str, type[DeskError]] = {
    cls.code: cls
    for cls in (
        NotFound,
        PermissionDenied,
        ValidationFailed,
        CorrelationMismatch,
        UnresolvableMessage,
        SessionExpired,
        GatewayUnavailable,
    )
}
_ERRORS_BY_STATUS: dict[int, type[DeskError]] = {
    400: ValidationFailed,
    401: SessionExpired,
    403: PermissionDenied,
    404: NotFound,
    422: ValidationFailed,
    502: GatewayUnavailable,
    503: GatewayUnavailable,
    504: GatewayUnavailable,
}


def _error_for(resp: httpx.Response) -> DeskError:
    code = None
    detail = None
    try:
        body = resp.json()
    except ValueError:
        body = None
    if isinstance(body, dict):
        code = body.get("code")
        detail = body.get("detail")
        if not isinstance(detail, str):
            detail = str(detail) if detail is not None else None
    cls = _ERRORS_BY_CODE.get(code) or _ERRORS_BY_STATUS.get(resp.status_code, DeskError)
    err = cls(detail)
    if cls is DeskError:
        err.status_code = resp.status_code
    return err


class DeskClient:
    def __init__(
        self,
        base_url: str,
        *,
        access_token: str | None = None,
        refresh_token: str | None = None,
        timeout: float = DEFAULT_TIMEOUT,
        http: httpx.Client | None = None,
    ):
        self.access_token = access_token
        self.refresh_token = refresh_token
        self.http = http or httpx.Client(base_url=base_url, timeout=timeout)

    def close(self) -> None:
        self.http.close()

    def __enter__(self) -> "DeskClient":
        return self

    def __exit__(self, *exc) -> None:
        self.close()

    def _send(self, method: str, path: str, **kwargs) -> httpx.Response:
        headers = dict(kwargs.pop("headers", None) or {})
        if self.access_token:
            headers["Authorization"] = f"Bearer {self.access_token}"
        try:
            return self.http.request(method, path, headers=headers, **kwargs)
        except httpx.TimeoutException as exc:
            raise GatewayUnavailable(f"Request timed out: {method} {path}") from exc
        except httpx.TransportError as exc:
            raise GatewayUnavailable(f"Connection failed: {exc}") from exc

    def request(self, method: str, path: str, **kwargs) -> Any:
        resp = self._send(method, path, **kwargs)
        if resp.status_code == 401 and self.refresh_token:
            logger.info("Access token rejected, refreshing once")
            self.refresh()
            resp = self._send(method, path, **kwargs)
        if resp.status_code >= 400:
            raise _error_for(resp)
        if resp.status_code == 204 or not resp.content:
            return None
        return resp.json()

    def _store_tokens(self, data: dict) -> dict:
        self.access_token = data["access_token"]
        self.refresh_token = data.get("refresh_token") or self.refresh_token
        return data

    def login(self, email: str, password: str) -> dict:
        resp = self._send("POST", "/auth/login", json={"email": email, "password": password})
        if resp.status_code >= 400:
            raise _error_for(resp)
        return self._store_tokens(resp.json())

    def refresh(self) -> dict:
        if not self.refresh_token:
            raise SessionExpired()
        try:
            resp = self.http.post("/auth/refresh", json={"refresh_token": self.refresh_token})
        except httpx.TimeoutException as exc:
            raise GatewayUnavailable("Session refresh timed out") from exc
        except httpx.TransportError as exc:
            raise GatewayUnavailable(f"Connection failed: {exc}") from exc
        if resp.status_code >= 400:
            self.access_token = None
            raise SessionExpired()
        return self._store_tokens(resp.json())

    def me(self) -> dict:
        return self.request("GET", "/me")

    def list_tickets(self, **filters) -> list[dict]:
        params = {k: v for k, v in filters.items() if v is not None}
        return self.request("GET", "/tickets", params=params)

    def get_ticket(self, number: int) -> dict:
        return self.request("GET", f"/tickets/{number}")

    def ticket_detail(self, number: int) -> dict:
        return self.request("GET", f"/tickets/{number}/detail")

    def create_ticket(self, **fields) -> dict:
        return self.request("POST", "/tickets", json=fields)

    def update_ticket(self, number: int, **fields) -> dict:
        return self.request("PATCH", f"/tickets/{number}", json=fields)

    def set_status(self, number: int, status: str) -> dict:
        return self.request("PATCH", f"/tickets/{number}/status", json={"status": status})

    def request_info(self, number: int, message: str) -> dict:
        return self.request("POST", f"/tickets/{number}/request-info", json={"message": message})

    def add_comment(self, number: int, body: str, is_internal: bool = False) -> dict:
        return self.request("POST", f"/tickets/{number}/comments", json={"body": body, "is_internal": is_internal})

    def delete_comment(self, comment_id: int) -> None:
        self.request("DELETE", f"/comments/{comment_id}")
