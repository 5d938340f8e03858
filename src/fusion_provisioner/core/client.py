"""Backend transport.

The engine talks to Fusion through a single call shape:
``Backend.call(ApiRequest) -> ApiResponse``.  Status codes are returned, not
raised, so the engine decides what a 404 or 409 means in context.  Only
transport failures (DNS, TLS, connection reset) raise.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Literal, Protocol

import requests

from fusion_provisioner.engine.errors import EngineError

logger = logging.getLogger(__name__)

HttpMethod = Literal["GET", "POST", "PATCH", "DELETE"]

API_PREFIX = "/api/1.1"


class TransportError(EngineError):
    """The request never produced an HTTP response."""


@dataclass(frozen=True)
class ApiRequest:
    method: HttpMethod
    path: str
    json: dict[str, Any] | None = None
    params: dict[str, str] = field(default_factory=dict)
    timeout: float | None = None


@dataclass(frozen=True)
class ApiResponse:
    status_code: int
    body: Any = None

    @property
    def ok(self) -> bool:
        return 200 <= self.status_code < 300

    def error_message(self) -> str:
        """Backend-provided error message, if the body carries one."""
        if isinstance(self.body, dict):
            err = self.body.get("error", self.body)
            if isinstance(err, dict) and err.get("message"):
                return str(err["message"])
        return ""

    def pure_code(self) -> str:
        if isinstance(self.body, dict):
            err = self.body.get("error", self.body)
            if isinstance(err, dict):
                return str(err.get("pure_code", ""))
        return ""


class Backend(Protocol):
    def call(self, request: ApiRequest) -> ApiResponse:
        """Execute ``request`` and return the raw status and decoded body."""


class RestBackend:
    """``requests``-based backend for the Fusion REST API."""

    def __init__(
        self,
        host: str,
        access_token: str,
        *,
        verify_ssl: bool = True,
        default_timeout: float = 30.0,
        session: requests.Session | None = None,
    ) -> None:
        self._base_url = host.rstrip("/") + API_PREFIX
        self._default_timeout = default_timeout
        self._session = session or requests.Session()
        self._session.headers.update(
            {
                "Authorization": f"Bearer {access_token}",
                "Accept": "application/json",
            }
        )
        self._session.verify = verify_ssl

    @property
    def base_url(self) -> str:
        return self._base_url

    def call(self, request: ApiRequest) -> ApiResponse:
        url = self._base_url + request.path
        timeout = request.timeout if request.timeout is not None else self._default_timeout
        logger.debug("%s %s params=%s", request.method, request.path, request.params)
        try:
            resp = self._session.request(
                request.method,
                url,
                json=request.json,
                params=request.params or None,
                timeout=timeout,
            )
        except requests.RequestException as exc:
            raise TransportError(f"{request.method} {request.path} failed: {exc}") from exc

        body: Any = None
        if resp.content:
            try:
                body = resp.json()
            except ValueError:
                body = {"message": resp.text}
        logger.debug("%s %s -> %d", request.method, request.path, resp.status_code)
        return ApiResponse(status_code=resp.status_code, body=body)
