# Overview: HTTP client for a remote SelloMaster API.

"""
Remote API client

Talks to the REST API exposed by sellomaster.routes. Network failures and
5xx responses are retried, then surfaced as StoreUnavailableError so the
caller decides between retrying later and aborting. The client never falls
back to a local copy of the data.
"""

from __future__ import annotations

import logging
import time
from datetime import datetime, timezone
from typing import Any, Iterable

import httpx

logger = logging.getLogger(__name__)


class StoreUnavailableError(RuntimeError):
    """The remote store could not be reached or failed server-side."""

    def __init__(self, message: str, *, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class ApiError(Exception):
    """The server rejected the request (4xx); body holds the structured error."""

    def __init__(self, status_code: int, body: dict):
        super().__init__(body.get("error") or f"HTTP {status_code}")
        self.status_code = status_code
        self.body = body

    @property
    def kind(self) -> str | None:
        return self.body.get("kind")

    @property
    def ids(self) -> list[str]:
        return list(self.body.get("ids") or [])


class SealApiClient:
    def __init__(
        self,
        base_url: str,
        token: str | None = None,
        *,
        transport: httpx.BaseTransport | None = None,
        timeout: float = 10.0,
        retries: int = 2,
        backoff_base: float = 0.2,
    ):
        self.retries = retries
        self.backoff_base = backoff_base
        self._http = httpx.Client(
            base_url=base_url.rstrip("/"),
            transport=transport,
            timeout=timeout,
        )
        if token:
            self.set_token(token)

    def set_token(self, token: str) -> None:
        self._http.headers["Authorization"] = f"Bearer {token}"

    def close(self) -> None:
        self._http.close()

    def __enter__(self) -> "SealApiClient":
        return self

    def __exit__(self, *exc) -> None:
        self.close()

    def _request(self, method: str, path: str, **kwargs) -> Any:
        last_error: StoreUnavailableError | None = None
        for attempt in range(self.retries + 1):
            try:
                response = self._http.request(method, path, **kwargs)
            except httpx.TransportError as exc:
                last_error = StoreUnavailableError(f"{method} {path} failed: {exc}")
            else:
                if response.status_code >= 500:
                    last_error = StoreUnavailableError(
                        f"{method} {path} returned {response.status_code}",
                        status_code=response.status_code,
                    )
                elif response.status_code >= 400:
                    try:
                        body = response.json()
                    except ValueError:
                        body = {"error": response.text}
                    raise ApiError(response.status_code, body)
                else:
                    return response.json() if response.content else None

            if attempt < self.retries:
                logger.warning("%s (attempt %d/%d)", last_error, attempt + 1, self.retries + 1)
                time.sleep(self.backoff_base * (2 ** attempt))

        raise last_error

    def login(self, username: str, password: str) -> dict:
        data = self._request("POST", "/api/auth/login", json={"username": username, "password": password})
        self.set_token(data["token"])
        return data

    def get_seals(self, **filters) -> list[dict]:
        params = {key: value for key, value in filters.items() if value is not None}
        return self._request("GET", "/api/seals", params=params)["seals"]

    def get_seal(self, seal_id: str) -> dict:
        return self._request("GET", f"/api/seals/{seal_id}")["seal"]

    def create_seal(self, seal_id: str, seal_type: str, city: str | None = None) -> dict:
        payload = {"id": seal_id, "type": seal_type}
        if city:
            payload["city"] = city
        return self._request("POST", "/api/seals", json=payload)["seal"]

    def resolve(self, ids: Iterable[str]) -> dict:
        return self._request("POST", "/api/seals/resolve", json={"ids": list(ids)})

    def move_seals(
        self,
        ids: Iterable[str],
        status: str,
        fields: dict | None = None,
        *,
        date: str | None = None,
    ) -> list[dict]:
        """
        Batch movement. `date` is fixed once per call and sent as the request
        timestamp, so automatic retries (and any later re-send with the same
        `date`) are recognized by the server as already applied. The server
        stamps the movement with its own clock.
        """
        payload = {
            "ids": list(ids),
            "status": status,
            "fields": fields or {},
            "date": date or datetime.now(timezone.utc).isoformat(),
        }
        return self._request("PUT", "/api/seals/movement", json=payload)["seals"]

    def get_users(self) -> list[dict]:
        return self._request("GET", "/api/users")["users"]

    def get_cities(self) -> list[str]:
        return self._request("GET", "/api/cities")["cities"]

    def get_settings(self) -> dict:
        return self._request("GET", "/api/settings")["settings"]
