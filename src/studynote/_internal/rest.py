"""httpx wrapper for the backend's REST table and auth endpoints."""

from __future__ import annotations

from typing import Any

import httpx

from studynote.exceptions import BackendRequestError

DEFAULT_TIMEOUT = 30.0
USER_AGENT = "studynote/0.1"


def _eq_params(filters: dict[str, Any] | None) -> dict[str, str]:
    """Translate {column: value} into PostgREST ``eq.`` query parameters."""
    params: dict[str, str] = {}
    for column, value in (filters or {}).items():
        if value is None:
            params[column] = "is.null"
        elif isinstance(value, bool):
            params[column] = f"eq.{str(value).lower()}"
        else:
            params[column] = f"eq.{value}"
    return params


def _error_message(response: httpx.Response) -> str:
    """Best error text from a backend error body."""
    try:
        data = response.json()
    except ValueError:
        return response.text or f"HTTP {response.status_code}"
    if isinstance(data, dict):
        for key in ("error_description", "msg", "message", "error"):
            if data.get(key):
                return str(data[key])
    return f"HTTP {response.status_code}"


class RestClient:
    """Low-level client for the backend's ``/auth/v1`` and ``/rest/v1`` APIs.

    Holds the access token of the current session; callers are responsible for
    interpreting auth responses.
    """

    def __init__(
        self,
        base_url: str,
        api_key: str,
        *,
        timeout: float = DEFAULT_TIMEOUT,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self._access_token: str | None = None
        self._client = httpx.Client(
            timeout=timeout,
            transport=transport,
            headers={"User-Agent": USER_AGENT, "apikey": api_key},
        )

    def _headers(self, extra: dict[str, str] | None = None) -> dict[str, str]:
        headers = {
            "Content-Type": "application/json",
            "Authorization": f"Bearer {self._access_token or self.api_key}",
        }
        if extra:
            headers.update(extra)
        return headers

    def _request(
        self,
        method: str,
        path: str,
        *,
        params: dict[str, str] | None = None,
        json: Any = None,
        headers: dict[str, str] | None = None,
    ) -> Any:
        """Make a request and return the decoded JSON body (None when empty).

        Raises:
            BackendRequestError: For non-2xx responses
            httpx.TransportError: For network failures
        """
        url = f"{self.base_url}{path}"
        response = self._client.request(
            method, url, params=params, json=json, headers=self._headers(headers)
        )
        if response.is_error:
            raise BackendRequestError(_error_message(response), status_code=response.status_code)
        if not response.content:
            return None
        try:
            return response.json()
        except ValueError as e:
            raise BackendRequestError(f"Invalid JSON from {path}: {e}") from e

    # --- auth ---

    def sign_up(self, email: str, password: str) -> dict[str, Any]:
        return self._request("POST", "/auth/v1/signup", json={"email": email, "password": password})

    def sign_in_with_password(self, email: str, password: str) -> dict[str, Any]:
        data = self._request(
            "POST",
            "/auth/v1/token",
            params={"grant_type": "password"},
            json={"email": email, "password": password},
        )
        self._access_token = data.get("access_token")
        return data  # type: ignore[no-any-return]

    def refresh_session(self, refresh_token: str) -> dict[str, Any]:
        data = self._request(
            "POST",
            "/auth/v1/token",
            params={"grant_type": "refresh_token"},
            json={"refresh_token": refresh_token},
        )
        self._access_token = data.get("access_token")
        return data  # type: ignore[no-any-return]

    def verify_otp(self, email: str, token: str, otp_type: str = "signup") -> dict[str, Any]:
        data = self._request(
            "POST", "/auth/v1/verify", json={"type": otp_type, "email": email, "token": token}
        )
        if data and data.get("access_token"):
            self._access_token = data["access_token"]
        return data  # type: ignore[no-any-return]

    def get_user(self) -> dict[str, Any]:
        return self._request("GET", "/auth/v1/user")  # type: ignore[no-any-return]

    def sign_out(self) -> None:
        try:
            if self._access_token:
                self._request("POST", "/auth/v1/logout")
        finally:
            self._access_token = None

    # --- tables ---

    def select(
        self, table: str, *, columns: str = "*", filters: dict[str, Any] | None = None
    ) -> list[dict[str, Any]]:
        params = {"select": columns, **_eq_params(filters)}
        return self._request("GET", f"/rest/v1/{table}", params=params) or []

    def insert(self, table: str, rows: dict[str, Any] | list[dict[str, Any]]) -> list[dict[str, Any]]:
        return (
            self._request(
                "POST",
                f"/rest/v1/{table}",
                json=rows,
                headers={"Prefer": "return=representation"},
            )
            or []
        )

    def update(
        self, table: str, values: dict[str, Any], filters: dict[str, Any]
    ) -> list[dict[str, Any]]:
        if not filters:
            raise ValueError("update() requires at least one filter")
        return (
            self._request(
                "PATCH",
                f"/rest/v1/{table}",
                params=_eq_params(filters),
                json=values,
                headers={"Prefer": "return=representation"},
            )
            or []
        )

    def delete(self, table: str, filters: dict[str, Any]) -> None:
        if not filters:
            raise ValueError("delete() requires at least one filter")
        self._request("DELETE", f"/rest/v1/{table}", params=_eq_params(filters))

    def close(self) -> None:
        self._client.close()
