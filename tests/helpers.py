"""Shared test helpers for studynote tests."""

from __future__ import annotations

import copy
from typing import Any, Iterator

from studynote.exceptions import BackendRequestError, SessionError
from studynote.models import Session


class FakeCompletionClient:
    """Completion client returning canned responses in order."""

    def __init__(self, *responses: str, chunks: list[str] | None = None) -> None:
        self.responses = list(responses)
        self.chunks = chunks or []
        self.prompts: list[str] = []

    def complete(self, prompt: str) -> str:
        self.prompts.append(prompt)
        if len(self.responses) > 1:
            return self.responses.pop(0)
        return self.responses[0]

    def stream(self, prompt: str) -> Iterator[str]:
        self.prompts.append(prompt)
        yield from self.chunks


def auth_response(
    token: str = "access_token",
    user_id: str = "user-1",
    email: str = "test@example.com",
    refresh_token: str | None = "refresh_token",
    expires_in: int = 3600,
) -> dict[str, Any]:
    """Auth endpoint body as returned by a successful sign-in."""
    return {
        "access_token": token,
        "refresh_token": refresh_token,
        "expires_in": expires_in,
        "user": {"id": user_id, "email": email},
    }


class FakeBackend:
    """In-memory stand-in for BackendClient's table and session API."""

    def __init__(self, user_id: str = "user-1", authenticated: bool = True) -> None:
        self.user_id = user_id
        self.authenticated = authenticated
        self.tables: dict[str, dict[str, dict[str, Any]]] = {"notes": {}, "folders": {}}
        self.calls: list[tuple[str, str, str | None]] = []
        # Record ids whose insert/update is rejected with HTTP 400
        self.reject_ids: set[str] = set()

    def get_session(self) -> Session:
        if not self.authenticated:
            raise SessionError("Not authenticated. Call sign_in() first.")
        return Session(access_token="token", user_id=self.user_id)

    def seed(self, table: str, row: dict[str, Any]) -> None:
        self.tables[table][row["id"]] = copy.deepcopy(row)

    @staticmethod
    def _matches(row: dict[str, Any], filters: dict[str, Any] | None) -> bool:
        return all(row.get(key) == value for key, value in (filters or {}).items())

    def select(
        self, table: str, *, columns: str = "*", filters: dict[str, Any] | None = None
    ) -> list[dict[str, Any]]:
        self.calls.append(("select", table, (filters or {}).get("id")))
        rows = [copy.deepcopy(r) for r in self.tables[table].values() if self._matches(r, filters)]
        if columns != "*":
            keys = columns.split(",")
            rows = [{key: row.get(key) for key in keys} for row in rows]
        return rows

    def insert(self, table: str, rows: dict[str, Any]) -> list[dict[str, Any]]:
        self.calls.append(("insert", table, rows["id"]))
        if rows["id"] in self.reject_ids:
            raise BackendRequestError("invalid input syntax", status_code=400)
        self.tables[table][rows["id"]] = copy.deepcopy(rows)
        return [copy.deepcopy(rows)]

    def update(
        self, table: str, values: dict[str, Any], filters: dict[str, Any]
    ) -> list[dict[str, Any]]:
        self.calls.append(("update", table, filters.get("id")))
        if filters.get("id") in self.reject_ids:
            raise BackendRequestError("invalid input syntax", status_code=400)
        updated = []
        for row in self.tables[table].values():
            if self._matches(row, filters):
                row.update(copy.deepcopy(values))
                updated.append(copy.deepcopy(row))
        return updated

    def delete(self, table: str, filters: dict[str, Any]) -> None:
        self.calls.append(("delete", table, filters.get("id")))
        for key in [k for k, row in self.tables[table].items() if self._matches(row, filters)]:
            del self.tables[table][key]
