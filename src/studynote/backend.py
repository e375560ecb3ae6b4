"""BackendClient for auth and table access on the backend-as-a-service."""

from __future__ import annotations

import json
import logging
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any

import httpx

from studynote._internal.rest import DEFAULT_TIMEOUT, RestClient
from studynote.exceptions import (
    AuthenticationError,
    BackendRequestError,
    EmailConfirmationRequiredError,
    SessionError,
)
from studynote.models import Session

logger = logging.getLogger(__name__)


def _session_from_auth(data: dict[str, Any], email: str | None = None) -> Session:
    """Build a Session from an auth response containing access_token and user."""
    token = data.get("access_token")
    user = data.get("user") or {}
    if not token or not user.get("id"):
        raise AuthenticationError("Auth response did not contain a session")
    expires_at = None
    if data.get("expires_at"):
        expires_at = datetime.fromtimestamp(int(data["expires_at"]), tz=timezone.utc)
    elif data.get("expires_in"):
        expires_at = datetime.now(timezone.utc) + timedelta(seconds=int(data["expires_in"]))
    return Session(
        access_token=token,
        user_id=str(user["id"]),
        email=user.get("email") or email,
        refresh_token=data.get("refresh_token"),
        expires_at=expires_at,
    )


def _is_auth_rejection(error: BackendRequestError) -> bool:
    return error.status_code in (401, 403)


class BackendClient:
    """Client for the notes backend: email/password auth plus table CRUD.

    Supports both context manager and manual session patterns.

    Example (context manager - recommended):
        with BackendClient(url, key, "user@example.com", "password") as backend:
            backend.select("notes", filters={"user_id": backend.user_id})

    Example (manual session):
        backend = BackendClient(url, key)
        backend.sign_in("user@example.com", "password")
        backend.insert("folders", {"id": "...", "name": "Biology"})
        backend.close()
    """

    def __init__(
        self,
        url: str,
        api_key: str,
        email: str | None = None,
        password: str | None = None,
        *,
        auto_login: bool = True,
        token_cache_path: Path | str | None = None,
        timeout: float = DEFAULT_TIMEOUT,
    ) -> None:
        """Initialize the client.

        Args:
            url: Backend project URL
            api_key: Public (anon) API key
            email: Account email address
            password: Account password
            auto_login: If True and credentials provided, sign in immediately
            token_cache_path: Optional path to cache sessions between runs
            timeout: HTTP timeout in seconds
        """
        self._url = url
        self._api_key = api_key
        self._email = email
        self._password = password
        self._timeout = timeout
        self._token_cache_path = Path(token_cache_path) if token_cache_path else None
        self._client: RestClient | None = None
        self._session: Session | None = None
        self._token_cache: dict[str, dict[str, Any]] = {}
        self._token_cache_loaded = False

        if auto_login and email and password:
            self.sign_in(email, password)

    def __enter__(self) -> BackendClient:
        """Enter context manager."""
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: Any,
    ) -> None:
        """Exit context manager."""
        self.close()

    @property
    def is_authenticated(self) -> bool:
        """Check if the client holds a session."""
        return (
            self._client is not None
            and self._client._access_token is not None
            and self._session is not None
        )

    @property
    def user_id(self) -> str:
        return self.get_session().user_id

    def _ensure_authenticated(self) -> None:
        if not self.is_authenticated:
            raise SessionError("Not authenticated. Call sign_in() first.")

    def _get_client(self) -> RestClient:
        """Get the underlying client, ensuring it exists."""
        if self._client is None:
            self._client = RestClient(self._url, self._api_key, timeout=self._timeout)
        return self._client

    # --- token cache ---

    def _load_token_cache(self) -> None:
        if self._token_cache_loaded or not self._token_cache_path:
            return
        self._token_cache_loaded = True
        if not self._token_cache_path.exists():
            return
        try:
            data = json.loads(self._token_cache_path.read_text())
            if isinstance(data, dict):
                for email, value in data.items():
                    if email.startswith("_") or not isinstance(value, dict):
                        continue
                    if value.get("access_token") and value.get("user_id"):
                        self._token_cache[email] = value
        except Exception as e:
            logger.warning(f"Failed to load token cache: {e}")

    def _save_token_cache(self) -> None:
        if not self._token_cache_path:
            return
        try:
            existing: dict[str, Any] = {}
            if self._token_cache_path.exists():
                existing = {
                    key: value
                    for key, value in json.loads(self._token_cache_path.read_text()).items()
                    if key.startswith("_")
                }
            self._token_cache_path.parent.mkdir(parents=True, exist_ok=True)
            self._token_cache_path.write_text(json.dumps({**existing, **self._token_cache}, indent=2))
        except Exception as e:
            logger.warning(f"Failed to save token cache: {e}")

    def _cache_session(self, session: Session) -> None:
        if not session.email:
            return
        self._load_token_cache()
        self._token_cache[session.email] = {
            "access_token": session.access_token,
            "refresh_token": session.refresh_token,
            "user_id": session.user_id,
            "updated_at": datetime.now(timezone.utc).isoformat(),
        }
        self._save_token_cache()

    def _clear_cached_session(self, email: str) -> None:
        if email in self._token_cache:
            del self._token_cache[email]
            self._save_token_cache()

    def _restore_cached_session(self, email: str) -> Session | None:
        """Reuse a cached session if the backend still accepts it."""
        self._load_token_cache()
        cached = self._token_cache.get(email)
        if not cached:
            return None
        client = self._get_client()
        client._access_token = cached["access_token"]
        try:
            user = client.get_user()
            session = Session(
                access_token=cached["access_token"],
                user_id=str(user.get("id") or cached["user_id"]),
                email=email,
                refresh_token=cached.get("refresh_token"),
            )
            logger.info("Using cached backend session")
            return session
        except httpx.TransportError as e:
            # Keep the cached session; the backend was not reached
            logger.warning(f"Could not validate cached session: {e}")
            client._access_token = None
            return None
        except BackendRequestError as e:
            if not _is_auth_rejection(e):
                logger.warning(f"Could not validate cached session: {e}")
                client._access_token = None
                return None
            logger.info("Cached session invalid; re-authenticating")
            client._access_token = None

        refresh_token = cached.get("refresh_token")
        if refresh_token:
            try:
                session = _session_from_auth(client.refresh_session(refresh_token), email)
            except httpx.TransportError as e:
                logger.warning(f"Could not refresh cached session: {e}")
                client._access_token = None
                return None
            except (BackendRequestError, AuthenticationError) as e:
                logger.info(f"Cached refresh token rejected: {e}")
                client._access_token = None
            else:
                client._access_token = session.access_token
                self._cache_session(session)
                return session
        self._clear_cached_session(email)
        return None

    # --- auth ---

    def sign_in(self, email: str | None = None, password: str | None = None) -> Session:
        """Sign in with email and password.

        Args:
            email: Account email (uses constructor value if not provided)
            password: Account password (uses constructor value if not provided)

        Returns:
            The authenticated Session

        Raises:
            AuthenticationError: If sign-in fails
        """
        email = email or self._email
        password = password or self._password
        if not email:
            raise AuthenticationError("Email is required")

        self._email = email
        self._password = password

        cached = self._restore_cached_session(email)
        if cached:
            self._session = cached
            return cached

        if not password:
            raise AuthenticationError("Email and password are required")

        client = self._get_client()
        try:
            session = _session_from_auth(client.sign_in_with_password(email, password), email)
        except BackendRequestError as e:
            client._access_token = None
            raise AuthenticationError(str(e)) from e
        except httpx.TransportError as e:
            raise AuthenticationError(f"Network error during sign-in: {e}") from e

        client._access_token = session.access_token
        self._session = session
        self._cache_session(session)
        logger.info(f"Signed in as {email}")
        return session

    def sign_up(self, email: str, password: str) -> Session:
        """Create an account.

        Raises:
            EmailConfirmationRequiredError: If the backend requires the email
                to be confirmed before a session is issued
            AuthenticationError: If sign-up fails
        """
        client = self._get_client()
        try:
            data = client.sign_up(email, password)
        except BackendRequestError as e:
            raise AuthenticationError(f"Sign-up failed: {e}") from e
        except httpx.TransportError as e:
            raise AuthenticationError(f"Network error during sign-up: {e}") from e

        if not data or not data.get("access_token"):
            raise EmailConfirmationRequiredError(
                "Email confirmation required. A code was sent to your email.",
                confirmation_context={"email": email},
            )
        session = _session_from_auth(data, email)
        client._access_token = session.access_token
        self._email = email
        self._session = session
        self._cache_session(session)
        return session

    def verify_email(self, token: str, context: dict[str, str]) -> Session:
        """Complete sign-up with the emailed confirmation code.

        Args:
            token: The code received via email
            context: The confirmation_context from EmailConfirmationRequiredError
        """
        email = context.get("email")
        if not email:
            raise AuthenticationError("Invalid confirmation context")
        client = self._get_client()
        try:
            session = _session_from_auth(client.verify_otp(email, token), email)
        except BackendRequestError as e:
            raise AuthenticationError(f"Verification failed: {e}") from e
        except httpx.TransportError as e:
            raise AuthenticationError(f"Network error during verification: {e}") from e
        client._access_token = session.access_token
        self._email = email
        self._session = session
        self._cache_session(session)
        return session

    def sign_out(self) -> None:
        """End the session and drop it from the token cache."""
        if self._client is not None:
            try:
                self._client.sign_out()
            except (BackendRequestError, httpx.TransportError) as e:
                logger.warning(f"Sign-out request failed: {e}")
        if self._email:
            self._load_token_cache()
            self._clear_cached_session(self._email)
        self._session = None

    def get_session(self) -> Session:
        """Return the current session, refreshing it first if it has expired.

        Raises:
            SessionError: If not authenticated, or the session expired and
                could not be refreshed
        """
        self._ensure_authenticated()
        session = self._session
        if session is None:
            raise SessionError("Not authenticated. Call sign_in() first.")
        if session.is_expired:
            session = self._refresh_expired_session(session)
        return session

    def _refresh_expired_session(self, session: Session) -> Session:
        if not session.refresh_token:
            self._session = None
            raise SessionError("Session expired. Sign in again.")
        client = self._get_client()
        try:
            refreshed = _session_from_auth(
                client.refresh_session(session.refresh_token), session.email
            )
        except httpx.TransportError as e:
            raise SessionError(f"Network error while refreshing session: {e}") from e
        except (BackendRequestError, AuthenticationError) as e:
            self._session = None
            client._access_token = None
            raise SessionError(f"Session expired and could not be refreshed: {e}") from e
        client._access_token = refreshed.access_token
        self._session = refreshed
        self._cache_session(refreshed)
        logger.info("Refreshed expired backend session")
        return refreshed

    # --- tables ---

    def _table_call(self, description: str, func: Any, *args: Any, **kwargs: Any) -> Any:
        self.get_session()
        try:
            return func(*args, **kwargs)
        except httpx.TransportError as e:
            raise BackendRequestError(f"Network error during {description}: {e}") from e

    def select(
        self, table: str, *, columns: str = "*", filters: dict[str, Any] | None = None
    ) -> list[dict[str, Any]]:
        """Fetch rows from a table matching equality filters."""
        client = self._get_client()
        return self._table_call(
            f"select from {table}", client.select, table, columns=columns, filters=filters
        )

    def insert(self, table: str, rows: dict[str, Any] | list[dict[str, Any]]) -> list[dict[str, Any]]:
        client = self._get_client()
        return self._table_call(f"insert into {table}", client.insert, table, rows)

    def update(
        self, table: str, values: dict[str, Any], filters: dict[str, Any]
    ) -> list[dict[str, Any]]:
        client = self._get_client()
        return self._table_call(f"update of {table}", client.update, table, values, filters)

    def delete(self, table: str, filters: dict[str, Any]) -> None:
        client = self._get_client()
        self._table_call(f"delete from {table}", client.delete, table, filters)

    def close(self) -> None:
        """Close the client and clean up resources."""
        if self._client is not None:
            self._client.close()
        self._client = None
