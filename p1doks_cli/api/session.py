"""
Session lifecycle for the P1Doks API: credential acquisition, caching,
transparent refresh and a single retry of rejected requests.
"""

import asyncio
import base64
import binascii
import json
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Optional, Protocol

import aiohttp

from p1doks_cli.exceptions import RefreshExpiredError, TokenExpiredError

log = logging.getLogger(__name__)

UNAUTHORIZED_STATUSES = (401, 403)

# Checked in order, first non-empty value wins.
SUBJECT_CLAIMS = ("sub", "user_id", "userId", "cognito:username")


@dataclass(frozen=True)
class CredentialTriple:
    """The bearer tokens issued by the identity provider."""

    access_token: str
    id_token: str
    refresh_token: str

    def __post_init__(self):
        missing = [
            name
            for name in ("access_token", "id_token", "refresh_token")
            if not getattr(self, name)
        ]
        if missing:
            raise ValueError(f"Incomplete credentials, missing: {', '.join(missing)}")


class IdentityProvider(Protocol):
    """The two exchanges the session needs from an identity provider."""

    async def authenticate(self, username: str, password: str) -> CredentialTriple:
        ...

    async def refresh(self, username: str, refresh_token: str) -> CredentialTriple:
        ...


class SessionState(Enum):
    """States of an authentication session."""

    UNAUTHENTICATED = "unauthenticated"
    AUTHENTICATING = "authenticating"
    AUTHENTICATED = "authenticated"
    REFRESHING = "refreshing"
    EXPIRED = "expired"  # Terminal, a new session is required


def decode_subject_id(id_token: str) -> Optional[str]:
    """
    Reads the subject identifier from the payload of a signed identity token.

    Returns None when the token is not a three-segment token or its payload
    cannot be decoded.
    """
    if not id_token or not isinstance(id_token, str):
        return None

    parts = id_token.split(".")
    if len(parts) != 3:
        return None

    payload_segment = parts[1]
    payload_segment += "=" * (-len(payload_segment) % 4)
    try:
        payload = json.loads(base64.urlsafe_b64decode(payload_segment))
    except (binascii.Error, ValueError) as e:
        log.warning(f"[yellow]Could not decode identity token: {e}[/yellow]")
        return None

    if not isinstance(payload, dict):
        return None

    for claim in SUBJECT_CLAIMS:
        if value := payload.get(claim):
            return str(value)
    return None


class TokenStore:
    """Holds at most one credential triple and the subject derived from it."""

    def __init__(self):
        self.credentials: Optional[CredentialTriple] = None
        self.subject_id: Optional[str] = None
        # Bumped on every store so concurrent callers can tell a refresh happened
        self.generation = 0

    @property
    def has_credentials(self) -> bool:
        return self.credentials is not None

    def store(self, credentials: CredentialTriple) -> None:
        self.credentials = credentials
        self.generation += 1
        if self.subject_id is None:
            self.subject_id = decode_subject_id(credentials.id_token)

    def authorization_header(self) -> dict[str, str]:
        """Builds the bearer header from the credentials held right now."""
        if self.credentials is None:
            return {}
        return {"Authorization": f"Bearer {self.credentials.id_token}"}


class SessionManager:
    """
    Owns the authentication state of one user and wraps outbound calls with
    transparent re-authentication.

    The authorization header is built per request from the token store rather
    than set on the HTTP client, so a refresh mid-session is always picked up
    by the next call.
    """

    DEFAULT_HEADERS = {
        "User-Agent": (
            "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36"
        ),
        "Accept": "application/json, text/plain, */*",
        "Accept-Language": "en-US,en;q=0.9",
    }

    def __init__(
        self,
        username: str,
        identity_provider: IdentityProvider,
        password: Optional[str] = None,
        refresh_token: Optional[str] = None,
        on_credentials: Optional[Callable[[CredentialTriple], None]] = None,
        timeout: float = 60.0,
    ):
        """
        Initializes the session.

        Args:
            username: The account e-mail used with the identity provider.
            identity_provider: Performs the password and refresh exchanges.
            password: The account password, for a full sign-in.
            refresh_token: A saved refresh token, used when no password is given.
            on_credentials: Called with every newly stored credential triple,
                e.g. to persist the rotated refresh token.
            timeout: Total timeout in seconds for each outbound request.
        """
        if not password and not refresh_token:
            raise ValueError("A password or a refresh token is required.")

        self.username = username
        self._password = password
        self._initial_refresh_token = refresh_token
        self._identity_provider = identity_provider
        self._on_credentials = on_credentials
        self._timeout = aiohttp.ClientTimeout(total=timeout, connect=15)

        self._tokens = TokenStore()
        self._state = SessionState.UNAUTHENTICATED
        self._refresh_lock = asyncio.Lock()
        self._session: Optional[aiohttp.ClientSession] = None

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def credentials(self) -> Optional[CredentialTriple]:
        return self._tokens.credentials

    @property
    def refresh_token(self) -> Optional[str]:
        """The newest refresh token known to this session."""
        if self._tokens.credentials is not None:
            return self._tokens.credentials.refresh_token
        return self._initial_refresh_token

    def get_user_id(self) -> Optional[str]:
        """Returns the cached subject identifier, or None before authentication."""
        return self._tokens.subject_id

    def supply_password(self, password: str) -> None:
        """Switches the next authenticate() call to the password path."""
        self._password = password

    async def _initialize_session(self) -> None:
        """Ensures an active aiohttp session is available."""
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                headers=self.DEFAULT_HEADERS, timeout=self._timeout
            )

    async def close(self) -> None:
        """Gracefully closes the aiohttp session."""
        if self._session and not self._session.closed:
            await self._session.close()

    async def __aenter__(self) -> "SessionManager":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    async def authenticate(self) -> CredentialTriple:
        """
        Establishes or refreshes the session.

        A saved refresh token is exchanged when no password was supplied;
        otherwise a full password sign-in is performed.

        Returns:
            The stored credential triple. Its refresh token may have been
            rotated and should be persisted by the caller.

        Raises:
            RefreshExpiredError: The refresh token was rejected.
            TokenExpiredError: The session already expired.
        """
        if self._state == SessionState.EXPIRED:
            raise TokenExpiredError(
                "This session has expired. Sign in again with a password."
            )

        self._state = SessionState.AUTHENTICATING
        try:
            if self.refresh_token and not self._password:
                log.debug(f"Refreshing session for {self.username}")
                try:
                    credentials = await self._identity_provider.refresh(
                        self.username, self.refresh_token
                    )
                except Exception as e:
                    raise RefreshExpiredError(
                        "The saved session has expired. Please sign in again."
                    ) from e
            else:
                log.debug(f"Signing in as {self.username}")
                credentials = await self._identity_provider.authenticate(
                    self.username, self._password
                )
        except BaseException:
            self._state = SessionState.UNAUTHENTICATED
            raise

        self._store(credentials)
        self._state = SessionState.AUTHENTICATED
        return credentials

    def _store(self, credentials: CredentialTriple) -> None:
        self._tokens.store(credentials)
        if self._tokens.subject_id is None:
            log.warning(
                "[yellow]Could not read a user id from the identity token.[/yellow]"
            )
        if self._on_credentials:
            self._on_credentials(credentials)

    async def _refresh_after_rejection(self, rejected_generation: int) -> None:
        """
        Refreshes the credentials once for every group of concurrent
        rejections. A caller whose request was issued with credentials that
        have since been replaced reuses the new ones.
        """
        async with self._refresh_lock:
            # A failed refresh is final for every request waiting on it
            if self._state == SessionState.EXPIRED:
                raise TokenExpiredError(
                    "This session has expired. Sign in again with a password."
                )
            if self._tokens.generation != rejected_generation:
                log.debug("Credentials were refreshed by another request.")
                return

            self._state = SessionState.REFRESHING
            try:
                credentials = await self._identity_provider.refresh(
                    self.username, self.refresh_token
                )
            except BaseException:
                self._state = SessionState.EXPIRED
                raise
            self._store(credentials)
            self._state = SessionState.AUTHENTICATED

    async def _send(self, url: str, method: str, data: Any) -> Any:
        """Issues one request with the authorization current at call time."""
        await self._initialize_session()
        async with self._session.request(
            method,
            url,
            json=data,
            headers=self._tokens.authorization_header(),
        ) as r:
            r.raise_for_status()
            return await r.json(content_type=None)

    async def make_authenticated_request(
        self, url: str, method: str = "GET", data: Any = None
    ) -> Any:
        """
        Performs one outbound call, retried at most once after a refresh.

        Args:
            url: The absolute URL to call.
            method: The HTTP method.
            data: An optional JSON body.

        Returns:
            The decoded JSON response body.

        Raises:
            TokenExpiredError: The request was rejected and could not be
                authorized with refreshed credentials.
        """
        if self._state == SessionState.EXPIRED:
            raise TokenExpiredError(
                "This session has expired. Sign in again with a password."
            )
        if not self._tokens.has_credentials:
            await self.authenticate()

        generation = self._tokens.generation
        try:
            return await self._send(url, method, data)
        except aiohttp.ClientResponseError as e:
            if e.status not in UNAUTHORIZED_STATUSES:
                raise
            original_error = e

        # Stored credentials always carry a refresh token
        log.warning("[yellow]⚠ Token expired, refreshing...[/yellow]")
        try:
            await self._refresh_after_rejection(generation)
            log.info("[green]✓ Token refreshed, retrying request...[/green]")
            return await self._send(url, method, data)
        except Exception as e:
            self._state = SessionState.EXPIRED
            raise TokenExpiredError(
                f"The request was still rejected after a token refresh: {e}",
                original_error=original_error,
            ) from e
