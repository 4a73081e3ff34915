"""Token validation, scope checks, and the GitHub OAuth code flow."""

from __future__ import annotations

import dataclasses
import secrets
import time
import typing as typ
from urllib.parse import urlencode

import httpx
import msgspec

from repocleanr.config import GitHubClientConfig
from repocleanr.github.client import GitHubRESTClient
from repocleanr.github.errors import GitHubAPIError, GitHubRateLimitError
from repocleanr.logging import get_logger, log_info, log_warning

from .state import PendingAuth

if typ.TYPE_CHECKING:
    import collections.abc as cabc

    from repocleanr.config import OAuthConfig
    from repocleanr.github.client import RepositoryAPI
    from repocleanr.github.models import RateLimitStatus

    from .state import PendingAuthStore

logger = get_logger(__name__)

REQUIRED_SCOPES: frozenset[str] = frozenset({"repo", "delete_repo", "read:org"})

_HTTP_UNAUTHORIZED = 401
_HTTP_FORBIDDEN = 403


class AuthError(RuntimeError):
    """Base class for authentication failures."""


class MissingScopeError(AuthError):
    """Raised when a token lacks scopes an operation needs."""

    def __init__(self, missing: cabc.Iterable[str]) -> None:
        """Initialise with the scopes that were not granted."""
        self.missing = tuple(sorted(missing))
        super().__init__(
            "Token is missing required scopes: " + ", ".join(self.missing)
        )


class OAuthStateError(AuthError):
    """Raised when an OAuth callback carries an unknown or expired state."""

    @classmethod
    def unknown(cls) -> OAuthStateError:
        """Return an error for a state that was never issued or has expired."""
        return cls("OAuth state is unknown or has expired; start the login again")


class OAuthExchangeError(AuthError):
    """Raised when GitHub refuses to exchange an authorisation code."""

    @classmethod
    def rejected(cls, error: str, description: str | None) -> OAuthExchangeError:
        """Return an error carrying GitHub's ``error`` and description."""
        suffix = f": {description}" if description else ""
        return cls(f"OAuth code exchange rejected ({error}){suffix}")


@dataclasses.dataclass(frozen=True, slots=True)
class TokenValidation:
    """Result of checking a credential against ``GET /user``.

    ``scopes`` is None when GitHub did not report scopes for the token.
    """

    valid: bool
    login: str | None = None
    scopes: frozenset[str] | None = None
    rate_limit: RateLimitStatus | None = None


def missing_scopes(
    granted: frozenset[str] | None, required: cabc.Iterable[str]
) -> frozenset[str]:
    """Return the ``required`` scopes absent from ``granted``.

    Unknown grants (None) are treated as satisfying every requirement.
    """
    if granted is None:
        return frozenset()
    return frozenset(required) - granted


def require_scopes(
    validation: TokenValidation, scopes: cabc.Iterable[str] = REQUIRED_SCOPES
) -> None:
    """Raise :class:`MissingScopeError` unless ``validation`` grants ``scopes``."""
    missing = missing_scopes(validation.scopes, scopes)
    if missing:
        raise MissingScopeError(missing)


def _default_client_factory(credential: str) -> GitHubRESTClient:
    return GitHubRESTClient(GitHubClientConfig(token=credential))


class GitHubAuthProvider:
    """Validate credentials by asking GitHub who they belong to."""

    def __init__(
        self,
        client_factory: cabc.Callable[[str], RepositoryAPI] = _default_client_factory,
    ) -> None:
        """Create a provider; ``client_factory`` builds a client per token."""
        self._client_factory = client_factory

    async def validate(self, credential: str) -> TokenValidation:
        """Return whether ``credential`` is accepted and what it may do.

        Rejected credentials (401, or 403 outside rate limiting) produce an
        invalid result; every other failure propagates.
        """
        if not credential.strip():
            return TokenValidation(valid=False)
        client = self._client_factory(credential)
        try:
            user = await client.get_authenticated_user()
        except GitHubAPIError as exc:
            rejected = exc.status_code in {_HTTP_UNAUTHORIZED, _HTTP_FORBIDDEN}
            if rejected and not isinstance(exc, GitHubRateLimitError):
                log_warning(logger, "Credential rejected by GitHub: %s", exc)
                return TokenValidation(valid=False)
            raise
        finally:
            aclose = getattr(client, "aclose", None)
            if aclose is not None:
                await aclose()
        log_info(logger, "Validated credential for %s", user.login)
        return TokenValidation(
            valid=True,
            login=user.login,
            scopes=user.scopes,
            rate_limit=user.rate_limit,
        )


@dataclasses.dataclass(frozen=True, slots=True)
class AuthorizationRequest:
    """Where to send the user to start an OAuth login."""

    url: str
    state: str


@dataclasses.dataclass(frozen=True, slots=True)
class OAuthToken:
    """Access token obtained from a completed OAuth login."""

    access_token: str
    token_type: str
    scopes: frozenset[str]
    redirect_url: str | None = None


class _TokenResponse(msgspec.Struct, kw_only=True):
    access_token: str | None = None
    token_type: str = "bearer"
    scope: str = ""
    error: str | None = None
    error_description: str | None = None


class GitHubOAuthFlow:
    """GitHub web-application OAuth flow with server-side state."""

    def __init__(
        self,
        config: OAuthConfig,
        store: PendingAuthStore,
        *,
        http_client: httpx.AsyncClient | None = None,
        clock: cabc.Callable[[], float] = time.time,
    ) -> None:
        """Create a flow for one OAuth application."""
        self._config = config
        self._store = store
        self._http_client = http_client
        self._clock = clock

    def begin(self, redirect_url: str | None = None) -> AuthorizationRequest:
        """Issue a state and return the GitHub authorisation URL."""
        state = secrets.token_urlsafe(32)
        self._store.put(
            state,
            PendingAuth(redirect_url=redirect_url, created_at=self._clock()),
            self._config.state_ttl_s,
        )
        query = urlencode(
            {
                "client_id": self._config.client_id,
                "redirect_uri": self._config.callback_url,
                "scope": " ".join(sorted(REQUIRED_SCOPES)),
                "state": state,
            }
        )
        return AuthorizationRequest(
            url=f"{self._config.authorize_url}?{query}", state=state
        )

    async def complete(self, code: str, state: str) -> OAuthToken:
        """Consume ``state`` and exchange ``code`` for an access token.

        Raises
        ------
        OAuthStateError
            If ``state`` is unknown, already used, or expired.
        OAuthExchangeError
            If GitHub rejects the code.

        """
        pending = self._store.take(state)
        if pending is None:
            raise OAuthStateError.unknown()

        client = self._http_client or httpx.AsyncClient(timeout=30.0)
        try:
            response = await client.post(
                self._config.token_url,
                data={
                    "client_id": self._config.client_id,
                    "client_secret": self._config.client_secret,
                    "code": code,
                    "redirect_uri": self._config.callback_url,
                },
                headers={"Accept": "application/json"},
            )
        finally:
            if self._http_client is None:
                await client.aclose()
        response.raise_for_status()

        payload = msgspec.json.decode(response.content, type=_TokenResponse)
        if payload.error or not payload.access_token:
            raise OAuthExchangeError.rejected(
                payload.error or "no_access_token", payload.error_description
            )
        return OAuthToken(
            access_token=payload.access_token,
            token_type=payload.token_type,
            scopes=frozenset(
                scope.strip() for scope in payload.scope.split(",") if scope.strip()
            ),
            redirect_url=pending.redirect_url,
        )
