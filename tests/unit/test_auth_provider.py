"""Unit tests for token validation and the OAuth code flow."""

from __future__ import annotations

from urllib.parse import parse_qs, urlsplit

import httpx
import pytest

from repocleanr.auth.provider import (
    REQUIRED_SCOPES,
    GitHubAuthProvider,
    GitHubOAuthFlow,
    MissingScopeError,
    OAuthExchangeError,
    OAuthStateError,
    TokenValidation,
    missing_scopes,
    require_scopes,
)
from repocleanr.auth.state import InMemoryPendingAuthStore
from repocleanr.config import OAuthConfig
from repocleanr.github.errors import GitHubAPIError
from tests.helpers.fake_github import FakeGitHub, rate_limited, server_error

_OAUTH = OAuthConfig(
    client_id="cid",
    client_secret="secret",  # noqa: S106
    callback_url="https://app.example/callback",
)


class _Clock:
    def __init__(self) -> None:
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now


def _provider(github: FakeGitHub, tokens: list[str]) -> GitHubAuthProvider:
    def factory(credential: str) -> FakeGitHub:
        tokens.append(credential)
        return github

    return GitHubAuthProvider(factory)


@pytest.mark.asyncio
async def test_valid_token_reports_login_and_scopes() -> None:
    """An accepted token yields the owner and granted scopes."""
    github = FakeGitHub(scopes=frozenset({"repo", "delete_repo"}))
    tokens: list[str] = []

    validation = await _provider(github, tokens).validate("ghp_token")

    assert tokens == ["ghp_token"]
    assert validation.valid
    assert validation.login == "octo"
    assert validation.scopes == frozenset({"repo", "delete_repo"})


@pytest.mark.asyncio
async def test_blank_token_is_invalid_without_a_call() -> None:
    """Blank credentials never reach GitHub."""
    tokens: list[str] = []

    validation = await _provider(FakeGitHub(), tokens).validate("   ")

    assert not validation.valid
    assert tokens == []


@pytest.mark.asyncio
@pytest.mark.parametrize("status", [401, 403])
async def test_rejected_token_is_invalid(status: int) -> None:
    """401 and permission 403 responses mark the token invalid."""
    github = FakeGitHub()
    github.fail_next(
        "get_authenticated_user", GitHubAPIError("Bad credentials", status_code=status)
    )

    validation = await _provider(github, []).validate("ghp_bad")

    assert validation == TokenValidation(valid=False)


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "error", [rate_limited(), server_error(502)], ids=["throttled", "server-error"]
)
async def test_other_failures_propagate(error: GitHubAPIError) -> None:
    """Throttling and outages are not mistaken for a bad token."""
    github = FakeGitHub()
    github.fail_next("get_authenticated_user", error)

    with pytest.raises(GitHubAPIError):
        await _provider(github, []).validate("ghp_token")


def test_missing_scopes_treats_unknown_grants_as_sufficient() -> None:
    """None means GitHub did not report scopes."""
    assert missing_scopes(None, REQUIRED_SCOPES) == frozenset()
    assert missing_scopes(frozenset({"repo"}), {"repo", "delete_repo"}) == {
        "delete_repo"
    }


def test_require_scopes_names_missing_scopes() -> None:
    """The error lists missing scopes in sorted order."""
    validation = TokenValidation(valid=True, login="octo", scopes=frozenset({"repo"}))

    with pytest.raises(MissingScopeError) as excinfo:
        require_scopes(validation)

    assert excinfo.value.missing == ("delete_repo", "read:org")
    assert str(excinfo.value) == (
        "Token is missing required scopes: delete_repo, read:org"
    )


def test_begin_builds_authorisation_url() -> None:
    """The login URL carries client id, callback, scopes, and a fresh state."""
    store = InMemoryPendingAuthStore()
    flow = GitHubOAuthFlow(_OAUTH, store)

    request = flow.begin("/dashboard")

    url = urlsplit(request.url)
    params = {key: values[0] for key, values in parse_qs(url.query).items()}
    assert f"{url.scheme}://{url.netloc}{url.path}" == _OAUTH.authorize_url
    assert params == {
        "client_id": "cid",
        "redirect_uri": "https://app.example/callback",
        "scope": "delete_repo read:org repo",
        "state": request.state,
    }
    assert len(store) == 1
    assert flow.begin().state != request.state


def _token_transport(
    body: dict[str, str], seen: list[httpx.Request]
) -> httpx.AsyncClient:
    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json=body)

    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


@pytest.mark.asyncio
async def test_complete_exchanges_code_once() -> None:
    """A valid state is consumed and the code is exchanged for a token."""
    seen: list[httpx.Request] = []
    client = _token_transport(
        {
            "access_token": "gho_abc",
            "token_type": "bearer",
            "scope": "repo,delete_repo, read:org",
        },
        seen,
    )
    flow = GitHubOAuthFlow(_OAUTH, InMemoryPendingAuthStore(), http_client=client)
    request = flow.begin("/dashboard")

    token = await flow.complete("code-1", request.state)

    assert token.access_token == "gho_abc"  # noqa: S105
    assert token.scopes == REQUIRED_SCOPES
    assert token.redirect_url == "/dashboard"
    form = parse_qs(seen[0].content.decode())
    assert form["code"] == ["code-1"]
    assert form["client_secret"] == ["secret"]
    assert seen[0].headers["accept"] == "application/json"

    with pytest.raises(OAuthStateError):
        await flow.complete("code-1", request.state)


@pytest.mark.asyncio
async def test_expired_state_is_rejected() -> None:
    """A callback after the state TTL is refused without calling GitHub."""
    seen: list[httpx.Request] = []
    clock = _Clock()
    store = InMemoryPendingAuthStore(clock=clock)
    flow = GitHubOAuthFlow(
        _OAUTH, store, http_client=_token_transport({"access_token": "x"}, seen)
    )
    request = flow.begin()

    clock.now += _OAUTH.state_ttl_s + 1

    with pytest.raises(OAuthStateError):
        await flow.complete("code", request.state)
    assert seen == []


@pytest.mark.asyncio
async def test_rejected_code_raises_exchange_error() -> None:
    """GitHub's error payload is surfaced."""
    client = _token_transport(
        {"error": "bad_verification_code", "error_description": "expired code"}, []
    )
    flow = GitHubOAuthFlow(_OAUTH, InMemoryPendingAuthStore(), http_client=client)
    request = flow.begin()

    with pytest.raises(OAuthExchangeError, match="bad_verification_code"):
        await flow.complete("code", request.state)
