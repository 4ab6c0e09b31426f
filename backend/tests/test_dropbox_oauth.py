"""
Dropbox OAuth lifecycle tests.
- Authorization URL carries scopes, offline access and a round-trippable state
- Code exchange stores the token; provider errors surface as ExchangeFailed
- Tokens outside the 5 minute margin are served from cache
- Tokens inside the margin refresh exactly once, even under concurrency
- Expired token with refresh credential refreshes (no NotAuthenticated)
- Rejected refresh drops the entry; network failure keeps it
- Revoke waits for an in-flight refresh and wins
"""
import asyncio
from datetime import datetime, timedelta, timezone
from urllib.parse import parse_qs, urlparse

import httpx
import jwt
import pytest

from models import UserToken
from services.dropbox_oauth import (
    DROPBOX_SCOPES,
    DROPBOX_TOKEN_URL,
    DropboxOAuth,
)
from services.errors import (
    DropboxConfigError,
    ExchangeFailed,
    NotAuthenticated,
    RefreshFailed,
)
from services.oauth_state import JWT_SECRET
from services.token_store import TokenStore


class Clock:
    def __init__(self, now):
        self.now = now

    def __call__(self):
        return self.now


class TokenEndpoint:
    """Records token endpoint calls and answers with a canned response."""

    def __init__(self, status=200, payload=None, delay=0.0, error=None):
        self.status = status
        self.payload = payload if payload is not None else {
            "access_token": "fresh-access",
            "token_type": "bearer",
            "expires_in": 14400,
            "scope": DROPBOX_SCOPES,
        }
        self.delay = delay
        self.error = error
        self.calls = []

    async def __call__(self, request: httpx.Request) -> httpx.Response:
        body = await request.aread()
        self.calls.append({k: v[0] for k, v in parse_qs(body.decode()).items()})
        assert str(request.url) == DROPBOX_TOKEN_URL
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error:
            raise self.error
        if isinstance(self.payload, str):
            return httpx.Response(self.status, text=self.payload)
        return httpx.Response(self.status, json=self.payload)


NOW = datetime(2026, 10, 19, 12, 0, tzinfo=timezone.utc)


def make_oauth(endpoint=None, clock=None):
    clock = clock or Clock(NOW)
    store = TokenStore(clock=clock)
    transport = httpx.MockTransport(endpoint or TokenEndpoint())
    oauth = DropboxOAuth(
        token_store=store,
        app_key="app-key",
        app_secret="app-secret",
        redirect_uri="https://onboarding.test/api/dropbox/callback",
        transport=transport,
    )
    return oauth, store, clock


def seed(store, expires_in, refresh_token="refresh-1", user_id="u1"):
    store.set(user_id, UserToken(
        user_id=user_id,
        access_token="cached-access",
        refresh_token=refresh_token,
        expires_at=NOW + expires_in,
    ))


def test_authorization_url_contents_and_state_round_trip():
    oauth, _, _ = make_oauth()
    context = {"seller_name": "Jane", "ste_code": "9042"}

    url = oauth.build_authorization_url("u1", context)

    parsed = urlparse(url)
    assert f"{parsed.scheme}://{parsed.netloc}{parsed.path}" == "https://www.dropbox.com/oauth2/authorize"
    params = {k: v[0] for k, v in parse_qs(parsed.query).items()}
    assert params["client_id"] == "app-key"
    assert params["redirect_uri"] == "https://onboarding.test/api/dropbox/callback"
    assert params["response_type"] == "code"
    assert params["token_access_type"] == "offline"
    assert params["scope"] == DROPBOX_SCOPES
    assert oauth.decode_state(params["state"]) == ("u1", context)


def test_authorization_url_requires_app_key():
    oauth = DropboxOAuth(token_store=TokenStore(), app_key="", app_secret="s")

    with pytest.raises(DropboxConfigError):
        oauth.build_authorization_url("u1")


def test_foreign_or_mistyped_state_is_rejected():
    oauth, _, _ = make_oauth()
    foreign = jwt.encode({"type": "dropbox_oauth_state", "uid": "u1"}, "some-other-secret", algorithm="HS256")
    wrong_type = jwt.encode({"type": "document_access", "uid": "u1"}, JWT_SECRET, algorithm="HS256")

    assert oauth.decode_state(foreign) is None
    assert oauth.decode_state(wrong_type) is None
    assert oauth.decode_state(None) is None


@pytest.mark.asyncio
async def test_exchange_code_stores_token():
    endpoint = TokenEndpoint(payload={
        "access_token": "a-1",
        "refresh_token": "r-1",
        "expires_in": 14400,
        "token_type": "bearer",
        "account_id": "dbid:123",
    })
    oauth, store, _ = make_oauth(endpoint)

    token = await oauth.exchange_code("the-code", "u1")

    assert token.access_token == "a-1"
    assert token.account_id == "dbid:123"
    assert token.expires_at == NOW + timedelta(seconds=14400)
    assert store.get("u1") == token
    assert endpoint.calls[0]["grant_type"] == "authorization_code"
    assert endpoint.calls[0]["code"] == "the-code"
    assert endpoint.calls[0]["redirect_uri"] == "https://onboarding.test/api/dropbox/callback"


@pytest.mark.asyncio
async def test_exchange_failure_carries_provider_text():
    endpoint = TokenEndpoint(status=400, payload='{"error": "invalid_grant"}')
    oauth, store, _ = make_oauth(endpoint)

    with pytest.raises(ExchangeFailed) as exc:
        await oauth.exchange_code("bad-code", "u1")

    assert "invalid_grant" in exc.value.provider_error
    assert store.get("u1") is None


@pytest.mark.asyncio
async def test_fresh_token_served_without_network():
    endpoint = TokenEndpoint()
    oauth, store, _ = make_oauth(endpoint)
    seed(store, timedelta(minutes=10))

    assert await oauth.get_valid_access_token("u1") == "cached-access"
    assert endpoint.calls == []


@pytest.mark.asyncio
async def test_token_inside_margin_refreshes_once_and_keeps_refresh_token():
    endpoint = TokenEndpoint()
    oauth, store, _ = make_oauth(endpoint)
    seed(store, timedelta(minutes=1))

    access = await oauth.get_valid_access_token("u1")

    assert access == "fresh-access"
    assert len(endpoint.calls) == 1
    assert endpoint.calls[0]["grant_type"] == "refresh_token"
    assert endpoint.calls[0]["refresh_token"] == "refresh-1"
    stored = store.get("u1")
    assert stored.refresh_token == "refresh-1"
    assert stored.expires_at == NOW + timedelta(seconds=14400)

    # Second call is served from the refreshed cache
    assert await oauth.get_valid_access_token("u1") == "fresh-access"
    assert len(endpoint.calls) == 1


@pytest.mark.asyncio
async def test_concurrent_callers_share_one_refresh():
    endpoint = TokenEndpoint(delay=0.05)
    oauth, store, _ = make_oauth(endpoint)
    seed(store, timedelta(minutes=1))

    results = await asyncio.gather(*[oauth.get_valid_access_token("u1") for _ in range(5)])

    assert results == ["fresh-access"] * 5
    assert len(endpoint.calls) == 1


@pytest.mark.asyncio
async def test_unknown_user_is_not_authenticated():
    oauth, _, _ = make_oauth()

    with pytest.raises(NotAuthenticated):
        await oauth.get_valid_access_token("nobody")


@pytest.mark.asyncio
async def test_expired_token_with_refresh_credential_is_refreshed():
    endpoint = TokenEndpoint(payload={
        "access_token": "rotated-access",
        "refresh_token": "refresh-2",
        "expires_in": 3600,
    })
    oauth, store, _ = make_oauth(endpoint)
    seed(store, timedelta(minutes=-1))

    assert await oauth.get_valid_access_token("u1") == "rotated-access"
    assert store.get("u1").refresh_token == "refresh-2"
    assert len(endpoint.calls) == 1


@pytest.mark.asyncio
async def test_rejected_refresh_drops_entry():
    endpoint = TokenEndpoint(status=400, payload='{"error": "invalid_grant"}')
    oauth, store, _ = make_oauth(endpoint)
    seed(store, timedelta(minutes=1))

    with pytest.raises(RefreshFailed):
        await oauth.get_valid_access_token("u1")

    assert store.get("u1") is None
    with pytest.raises(NotAuthenticated):
        await oauth.get_valid_access_token("u1")


@pytest.mark.asyncio
async def test_network_failure_on_refresh_keeps_entry():
    endpoint = TokenEndpoint(error=httpx.ConnectTimeout("timed out"))
    oauth, store, _ = make_oauth(endpoint)
    seed(store, timedelta(minutes=1))

    with pytest.raises(RefreshFailed):
        await oauth.get_valid_access_token("u1")

    assert store.get("u1") is not None


@pytest.mark.asyncio
async def test_no_refresh_token_inside_margin_fails_but_keeps_unexpired_entry():
    oauth, store, _ = make_oauth()
    seed(store, timedelta(minutes=1), refresh_token=None)

    with pytest.raises(RefreshFailed):
        await oauth.get_valid_access_token("u1")

    assert store.get("u1") is not None


@pytest.mark.asyncio
async def test_no_refresh_token_and_expired_entry_is_reaped():
    oauth, store, _ = make_oauth()
    seed(store, timedelta(minutes=-1), refresh_token=None)

    with pytest.raises(RefreshFailed):
        await oauth.get_valid_access_token("u1")

    assert store.get("u1") is None


@pytest.mark.asyncio
async def test_revoke_is_idempotent_and_status_reflects_it():
    oauth, store, _ = make_oauth()
    seed(store, timedelta(hours=1))

    status = oauth.auth_status("u1")
    assert status["authenticated"] is True
    assert status["expires_at"] == (NOW + timedelta(hours=1)).isoformat()

    await oauth.revoke("u1")
    await oauth.revoke("u1")

    assert oauth.auth_status("u1") == {"authenticated": False, "expires_at": None}


class GatedTokenEndpoint(TokenEndpoint):
    """Holds each request until released."""

    def __init__(self, **kwargs):
        super().__init__(**kwargs)
        self.entered = asyncio.Event()
        self.release = asyncio.Event()

    async def __call__(self, request: httpx.Request) -> httpx.Response:
        self.entered.set()
        await self.release.wait()
        return await super().__call__(request)


@pytest.mark.asyncio
async def test_revoke_during_refresh_leaves_no_token():
    endpoint = GatedTokenEndpoint()
    oauth, store, _ = make_oauth(endpoint)
    seed(store, timedelta(minutes=1))

    refresh = asyncio.create_task(oauth.get_valid_access_token("u1"))
    await endpoint.entered.wait()
    revoke = asyncio.create_task(oauth.revoke("u1"))
    await asyncio.sleep(0)
    assert not revoke.done()

    endpoint.release.set()
    assert await refresh == "fresh-access"
    await revoke

    assert store.get("u1") is None
    assert oauth.auth_status("u1") == {"authenticated": False, "expires_at": None}
    with pytest.raises(NotAuthenticated):
        await oauth.get_valid_access_token("u1")
