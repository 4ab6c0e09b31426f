"""
Dropbox OAuth 2.0 authorization-code flow with offline (refresh) access.

Per user: unauthenticated -> pending exchange -> authenticated -> refreshing
-> authenticated. Revocation or a refresh rejected by Dropbox returns the user
to unauthenticated. Network calls are single attempts with a timeout; callers
decide whether to retry or restart the authorization flow.
"""
import os
import logging
from datetime import timedelta
from typing import Any, Dict, Optional, Tuple
from urllib.parse import urlencode

import httpx

from models import UserToken
from services.errors import (
    DropboxConfigError,
    ExchangeFailed,
    NotAuthenticated,
    RefreshFailed,
)
from services.oauth_state import decode_oauth_state, encode_oauth_state
from services.token_store import TokenStore
from utils.public_app_url import get_dropbox_redirect_uri

logger = logging.getLogger(__name__)

DROPBOX_AUTHORIZE_URL = "https://www.dropbox.com/oauth2/authorize"
DROPBOX_TOKEN_URL = "https://api.dropbox.com/oauth2/token"
DROPBOX_SCOPES = "file_requests.write file_requests.read files.metadata.write files.metadata.read"

# Tokens this close to expiry are treated as stale and refreshed
REFRESH_SAFETY_MARGIN = timedelta(minutes=5)

# Dropbox short-lived tokens last 4 hours
DEFAULT_EXPIRES_IN = 14400

HTTP_TIMEOUT_SECONDS = float(os.getenv("DROPBOX_HTTP_TIMEOUT_SECONDS", "10"))


class DropboxOAuth:
    """Builds authorization URLs and keeps a valid access token per user."""

    def __init__(
        self,
        token_store: TokenStore,
        app_key: Optional[str] = None,
        app_secret: Optional[str] = None,
        redirect_uri: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        timeout: float = HTTP_TIMEOUT_SECONDS,
    ):
        self.token_store = token_store
        self.app_key = app_key if app_key is not None else os.getenv("DROPBOX_APP_KEY")
        self.app_secret = app_secret if app_secret is not None else os.getenv("DROPBOX_APP_SECRET")
        self._redirect_uri = redirect_uri
        self.transport = transport
        self.timeout = timeout

    @property
    def redirect_uri(self) -> str:
        return self._redirect_uri or get_dropbox_redirect_uri()

    # ------------------------------------------------------------------
    # Authorization
    # ------------------------------------------------------------------

    def build_authorization_url(self, user_id: str, context: Optional[Dict[str, Any]] = None) -> str:
        """Dropbox consent URL. `context` rides along in `state` and is not interpreted here."""
        if not self.app_key:
            raise DropboxConfigError("Missing DROPBOX_APP_KEY environment variable")

        params = {
            "client_id": self.app_key,
            "redirect_uri": self.redirect_uri,
            "response_type": "code",
            "scope": DROPBOX_SCOPES,
            "state": encode_oauth_state(user_id, context),
            "token_access_type": "offline",
        }
        return f"{DROPBOX_AUTHORIZE_URL}?{urlencode(params)}"

    def decode_state(self, state: Optional[str]) -> Optional[Tuple[str, Optional[Dict[str, Any]]]]:
        return decode_oauth_state(state or "")

    async def exchange_code(self, code: str, user_id: str) -> UserToken:
        """Swap an authorization code for tokens and store them under `user_id`."""
        self._require_credentials()
        form = {
            "grant_type": "authorization_code",
            "client_id": self.app_key,
            "client_secret": self.app_secret,
            "code": code,
            "redirect_uri": self.redirect_uri,
        }
        try:
            response = await self._post_token(form)
        except httpx.HTTPError as e:
            logger.error(f"Dropbox token exchange request failed for user {user_id}: {e}")
            raise ExchangeFailed(f"{type(e).__name__}: {e}") from e

        if not response.is_success:
            logger.error(f"Dropbox token exchange error ({response.status_code}): {response.text}")
            raise ExchangeFailed(response.text)

        try:
            data = response.json()
            token = self._token_from_response(user_id, data)
        except (ValueError, KeyError, TypeError) as e:
            raise ExchangeFailed(f"Unexpected token response: {response.text}") from e

        async with self.token_store.lock(user_id):
            self.token_store.set(user_id, token)
        logger.info(f"Dropbox authorization completed for user {user_id}")
        return token

    # ------------------------------------------------------------------
    # Token lifecycle
    # ------------------------------------------------------------------

    async def get_valid_access_token(self, user_id: str) -> str:
        """Return a usable access token, refreshing it when inside the safety margin."""
        token = self.token_store.get(user_id)
        if token is None:
            raise NotAuthenticated(user_id)
        if self._is_fresh(token):
            return token.access_token

        async with self.token_store.lock(user_id):
            # Another request may have refreshed or revoked while we waited
            token = self.token_store.get(user_id)
            if token is None:
                raise NotAuthenticated(user_id)
            if self._is_fresh(token):
                return token.access_token

            if not token.refresh_token:
                if self.token_store.clock() >= token.expires_at:
                    self.token_store.delete(user_id)
                raise RefreshFailed(user_id, "Token expired and no refresh token available.")

            refreshed = await self._refresh(token)
            return refreshed.access_token

    async def revoke(self, user_id: str) -> None:
        """Drop the user's token. Waits for an in-flight refresh so it cannot restore the entry."""
        async with self.token_store.lock(user_id):
            self.token_store.delete(user_id)
        logger.info(f"Dropbox access revoked for user {user_id}")

    def auth_status(self, user_id: str) -> Dict[str, Any]:
        token = self.token_store.get(user_id)
        return {
            "authenticated": self.token_store.is_valid(user_id),
            "expires_at": token.expires_at.isoformat() if token else None,
        }

    async def _refresh(self, token: UserToken) -> UserToken:
        """Caller holds the user's lock."""
        self._require_credentials()
        user_id = token.user_id
        form = {
            "grant_type": "refresh_token",
            "client_id": self.app_key,
            "client_secret": self.app_secret,
            "refresh_token": token.refresh_token,
        }
        try:
            response = await self._post_token(form)
        except httpx.HTTPError as e:
            logger.error(f"Dropbox token refresh request failed for user {user_id}: {e}")
            raise RefreshFailed(user_id, f"Token refresh failed: {type(e).__name__}.") from e

        if not response.is_success:
            logger.error(f"Dropbox token refresh error ({response.status_code}): {response.text}")
            self.token_store.delete(user_id)
            raise RefreshFailed(user_id, f"Token refresh failed: {response.text}")

        try:
            data = response.json()
            expires_at = self.token_store.clock() + timedelta(
                seconds=int(data.get("expires_in", DEFAULT_EXPIRES_IN))
            )
            refreshed = token.model_copy(update={
                "access_token": data["access_token"],
                "refresh_token": data.get("refresh_token") or token.refresh_token,
                "expires_at": expires_at,
                "scope": data.get("scope", token.scope),
            })
        except (ValueError, KeyError, TypeError) as e:
            raise RefreshFailed(user_id, "Token refresh returned an unexpected response.") from e

        self.token_store.set(user_id, refreshed)
        logger.info(f"Dropbox token refreshed for user {user_id}")
        return refreshed

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _is_fresh(self, token: UserToken) -> bool:
        return self.token_store.clock() < token.expires_at - REFRESH_SAFETY_MARGIN

    def _require_credentials(self) -> None:
        if not self.app_key or not self.app_secret:
            raise DropboxConfigError("Missing Dropbox app credentials")

    def _token_from_response(self, user_id: str, data: Dict[str, Any]) -> UserToken:
        expires_in = int(data.get("expires_in", DEFAULT_EXPIRES_IN))
        return UserToken(
            user_id=user_id,
            access_token=data["access_token"],
            refresh_token=data.get("refresh_token"),
            expires_at=self.token_store.clock() + timedelta(seconds=expires_in),
            account_id=data.get("account_id"),
            token_type=data.get("token_type", "bearer"),
            scope=data.get("scope"),
        )

    async def _post_token(self, form: Dict[str, Any]) -> httpx.Response:
        async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
            return await client.post(
                DROPBOX_TOKEN_URL,
                data=form,
                headers={"Content-Type": "application/x-www-form-urlencoded"},
            )


# Process-wide store and coordinator used by the API routes
token_store = TokenStore()
dropbox_oauth = DropboxOAuth(token_store=token_store)


def get_dropbox_oauth() -> DropboxOAuth:
    """FastAPI dependency; tests override it with an isolated coordinator."""
    return dropbox_oauth
