"""
In-memory Dropbox credential cache, keyed by the caller's opaque user id.

Process-local only: tokens are lost on restart and are not shared between
workers. Mutations for one user are serialized through lock(user_id) so a
refresh cannot be overwritten by a concurrent stale one.
"""
import asyncio
import logging
import weakref
from datetime import datetime, timezone
from typing import Callable, Dict, Optional

from models import UserToken

logger = logging.getLogger(__name__)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class TokenStore:
    def __init__(self, clock: Callable[[], datetime] = utc_now):
        self.clock = clock
        self._tokens: Dict[str, UserToken] = {}
        # Held only while some caller uses the lock, so idle users do not accumulate entries
        self._locks: "weakref.WeakValueDictionary[str, asyncio.Lock]" = weakref.WeakValueDictionary()

    def get(self, user_id: str) -> Optional[UserToken]:
        return self._tokens.get(user_id)

    def set(self, user_id: str, token: UserToken) -> None:
        self._tokens[user_id] = token
        logger.debug(f"Stored Dropbox token for user {user_id} (expires {token.expires_at.isoformat()})")

    def delete(self, user_id: str) -> None:
        self._tokens.pop(user_id, None)

    def is_valid(self, user_id: str) -> bool:
        """True if a token exists and has not expired. Refresh capability is not considered."""
        token = self._tokens.get(user_id)
        return token is not None and self.clock() < token.expires_at

    def lock(self, user_id: str) -> asyncio.Lock:
        lock = self._locks.get(user_id)
        if lock is None:
            lock = self._locks[user_id] = asyncio.Lock()
        return lock

    def __len__(self) -> int:
        return len(self._tokens)

    def __contains__(self, user_id: str) -> bool:
        return user_id in self._tokens
