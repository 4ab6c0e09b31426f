"""
OAuth State Token Service
Packs the user id and the caller's seller form context into the Dropbox
`state` parameter so both survive the authorization redirect.
"""

import os
import jwt
from datetime import datetime, timezone, timedelta
from typing import Optional, Dict, Any, Tuple
import logging

logger = logging.getLogger(__name__)

# Get JWT secret from environment
JWT_SECRET = os.environ.get("JWT_SECRET", "default-secret-change-in-production")

STATE_TOKEN_TYPE = "dropbox_oauth_state"

# Token validity duration (in minutes)
STATE_TOKEN_VALIDITY_MINUTES = 30


def encode_oauth_state(
    user_id: str,
    context: Optional[Dict[str, Any]] = None,
    validity_minutes: int = STATE_TOKEN_VALIDITY_MINUTES,
) -> str:
    """
    Generate a signed state token for the Dropbox authorization URL.

    The context is not inspected here; it is handed back unchanged by
    decode_oauth_state() when the provider redirects to the callback.

    Args:
        user_id: Opaque user identifier the token will be stored under
        context: Arbitrary JSON-serializable payload (seller form fields)
        validity_minutes: How long the user has to complete authorization

    Returns:
        JWT token string
    """
    now = datetime.now(timezone.utc)
    payload = {
        "type": STATE_TOKEN_TYPE,
        "uid": user_id,
        "ctx": context,
        "exp": now + timedelta(minutes=validity_minutes),
        "iat": now,
    }

    token = jwt.encode(payload, JWT_SECRET, algorithm="HS256")

    logger.debug(f"Generated OAuth state token for user {user_id}")

    return token


def decode_oauth_state(token: str) -> Optional[Tuple[str, Optional[Dict[str, Any]]]]:
    """
    Validate a state token returned by Dropbox.

    Returns:
        (user_id, context) if valid, None if invalid/expired/tampered
    """
    if not token:
        return None
    try:
        payload = jwt.decode(token, JWT_SECRET, algorithms=["HS256"])
    except jwt.ExpiredSignatureError:
        logger.warning("OAuth state token expired")
        return None
    except jwt.InvalidTokenError as e:
        logger.warning(f"Invalid OAuth state token: {e}")
        return None

    if payload.get("type") != STATE_TOKEN_TYPE or not payload.get("uid"):
        logger.warning("OAuth state token has wrong type or no user id")
        return None

    return payload["uid"], payload.get("ctx")
