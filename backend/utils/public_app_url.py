"""
Canonical public frontend base URL for OAuth redirects back to the seller form.
Use get_public_app_url() for every redirect that lands the browser on the frontend.
"""
import os
import logging

logger = logging.getLogger(__name__)

DEFAULT_APP_URL = "http://localhost:3000"


def get_public_app_url() -> str:
    """
    Return normalized public frontend base URL (no trailing slash).
    Fallback order: PUBLIC_APP_URL, NEXT_PUBLIC_APP_URL, FRONTEND_PUBLIC_URL, VERCEL_URL (as https).

    Rules:
    - Result is stripped and trailing slash removed.
    - Non-localhost http URLs are upgraded to https.
    - Missing configuration falls back to http://localhost:3000 (a warning is logged in production).

    Returns:
        Base URL, e.g. https://onboarding.example.com
    """
    raw = (
        (os.getenv("PUBLIC_APP_URL") or "").strip()
        or (os.getenv("NEXT_PUBLIC_APP_URL") or "").strip()
        or (os.getenv("FRONTEND_PUBLIC_URL") or "").strip()
    )
    if not raw and os.getenv("VERCEL_URL"):
        raw = f"https://{os.getenv('VERCEL_URL', '').strip()}"
    raw = raw.rstrip("/")
    if not raw:
        env = (os.getenv("ENVIRONMENT") or "").strip().lower()
        if env in ("production", "prod"):
            logger.warning("PUBLIC_APP_URL is not set; OAuth redirects will point at localhost")
        return DEFAULT_APP_URL
    if raw.startswith("http://") and "localhost" not in raw and "127.0.0.1" not in raw:
        raw = "https://" + raw.split("://", 1)[1]
    return raw


def get_dropbox_redirect_uri() -> str:
    """Dropbox OAuth redirect target. DROPBOX_REDIRECT_URI wins over the derived default."""
    explicit = (os.getenv("DROPBOX_REDIRECT_URI") or "").strip()
    if explicit:
        return explicit
    return f"{get_public_app_url()}/api/dropbox/callback"
