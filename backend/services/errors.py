"""
Onboarding error taxonomy.

Document generation errors abort the call (no partial PDF is returned).
Dropbox auth errors are a "re-authorize" signal for the caller and are never
retried here. ProviderAPIError wraps non-2xx responses from Dropbox.
"""
from typing import Optional


class OnboardingError(Exception):
    """Base class for seller onboarding failures."""


class AgreementGenerationError(OnboardingError):
    """Agreement PDF could not be produced."""


class AssetLoadError(AgreementGenerationError):
    """Static counter-party signature image is missing or unreadable."""


class ImageDecodeError(AgreementGenerationError):
    """Submitted signature payload is not a decodable image."""


class DropboxAuthError(OnboardingError):
    """Base for OAuth lifecycle failures. Callers restart the authorization flow."""


class NotAuthenticated(DropboxAuthError):
    def __init__(self, user_id: str):
        self.user_id = user_id
        super().__init__(
            "User not authenticated with Dropbox. Please authorize the application first."
        )


class ExchangeFailed(DropboxAuthError):
    def __init__(self, provider_error: str):
        self.provider_error = provider_error
        super().__init__(f"Token exchange failed: {provider_error}")


class RefreshFailed(DropboxAuthError):
    def __init__(self, user_id: str, reason: str):
        self.user_id = user_id
        self.reason = reason
        super().__init__(f"{reason} Please re-authorize the application.")


class ProviderAPIError(OnboardingError):
    def __init__(
        self,
        endpoint: str,
        status_code: int,
        error_summary: Optional[str] = None,
        payload: Optional[dict] = None,
    ):
        self.endpoint = endpoint
        self.status_code = status_code
        self.error_summary = error_summary or "Dropbox error"
        self.payload = payload or {}
        super().__init__(f"Dropbox API error {status_code} on {endpoint}: {self.error_summary}")


class DropboxConfigError(OnboardingError):
    """Dropbox app credentials are not configured."""


class AttachmentError(OnboardingError):
    """An email attachment payload is not valid base64."""
