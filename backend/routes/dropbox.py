"""
Dropbox OAuth API Routes

The seller form starts authorization with POST /api/dropbox/auth, Dropbox
redirects the browser to GET /api/dropbox/callback, and the callback sends the
browser back to the form with either an upload link or an error code in the
query string. Form fields travel inside the signed state token and are echoed
back so the form can restore itself.
"""
from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import RedirectResponse
from typing import Any, Dict, Optional
from urllib.parse import urlencode
import httpx
from models import AuditAction, DropboxAuthRequest, SellerContext
from services.dropbox_oauth import DropboxOAuth, get_dropbox_oauth
from services.dropbox_file_requests import DropboxFileRequests, get_dropbox_file_requests
from services.errors import DropboxAuthError, DropboxConfigError, ProviderAPIError
from utils.audit import create_audit_log
from utils.public_app_url import get_public_app_url
import logging

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/dropbox", tags=["dropbox"])

FORM_FIELDS = tuple(SellerContext.model_fields)


def frontend_redirect(params: Dict[str, Any]) -> RedirectResponse:
    return RedirectResponse(url=f"{get_public_app_url()}/?{urlencode(params)}")


def form_params(context: Optional[Dict[str, Any]]) -> Dict[str, str]:
    """Every form field, blank when absent, so the frontend can repopulate the form."""
    if not context:
        return {}
    return {name: str(context.get(name) or "") for name in FORM_FIELDS}


@router.post("/auth")
async def start_authorization(
    body: DropboxAuthRequest,
    request: Request,
    oauth: DropboxOAuth = Depends(get_dropbox_oauth),
):
    """Return the Dropbox consent URL for this user."""
    if not body.user_id:
        raise HTTPException(status_code=400, detail="User ID is required")

    context = body.model_dump(exclude={"user_id"}, exclude_none=True) or None
    try:
        auth_url = oauth.build_authorization_url(body.user_id, context)
    except DropboxConfigError as e:
        logger.error(f"Cannot start Dropbox authorization: {e}")
        raise HTTPException(status_code=500, detail=str(e))

    await create_audit_log(
        action=AuditAction.DROPBOX_AUTH_STARTED,
        actor_id=body.user_id,
        resource_type="dropbox",
        metadata={"ste_code": body.ste_code},
        ip_address=request.client.host if request.client else None,
    )
    return {"auth_url": auth_url}


@router.get("/callback")
async def authorization_callback(
    code: Optional[str] = None,
    state: Optional[str] = None,
    error: Optional[str] = None,
    error_description: Optional[str] = None,
    oauth: DropboxOAuth = Depends(get_dropbox_oauth),
    file_requests: DropboxFileRequests = Depends(get_dropbox_file_requests),
):
    if error:
        logger.error(f"Dropbox OAuth error: {error}")
        return frontend_redirect({"error": "dropbox_auth_failed", "message": error_description or error})

    if not code or not state:
        logger.error("Dropbox callback missing code or state")
        return frontend_redirect({"error": "missing_parameters"})

    decoded = oauth.decode_state(state)
    if decoded is None:
        return frontend_redirect({"error": "invalid_state"})
    user_id, context = decoded

    try:
        token = await oauth.exchange_code(code, user_id)
    except (DropboxAuthError, DropboxConfigError) as e:
        await create_audit_log(
            action=AuditAction.DROPBOX_AUTH_FAILED,
            actor_id=user_id,
            resource_type="dropbox",
            metadata={"error_type": type(e).__name__},
        )
        return frontend_redirect({"error": "token_exchange_failed", "message": str(e)})

    await create_audit_log(
        action=AuditAction.DROPBOX_AUTHORIZED,
        actor_id=user_id,
        resource_type="dropbox",
        resource_id=token.account_id,
    )

    seller = SellerContext.model_validate(context or {})
    if not (seller.seller_name and seller.ste_code):
        return frontend_redirect({"dropbox_auth": "success", **form_params(context)})

    fields = form_params(context)
    try:
        result = await file_requests.create_kyc_upload_link(token.access_token, seller.seller_name, seller.ste_code)
    except ProviderAPIError as e:
        logger.error(f"KYC file request failed after authorization for user {user_id}: {e}")
        await create_audit_log(
            action=AuditAction.KYC_FILE_REQUEST_FAILED,
            actor_id=user_id,
            resource_type="kyc",
            metadata={"status_code": e.status_code, "error_summary": e.error_summary},
        )
        return frontend_redirect({"error": "file_request_failed", "message": e.error_summary, **fields})
    except httpx.HTTPError as e:
        logger.error(f"KYC file request error after authorization for user {user_id}: {e}")
        return frontend_redirect({"error": "file_request_error", "message": type(e).__name__, **fields})

    await create_audit_log(
        action=(
            AuditAction.KYC_FILE_REQUEST_CREATED if result.type == "file_request"
            else AuditAction.KYC_SHARED_LINK_CREATED
        ),
        actor_id=user_id,
        resource_type="kyc",
        resource_id=result.id,
        metadata={"destination": result.destination},
    )
    return frontend_redirect({"dropbox_auth": "success", "upload_url": result.url, **fields})


@router.get("/status/{user_id}")
async def authorization_status(user_id: str, oauth: DropboxOAuth = Depends(get_dropbox_oauth)):
    return oauth.auth_status(user_id)


@router.delete("/auth/{user_id}")
async def revoke_authorization(user_id: str, oauth: DropboxOAuth = Depends(get_dropbox_oauth)):
    await oauth.revoke(user_id)
    await create_audit_log(
        action=AuditAction.DROPBOX_REVOKED,
        actor_id=user_id,
        resource_type="dropbox",
    )
    return {"success": True, "message": "Dropbox authorization removed"}
