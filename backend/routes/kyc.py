"""
KYC API Routes

POST /api/kyc/file-request creates a Dropbox upload link for a seller who has
already authorized the app. Auth failures answer 401 with requires_auth so the
form can restart the Dropbox flow.
"""
from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import JSONResponse
import httpx
from models import AuditAction, FileRequestResult, KycFileRequestBody
from services.dropbox_oauth import DropboxOAuth, get_dropbox_oauth
from services.dropbox_file_requests import DropboxFileRequests, get_dropbox_file_requests
from services.errors import DropboxAuthError, DropboxConfigError, ProviderAPIError
from utils.audit import create_audit_log
import logging

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/kyc", tags=["kyc"])


@router.post("/file-request", response_model=FileRequestResult)
async def create_file_request(
    body: KycFileRequestBody,
    oauth: DropboxOAuth = Depends(get_dropbox_oauth),
    file_requests: DropboxFileRequests = Depends(get_dropbox_file_requests),
):
    if not body.user_id:
        raise HTTPException(status_code=400, detail="User ID is required for Dropbox authentication")

    try:
        access_token = await oauth.get_valid_access_token(body.user_id)
    except DropboxAuthError as e:
        logger.info(f"KYC file request needs re-authorization for user {body.user_id}: {type(e).__name__}")
        return JSONResponse(status_code=401, content={"detail": str(e), "requires_auth": True})
    except DropboxConfigError as e:
        raise HTTPException(status_code=500, detail=str(e))

    try:
        result = await file_requests.create_kyc_upload_link(access_token, body.seller_name, body.ste_code)
    except ProviderAPIError as e:
        logger.error(f"KYC file request failed for user {body.user_id}: {e}")
        await create_audit_log(
            action=AuditAction.KYC_FILE_REQUEST_FAILED,
            actor_id=body.user_id,
            resource_type="kyc",
            metadata={"status_code": e.status_code, "error_summary": e.error_summary},
        )
        raise HTTPException(status_code=502, detail=e.error_summary)
    except httpx.HTTPError as e:
        logger.error(f"Dropbox unreachable for KYC file request: {e}")
        raise HTTPException(status_code=502, detail="Dropbox request failed")

    await create_audit_log(
        action=(
            AuditAction.KYC_FILE_REQUEST_CREATED if result.type == "file_request"
            else AuditAction.KYC_SHARED_LINK_CREATED
        ),
        actor_id=body.user_id,
        resource_type="kyc",
        resource_id=result.id,
        metadata={"destination": result.destination},
    )
    return result
