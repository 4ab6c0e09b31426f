"""
Agreement email route.
"""
from fastapi import APIRouter, HTTPException
from models import SendAgreementRequest
from services.email_service import email_service, AGREEMENT_COPY_RECIPIENT
from services.errors import AttachmentError
import logging

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/email", tags=["email"])


@router.post("/send-agreement")
async def send_agreement(body: SendAgreementRequest):
    """Email the signed agreement to the seller and a copy to the internal mailbox."""
    try:
        seller_log, copy_log = await email_service.send_agreement(body)
    except AttachmentError as e:
        raise HTTPException(status_code=400, detail=str(e))

    if seller_log.status != "sent":
        raise HTTPException(status_code=502, detail="Failed to send agreement email")

    if copy_log.status != "sent":
        logger.warning(f"Agreement copy to {AGREEMENT_COPY_RECIPIENT} failed: {copy_log.error_message}")

    return {
        "success": True,
        "message": f"Agreement sent to {body.seller_email}",
        "message_id": seller_log.message_id,
        "copy_status": copy_log.status,
    }
