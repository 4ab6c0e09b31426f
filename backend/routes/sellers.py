"""
Seller intake routes.
"""
from fastapi import APIRouter, HTTPException, Request
from models import SellerRecord, SellerSubmission
from services.seller_service import next_ste_code, submit_seller
import logging

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/sellers", tags=["sellers"])


@router.get("/next-ste-code")
async def get_next_ste_code():
    return {"ste_code": await next_ste_code()}


@router.post("", response_model=SellerRecord, status_code=201)
async def create_seller(body: SellerSubmission, request: Request):
    try:
        return await submit_seller(body, ip_address=request.client.host if request.client else None)
    except Exception as e:
        logger.error(f"Failed to store seller {body.seller_name}: {e}")
        raise HTTPException(status_code=500, detail="Failed to save seller information")
