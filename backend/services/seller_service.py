"""
Seller intake: STE code assignment and insert-only persistence of the form.
"""
import logging

from database import database
from models import (
    AuditAction,
    STE_CODE_BASE,
    SellerRecord,
    SellerSubmission,
    build_walmart_address,
)
from utils.audit import create_audit_log

logger = logging.getLogger(__name__)

FALLBACK_STE_CODE = str(STE_CODE_BASE + 1)


async def next_ste_code() -> str:
    """9000 + existing sellers + 1. Falls back to 9001 when the count cannot be read."""
    try:
        db = database.get_db()
        count = await db.walmart_sellers.count_documents({})
    except Exception as e:
        logger.warning(f"Could not count sellers for STE code, using {FALLBACK_STE_CODE}: {e}")
        return FALLBACK_STE_CODE
    return str(STE_CODE_BASE + count + 1)


async def submit_seller(submission: SellerSubmission, ip_address: str = None) -> SellerRecord:
    """Assign an STE code and Walmart return address, then store the seller."""
    db = database.get_db()
    ste_code = await next_ste_code()

    record = SellerRecord(
        **submission.model_dump(),
        ste_code=ste_code,
        walmart_address=build_walmart_address(submission.seller_name, ste_code),
    )

    doc = record.model_dump()
    doc["created_at"] = record.created_at.isoformat()
    await db.walmart_sellers.insert_one(doc)
    logger.info(f"Seller submitted: {record.seller_name} (STE-{ste_code})")

    await create_audit_log(
        action=AuditAction.SELLER_SUBMITTED,
        actor_id=record.seller_id,
        resource_type="seller",
        resource_id=record.seller_id,
        metadata={"ste_code": ste_code, "store_type": record.store_type},
        ip_address=ip_address,
    )
    return record
