"""
Agreement API Routes

POST /api/agreement/generate renders the service agreement. Unsigned requests
get the PDF as a download; signed requests get it base64-wrapped in JSON so the
form can preview it and pass it on to the email endpoint.
"""
from fastapi import APIRouter, HTTPException, Request
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import Response
from urllib.parse import quote
from models import AgreementRequest, AgreementEnvelope, AuditAction
from services.agreement_generator import agreement_builder, to_data_url
from services.errors import AgreementGenerationError, AssetLoadError
from utils.audit import create_audit_log
import logging

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/agreement", tags=["agreement"])


def content_disposition(filename: str) -> str:
    """Attachment header with an ASCII filename and an RFC 5987 UTF-8 variant when needed."""
    ascii_name = filename.encode("ascii", "ignore").decode("ascii").replace('"', "")
    if ascii_name == filename:
        return f'attachment; filename="{filename}"'
    return f"attachment; filename=\"{ascii_name}\"; filename*=UTF-8''{quote(filename)}"


@router.post("/generate")
async def generate_agreement(body: AgreementRequest, request: Request):
    ip_address = request.client.host if request.client else None

    try:
        pdf_bytes = await run_in_threadpool(agreement_builder.generate, body)
    except AgreementGenerationError as e:
        logger.error(f"Agreement generation failed for {body.filename}: {e}")
        await create_audit_log(
            action=AuditAction.AGREEMENT_GENERATION_FAILED,
            actor_id=body.ste_code,
            resource_type="agreement",
            resource_id=body.filename,
            metadata={"signed": body.is_signed, "error_type": type(e).__name__},
            ip_address=ip_address,
        )
        detail = (
            "Provider signature is unavailable; signed agreement cannot be generated"
            if isinstance(e, AssetLoadError)
            else "Failed to generate PDF"
        )
        raise HTTPException(status_code=500, detail=detail)

    await create_audit_log(
        action=AuditAction.AGREEMENT_GENERATED,
        actor_id=body.ste_code,
        resource_type="agreement",
        resource_id=body.filename,
        metadata={"signed": body.is_signed, "size_bytes": len(pdf_bytes)},
        ip_address=ip_address,
    )

    if body.is_signed:
        return AgreementEnvelope(pdf_base64=to_data_url(pdf_bytes), filename=body.filename)

    return Response(
        content=pdf_bytes,
        media_type="application/pdf",
        headers={"Content-Disposition": content_disposition(body.filename)},
    )
