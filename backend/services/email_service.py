from postmarker.core import PostmarkClient
from database import database
from models import (
    MessageLog,
    EmailTemplateAlias,
    AuditAction,
    SendAgreementRequest,
    KycDocument,
    PROVIDER_EMAIL,
    PROVIDER_LEGAL_NAME,
    agreement_filename,
    build_walmart_address,
)
from services.errors import AttachmentError
from utils.audit import create_audit_log
from datetime import datetime, timezone
from html import escape
import base64
import binascii
import os
import logging
from typing import Optional, Dict, Any, List, Tuple

logger = logging.getLogger(__name__)

# Verified sender in Postmark
DEFAULT_SENDER = os.getenv("EMAIL_SENDER", PROVIDER_EMAIL)

# Internal mailbox that receives a [COPY] of every agreement
AGREEMENT_COPY_RECIPIENT = os.getenv("AGREEMENT_COPY_RECIPIENT", PROVIDER_EMAIL)

# (model field, attachment label)
KYC_ATTACHMENT_LABELS = (
    ("business_license", "Business-License"),
    ("gst_registration", "GST-Registration"),
    ("aadhar_card", "Aadhar-Card"),
)


def strip_data_url(payload: str) -> str:
    """Return the base64 body of a data: URL, or the payload unchanged."""
    if payload.startswith("data:"):
        return payload.split(",", 1)[1] if "," in payload else ""
    return payload


def _checked_base64(payload: str, name: str) -> str:
    body = "".join(strip_data_url(payload.strip()).split())
    try:
        if not base64.b64decode(body, validate=True):
            raise AttachmentError(f"Attachment {name} is empty")
    except (binascii.Error, ValueError) as e:
        raise AttachmentError(f"Attachment {name} is not valid base64") from e
    return body


def _extension(filename: str) -> str:
    return filename.rsplit(".", 1)[-1]


def build_agreement_attachments(request: SendAgreementRequest) -> List[Dict[str, str]]:
    """Postmark attachment dicts: the agreement PDF first, then any KYC documents."""
    pdf_name = agreement_filename(request.seller_name, request.ste_code)
    attachments = [{
        "Name": pdf_name,
        "Content": _checked_base64(request.pdf_base64, pdf_name),
        "ContentType": "application/pdf",
    }]

    if request.kyc_documents:
        for field_name, label in KYC_ATTACHMENT_LABELS:
            document: Optional[KycDocument] = getattr(request.kyc_documents, field_name)
            if document is None:
                continue
            name = f"{label}-{request.seller_name}.{_extension(document.name)}"
            attachments.append({
                "Name": name,
                "Content": _checked_base64(document.data, name),
                "ContentType": document.type,
            })
    return attachments


class EmailService:
    def __init__(self):
        postmark_token = os.getenv("POSTMARK_SERVER_TOKEN")
        if not postmark_token:
            logger.warning("POSTMARK_SERVER_TOKEN not set - emails will be logged but not sent")
            self.client = None
        else:
            self.client = PostmarkClient(server_token=postmark_token)
            logger.info("Postmark email client initialized")

    async def send_email(
        self,
        recipient: str,
        template_alias: EmailTemplateAlias,
        subject: str,
        html_body: str,
        text_body: str,
        attachments: Optional[List[Dict[str, str]]] = None,
        actor_id: Optional[str] = None,
    ) -> MessageLog:
        """Send one email and record it in message_logs. Failures are recorded, not raised."""
        db = database.get_db()
        attachments = attachments or []

        message_log = MessageLog(
            recipient=recipient,
            template_alias=template_alias,
            subject=subject,
            attachments=[a["Name"] for a in attachments],
            status="queued"
        )

        try:
            if self.client:
                response = self.client.emails.send(
                    From=DEFAULT_SENDER,
                    To=recipient,
                    Subject=subject,
                    HtmlBody=html_body,
                    TextBody=text_body,
                    Attachments=attachments or None,
                    Tag=template_alias.value
                )

                message_log.postmark_message_id = response["MessageID"]
                message_log.status = "sent"
                message_log.sent_at = datetime.now(timezone.utc)

                logger.info(f"Email sent to {recipient}: {response['MessageID']}")
            else:
                # Dev mode - just log
                message_log.status = "sent"
                message_log.sent_at = datetime.now(timezone.utc)
                logger.info(f"[DEV MODE] Email logged (not sent) to {recipient}: {subject}")

        except Exception as e:
            message_log.status = "failed"
            message_log.error_message = str(e)
            message_log.provider_error_type = type(e).__name__
            logger.error(f"Failed to send email to {recipient}: {e}")

        doc = message_log.model_dump()
        for key in ["created_at", "sent_at"]:
            if doc.get(key) and isinstance(doc[key], datetime):
                doc[key] = doc[key].isoformat()

        await db.message_logs.insert_one(doc)

        await create_audit_log(
            action=AuditAction.EMAIL_SENT if message_log.status == "sent" else AuditAction.EMAIL_FAILED,
            actor_id=actor_id,
            resource_type="message",
            resource_id=message_log.message_id,
            metadata={
                "template": template_alias.value,
                "status": message_log.status,
                "postmark_id": message_log.postmark_message_id,
                "error": message_log.error_message,
                "provider_error_type": message_log.provider_error_type,
            }
        )

        return message_log

    async def send_agreement(self, request: SendAgreementRequest) -> Tuple[MessageLog, MessageLog]:
        """
        Email the agreement (and KYC documents) to the seller, then a [COPY] to
        the internal recipient. Both sends are attempted and logged.

        Raises:
            AttachmentError: the PDF or a KYC document is not valid base64.
                Nothing is sent in that case.
        """
        attachments = build_agreement_attachments(request)
        subject = f"3PL Warehousing Agreement - {request.seller_name} - STE-{request.ste_code}"
        model = {
            "seller_name": request.seller_name,
            "seller_email": str(request.seller_email),
            "ste_code": request.ste_code,
            "date": datetime.now(timezone.utc).strftime("%m/%d/%Y"),
            "walmart_address": request.walmart_address or build_walmart_address(request.seller_name, request.ste_code),
        }

        seller_log = await self.send_email(
            recipient=str(request.seller_email),
            template_alias=EmailTemplateAlias.AGREEMENT_SELLER,
            subject=subject,
            html_body=self._build_html_body(EmailTemplateAlias.AGREEMENT_SELLER, model),
            text_body=self._build_text_body(EmailTemplateAlias.AGREEMENT_SELLER, model),
            attachments=attachments,
            actor_id=request.ste_code,
        )
        copy_log = await self.send_email(
            recipient=AGREEMENT_COPY_RECIPIENT,
            template_alias=EmailTemplateAlias.AGREEMENT_COPY,
            subject=f"[COPY] {subject}",
            html_body=self._build_html_body(EmailTemplateAlias.AGREEMENT_COPY, model),
            text_body=self._build_text_body(EmailTemplateAlias.AGREEMENT_COPY, model),
            attachments=attachments,
            actor_id=request.ste_code,
        )
        return seller_log, copy_log

    def _build_html_body(self, template_alias: EmailTemplateAlias, model: Dict[str, Any]) -> str:
        """Build HTML email body based on template type."""
        seller = escape(model["seller_name"])
        seller_email = escape(model["seller_email"])
        ste_code = escape(model["ste_code"])
        date = model["date"]
        address = escape(model["walmart_address"])
        email_line = f"<li>Email: {seller_email}</li>" if template_alias == EmailTemplateAlias.AGREEMENT_COPY else ""
        details = f"""
                <p style="margin: 0 0 8px 0;"><strong>Agreement Details:</strong></p>
                <ul style="margin: 0 0 16px 0; padding-left: 20px;">
                    <li>Seller: {seller}</li>
                    {email_line}
                    <li>STE Code: STE-{ste_code}</li>
                    <li>Date: {date}</li>
                </ul>
        """

        if template_alias == EmailTemplateAlias.AGREEMENT_COPY:
            return f"""
            <html>
            <body style="font-family: Arial, sans-serif; max-width: 600px; font-size: 14px; color: #000000;">
                <h2 style="color: #2563eb; font-size: 18px; margin: 0 0 16px 0;">3PL Warehousing Agreement - Copy</h2>
                <p>This is a copy of the agreement sent to {seller} ({seller_email})</p>
                {details}
                <h3 style="color: #2563eb; font-size: 16px; margin: 20px 0 12px 0;">Walmart Return Address</h3>
                <p style="margin: 0 0 8px 0;"><strong>Return address for {seller}:</strong></p>
                <p style="line-height: 1.6; white-space: pre-line;">{address}</p>
            </body>
            </html>
            """

        return f"""
            <html>
            <body style="font-family: Arial, sans-serif; max-width: 600px; font-size: 14px; color: #000000;">
                <h2 style="color: #2563eb; font-size: 18px; margin: 0 0 16px 0;">3PL Warehousing Agreement</h2>
                <p>Dear {seller},</p>
                <p>Thank you for completing the 3PL warehousing agreement. Please find attached your signed agreement document.</p>
                {details}
                <h3 style="color: #2563eb; font-size: 16px; margin: 20px 0 12px 0;">Walmart Return Address</h3>
                <p style="margin: 0 0 8px 0;"><strong>Please use this address for all your returns at
                    <a href="https://walmart.com" style="color: #2563eb;">walmart.com</a>:</strong></p>
                <p style="line-height: 1.6; white-space: pre-line;">{address}</p>
                <p>This agreement is now in effect and covers the terms and conditions for our 3PL warehousing services.</p>
                <p>If you have any questions, please contact us at
                    <a href="mailto:{PROVIDER_EMAIL}" style="color: #2563eb;">{PROVIDER_EMAIL}</a></p>
                <p>Best regards,<br>{PROVIDER_LEGAL_NAME} Team</p>
            </body>
            </html>
            """

    def _build_text_body(self, template_alias: EmailTemplateAlias, model: Dict[str, Any]) -> str:
        """Build plain text email body based on template type."""
        if template_alias == EmailTemplateAlias.AGREEMENT_COPY:
            return f"""3PL Warehousing Agreement - Copy

This is a copy of the agreement sent to {model['seller_name']} ({model['seller_email']})

Seller: {model['seller_name']}
Email: {model['seller_email']}
STE Code: STE-{model['ste_code']}
Date: {model['date']}

Return address for {model['seller_name']}:
{model['walmart_address']}
"""

        return f"""Dear {model['seller_name']},

Thank you for completing the 3PL warehousing agreement. Please find attached your signed agreement document.

Seller: {model['seller_name']}
STE Code: STE-{model['ste_code']}
Date: {model['date']}

Please use this address for all your returns at walmart.com:
{model['walmart_address']}

If you have any questions, please contact us at {PROVIDER_EMAIL}

Best regards,
{PROVIDER_LEGAL_NAME} Team
"""


email_service = EmailService()
