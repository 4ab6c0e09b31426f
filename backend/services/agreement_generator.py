"""
Service agreement PDF generator.

The agreement is a static, ordered list of clauses. Templated clauses are
filled from the AgreementRequest; everything else is fixed text. Layout is
delegated to PageFlowController and signatures to SignatureEmbedder, so this
module only decides what goes on the page and in which order.
"""
import base64
import io
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Callable, Dict, List, Optional, Sequence

from reportlab.lib.pagesizes import A4
from reportlab.pdfgen import canvas as pdf_canvas

from models import (
    AgreementRequest,
    PROVIDER_EMAIL,
    PROVIDER_LEGAL_NAME,
    PROVIDER_NAME,
    PROVIDER_PHONE,
)
from services.errors import AssetLoadError
from services.fonts import FontSet, load_font_set
from services.page_flow import BRAND_BLUE, PageFlowController, TextStyle
from services.signature_embedder import (
    BLOCK_HEIGHT,
    SignatureBlock,
    SignatureEmbedder,
    SignatureOutcome,
    SignatureSlot,
    format_signature_date,
)

logger = logging.getLogger(__name__)

DOCUMENT_TITLE = f"{PROVIDER_NAME} - Service Agreement"
DOCUMENT_SUBTITLE = "Walmart Marketplace Integration Services"
FOOTER_TEXT = "This document is electronically generated and legally binding."

PROVIDER_SIGNATURE_LABEL = f"Service Provider ({PROVIDER_NAME}):"
CLIENT_SIGNATURE_LABEL = "Client:"
PROVIDER_SIGNER_TITLE = "Authorized Signatory"

NOT_PROVIDED = "N/A"


class ClauseKind(str, Enum):
    HEADING = "heading"
    PARAGRAPH = "paragraph"
    BULLET = "bullet"
    SIGNATURES = "signatures"


@dataclass(frozen=True)
class Clause:
    """
    One unit of agreement content.

    `templated` clauses are passed through str.format_map with the request
    fields; the others are drawn verbatim. `level` selects the heading rank or
    the paragraph indent.
    """
    kind: ClauseKind
    text: str = ""
    templated: bool = False
    level: int = 0


def _heading(text: str, level: int = 1) -> Clause:
    return Clause(ClauseKind.HEADING, text, level=level)


def _para(text: str, templated: bool = False, level: int = 0) -> Clause:
    return Clause(ClauseKind.PARAGRAPH, text, templated=templated, level=level)


def _bullet(text: str) -> Clause:
    return Clause(ClauseKind.BULLET, text)


SERVICES = (
    "Walmart Marketplace account setup and configuration",
    "Product catalog management and optimization",
    "Order processing and fulfillment coordination",
    "Inventory management and tracking",
    "Customer service and support",
    "Performance monitoring and reporting",
    "Compliance with Walmart marketplace policies",
)

TERMS = (
    "This agreement shall commence on the date of execution and continue for a period of 12 months.",
    "Either party may terminate this agreement with 30 days written notice.",
    "The client agrees to provide accurate and complete information for service delivery.",
    f"{PROVIDER_NAME} will maintain confidentiality of all client data and business information.",
    "Payment terms: Monthly billing with net 30 days payment terms.",
    "The client is responsible for compliance with all applicable laws and regulations.",
    "This agreement is governed by the laws of the State of Delaware, United States.",
)

AGREEMENT_CLAUSES: Sequence[Clause] = (
    _heading("SERVICE AGREEMENT", level=0),
    _para("Date: {date}", templated=True),
    _para(
        "This Service Agreement is entered into between {provider_legal_name} (\"{provider_name}\") "
        "and {business_name} (\"Client\") for fulfillment and marketplace services under "
        "STE code {ste_code}.",
        templated=True,
    ),

    _heading("PARTIES"),
    _heading("Service Provider:", level=2),
    _para(PROVIDER_NAME, level=1),
    _para(f"Email: {PROVIDER_EMAIL}", level=1),
    _para(f"Phone: {PROVIDER_PHONE}", level=1),
    _heading("Client:", level=2),
    _para("Business Name: {business_name}", templated=True, level=1),
    _para("Contact Person: {seller_name}", templated=True, level=1),
    _para("Email: {email}", templated=True, level=1),
    _para("Phone: {phone}", templated=True, level=1),
    _para("GST Number: {gst_number}", templated=True, level=1),
    _para("STE Code: {ste_code}", templated=True, level=1),
    _para("Address: {address}", templated=True, level=1),

    _heading("SERVICES"),
    *(_bullet(service) for service in SERVICES),

    _heading("TERMS AND CONDITIONS"),
    *(_para(term, level=1) for term in TERMS),

    _heading("WALMART RETURN ADDRESS"),
    _para("Customer returns for this account are to be shipped to:"),
    _para("{return_address}", templated=True, level=1),

    Clause(ClauseKind.SIGNATURES, "SIGNATURES"),
)

HEADING_STYLES: Dict[int, TextStyle] = {
    0: TextStyle(font_name="Helvetica-Bold", font_size=18, leading=22, space_after=8),
    1: TextStyle(font_name="Helvetica-Bold", font_size=14, leading=18, color=BRAND_BLUE,
                 space_before=14, space_after=7),
    2: TextStyle(font_name="Helvetica-Bold", font_size=12, leading=16, space_before=4, space_after=4),
}
PARAGRAPH_STYLES: Dict[int, TextStyle] = {
    0: TextStyle(font_size=11, leading=15, space_after=6),
    1: TextStyle(font_size=11, leading=15, indent=20, space_after=3),
}
BULLET_STYLE = TextStyle(font_size=11, leading=15, indent=20, space_after=3, bullet="•")

# A heading is kept on the same page as at least this much following content
KEEP_WITH_NEXT = 45


@dataclass
class GeneratedAgreement:
    pdf: bytes
    page_count: int
    signature_outcomes: Dict[SignatureSlot, SignatureOutcome] = field(default_factory=dict)


def to_data_url(pdf_bytes: bytes) -> str:
    return "data:application/pdf;base64," + base64.b64encode(pdf_bytes).decode("ascii")


def _or_na(value: Optional[str]) -> str:
    return value if value else NOT_PROVIDED


class AgreementDocumentBuilder:
    """Renders AGREEMENT_CLAUSES for one AgreementRequest into PDF bytes."""

    def __init__(
        self,
        embedder: Optional[SignatureEmbedder] = None,
        clauses: Sequence[Clause] = AGREEMENT_CLAUSES,
        clock: Optional[Callable[[], datetime]] = None,
        fonts: Optional[FontSet] = None,
    ):
        self.fonts = fonts or load_font_set()
        self.embedder = embedder or SignatureEmbedder(fonts=self.fonts)
        self.clauses = clauses
        self.clock = clock or (lambda: datetime.now(timezone.utc))

    def generate(self, request: AgreementRequest, now: Optional[datetime] = None) -> bytes:
        return self.build(request, now).pdf

    def build(self, request: AgreementRequest, now: Optional[datetime] = None) -> GeneratedAgreement:
        """
        Lay out the full agreement.

        Raises:
            AssetLoadError: the provider signature asset is unavailable and the
                request carries a signature. Unsigned previews draw a blank
                authorized-signature line instead.
        """
        now = now or self.clock()
        provider_image = self._load_provider_image(request)

        buffer = io.BytesIO()
        c = pdf_canvas.Canvas(buffer, pagesize=A4)
        c.setTitle(DOCUMENT_TITLE)
        c.setAuthor(PROVIDER_LEGAL_NAME)
        c.setSubject(request.filename)

        flow = PageFlowController(
            c,
            title=DOCUMENT_TITLE,
            subtitle=DOCUMENT_SUBTITLE,
            footer_text=FOOTER_TEXT,
            page_size=A4,
            fonts=self.fonts,
        )
        values = self._template_values(request, now)
        outcomes: Dict[SignatureSlot, SignatureOutcome] = {}

        for clause in self.clauses:
            text = clause.text.format_map(values) if clause.templated else clause.text
            if clause.kind == ClauseKind.HEADING:
                style = HEADING_STYLES.get(clause.level, HEADING_STYLES[1])
                flow.ensure_space(style.space_before + style.leading + KEEP_WITH_NEXT)
                flow.draw_paragraph(text, style)
            elif clause.kind == ClauseKind.BULLET:
                flow.draw_paragraph(text, BULLET_STYLE)
            elif clause.kind == ClauseKind.PARAGRAPH:
                style = PARAGRAPH_STYLES.get(clause.level, PARAGRAPH_STYLES[1])
                # Explicit line breaks (addresses) are kept as separate lines
                for line in text.splitlines() or [""]:
                    flow.draw_paragraph(line, style)
            elif clause.kind == ClauseKind.SIGNATURES:
                outcomes = self._draw_signatures(flow, clause.text, request, provider_image, now)

        page_count = flow.page_number
        c.save()
        logger.info(
            f"Generated agreement {request.filename}: {page_count} page(s), "
            f"signed={request.is_signed}"
        )
        return GeneratedAgreement(pdf=buffer.getvalue(), page_count=page_count, signature_outcomes=outcomes)

    def _load_provider_image(self, request: AgreementRequest):
        try:
            return self.embedder.load_counter_party_image()
        except AssetLoadError:
            if request.is_signed:
                logger.error("Provider signature asset missing; cannot produce signed agreement")
                raise
            logger.warning("Provider signature asset missing; drawing blank line in preview")
            return None

    def _template_values(self, request: AgreementRequest, now: datetime) -> Dict[str, str]:
        return {
            "date": format_signature_date(now),
            "provider_name": PROVIDER_NAME,
            "provider_legal_name": PROVIDER_LEGAL_NAME,
            "seller_name": _or_na(request.seller_name),
            "business_name": _or_na(request.business_name),
            "email": _or_na(request.email),
            "phone": _or_na(request.phone),
            "gst_number": _or_na(request.gst_number),
            "ste_code": _or_na(request.ste_code),
            "address": _or_na(request.postal_address),
            "return_address": request.return_address,
        }

    def _draw_signatures(
        self,
        flow: PageFlowController,
        heading: str,
        request: AgreementRequest,
        provider_image,
        now: datetime,
    ) -> Dict[SignatureSlot, SignatureOutcome]:
        heading_style = HEADING_STYLES[1]
        heading_height = heading_style.space_before + heading_style.leading + heading_style.space_after

        if request.is_signed:
            # Signed agreements get both signatures side by side on their own page
            flow.new_page()
            flow.draw_paragraph(heading, heading_style)
            placement = flow.advance(BLOCK_HEIGHT)
            half = flow.content_width / 2
            provider_block = self._provider_block(flow.left, placement.y, provider_image, now)
            client_block = self._client_block(flow.left + half, placement.y, request, now)
        else:
            flow.ensure_space(heading_height + 2 * BLOCK_HEIGHT)
            flow.draw_paragraph(heading, heading_style)
            provider_block = self._provider_block(flow.left, flow.advance(BLOCK_HEIGHT).y, provider_image, now)
            client_block = self._client_block(flow.left, flow.advance(BLOCK_HEIGHT).y, request, now)

        return {
            SignatureSlot.COUNTER_PARTY: self.embedder.render(flow.canvas, provider_block),
            SignatureSlot.SUBMITTER: self.embedder.render(flow.canvas, client_block, request.signature_data),
        }

    @staticmethod
    def _provider_block(x: float, y: float, provider_image, now: datetime) -> SignatureBlock:
        return SignatureBlock(
            slot=SignatureSlot.COUNTER_PARTY,
            x=x,
            y=y,
            label=PROVIDER_SIGNATURE_LABEL,
            signer_name=PROVIDER_LEGAL_NAME,
            signer_title=PROVIDER_SIGNER_TITLE,
            signed_on=now,
            fixed_image=provider_image,
        )

    @staticmethod
    def _client_block(x: float, y: float, request: AgreementRequest, now: datetime) -> SignatureBlock:
        return SignatureBlock(
            slot=SignatureSlot.SUBMITTER,
            x=x,
            y=y,
            label=CLIENT_SIGNATURE_LABEL,
            signer_name=request.seller_name or request.business_name or NOT_PROVIDED,
            signer_title=request.business_name if request.seller_name else None,
            signed_on=now,
        )


agreement_builder = AgreementDocumentBuilder()
