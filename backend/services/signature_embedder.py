"""
Signature rendering for the service agreement.

Counter-party (3PL Vision) always gets the fixed signature image from static
storage. The submitter gets their captured signature image, the
"Digital Signature Applied" marker when the payload cannot be decoded, or a
blank signature line when nothing was captured.
"""
import base64
import binascii
import io
import logging
import os
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Optional

from PIL import Image, UnidentifiedImageError
from reportlab.lib import colors
from reportlab.lib.utils import ImageReader

from services.errors import AssetLoadError, ImageDecodeError
from services.fonts import STANDARD_FONTS, FontSet

logger = logging.getLogger(__name__)

STATIC_DIR = Path(__file__).resolve().parent.parent / "static"
PROVIDER_SIGNATURE_PATH = os.getenv(
    "PROVIDER_SIGNATURE_PATH", str(STATIC_DIR / "provider_signature.png")
)

SIGNATURE_WIDTH = 150
SIGNATURE_HEIGHT = 50
BLOCK_HEIGHT = 110

APPLIED_MARKER = "Digital Signature Applied"
BLANK_SIGNATURE_LINE = "Signature: ______________________"
BLANK_AUTHORIZED_LINE = "Authorized Signature: ______________"


class SignatureSlot(str, Enum):
    SUBMITTER = "SUBMITTER"
    COUNTER_PARTY = "COUNTER_PARTY"


class SignatureOutcome(str, Enum):
    STATIC_IMAGE = "STATIC_IMAGE"
    AUTHORIZED_LINE = "AUTHORIZED_LINE"
    IMAGE = "IMAGE"
    TEXT_FALLBACK = "TEXT_FALLBACK"
    BLANK_LINE = "BLANK_LINE"


@dataclass
class SignatureBlock:
    """One party's signature job. (x, y) is the bottom-left of a BLOCK_HEIGHT tall region."""
    slot: SignatureSlot
    x: float
    y: float
    label: str
    signer_name: str
    signed_on: datetime
    signer_title: Optional[str] = None
    fixed_image: Optional[ImageReader] = None

    @property
    def top(self) -> float:
        return self.y + BLOCK_HEIGHT


def format_signature_date(moment: datetime) -> str:
    return f"{moment:%B} {moment.day}, {moment.year}"


def decode_signature_image(payload: str) -> ImageReader:
    """Decode a base64 raster (optionally a data: URL) from the capture canvas."""
    raw = (payload or "").strip()
    if raw.startswith("data:"):
        header, _, raw = raw.partition(",")
        if ";base64" not in header:
            raise ImageDecodeError("Signature data URL is not base64 encoded")
    raw = "".join(raw.split())

    try:
        data = base64.b64decode(raw, validate=True)
    except (binascii.Error, ValueError) as e:
        raise ImageDecodeError(f"Signature payload is not valid base64: {e}") from e
    if not data:
        raise ImageDecodeError("Signature payload is empty")

    try:
        image = Image.open(io.BytesIO(data))
        image.load()
    except (UnidentifiedImageError, OSError, ValueError, Image.DecompressionBombError) as e:
        raise ImageDecodeError(f"Signature payload is not a readable image: {e}") from e
    return ImageReader(image.convert("RGBA"))


def load_counter_party_image(path: Optional[str] = None) -> ImageReader:
    """Read the provider's signature asset. Raises AssetLoadError when missing or corrupt."""
    asset_path = Path(path or PROVIDER_SIGNATURE_PATH)
    try:
        with open(asset_path, "rb") as f:
            image = Image.open(io.BytesIO(f.read()))
            image.load()
    except (UnidentifiedImageError, OSError, ValueError) as e:
        raise AssetLoadError(f"Provider signature asset unavailable at {asset_path}: {e}") from e
    return ImageReader(image.convert("RGBA"))


class SignatureEmbedder:
    """Draws SignatureBlocks onto a reportlab canvas."""

    def __init__(self, asset_path: Optional[str] = None, fonts: FontSet = STANDARD_FONTS):
        self.asset_path = asset_path
        self.fonts = fonts

    def load_counter_party_image(self) -> ImageReader:
        return load_counter_party_image(self.asset_path)

    def render(self, canvas, block: SignatureBlock, provided_image: Optional[str] = None) -> SignatureOutcome:
        top = block.top
        canvas.setFillColor(colors.black)
        canvas.setFont(self.fonts.bold, 12)
        canvas.drawString(block.x, top - 12, block.label)

        image_bottom = top - 16 - SIGNATURE_HEIGHT
        if block.slot == SignatureSlot.COUNTER_PARTY:
            outcome = self._render_counter_party(canvas, block, image_bottom)
        else:
            outcome = self._render_submitter(canvas, block, image_bottom, provided_image)

        canvas.setFillColor(colors.black)
        canvas.setFont(self.fonts.regular, 10)
        line_y = image_bottom - 14
        canvas.drawString(block.x, line_y, block.signer_name)
        if block.signer_title:
            line_y -= 12
            canvas.drawString(block.x, line_y, block.signer_title)
        canvas.drawString(block.x, line_y - 12, f"Date: {format_signature_date(block.signed_on)}")
        return outcome

    def _render_counter_party(self, canvas, block: SignatureBlock, image_bottom: float) -> SignatureOutcome:
        if block.fixed_image is None:
            canvas.setFont(self.fonts.regular, 11)
            canvas.drawString(block.x, image_bottom + 10, BLANK_AUTHORIZED_LINE)
            return SignatureOutcome.AUTHORIZED_LINE
        canvas.drawImage(
            block.fixed_image, block.x, image_bottom,
            width=SIGNATURE_WIDTH, height=SIGNATURE_HEIGHT,
            mask="auto", preserveAspectRatio=True, anchor="sw",
        )
        return SignatureOutcome.STATIC_IMAGE

    def _render_submitter(
        self,
        canvas,
        block: SignatureBlock,
        image_bottom: float,
        provided_image: Optional[str],
    ) -> SignatureOutcome:
        if not provided_image:
            canvas.setFont(self.fonts.regular, 11)
            canvas.drawString(block.x, image_bottom + 10, BLANK_SIGNATURE_LINE)
            return SignatureOutcome.BLANK_LINE

        try:
            image = decode_signature_image(provided_image)
        except ImageDecodeError as e:
            logger.warning(f"Falling back to signature marker for {block.signer_name}: {e}")
            canvas.setFont(self.fonts.regular, 11)
            canvas.drawString(block.x, image_bottom + 20, APPLIED_MARKER)
            return SignatureOutcome.TEXT_FALLBACK

        canvas.drawImage(
            image, block.x, image_bottom,
            width=SIGNATURE_WIDTH, height=SIGNATURE_HEIGHT, mask="auto",
        )
        return SignatureOutcome.IMAGE
