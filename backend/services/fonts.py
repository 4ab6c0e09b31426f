"""
Fonts for agreement text.

The standard Helvetica faces only cover Latin-1, so seller names in other
scripts render as missing glyphs. Setting AGREEMENT_FONT_PATH (and optionally
AGREEMENT_BOLD_FONT_PATH) to a TrueType font, e.g. DejaVuSans or Noto Sans,
embeds that font for all body text, seller fields and signature labels.
"""
import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from reportlab.pdfbase import pdfmetrics
from reportlab.pdfbase.ttfonts import TTFError, TTFont

logger = logging.getLogger(__name__)

REGULAR = "Helvetica"
BOLD = "Helvetica-Bold"

AGREEMENT_FONT_PATH = os.getenv("AGREEMENT_FONT_PATH")
AGREEMENT_BOLD_FONT_PATH = os.getenv("AGREEMENT_BOLD_FONT_PATH")


@dataclass(frozen=True)
class FontSet:
    """Font names actually drawn for the regular and bold faces."""
    regular: str = REGULAR
    bold: str = BOLD

    def resolve(self, font_name: str) -> str:
        if font_name == BOLD:
            return self.bold
        if font_name == REGULAR:
            return self.regular
        return font_name


STANDARD_FONTS = FontSet()


def register_ttf(path: str) -> str:
    """Register a TrueType file with reportlab once and return its font name."""
    name = Path(path).stem
    if name not in pdfmetrics.getRegisteredFontNames():
        pdfmetrics.registerFont(TTFont(name, path))
        logger.info(f"Registered agreement font {name} from {path}")
    return name


def load_font_set(regular_path: Optional[str] = None, bold_path: Optional[str] = None) -> FontSet:
    """
    FontSet for the configured TrueType fonts, or the standard faces when none
    is configured. A configured font that cannot be read is logged and the
    standard faces are used.
    """
    regular_path = regular_path or AGREEMENT_FONT_PATH
    if not regular_path:
        return STANDARD_FONTS
    bold_path = bold_path or AGREEMENT_BOLD_FONT_PATH

    try:
        regular = register_ttf(regular_path)
        bold = register_ttf(bold_path) if bold_path else regular
    except (TTFError, OSError) as e:
        logger.error(f"Cannot load agreement font {regular_path}: {e}. Using Helvetica.")
        return STANDARD_FONTS
    return FontSet(regular=regular, bold=bold)
