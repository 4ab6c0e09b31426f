"""
Page flow for canvas-drawn documents.

PageFlowController is the only owner of the vertical cursor. Callers request
space with advance() before drawing and draw at the returned y; a page break
(new page + header + cursor reset) happens inside advance() when the request
does not fit above the bottom margin.
"""
import logging
from dataclasses import dataclass
from typing import Any, Optional

from reportlab.lib import colors
from reportlab.lib.pagesizes import A4

from services.fonts import STANDARD_FONTS, FontSet
from services.text_layout import font_measure, wrap_text

logger = logging.getLogger(__name__)

BRAND_BLUE = colors.Color(0.1, 0.3, 0.6)
FOOTER_GRAY = colors.Color(0.5, 0.5, 0.5)
RULE_GRAY = colors.Color(0.9, 0.9, 0.9)

HEADER_HEIGHT = 80
MARGIN_X = 50
BOTTOM_MARGIN = 85
FOOTER_Y = 50
TOP_GAP = 40  # between header band and first line


@dataclass
class TextStyle:
    font_name: str = "Helvetica"
    font_size: float = 11
    leading: float = 15
    indent: float = 0
    color: Any = colors.black
    space_before: float = 0
    space_after: float = 5
    bullet: Optional[str] = None
    bullet_gap: float = 12


@dataclass
class DocumentCursor:
    page_number: int
    y: float


@dataclass(frozen=True)
class Placement:
    """Where to draw: the canvas (current page) and the baseline y."""
    canvas: Any
    y: float
    page_number: int


class PageFlowController:
    """
    Tracks the cursor on the current page and allocates pages on demand.

    The header (title band with a right-aligned page ordinal) and the footer
    are drawn on page 1 at construction and on every new page.
    """

    def __init__(
        self,
        canvas,
        title: str,
        subtitle: Optional[str] = None,
        footer_text: Optional[str] = None,
        page_size=A4,
        margin_x: float = MARGIN_X,
        top_offset: Optional[float] = None,
        bottom_margin: float = BOTTOM_MARGIN,
        fonts: FontSet = STANDARD_FONTS,
    ):
        self.canvas = canvas
        self.fonts = fonts
        self.title = title
        self.subtitle = subtitle
        self.footer_text = footer_text
        self.width, self.height = page_size
        self.margin_x = margin_x
        self.top_offset = top_offset if top_offset is not None else self.height - HEADER_HEIGHT - TOP_GAP
        self.bottom_margin = bottom_margin
        if self.top_offset <= self.bottom_margin:
            raise ValueError("top offset must be above the bottom margin")

        self._cursor = DocumentCursor(page_number=1, y=self.top_offset)
        self._draw_page_chrome()

    @property
    def page_number(self) -> int:
        return self._cursor.page_number

    @property
    def y(self) -> float:
        return self._cursor.y

    @property
    def left(self) -> float:
        return self.margin_x

    @property
    def content_width(self) -> float:
        return self.width - 2 * self.margin_x

    @property
    def content_height(self) -> float:
        return self.top_offset - self.bottom_margin

    def advance(self, height: float) -> Placement:
        """Reserve `height` points below the cursor, breaking the page first if needed."""
        if height > self.content_height:
            raise ValueError(
                f"Block of {height}pt cannot fit on a page with {self.content_height}pt of content space"
            )
        if self._cursor.y - height < self.bottom_margin:
            self.new_page()
        self._cursor.y -= height
        return Placement(self.canvas, self._cursor.y, self._cursor.page_number)

    def skip(self, height: float) -> None:
        """Vertical whitespace. Starts a new page instead when it would run into the bottom margin."""
        if self._cursor.y - height < self.bottom_margin:
            self.new_page()
        else:
            self._cursor.y -= height

    def ensure_space(self, height: float) -> None:
        """Start a new page unless `height` points fit on the current one."""
        if self._cursor.y - height < self.bottom_margin:
            self.new_page()

    def new_page(self) -> None:
        self.canvas.showPage()
        self._cursor = DocumentCursor(page_number=self._cursor.page_number + 1, y=self.top_offset)
        self._draw_page_chrome()
        logger.debug(f"Started page {self._cursor.page_number} of '{self.title}'")

    def draw_paragraph(self, text: str, style: TextStyle) -> int:
        """Wrap `text` to the content width and draw it line by line. Returns the line count."""
        text_x = self.left + style.indent + (style.bullet_gap if style.bullet else 0)
        max_width = self.width - self.margin_x - text_x
        font_name = self.fonts.resolve(style.font_name)
        lines = wrap_text(text, max_width, font_measure(font_name, style.font_size))
        if not lines:
            return 0

        if style.space_before:
            self.skip(style.space_before)
        for index, line in enumerate(lines):
            placement = self.advance(style.leading)
            c = placement.canvas
            c.setFont(font_name, style.font_size)
            c.setFillColor(style.color)
            if style.bullet and index == 0:
                c.drawString(self.left + style.indent, placement.y, style.bullet)
            c.drawString(text_x, placement.y, line)
        if style.space_after:
            self.skip(style.space_after)
        return len(lines)

    def _draw_page_chrome(self) -> None:
        c = self.canvas
        band_bottom = self.height - HEADER_HEIGHT

        c.setFillColor(BRAND_BLUE)
        c.rect(0, band_bottom, self.width, HEADER_HEIGHT, stroke=0, fill=1)
        c.setFillColor(colors.white)
        c.setFont("Helvetica-Bold", 20)
        c.drawString(self.margin_x, self.height - 45, self.title)
        if self.subtitle:
            c.setFont("Helvetica", 11)
            c.drawString(self.margin_x, self.height - 68, self.subtitle)
        c.setFont("Helvetica", 10)
        c.drawRightString(self.width - self.margin_x, self.height - 45, f"Page {self._cursor.page_number}")

        if self.footer_text:
            c.setStrokeColor(RULE_GRAY)
            c.setLineWidth(1)
            c.line(self.margin_x, FOOTER_Y + 20, self.width - self.margin_x, FOOTER_Y + 20)
            c.setFillColor(FOOTER_GRAY)
            c.setFont("Helvetica", 9)
            c.drawString(self.margin_x, FOOTER_Y, self.footer_text)

        c.setFillColor(colors.black)
