"""
Word wrapping for PDF paragraphs.

Lines are broken only at whitespace. A word wider than the line is kept whole
on its own line; nothing is hyphenated or truncated.
"""
from typing import Callable, List

from reportlab.pdfbase.pdfmetrics import stringWidth

Measure = Callable[[str], float]


def font_measure(font_name: str, font_size: float) -> Measure:
    """Return a width function for a registered reportlab font at a given size."""
    def measure(text: str) -> float:
        return stringWidth(text, font_name, font_size)
    return measure


def wrap_text(text: str, max_width: float, measure: Measure) -> List[str]:
    """
    Greedily fill lines with words until the next word would overflow.

    Args:
        text: Paragraph text. Runs of whitespace (including newlines) count as one break.
        max_width: Maximum rendered width of a line, in points.
        measure: Rendered width of a string for the target font.

    Returns:
        Ordered lines. Empty input gives an empty list.
    """
    words = (text or "").split()
    if not words:
        return []

    lines: List[str] = []
    line = words[0]
    for word in words[1:]:
        candidate = f"{line} {word}"
        if measure(candidate) <= max_width:
            line = candidate
        else:
            lines.append(line)
            line = word
    lines.append(line)
    return lines
