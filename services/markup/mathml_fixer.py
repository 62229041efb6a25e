"""
Structural completion of MathML before rendering.

The renderer expects every equation as
``<math><mstyle mathsize=..><mtable><mrow>..</mrow></mtable></mstyle></math>``
with one ``<mrow>`` per line. ``complete`` adds whatever wrappers are
missing and is idempotent: a second pass changes nothing.
"""
from __future__ import annotations

import re

from services.markup.image_embedder import PLACEHOLDER_MARKER
from utils.xml_utils import find_matching_close

DEFAULT_MATHSIZE = "16px"

# Placeholder glyph as the translator may print it
_GLYPH = r"(?:\ue000|&#[xX]0*[eE]000;|&#57344;)"
_TOKEN_WITH_GLYPH = re.compile(rf"<(mi|mo|mn|mtext|ms)\b[^>]*>\s*{_GLYPH}\s*</\1\s*>")
_MARKER = re.escape(PLACEHOLDER_MARKER)
_ROW_AROUND_MARKER = re.compile(rf"<mrow>\s*({_MARKER})\s*</mrow>")
_EMPTY_ROW_BEFORE_MARKER = re.compile(rf"<mrow>\s*</mrow>\s*({_MARKER})")
_EMPTY_ROW_AFTER_MARKER = re.compile(rf"({_MARKER})\s*<mrow>\s*</mrow>")

_HAS_MATHSIZE = re.compile(r"mstyle mathsize", re.IGNORECASE)
_MATH_OPEN = re.compile(r"(<math\b[^>]*>)", re.IGNORECASE)
_MATH_CLOSE = re.compile(r"</math\s*>", re.IGNORECASE)
_HAS_TABLE = re.compile(r"<math\b[^>]*>\s*<mstyle\b[^>]*>\s*<mtable\b", re.IGNORECASE)
_STYLE_OPEN = re.compile(r"<math\b[^>]*>\s*<mstyle\b[^>]*>", re.IGNORECASE)
_STYLE_CLOSE = re.compile(r"</mstyle>\s*</math\s*>", re.IGNORECASE)
_ROW_AFTER_STYLE = re.compile(r"<math\b[^>]*>\s*<mstyle\b[^>]*>\s*(<mrow\b)", re.IGNORECASE)
_TAIL_AFTER_ROW = re.compile(r"\s*</mstyle>\s*</math\s*>\s*$", re.IGNORECASE)

_LINEBREAK_SELF_CLOSING = re.compile(r"<mspace\b[^>]*\blinebreak=\"newline\"[^>]*/>", re.IGNORECASE)
_LINEBREAK_PAIRED = re.compile(
    r"<mspace\b[^>]*\blinebreak=\"newline\"[^>]*(?<!/)>.*?</mspace\s*>",
    re.IGNORECASE | re.DOTALL,
)


def resolve_placeholders(mathml: str) -> str:
    """Turn whatever the translator made of a placeholder glyph into the text marker."""
    if not isinstance(mathml, str):
        return mathml
    mathml = _TOKEN_WITH_GLYPH.sub(PLACEHOLDER_MARKER, mathml)
    previous = None
    while previous != mathml:
        previous = mathml
        mathml = _ROW_AROUND_MARKER.sub(r"\1", mathml)
        mathml = _EMPTY_ROW_BEFORE_MARKER.sub(r"\1", mathml)
        mathml = _EMPTY_ROW_AFTER_MARKER.sub(r"\1", mathml)
    return mathml


def ensure_mstyle(mathml: str, mathsize: str = DEFAULT_MATHSIZE) -> str:
    if _HAS_MATHSIZE.search(mathml):
        return mathml
    opened = _MATH_OPEN.sub(rf'\1<mstyle mathsize="{mathsize}">', mathml, count=1)
    if opened == mathml:
        return mathml
    return _MATH_CLOSE.sub("</mstyle></math>", opened, count=1)


def _is_single_full_row(mathml: str) -> bool:
    first = _ROW_AFTER_STYLE.search(mathml)
    if not first:
        return False
    end = find_matching_close(mathml, first.start(1), "mrow")
    return end is not None and _TAIL_AFTER_ROW.match(mathml, end) is not None


def convert_linebreaks(mathml: str) -> str:
    """Close the current row and open a new one at every explicit line break."""
    mathml = _LINEBREAK_SELF_CLOSING.sub("</mrow><mrow>", mathml)
    return _LINEBREAK_PAIRED.sub("</mrow><mrow>", mathml)


def ensure_table(mathml: str) -> str:
    if _HAS_TABLE.search(mathml) or not _STYLE_OPEN.search(mathml) or not _STYLE_CLOSE.search(mathml):
        return mathml
    if _is_single_full_row(mathml):
        opening, closing = "<mtable>", "</mtable>"
    else:
        opening, closing = "<mtable><mrow>", "</mrow></mtable>"
    mathml = _STYLE_OPEN.sub(lambda m: m.group(0) + opening, mathml, count=1)
    mathml = _rsub(_STYLE_CLOSE, closing + "</mstyle></math>", mathml)
    return convert_linebreaks(mathml)


def _rsub(pattern: re.Pattern, replacement: str, text: str) -> str:
    """Replace only the last match of ``pattern``."""
    matches = list(pattern.finditer(text))
    if not matches:
        return text
    last = matches[-1]
    return text[: last.start()] + replacement + text[last.end():]


class MathMLStructuralFixer:
    """Adds the wrappers the renderer requires."""

    def __init__(self, mathsize: str = DEFAULT_MATHSIZE) -> None:
        self.mathsize = mathsize

    def resolve_placeholders(self, mathml: str) -> str:
        return resolve_placeholders(mathml)

    def complete(self, mathml: str) -> str:
        if not isinstance(mathml, str):
            return mathml
        mathml = ensure_mstyle(mathml, self.mathsize)
        return ensure_table(mathml)
