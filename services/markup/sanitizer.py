"""
Last-resort cleanup for markup the renderer has already rejected.

Markup pasted from rich editors often arrives wrapped in HTML, carries
scripts or styles, or holds paragraphs of text in a single token. The
sanitizer keeps only the first ``<math>`` element, removes what the
renderer cannot lay out and bounds the width of long text.
"""
from __future__ import annotations

import html
import re
import textwrap

from utils.html_entity_utils import numeric_entity_references
from utils.xml_utils import find_matching_close

LINEBREAK = '<mspace linebreak="newline"/>'

_MATH_OPEN = re.compile(r"<math\b[^>]*?/?>", re.IGNORECASE)
_UNSAFE_BLOCK = re.compile(
    r"<(script|style|head|title|noscript|iframe|object)\b[^>]*>.*?</\1\s*>",
    re.IGNORECASE | re.DOTALL,
)
_UNSAFE_SINGLE = re.compile(
    r"<(?:script|style|iframe|object|embed|link|meta)\b[^>]*/?>",
    re.IGNORECASE,
)
_COMMENT = re.compile(r"<!--.*?-->", re.DOTALL)

# Presentation-only HTML; MathML mtable/mtr/mtd never match because they
# start with "m".
HTML_WRAPPER_TAGS = (
    "html", "body", "div", "span", "p", "font", "b", "i", "u", "s", "em",
    "strong", "small", "big", "center", "section", "article", "blockquote",
    "pre", "code", "table", "thead", "tbody", "tfoot", "tr", "td", "th",
    "caption", "col", "colgroup", "a", "br", "hr", "nobr", "label", "sub",
    "sup", "ul", "ol", "li", "h1", "h2", "h3", "h4", "h5", "h6", "img",
)
_HTML_WRAPPER = re.compile(
    r"</?(?:%s)\b[^>]*>" % "|".join(HTML_WRAPPER_TAGS),
    re.IGNORECASE,
)

# Empty elements that mean something on their own
KEEP_WHEN_EMPTY = frozenset(
    {"math", "mspace", "mglyph", "none", "mprescripts", "malignmark", "maligngroup", "mtd"}
)
_EMPTY_PAIR = re.compile(r"<([a-zA-Z][\w:.-]*)\b[^>]*(?<!/)>\s*</\1\s*>")
_SELF_CLOSING = re.compile(r"<([a-zA-Z][\w:.-]*)\b[^>]*/>")

_TOKEN_TEXT = re.compile(r"<(mtext|mi|mn|mo|ms)\b([^>]*)>([^<]*)</\1\s*>", re.IGNORECASE)
_BARE_TEXT = re.compile(r"(?<=>)([^<]+)(?=<)")


def truncate_to_math(markup: str) -> str:
    """Keep the first ``<math>`` element and drop everything around it."""
    if not isinstance(markup, str):
        return markup
    start = _MATH_OPEN.search(markup)
    if start is None:
        return markup
    end = find_matching_close(markup, start.start(), "math")
    if end is None:
        return markup[start.start():] + "</math>"
    return markup[start.start():end]


def strip_unsafe_blocks(markup: str) -> str:
    if not isinstance(markup, str):
        return markup
    markup = _COMMENT.sub("", markup)
    markup = _UNSAFE_BLOCK.sub("", markup)
    return _UNSAFE_SINGLE.sub("", markup)


def strip_html_wrappers(markup: str) -> str:
    """Remove HTML wrapper tags, keeping their content."""
    if not isinstance(markup, str):
        return markup
    return _HTML_WRAPPER.sub("", markup)


def remove_empty_elements(markup: str) -> str:
    """Delete empty leaf elements until none is left."""
    if not isinstance(markup, str):
        return markup

    def _drop(match: re.Match) -> str:
        if match.group(1).lower() in KEEP_WHEN_EMPTY:
            return match.group(0)
        return ""

    previous = None
    while previous != markup:
        previous = markup
        markup = _SELF_CLOSING.sub(_drop, markup)
        markup = _EMPTY_PAIR.sub(_drop, markup)
    return markup


def _wrap(text: str, width: int) -> list[str]:
    return textwrap.wrap(html.unescape(text), width=width, break_long_words=True, break_on_hyphens=False)


def wrap_long_text(markup: str, width: int = 80) -> str:
    """Split text nodes longer than ``width`` into several, one per line."""
    if not isinstance(markup, str):
        return markup

    def _split_token(match: re.Match) -> str:
        tag, attrs, text = match.groups()
        if len(html.unescape(text).strip()) <= width:
            return match.group(0)
        chunks = _wrap(text, width)
        return LINEBREAK.join(f"<{tag}{attrs}>{html.escape(chunk, quote=False)}</{tag}>" for chunk in chunks)

    def _split_bare(match: re.Match) -> str:
        text = match.group(1)
        if len(html.unescape(text).strip()) <= width:
            return text
        chunks = _wrap(text, width)
        return LINEBREAK.join(f"<mtext>{html.escape(chunk, quote=False)}</mtext>" for chunk in chunks)

    markup = _TOKEN_TEXT.sub(_split_token, markup)
    return _BARE_TEXT.sub(_split_bare, markup)


def sanitize_markup(markup: str, width: int = 80) -> str:
    if not isinstance(markup, str):
        return markup
    markup = truncate_to_math(markup)
    markup = numeric_entity_references(markup, drop_unknown=True)
    markup = strip_unsafe_blocks(markup)
    markup = strip_html_wrappers(markup)
    markup = remove_empty_elements(markup)
    markup = wrap_long_text(markup, width)
    return markup.strip()
