"""Utilities for handling HTML entities in submitted equations."""
from __future__ import annotations

import html.entities
import re

# Non-breaking space in its literal, named, decimal and hex spellings.
_NBSP_PATTERN = re.compile(r"&nbsp;|&#160;|&#x0*a0;|\u00a0", re.IGNORECASE)

# Entities every XML parser knows
_XML_ENTITIES = frozenset({"lt", "gt", "amp", "quot", "apos"})
_NAMED_ENTITY = re.compile(r"&([A-Za-z][A-Za-z0-9]*);")

# Order matters: &amp; is decoded after &lt;/&gt; so "&amp;lt;" stays "&lt;".
_BASIC_ENTITIES = (
    ("&gt;", ">"),
    ("&lt;", "<"),
    ("&amp;", "&"),
    ("&quot;", '"'),
    ("&#039;", "'"),
)


def normalize_nbsp(text: str) -> str:
    """Replace every non-breaking space variant with a plain space."""
    if not isinstance(text, str):
        return text
    return _NBSP_PATTERN.sub(" ", text)


def decode_basic_entities(text: str) -> str:
    """
    Unescape the five entities HTML forms apply to submitted markup.

    Unlike ``html.unescape`` this leaves every other entity alone, so
    MathML character references such as ``&#x2211;`` reach the renderer
    untouched.
    """
    if not isinstance(text, str):
        return text
    for entity, char in _BASIC_ENTITIES:
        text = text.replace(entity, char)
    return text


def decode_markup_entities(text: str) -> str:
    """Entity-decode stage: non-breaking spaces first, then the basic entities."""
    return decode_basic_entities(normalize_nbsp(text))


def is_entity_escaped_markup(text: str) -> bool:
    """True when markup arrived fully escaped, e.g. ``&lt;math&gt;...``."""
    return isinstance(text, str) and "<" not in text and "&lt;" in text


def numeric_entity_references(text: str, drop_unknown: bool = False) -> str:
    """
    Rewrite HTML named entities such as ``&times;`` as numeric references.

    XML parsers only know the five predefined entities, so MathML copied
    from web pages fails to parse without this. Unknown names are kept, or
    removed when ``drop_unknown`` is set.
    """
    if not isinstance(text, str):
        return text

    def _replace(match: re.Match) -> str:
        name = match.group(1)
        if name in _XML_ENTITIES:
            return match.group(0)
        chars = html.entities.html5.get(f"{name};")
        if chars is None:
            return "" if drop_unknown else match.group(0)
        return "".join(f"&#x{ord(char):X};" for char in chars)

    return _NAMED_ENTITY.sub(_replace, text)
