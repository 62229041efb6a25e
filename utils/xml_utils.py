"""XML helper utilities."""
from __future__ import annotations

import re
from typing import List, Optional
from xml.etree import ElementTree as ET

_LEADING_FLOAT = re.compile(r"\s*([-+]?(?:\d+\.?\d*|\.\d+)(?:[eE][-+]?\d+)?)")
_TAG = re.compile(r"<(/?)([a-zA-Z][\w:.-]*)\b[^>]*?(/?)>")


def local_name(element: ET.Element) -> str:
    """Tag name without its ``{namespace}`` prefix."""
    tag = element.tag if isinstance(element.tag, str) else ""
    return tag.split("}")[-1]


def leading_float(value: Optional[str]) -> float:
    """Parse the number at the start of ``value`` ("12.5ex" -> 12.5), 0 if none."""
    if not value:
        return 0.0
    match = _LEADING_FLOAT.match(value)
    return float(match.group(1)) if match else 0.0


def format_number(value: float) -> str:
    """Render 10.0 as "10" and 2.25 as "2.25" in attribute values."""
    if float(value).is_integer():
        return str(int(value))
    return repr(float(value))


def find_matching_close(text: str, start: int, tag: str) -> Optional[int]:
    """
    Return the index just past the close tag matching the open tag at ``start``.

    Nested elements of the same name are counted; None means the element is
    never closed.
    """
    pattern = re.compile(rf"<(/?){re.escape(tag)}\b[^>]*?(/?)>", re.IGNORECASE)
    depth = 0
    for match in pattern.finditer(text, start):
        closing, self_closing = match.group(1), match.group(2)
        if closing:
            depth -= 1
        elif not self_closing:
            depth += 1
        elif depth == 0:
            return match.end()
        if depth == 0:
            return match.end()
    return None


def open_elements(text: str, end: int) -> List[str]:
    """Names of the elements still open at offset ``end``, outermost first."""
    stack: List[str] = []
    for match in _TAG.finditer(text, 0, end):
        closing, name, self_closing = match.groups()
        if self_closing:
            continue
        if not closing:
            stack.append(name)
        elif name in stack:
            while stack.pop() != name:
                pass
    return stack
