"""
Assemble the renderer's SVG output into one standalone document.

A render call may yield several ``<svg>`` roots (one per line break the
engine chose). They are laid out left to right in a single composite
whose ``<defs>`` are shared, each root's content translated by the sum of
the widths before it.
"""
from __future__ import annotations

import re
import xml.etree.ElementTree as ET
from typing import Sequence

from core.errors import RenderError
from utils.xml_utils import format_number, leading_float, local_name

SVG_NS = "http://www.w3.org/2000/svg"
XLINK_NS = "http://www.w3.org/1999/xlink"

ET.register_namespace("", SVG_NS)
ET.register_namespace("xlink", XLINK_NS)

SVG_PROLOG = (
    '<?xml version="1.0" encoding="UTF-8"?>'
    "<!DOCTYPE svg PUBLIC '-//W3C//DTD SVG 1.1//EN' "
    "'http://www.w3.org/Graphics/SVG/1.1/DTD/svg11.dtd'>"
)

_EXISTING_PROLOG = re.compile(r"^\s*(?:<\?xml[^>]*\?>\s*)?(?:<!DOCTYPE[^>]*>\s*)?", re.IGNORECASE)
_DATA_HREF = re.compile(r' href="data:image')
_SVG_OPEN = re.compile(r"<svg\b")


def root_size(svg: ET.Element) -> tuple[float, float]:
    """Width and height from the viewBox, else from the width/height attributes."""
    view_box = (svg.get("viewBox") or "").strip()
    if view_box:
        parts = [leading_float(part) for part in re.split(r"[\s,]+", view_box)]
        width = parts[2] if len(parts) > 2 else 0.0
        height = parts[3] if len(parts) > 3 else 0.0
        return width, height
    return leading_float(svg.get("width")), leading_float(svg.get("height"))


def merge_roots(roots: Sequence[ET.Element]) -> ET.Element:
    composite = ET.Element(f"{{{SVG_NS}}}svg")
    defs = ET.Element(f"{{{SVG_NS}}}defs")
    groups = []
    x_offset = 0.0
    max_height = 0.0

    for svg in roots:
        width, height = root_size(svg)
        max_height = max(max_height, height)
        group = ET.Element(f"{{{SVG_NS}}}g", {"transform": f"translate({format_number(x_offset)}, 0)"})
        for child in list(svg):
            if local_name(child) == "defs":
                defs.extend(list(child))
            else:
                group.append(child)
        groups.append(group)
        x_offset += width

    if len(defs):
        composite.append(defs)
    composite.extend(groups)

    composite.set("viewBox", f"0 0 {format_number(x_offset)} {format_number(max_height)}")
    composite.set("width", format_number(x_offset))
    composite.set("height", format_number(max_height))
    return composite


def finalize_svg(svg_text: str) -> str:
    """Namespace data-URI hrefs and prepend the XML declaration and DOCTYPE."""
    svg_text = _EXISTING_PROLOG.sub("", svg_text, count=1).strip()
    svg_text = _DATA_HREF.sub(' xlink:href="data:image', svg_text)
    if "xlink:href" in svg_text and "xmlns:xlink" not in svg_text:
        svg_text = _SVG_OPEN.sub(f'<svg xmlns:xlink="{XLINK_NS}"', svg_text, count=1)
    return SVG_PROLOG + svg_text


def compose_svg(roots: Sequence[str]) -> str:
    if not roots:
        raise RenderError("No <svg> nodes found in renderer output")
    if len(roots) == 1:
        return finalize_svg(roots[0])

    try:
        parsed = [ET.fromstring(_EXISTING_PROLOG.sub("", text, count=1)) for text in roots]
    except ET.ParseError as exc:
        raise RenderError(f"Renderer produced invalid SVG: {exc}") from exc
    composite = merge_roots(parsed)
    return finalize_svg(ET.tostring(composite, encoding="unicode"))
