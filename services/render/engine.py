"""
Typesetting engine adapter.

- TeX is translated with latex2mathml.
- MathML is laid out as SVG with ziamath. ziamath has no ``<mglyph>``
  support, so embedded images are registered here as a node of their own
  that reserves the image's box and draws it as an SVG ``<image>``.

Both calls are CPU bound and synchronous; callers run them off the event
loop.
"""
from __future__ import annotations

import re
import xml.etree.ElementTree as ET
from typing import Any, List, Tuple

import ziamath
from latex2mathml.converter import convert as latex2mathml_convert
from ziamath.nodes import Mspace

from core.errors import StructuralRenderError, TranslationError
from core.logger import logger
from utils.html_entity_utils import numeric_entity_references
from utils.xml_utils import format_number

_PLAIN_NUMBER = re.compile(r"[-+]?(?:\d+\.?\d*|\.\d+)")


class Mglyph(Mspace, tag="mglyph"):
    """Inline raster image sitting on the baseline. Unitless sizes are in em."""

    def __init__(self, element: ET.Element, parent: Any, **kwargs: Any) -> None:
        for dimension in ("width", "height"):
            value = element.get(dimension, "0").strip()
            if _PLAIN_NUMBER.fullmatch(value):
                element.set(dimension, f"{value}em")
        super().__init__(element, parent, **kwargs)

    def draw(self, x: float, y: float, svg: ET.Element) -> Tuple[float, float]:
        src = self.element.get("src")
        if src and self.width > 0 and self.height > 0:
            image = ET.SubElement(svg, "image")
            image.set("x", format_number(round(x, 3)))
            image.set("y", format_number(round(y - self.height, 3)))
            image.set("width", format_number(round(self.width, 3)))
            image.set("height", format_number(round(self.height, 3)))
            image.set("preserveAspectRatio", "none")
            image.set("href", src)
        return x + self.width, y


class RenderingEngine:
    """Translate TeX to MathML and render MathML to SVG roots."""

    def __init__(self, size: float = 16.0) -> None:
        self.size = size

    def translate(self, tex: str) -> str:
        if not tex or not tex.strip():
            raise TranslationError("TeX input is empty")
        try:
            return latex2mathml_convert(tex.strip())
        except Exception as exc:  # noqa: BLE001
            raise TranslationError(f"TeX parse error: {exc}") from exc

    def render(self, mathml: str) -> List[str]:
        """
        Lay out ``mathml`` and return the SVG roots produced.

        Named character entities are rewritten as numeric references before
        parsing. The parsed tree is handed to ziamath as is, so attribute
        values such as base64 image data reach the layout untouched.

        Raises StructuralRenderError when the markup is not well-formed or
        the layout engine cannot handle it.
        """
        try:
            element = ET.fromstring(numeric_entity_references(mathml))
        except ET.ParseError as exc:
            raise StructuralRenderError(f"MathML parse error: {exc}") from exc

        try:
            svg = ziamath.Math(element, size=self.size).svg()
        except Exception as exc:  # noqa: BLE001
            logger.debug("ziamath rejected markup: %s", exc)
            raise StructuralRenderError(f"MathML render error: {exc}") from exc
        return [svg]
