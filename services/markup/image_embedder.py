"""
Image handling for submitted equations.

- TeX ``\\includegraphics`` directives carrying base64 data are pulled out
  before translation and replaced by a private-use placeholder glyph.
- After translation each placeholder marker becomes a sized ``<mglyph>``
  with the payload inline. A marker directly inside a table row gets a
  row of its own; anywhere else the glyph replaces it in place.
- ``<mglyph>`` elements pointing at http(s) URLs are downloaded and
  rewritten to data URIs.

Every failure is per image: it is logged and that image is left as it
was, never failing the request.
"""
from __future__ import annotations

import base64
import html
import logging
import re
from typing import List, Optional, Union

import httpx

from core.errors import ImageFetchError
from core.logger import logger
from core.models import EmbeddedImage
from utils.image_utils import decode_base64_image, image_size
from utils.xml_utils import format_number, open_elements

PLACEHOLDER = "\ue000"
PLACEHOLDER_MARKER = "<mtext>&#xE000;</mtext>"

_IMAGE_DIRECTIVE = re.compile(r"\\includegraphics\s*(?:\[[^\]]*\])?\s*\{([^{}]*)\}")
_DATA_URI = re.compile(r"data:image/([^;,]+);base64,(.+)", re.DOTALL)
_REMOTE_GLYPH_SRC = re.compile(r"<mglyph\b[^>]*?\bsrc=\"(https?://[^\"]+)\"", re.IGNORECASE)
_CONTENT_TYPE_IMAGE = re.compile(r"image/([\w.+-]+)", re.IGNORECASE)
_MARKER = re.compile(re.escape(PLACEHOLDER_MARKER))
_EMPTY_ROW_BEFORE_GLYPH = re.compile(r"<mrow>\s*</mrow>(?=<mrow><mglyph\b)")
_EMPTY_ROW_AFTER_GLYPH = re.compile(r"(?<=</mglyph></mrow>)<mrow>\s*</mrow>")

Log = Union[logging.Logger, logging.LoggerAdapter]


def _is_table_row_child(stack: List[str]) -> bool:
    """True for a direct child of a row of the outermost ``<mtable>``."""
    return stack[-2:] == ["mtable", "mrow"] and stack.count("mtable") == 1


class ImageEmbedder:
    """Extract, size and inline images in equation markup."""

    def __init__(
        self,
        client: Optional[httpx.AsyncClient] = None,
        dpi: int = 20,
        timeout: float = 10.0,
    ) -> None:
        self.client = client
        self.dpi = dpi
        self.timeout = timeout

    def extract(self, tex: str, log: Log = logger) -> tuple[str, List[EmbeddedImage]]:
        """
        Replace image directives in ``tex`` with the placeholder glyph.

        Returns the rewritten TeX and the images in order of appearance.
        Directives without inline data cannot be translated and are dropped.
        """
        if not isinstance(tex, str):
            return tex, []
        images: List[EmbeddedImage] = []

        def _replace(match: re.Match) -> str:
            data = _DATA_URI.search(match.group(1))
            if data is None:
                log.warning("Dropping image directive without inline data: %s", match.group(1)[:120])
                return ""
            images.append(EmbeddedImage(format=data.group(1), base64=data.group(2).strip()))
            return PLACEHOLDER

        return _IMAGE_DIRECTIVE.sub(_replace, tex), images

    def embed(self, mathml: str, images: List[EmbeddedImage], log: Log = logger) -> str:
        """Swap placeholder markers for sized ``<mglyph>`` elements, one image per marker."""
        if not isinstance(mathml, str):
            return mathml
        row_children = [_is_table_row_child(open_elements(mathml, m.start())) for m in _MARKER.finditer(mathml)]
        parts = mathml.split(PLACEHOLDER_MARKER)
        if len(parts) - 1 < len(images):
            log.warning("%d embedded images but only %d placeholders", len(images), len(parts) - 1)

        result = [parts[0]]
        for index, part in enumerate(parts[1:]):
            replacement = PLACEHOLDER_MARKER
            if index < len(images):
                replacement = self._glyph(images[index], index + 1, row_children[index], log) or PLACEHOLDER_MARKER
            result.append(replacement)
            result.append(part)
        mathml = "".join(result)
        mathml = _EMPTY_ROW_BEFORE_GLYPH.sub("", mathml)
        return _EMPTY_ROW_AFTER_GLYPH.sub("", mathml)

    def _glyph(self, image: EmbeddedImage, number: int, row_child: bool, log: Log) -> Optional[str]:
        try:
            width, height = image_size(decode_base64_image(image.base64))
        except ImageFetchError as exc:
            log.error("Embedded image %d skipped: %s", number, exc)
            return None
        glyph = (
            f'<mglyph width="{format_number(width / self.dpi)}" '
            f'height="{format_number(height / self.dpi)}" '
            f'src="data:image/{image.format};base64,{image.base64}"></mglyph>'
        )
        if row_child:
            return f"</mrow><mrow>{glyph}</mrow><mrow>"
        return glyph

    async def fetch(self, url: str) -> str:
        """Download ``url`` and return it as a base64 data URI."""
        try:
            if self.client is not None:
                response = await self.client.get(url)
            else:
                async with httpx.AsyncClient(timeout=self.timeout) as client:
                    response = await client.get(url)
        except httpx.HTTPError as exc:
            raise ImageFetchError(f"Can not download image {url}: {exc}") from exc
        if response.status_code != 200:
            raise ImageFetchError(f"Can not download image {url}: HTTP {response.status_code}")

        match = _CONTENT_TYPE_IMAGE.search(response.headers.get("content-type", ""))
        subtype = match.group(1).lower() if match else "png"
        payload = base64.b64encode(response.content).decode("ascii")
        return f"data:image/{subtype};base64,{payload}"

    async def inline_remote(self, mathml: str, log: Log = logger) -> str:
        """Rewrite remote ``<mglyph src>`` references to data URIs, one fetch at a time."""
        if not isinstance(mathml, str):
            return mathml
        urls = _REMOTE_GLYPH_SRC.findall(mathml)
        for url in urls:
            try:
                data_uri = await self.fetch(html.unescape(url))
            except ImageFetchError as exc:
                log.warning("%s", exc)
                continue
            mathml = mathml.replace(f'src="{url}"', f'src="{data_uri}"', 1)
        return mathml

    async def aclose(self) -> None:
        if self.client is not None:
            await self.client.aclose()
            self.client = None
