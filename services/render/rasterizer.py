"""SVG to PNG conversion."""
from __future__ import annotations

import cairosvg

from core.errors import RasterError


class Rasterizer:
    def __init__(self, scale: float = 1.0) -> None:
        self.scale = scale

    def encode(self, svg: str) -> bytes:
        try:
            return cairosvg.svg2png(bytestring=svg.encode("utf-8"), scale=self.scale)
        except Exception as exc:  # noqa: BLE001
            raise RasterError(f"PNG conversion failed: {exc}") from exc
