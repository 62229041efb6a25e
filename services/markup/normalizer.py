"""
Markup normalization pipeline.

TeX input:
 1. entity decode
 2. quirk repair
 3. image extraction (directives become placeholder glyphs)
 4. translation to MathML
MathML from either source:
 5. placeholder resolution
 6. structural completion
 7. image re-embedding
 8. remote image inlining
10. whitespace trim

Stage 9, sanitation, is only run by ``sanitize`` after the renderer has
rejected the output of ``normalize``.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, List, Optional, Union

from fastapi.concurrency import run_in_threadpool

from core.logger import logger, preview
from core.models import EmbeddedImage, EquationFormat
from services.markup.image_embedder import ImageEmbedder
from services.markup.latex_quirks import repair_latex_quirks
from services.markup.mathml_fixer import MathMLStructuralFixer
from services.markup.sanitizer import sanitize_markup
from services.render.engine import RenderingEngine
from utils.html_entity_utils import (
    decode_markup_entities,
    is_entity_escaped_markup,
    normalize_nbsp,
    numeric_entity_references,
)

Log = Union[logging.Logger, logging.LoggerAdapter]


@dataclass(frozen=True)
class Stage:
    name: str
    apply: Callable[[str], str]

    def __call__(self, text: str) -> str:
        if not isinstance(text, str):
            return text
        return self.apply(text)


class MarkupNormalizer:
    """Turn submitted TeX or MathML into MathML the renderer accepts."""

    def __init__(
        self,
        engine: RenderingEngine,
        embedder: Optional[ImageEmbedder] = None,
        fixer: Optional[MathMLStructuralFixer] = None,
        wrap_width: int = 80,
    ) -> None:
        self.engine = engine
        self.embedder = embedder or ImageEmbedder()
        self.fixer = fixer or MathMLStructuralFixer()
        self.wrap_width = wrap_width

        self.decode_entities = Stage("entity_decode", decode_markup_entities)
        self.repair_quirks = Stage("latex_quirks", repair_latex_quirks)
        self.resolve_placeholders = Stage("placeholder_resolution", self.fixer.resolve_placeholders)
        self.complete_structure = Stage("structural_completion", self.fixer.complete)
        self.trim = Stage("trim", str.strip)

    def prepare_tex(self, tex: str, log: Log = logger) -> tuple[str, List[EmbeddedImage]]:
        """Stages 1-3: the TeX handed to the translator plus the images taken out of it."""
        if not isinstance(tex, str):
            return tex, []
        text = self.decode_entities(tex)
        text = self.repair_quirks(text)
        return self.embedder.extract(text, log)

    def prepare_mathml(self, mathml: str) -> str:
        """Stage 1 for MathML: full decode only for escaped markup, otherwise spaces and named entities."""
        if is_entity_escaped_markup(mathml):
            mathml = self.decode_entities(mathml)
        else:
            mathml = normalize_nbsp(mathml)
        return numeric_entity_references(mathml)

    async def normalize(self, markup: str, equation_format: EquationFormat, log: Log = logger) -> str:
        if not isinstance(markup, str):
            return markup

        images: List[EmbeddedImage] = []
        if equation_format is EquationFormat.TEX:
            tex, images = self.prepare_tex(markup, log)
            log.info("ORIGINAL: %s", preview(tex))
            mathml = await run_in_threadpool(self.engine.translate, tex)
        else:
            mathml = self.prepare_mathml(markup)

        mathml = self.resolve_placeholders(mathml)
        mathml = self.complete_structure(mathml)
        mathml = self.embedder.embed(mathml, images, log)
        mathml = await self.embedder.inline_remote(mathml, log)
        return self.trim(mathml)

    def sanitize(self, mathml: str) -> str:
        """Stage 9 for markup the renderer rejected, followed by structural completion."""
        if not isinstance(mathml, str):
            return mathml
        cleaned = sanitize_markup(mathml, self.wrap_width)
        return self.trim(self.complete_structure(cleaned))
