"""
Cache-aside request handling.

One request walks RECEIVED -> CACHE_LOOKUP -> CACHE_HIT -> RESPOND, or
CACHE_LOOKUP -> CACHE_MISS -> NORMALIZE -> RENDER -> STORE -> RESPOND.
Any state may fall to ERROR -> RESPOND_ERROR. The first failure ends the
request; the cache is never a correctness dependency.
"""
from __future__ import annotations

import base64
import binascii
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Mapping, Optional

from fastapi.concurrency import run_in_threadpool

from core.errors import MathRenderError, MissingInputError, RenderError, StructuralRenderError
from core.logger import logger, preview, request_logger
from core.models import EquationRequest, EquationResponse, OutputFormat, RenderResult
from services.cache.cache_key import cache_key_for
from services.cache.cache_store import CacheStore
from services.markup.normalizer import MarkupNormalizer
from services.render.engine import RenderingEngine
from services.render.rasterizer import Rasterizer
from services.render.svg_composer import compose_svg

EMPTY_EQUATION_KEY = "emptyequation"
_QUIET_PATHS = ("", "/", "/favicon.ico")


class RequestState(str, Enum):
    RECEIVED = "received"
    CACHE_LOOKUP = "cache_lookup"
    CACHE_HIT = "cache_hit"
    CACHE_MISS = "cache_miss"
    NORMALIZE = "normalize"
    RENDER = "render"
    STORE = "store"
    RESPOND = "respond"
    ERROR = "error"
    RESPOND_ERROR = "respond_error"


@dataclass
class RequestContext:
    params: Mapping[str, str]
    method: str = "GET"
    target: str = ""
    path: str = "/"
    request: Optional[EquationRequest] = None
    cache_key: str = EMPTY_EQUATION_KEY
    state: RequestState = RequestState.RECEIVED
    history: List[RequestState] = field(default_factory=lambda: [RequestState.RECEIVED])

    def advance(self, state: RequestState) -> None:
        logger.debug("[%s] %s -> %s", self.cache_key, self.state.value, state.value)
        self.state = state
        self.history.append(state)


class RequestOrchestrator:
    """Sequence cache lookup, normalization, rendering and storage for one request."""

    def __init__(
        self,
        normalizer: MarkupNormalizer,
        engine: RenderingEngine,
        rasterizer: Rasterizer,
        cache: CacheStore,
    ) -> None:
        self.normalizer = normalizer
        self.engine = engine
        self.rasterizer = rasterizer
        self.cache = cache

    async def handle(
        self,
        params: Mapping[str, str],
        method: str = "GET",
        target: str = "",
        path: str = "/",
    ) -> EquationResponse:
        ctx = RequestContext(params=params, method=method, target=target, path=path)
        return await self.process(ctx)

    async def process(self, ctx: RequestContext) -> EquationResponse:
        try:
            return await self._run(ctx)
        except MissingInputError as exc:
            if ctx.path not in _QUIET_PATHS:
                logger.info("%s (%s)", exc, preview(ctx.target))
            return self._respond_error(ctx, str(exc), log_error=False)
        except RenderError as exc:
            message = f"{ctx.request.format.value}: {ctx.request.raw_markup}: {exc}"
            return self._respond_error(ctx, message)
        except MathRenderError as exc:
            return self._respond_error(ctx, str(exc))
        except Exception as exc:  # noqa: BLE001
            logger.exception("[%s] Unexpected error: %s", ctx.cache_key, exc)
            return self._respond_error(ctx, "Unexpected error while processing equation", log_error=False)

    async def _run(self, ctx: RequestContext) -> EquationResponse:
        request = EquationRequest.from_params(ctx.params)
        ctx.request = request
        ctx.cache_key = cache_key_for(request)
        log = request_logger(ctx.cache_key)
        log.info("%s: %s", ctx.method, preview(ctx.target))
        log.info("%s, original: %s", request.format.value, preview(request.raw_markup))

        ctx.advance(RequestState.CACHE_LOOKUP)
        cached = await self._lookup(ctx)
        if cached is not None:
            ctx.advance(RequestState.CACHE_HIT)
            log.info("Equation found in cache")
            return self._respond(ctx, cached)

        ctx.advance(RequestState.CACHE_MISS)
        ctx.advance(RequestState.NORMALIZE)
        mathml = await self.normalizer.normalize(request.raw_markup, request.format, log)
        log.info("NORMALIZED: %s", preview(mathml))

        if request.output_format is OutputFormat.MATHML:
            return self._respond(ctx, mathml.encode("utf-8"))

        ctx.advance(RequestState.RENDER)
        result = await self._render(ctx, mathml)
        log.info("Rendered")

        ctx.advance(RequestState.STORE)
        log.info("Saving result to cache")
        await self.cache.set(ctx.cache_key, base64.b64encode(result.body).decode("ascii"))

        return self._respond(ctx, result.body)

    async def _lookup(self, ctx: RequestContext) -> Optional[bytes]:
        payload = await self.cache.get(ctx.cache_key)
        if not payload:
            return None
        try:
            return base64.b64decode(payload, validate=True)
        except (binascii.Error, ValueError) as exc:
            request_logger(ctx.cache_key).warning("Ignoring unreadable cache entry: %s", exc)
            return None

    async def _render(self, ctx: RequestContext, mathml: str) -> RenderResult:
        try:
            roots = await run_in_threadpool(self.engine.render, mathml)
        except StructuralRenderError as exc:
            log = request_logger(ctx.cache_key)
            log.warning("Renderer rejected markup, retrying sanitized: %s", exc)
            sanitized = self.normalizer.sanitize(mathml)
            log.info("SANITIZED: %s", preview(sanitized))
            roots = await run_in_threadpool(self.engine.render, sanitized)

        svg = compose_svg(roots)
        if ctx.request.output_format is OutputFormat.PNG:
            png = await run_in_threadpool(self.rasterizer.encode, svg)
            return RenderResult(svg=svg, png=png)
        return RenderResult(svg=svg)

    def _respond(self, ctx: RequestContext, body: bytes) -> EquationResponse:
        ctx.advance(RequestState.RESPOND)
        request_logger(ctx.cache_key).info("Request processed")
        return EquationResponse(200, ctx.request.output_format.media_type, body)

    def _respond_error(self, ctx: RequestContext, message: str, log_error: bool = True) -> EquationResponse:
        ctx.advance(RequestState.ERROR)
        if log_error:
            request_logger(ctx.cache_key).error("%s", preview(message))
        ctx.advance(RequestState.RESPOND_ERROR)
        return EquationResponse.error(message)
