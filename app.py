"""Application entry point for the math render service using FastAPI."""
from __future__ import annotations

from typing import Optional
from urllib.parse import parse_qsl

import httpx
import uvicorn
from fastapi import FastAPI, Request
from fastapi.responses import Response

from core.config import settings
from core.logger import init_logging, logger
from services.cache.cache_store import CacheStore
from services.markup.image_embedder import ImageEmbedder
from services.markup.mathml_fixer import MathMLStructuralFixer
from services.markup.normalizer import MarkupNormalizer
from services.orchestrator import RequestOrchestrator
from services.render.engine import RenderingEngine
from services.render.rasterizer import Rasterizer


def build_orchestrator() -> RequestOrchestrator:
    """Wire the pipeline from settings."""
    engine = RenderingEngine()
    embedder = ImageEmbedder(dpi=settings.image_dpi, timeout=settings.fetch_timeout)
    normalizer = MarkupNormalizer(
        engine,
        embedder=embedder,
        fixer=MathMLStructuralFixer(settings.mathsize),
        wrap_width=settings.wrap_width,
    )
    return RequestOrchestrator(normalizer, engine, Rasterizer(), CacheStore.from_settings(settings))


def create_app(orchestrator: Optional[RequestOrchestrator] = None) -> FastAPI:
    """Create FastAPI app serving equations on every path."""
    app = FastAPI(title="Math Render Service", version="0.1.0")
    orchestrator = orchestrator or build_orchestrator()
    app.state.orchestrator = orchestrator

    @app.on_event("startup")
    async def startup_event() -> None:
        embedder = orchestrator.normalizer.embedder
        if embedder.client is None:
            embedder.client = httpx.AsyncClient(timeout=embedder.timeout)
        await orchestrator.cache.connect()
        logger.info("Math render service started")

    @app.on_event("shutdown")
    async def shutdown_event() -> None:
        await orchestrator.normalizer.embedder.aclose()
        await orchestrator.cache.close()

    @app.get("/health")
    async def health() -> dict[str, str]:
        return {"status": "ok", "cache": orchestrator.cache.state.value}

    @app.api_route("/{path:path}", methods=["GET", "POST"])
    async def render_equation(request: Request) -> Response:
        params = dict(request.query_params)
        target = request.url.path + (f"?{request.url.query}" if request.url.query else "")
        if request.method == "POST":
            body = (await request.body()).decode("utf-8", errors="replace")
            params.update(parse_qsl(body, keep_blank_values=True))
            target = body

        result = await orchestrator.handle(
            params,
            method=request.method,
            target=target,
            path=request.url.path,
        )
        return Response(content=result.body, status_code=result.status_code, media_type=result.media_type)

    return app


def main() -> None:
    """Entry point for CLI; starts the HTTP server."""
    init_logging()
    logger.info("Starting FastAPI server at %s:%s", settings.host, settings.port)
    uvicorn.run(create_app(), host=settings.host, port=settings.port)


if __name__ == "__main__":
    main()
