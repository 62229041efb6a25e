"""Pytest configuration for tests."""
from __future__ import annotations

import base64
import io
import sys
from pathlib import Path
from typing import Callable, Dict, List, Optional

import pytest
from PIL import Image

# Add the project root to the Python path
# This allows imports like "from services.markup..." to work
project_root = Path(__file__).parent.parent
if str(project_root) not in sys.path:
    sys.path.insert(0, str(project_root))

from core.errors import StructuralRenderError  # noqa: E402
from services.cache.cache_store import CacheStore  # noqa: E402
from services.markup.image_embedder import ImageEmbedder  # noqa: E402
from services.markup.mathml_fixer import MathMLStructuralFixer  # noqa: E402
from services.markup.normalizer import MarkupNormalizer  # noqa: E402
from services.orchestrator import RequestOrchestrator  # noqa: E402

SIMPLE_SVG = '<svg xmlns="http://www.w3.org/2000/svg" viewBox="0 0 10 5"><path d="M0 0h10v5z"/></svg>'


class FakeRedis:
    """In-memory stand-in for ``redis.asyncio.Redis``."""

    def __init__(self) -> None:
        self.data: Dict[str, str] = {}
        self.ttl: Dict[str, Optional[int]] = {}
        self.fail = False
        self.fail_set = False
        self.get_calls = 0
        self.pings = 0
        self.closed = False

    async def ping(self) -> bool:
        self.pings += 1
        if self.fail:
            raise ConnectionError("connection refused")
        return True

    async def get(self, key: str) -> Optional[str]:
        self.get_calls += 1
        if self.fail:
            raise ConnectionError("connection reset")
        return self.data.get(key)

    async def set(self, key: str, value: str, ex: Optional[int] = None) -> bool:
        if self.fail or self.fail_set:
            raise ConnectionError("connection reset")
        self.data[key] = value
        self.ttl[key] = ex
        return True

    async def aclose(self) -> None:
        self.closed = True


class FakeEngine:
    """Rendering engine double recording what it was asked to do."""

    def __init__(self) -> None:
        self.svg = SIMPLE_SVG
        self.translations: List[str] = []
        self.rendered: List[str] = []
        self.translate_result: Callable[[str], str] = lambda tex: "<math><mrow><mi>x</mi></mrow></math>"
        self.reject: Callable[[str], bool] = lambda mathml: False

    def translate(self, tex: str) -> str:
        self.translations.append(tex)
        return self.translate_result(tex)

    def render(self, mathml: str) -> List[str]:
        self.rendered.append(mathml)
        if self.reject(mathml):
            raise StructuralRenderError("unsupported element")
        return [self.svg]


class FakeRasterizer:
    def __init__(self) -> None:
        self.encoded: List[str] = []

    def encode(self, svg: str) -> bytes:
        self.encoded.append(svg)
        return b"\x89PNG-fake"


@pytest.fixture
def fake_redis() -> FakeRedis:
    return FakeRedis()


@pytest.fixture
def fake_engine() -> FakeEngine:
    return FakeEngine()


@pytest.fixture
def fake_rasterizer() -> FakeRasterizer:
    return FakeRasterizer()


@pytest.fixture
def cache_store(fake_redis: FakeRedis) -> CacheStore:
    return CacheStore(client=fake_redis, lifespan_seconds=1800, namespace="test-ns", retry_seconds=60)


@pytest.fixture
def normalizer(fake_engine: FakeEngine) -> MarkupNormalizer:
    return MarkupNormalizer(fake_engine, embedder=ImageEmbedder(dpi=20), fixer=MathMLStructuralFixer("16px"))


@pytest.fixture
def orchestrator(
    normalizer: MarkupNormalizer,
    fake_engine: FakeEngine,
    fake_rasterizer: FakeRasterizer,
    cache_store: CacheStore,
) -> RequestOrchestrator:
    return RequestOrchestrator(normalizer, fake_engine, fake_rasterizer, cache_store)


@pytest.fixture
def png_base64() -> str:
    """A 40x60 PNG, base64 encoded."""
    buffer = io.BytesIO()
    Image.new("RGB", (40, 60), color="white").save(buffer, format="PNG")
    return base64.b64encode(buffer.getvalue()).decode("ascii")
