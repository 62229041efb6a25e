"""Tests for image extraction, embedding and remote inlining."""
from __future__ import annotations

import asyncio
import base64

import httpx

from core.models import EmbeddedImage
from services.markup.image_embedder import PLACEHOLDER, PLACEHOLDER_MARKER, ImageEmbedder

TABLE = '<math><mstyle mathsize="16px"><mtable><mrow>{}</mrow></mtable></mstyle></math>'


def test_extract_replaces_directives_in_order() -> None:
    tex = (
        r"\includegraphics{data:image/png;base64,AAAA} + x + "
        r"\includegraphics[width=2cm]{data:image/jpeg;base64,BBBB} + \includegraphics{figure.png}"
    )
    text, images = ImageEmbedder().extract(tex)

    assert text == f"{PLACEHOLDER} + x + {PLACEHOLDER} + "
    assert images == [EmbeddedImage("png", "AAAA"), EmbeddedImage("jpeg", "BBBB")]


def test_embed_sizes_glyph_from_pixels(png_base64: str) -> None:
    mathml = TABLE.format(f"<mi>a</mi>{PLACEHOLDER_MARKER}")
    result = ImageEmbedder(dpi=20).embed(mathml, [EmbeddedImage("png", png_base64)])

    assert PLACEHOLDER_MARKER not in result
    assert f'<mglyph width="2" height="3" src="data:image/png;base64,{png_base64}"></mglyph>' in result
    assert "<mrow><mi>a</mi></mrow><mrow><mglyph" in result


def test_failed_image_keeps_its_marker(png_base64: str) -> None:
    mathml = TABLE.format(f"{PLACEHOLDER_MARKER}<mo>+</mo>{PLACEHOLDER_MARKER}")
    images = [EmbeddedImage("png", "!!!"), EmbeddedImage("png", png_base64)]
    result = ImageEmbedder(dpi=20).embed(mathml, images)

    assert result.count(PLACEHOLDER_MARKER) == 1
    assert result.count("<mglyph") == 1
    assert result.index(PLACEHOLDER_MARKER) < result.index("<mglyph")
    assert png_base64 in result


def test_image_inside_fraction_stays_in_place(png_base64: str) -> None:
    mathml = TABLE.format(f"<mfrac>{PLACEHOLDER_MARKER}<mn>2</mn></mfrac>")
    result = ImageEmbedder(dpi=20).embed(mathml, [EmbeddedImage("png", png_base64)])

    assert result == TABLE.format(
        f'<mfrac><mglyph width="2" height="3" src="data:image/png;base64,{png_base64}"></mglyph><mn>2</mn></mfrac>'
    )


def test_image_ending_a_row_leaves_no_empty_row(png_base64: str) -> None:
    mathml = TABLE.format(f"<mi>a</mi>{PLACEHOLDER_MARKER}")
    result = ImageEmbedder(dpi=20).embed(mathml, [EmbeddedImage("png", png_base64)])

    assert "<mrow></mrow>" not in result
    assert result.endswith("</mglyph></mrow></mtable></mstyle></math>")


def test_embed_without_images_is_noop() -> None:
    mathml = TABLE.format("<mi>x</mi>")
    assert ImageEmbedder().embed(mathml, []) == mathml


def _remote_client() -> httpx.AsyncClient:
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.host == "good.example":
            return httpx.Response(200, content=b"GIF89a", headers={"content-type": "image/gif"})
        if request.url.host == "missing.example":
            return httpx.Response(404)
        raise httpx.ConnectError("unreachable", request=request)

    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


def test_inline_remote_partial_failure() -> None:
    mathml = (
        '<math><mglyph src="http://good.example/a.gif"></mglyph>'
        '<mglyph src="http://missing.example/b.png"></mglyph>'
        '<mglyph src="https://down.example/c.png"></mglyph></math>'
    )

    async def run() -> str:
        embedder = ImageEmbedder(client=_remote_client())
        try:
            return await embedder.inline_remote(mathml)
        finally:
            await embedder.aclose()

    result = asyncio.run(run())
    payload = base64.b64encode(b"GIF89a").decode("ascii")
    assert f'src="data:image/gif;base64,{payload}"' in result
    assert 'src="http://missing.example/b.png"' in result
    assert 'src="https://down.example/c.png"' in result
    assert result.count("data:image") == 1


def test_inline_remote_defaults_to_png_subtype() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, content=b"raw", headers={"content-type": "application/octet-stream"})

    async def run() -> str:
        embedder = ImageEmbedder(client=httpx.AsyncClient(transport=httpx.MockTransport(handler)))
        try:
            return await embedder.inline_remote('<math><mglyph src="http://cdn.example/x"></mglyph></math>')
        finally:
            await embedder.aclose()

    payload = base64.b64encode(b"raw").decode("ascii")
    assert f'src="data:image/png;base64,{payload}"' in asyncio.run(run())

def test_inline_remote_without_urls_makes_no_requests() -> None:
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        return httpx.Response(200)

    async def run() -> str:
        embedder = ImageEmbedder(client=httpx.AsyncClient(transport=httpx.MockTransport(handler)))
        try:
            return await embedder.inline_remote('<math><mglyph src="data:image/png;base64,AA"></mglyph></math>')
        finally:
            await embedder.aclose()

    asyncio.run(run())
    assert calls == []
