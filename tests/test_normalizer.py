"""Tests for the markup normalization pipeline."""
from __future__ import annotations

import asyncio

from core.models import EquationFormat
from services.markup.image_embedder import PLACEHOLDER, PLACEHOLDER_MARKER
from services.markup.normalizer import MarkupNormalizer

E2E_MATHML = '<math><mstyle mathsize="16px"><mtable><mrow><mi>x</mi></mrow></mtable></mstyle></math>'


def test_mathml_is_completed(normalizer: MarkupNormalizer) -> None:
    result = asyncio.run(normalizer.normalize("  <math><mi>x</mi></math>\n", EquationFormat.MATHML))
    assert result == E2E_MATHML


def test_escaped_mathml_is_decoded(normalizer: MarkupNormalizer) -> None:
    result = asyncio.run(normalizer.normalize("&lt;math&gt;&lt;mi&gt;x&lt;/mi&gt;&lt;/math&gt;", EquationFormat.MATHML))
    assert result == E2E_MATHML


def test_mathml_entities_are_untouched(normalizer: MarkupNormalizer) -> None:
    result = asyncio.run(normalizer.normalize("<math><mo>&lt;</mo></math>", EquationFormat.MATHML))
    assert "<mo>&lt;</mo>" in result


def test_mathml_named_entities_become_numeric(normalizer: MarkupNormalizer) -> None:
    result = asyncio.run(normalizer.normalize("<math><mi>a</mi><mo>&times;</mo><mi>b</mi></math>", EquationFormat.MATHML))
    assert "<mo>&#xD7;</mo>" in result
    assert "&times;" not in result


def test_mathml_nbsp_becomes_space(normalizer: MarkupNormalizer) -> None:
    result = asyncio.run(normalizer.normalize("<math><mi>a</mi><mo>&nbsp;</mo><mi>b</mi></math>", EquationFormat.MATHML))
    assert "<mo> </mo>" in result
    assert "&" not in result


def test_tex_is_repaired_before_translation(normalizer: MarkupNormalizer, fake_engine) -> None:
    asyncio.run(normalizer.normalize(r"\textcolor{transparent}{}x^", EquationFormat.TEX))
    assert fake_engine.translations == [r"\\x^?"]


def test_tex_entities_are_decoded(normalizer: MarkupNormalizer, fake_engine) -> None:
    asyncio.run(normalizer.normalize("a&nbsp;&lt;&nbsp;b", EquationFormat.TEX))
    assert fake_engine.translations == ["a < b"]


def test_tex_image_round_trip(normalizer: MarkupNormalizer, fake_engine, png_base64: str) -> None:
    def translate(tex: str) -> str:
        assert PLACEHOLDER in tex
        return "<math><mrow><mi>a</mi><mo>&#xE000;</mo></mrow></math>"

    fake_engine.translate_result = translate
    tex = r"a \includegraphics{data:image/png;base64," + png_base64 + "}"
    result = asyncio.run(normalizer.normalize(tex, EquationFormat.TEX))

    assert PLACEHOLDER_MARKER not in result
    assert f'<mglyph width="2" height="3" src="data:image/png;base64,{png_base64}"></mglyph>' in result
    assert result.startswith('<math><mstyle mathsize="16px"><mtable><mrow><mi>a</mi></mrow>')


def test_sanitize_strips_and_completes(normalizer: MarkupNormalizer) -> None:
    rejected = '<math><mstyle mathsize="16px"><mtable><mrow><mi>x</mi><script>bad()</script></mrow></mtable></mstyle></math>'
    assert normalizer.sanitize(rejected) == E2E_MATHML


def test_sanitize_html_wrapped_math(normalizer: MarkupNormalizer) -> None:
    assert normalizer.sanitize("<p>See <math><mi>x</mi></math></p>") == E2E_MATHML
