"""Tests for cache key derivation."""
from __future__ import annotations

import hashlib

from core.models import EquationFormat, EquationRequest, OutputFormat
from services.cache.cache_key import cache_key_for, content_digest, derive_cache_key


def test_key_layout() -> None:
    digest = hashlib.sha1("x^2".encode("utf-8")).hexdigest()
    assert derive_cache_key("TeX", "x^2", "eq1", "svg") == f"TeX:{digest}:eq1:svg"


def test_key_is_deterministic() -> None:
    request = EquationRequest(raw_markup="<math><mi>x</mi></math>", refid="r", output_format=OutputFormat.PNG)
    assert cache_key_for(request) == cache_key_for(request)
    assert cache_key_for(request).startswith("MathML:")
    assert cache_key_for(request).endswith(":r:png")


def test_key_changes_with_every_component() -> None:
    base = derive_cache_key("TeX", "x", "", "svg")
    assert derive_cache_key("MathML", "x", "", "svg") != base
    assert derive_cache_key("TeX", "y", "", "svg") != base
    assert derive_cache_key("TeX", "x", "ref", "svg") != base
    assert derive_cache_key("TeX", "x", "", "png") != base


def test_single_character_variants_never_collide() -> None:
    base = "a" * 100
    variants = {
        base[:pos] + chr(0x4E00 + offset) + base[pos + 1:]
        for pos in range(100)
        for offset in range(100)
    }
    assert len(variants) == 10_000

    digests = {content_digest(text) for text in variants}
    assert len(digests) == 10_000
    assert content_digest(base) not in digests


def test_request_format_is_part_of_key() -> None:
    tex = EquationRequest(raw_markup="x", format=EquationFormat.TEX)
    mathml = EquationRequest(raw_markup="x", format=EquationFormat.MATHML)
    assert cache_key_for(tex) != cache_key_for(mathml)
