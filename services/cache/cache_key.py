"""Deterministic cache keys for rendered equations."""
from __future__ import annotations

import hashlib

from core.models import EquationRequest


def content_digest(text: str) -> str:
    """SHA-1 hex digest of UTF-8 text."""
    return hashlib.sha1(text.encode("utf-8")).hexdigest()


def derive_cache_key(equation_format: str, raw_markup: str, refid: str, output_format: str) -> str:
    """Return ``format:digest:refid:outputFormat`` for one equation."""
    return f"{equation_format}:{content_digest(raw_markup)}:{refid}:{output_format}"


def cache_key_for(request: EquationRequest) -> str:
    return derive_cache_key(
        request.format.value,
        request.raw_markup,
        request.refid,
        request.output_format.value,
    )
