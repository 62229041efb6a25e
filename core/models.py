"""Request, image and response types shared across the pipeline."""
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Mapping, Optional

from core.errors import InvalidParameterError, MissingInputError


class EquationFormat(str, Enum):
    TEX = "TeX"
    MATHML = "MathML"

    @classmethod
    def parse(cls, value: str) -> "EquationFormat":
        for member in cls:
            if member.value.lower() == value.strip().lower():
                return member
        raise InvalidParameterError(f'Unsupported "format" parameter: {value}')


class OutputFormat(str, Enum):
    SVG = "svg"
    PNG = "png"
    MATHML = "MathML"

    @classmethod
    def parse(cls, value: str) -> "OutputFormat":
        for member in cls:
            if member.value.lower() == value.strip().lower():
                return member
        raise InvalidParameterError(f'Unsupported "outputFormat" parameter: {value}')

    @property
    def media_type(self) -> str:
        return _MEDIA_TYPES[self]


_MEDIA_TYPES = {
    OutputFormat.SVG: "image/svg+xml",
    OutputFormat.PNG: "image/png",
    OutputFormat.MATHML: "text/plain",
}


@dataclass(frozen=True)
class EquationRequest:
    """One equation to render, as received over HTTP."""

    raw_markup: str
    format: EquationFormat = EquationFormat.MATHML
    refid: str = ""
    output_format: OutputFormat = OutputFormat.SVG

    @classmethod
    def from_params(cls, params: Mapping[str, str]) -> "EquationRequest":
        """
        Build a request from query or form parameters.

        Accepts the legacy ``latex``/``mathml`` equation aliases (``latex``
        implies TeX when no format is given) and ``imageFormat`` for
        ``outputFormat``.
        """
        equation = params.get("equation") or params.get("latex") or params.get("mathml") or ""
        if not equation:
            raise MissingInputError()

        format_value = params.get("format")
        if format_value:
            equation_format = EquationFormat.parse(format_value)
        elif params.get("latex") and not params.get("equation"):
            equation_format = EquationFormat.TEX
        else:
            equation_format = EquationFormat.MATHML

        output_value = params.get("outputFormat") or params.get("imageFormat")
        output_format = OutputFormat.parse(output_value) if output_value else OutputFormat.SVG

        return cls(
            raw_markup=equation,
            format=equation_format,
            refid=params.get("refid") or "",
            output_format=output_format,
        )


@dataclass(frozen=True)
class EmbeddedImage:
    """An inline image pulled out of TeX before translation."""

    format: str
    base64: str


@dataclass
class RenderResult:
    """Output of a single render call."""

    svg: str
    png: Optional[bytes] = None

    @property
    def body(self) -> bytes:
        return self.png if self.png is not None else self.svg.encode("utf-8")


@dataclass
class EquationResponse:
    status_code: int
    media_type: str
    body: bytes = field(default=b"")

    @classmethod
    def error(cls, message: str) -> "EquationResponse":
        return cls(406, "text/plain", message.encode("utf-8"))
