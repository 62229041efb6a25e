"""Exception hierarchy for the math render service."""
from __future__ import annotations


class MathRenderError(Exception):
    """Base class for errors that end a request with a diagnostic response."""


class MissingInputError(MathRenderError):
    """The request carried no equation."""

    def __init__(self, message: str = 'Missing "equation" parameter') -> None:
        super().__init__(message)


class InvalidParameterError(MathRenderError):
    """A request parameter has a value the service does not understand."""


class RenderError(MathRenderError):
    """The engine could not produce output for the markup."""


class TranslationError(RenderError):
    """TeX could not be translated to MathML."""


class StructuralRenderError(RenderError):
    """The renderer rejected the markup as structurally invalid."""


class RasterError(RenderError):
    """SVG to PNG conversion failed."""


class ImageFetchError(Exception):
    """A single embedded or remote image could not be resolved."""


class CacheUnavailableError(Exception):
    """The cache store is disconnected or an operation on it failed."""
