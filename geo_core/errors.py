from typing import Optional


class GeoCopyError(Exception):
    """Base class for pipeline errors."""


class MalformedOutputError(GeoCopyError):
    """Raised when model output cannot be turned into JSON by any repair strategy."""

    def __init__(self, raw: str, message: str = "Model output is not valid JSON"):
        super().__init__(message)
        self.raw = raw


class GenerationError(GeoCopyError):
    """The primary completion call failed or produced nothing usable."""

    def __init__(self, message: str, cause: Optional[Exception] = None):
        super().__init__(message)
        self.cause = cause


class InvalidRequestError(GeoCopyError):
    """A generate request is missing required fields. Surfaced to callers as HTTP 400."""
