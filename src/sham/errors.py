"""
Sham Errors

Exception types raised synchronously by Sham itself. Failures raised by
request handlers are never wrapped in these; they are stored and re-raised
unchanged at teardown.
"""


class ShamError(Exception):
    """Base class for all Sham errors."""


class ConfigurationError(ShamError):
    """Invalid session options (e.g. missing TLS key/cert material)."""


class CoordinatorClosedError(ShamError):
    """An operation was submitted after the session was torn down."""


class TransportError(ShamError):
    """The HTTP listener could not be started."""
