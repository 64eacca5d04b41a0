"""
Sham

Mock HTTP(S) server for testing HTTP clients.

This package provides:
- Expectations (expect, expect_once, expect_none) and stubs
- Request routing by method and path specificity
- Failures raised in handlers re-raised in the test at teardown
- pytest fixtures (sham, sham_factory)
"""

from .instance import Sham, SessionState, start
from .server import ShamConfig, ShamRequest
from .errors import ShamError, ConfigurationError, CoordinatorClosedError, TransportError

__all__ = [
    # Session
    'Sham',
    'SessionState',
    'start',

    # Server
    'ShamConfig',
    'ShamRequest',

    # Errors
    'ShamError',
    'ConfigurationError',
    'CoordinatorClosedError',
    'TransportError',
]

__version__ = '0.1.0'
