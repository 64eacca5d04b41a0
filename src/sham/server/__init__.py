"""
Sham Server Module

HTTP(S) side of a Sham session.

This module provides:
- Session configuration and TLS material validation
- Self-signed identity provisioning
- FastAPI dispatcher in front of the expectation engine
- uvicorn listener on a background thread
"""

from .config import ShamConfig
from .certs import TestIdentity, provision_identity, generate_self_signed
from .app import ShamRequest, Dispatcher, create_app, to_response
from .transport import ServerThread, find_free_port

__all__ = [
    # Config
    'ShamConfig',

    # Certificates
    'TestIdentity',
    'provision_identity',
    'generate_self_signed',

    # Dispatcher
    'ShamRequest',
    'Dispatcher',
    'create_app',
    'to_response',

    # Transport
    'ServerThread',
    'find_free_port',
]
