"""
Sham Session Configuration

Options recognised when starting a Sham session, with validation of the TLS
material before any listener is started.
"""

import os
import logging
from dataclasses import dataclass, field, fields, replace
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

from ..errors import ConfigurationError

LOG_LEVELS = ('critical', 'error', 'warning', 'info', 'debug', 'trace')


@dataclass
class ShamConfig:
    """Configuration for one Sham session."""

    # TLS
    ssl: bool = False
    keyfile: Optional[str] = None  # None = provisioned self-signed key
    certfile: Optional[str] = None  # None = provisioned self-signed cert

    # Listener
    host: str = "127.0.0.1"
    port: int = 0  # 0 = pick a free ephemeral port
    startup_timeout: float = 5.0
    shutdown_timeout: float = 5.0

    # Logging
    log_level: str = field(default_factory=lambda: os.environ.get("SHAM_LOG_LEVEL", "warning"))

    @property
    def scheme(self) -> str:
        return "HTTPS" if self.ssl else "HTTP"

    @property
    def needs_identity(self) -> bool:
        """True when TLS is on and no key/cert was supplied."""
        return self.ssl and self.keyfile is None and self.certfile is None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'ShamConfig':
        """Create config from a mapping; unknown keys are ignored."""
        known = {f.name for f in fields(cls)}
        return cls(**{k: v for k, v in data.items() if k in known})

    def merged(self, **options: Any) -> 'ShamConfig':
        """Return a copy with the recognised options overridden."""
        known = {f.name for f in fields(self)}
        return replace(self, **{k: v for k, v in options.items() if k in known})

    @classmethod
    def from_yaml(cls, yaml_path: str) -> 'ShamConfig':
        """Load config from a YAML file."""
        with open(yaml_path, 'r') as f:
            data = yaml.safe_load(f) or {}

        if not isinstance(data, dict):
            raise ConfigurationError(f"{yaml_path} must contain a mapping of options")

        return cls.from_dict(data)

    def validate(self) -> 'ShamConfig':
        """
        Check the options and return a normalised copy.

        Raises:
            ConfigurationError: invalid listener options or unusable TLS material
        """
        log_level = str(self.log_level).lower()
        if log_level not in LOG_LEVELS:
            raise ConfigurationError(f"Unknown log level: {self.log_level}")

        if not isinstance(self.port, int) or not 0 <= self.port <= 65535:
            raise ConfigurationError(f"Invalid port: {self.port}")

        if self.ssl and not self.needs_identity:
            if self.keyfile is None or self.certfile is None:
                raise ConfigurationError("keyfile and certfile are required when ssl is true")
            if not Path(self.keyfile).is_file() or not Path(self.certfile).is_file():
                raise ConfigurationError("keyfile and certfile must exist when ssl is true")

        return replace(self, ssl=bool(self.ssl), log_level=log_level)

    def python_log_level(self) -> int:
        # uvicorn's "trace" sits below DEBUG
        if self.log_level.lower() == 'trace':
            return 5
        return getattr(logging, self.log_level.upper())
