"""
Sham TLS Identity

Provisions a throwaway self-signed key/certificate pair for HTTPS sessions
that do not supply their own material.
"""

import datetime
import ipaddress
import itertools
import logging
import os
import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import rsa
from cryptography.x509.oid import NameOID

logger = logging.getLogger("sham.server")

_counter = itertools.count(1)


@dataclass
class TestIdentity:
    """Paths of a provisioned key/cert pair."""

    __test__ = False  # not a pytest test class

    keyfile: Path
    certfile: Path

    def cleanup(self) -> None:
        """Remove the provisioned files."""
        for path in (self.keyfile, self.certfile):
            try:
                path.unlink()
            except FileNotFoundError:
                pass


def generate_self_signed(common_name: str = "localhost", days: int = 1):
    """
    Generate an RSA key and a self-signed certificate.

    Args:
        common_name: Subject CN; also added as a DNS SAN
        days: Validity period

    Returns:
        Tuple of (private_key, certificate)
    """
    private_key = rsa.generate_private_key(
        public_exponent=65537,
        key_size=2048,
    )

    subject = issuer = x509.Name(
        [
            x509.NameAttribute(NameOID.ORGANIZATION_NAME, "Sham"),
            x509.NameAttribute(NameOID.ORGANIZATIONAL_UNIT_NAME, "test"),
            x509.NameAttribute(NameOID.COMMON_NAME, common_name),
        ]
    )

    now = datetime.datetime.now(datetime.timezone.utc)
    certificate = (
        x509.CertificateBuilder()
        .subject_name(subject)
        .issuer_name(issuer)
        .public_key(private_key.public_key())
        .serial_number(x509.random_serial_number())
        .not_valid_before(now - datetime.timedelta(minutes=5))
        .not_valid_after(now + datetime.timedelta(days=days))
        .add_extension(
            x509.SubjectAlternativeName(
                [
                    x509.DNSName(common_name),
                    x509.IPAddress(ipaddress.IPv4Address("127.0.0.1")),
                ]
            ),
            critical=False,
        )
        .add_extension(x509.BasicConstraints(ca=True, path_length=None), critical=True)
        .sign(private_key, hashes.SHA256())
    )

    return private_key, certificate


def provision_identity(directory: Optional[str] = None) -> TestIdentity:
    """
    Write a fresh self-signed identity to disk.

    Files are named ``sham-<pid>-<n>-key.pem`` / ``sham-<pid>-<n>-cert.pem``.

    Args:
        directory: Target directory (defaults to the system temp dir)

    Returns:
        TestIdentity with the written paths
    """
    target = Path(directory or tempfile.gettempdir())
    stem = f"sham-{os.getpid()}-{next(_counter)}"

    private_key, certificate = generate_self_signed()

    keyfile = target / f"{stem}-key.pem"
    keyfile.write_bytes(
        private_key.private_bytes(
            encoding=serialization.Encoding.PEM,
            format=serialization.PrivateFormat.PKCS8,
            encryption_algorithm=serialization.NoEncryption(),
        )
    )

    certfile = target / f"{stem}-cert.pem"
    certfile.write_bytes(certificate.public_bytes(serialization.Encoding.PEM))

    logger.debug(f"Provisioned self-signed identity {certfile}")
    return TestIdentity(keyfile=keyfile, certfile=certfile)
