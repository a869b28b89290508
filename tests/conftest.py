"""Pytest configuration: adds src/ to sys.path and provides shared fixtures."""

import datetime
import os
import sys
from pathlib import Path
from typing import Any
from unittest.mock import MagicMock

import pytest
from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import rsa
from cryptography.hazmat.primitives.serialization import pkcs12
from cryptography.x509.oid import NameOID

# Add src/ to Python path so tests can import from sharepoint_bridge
sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "src"))

PFX_PASSWORD = "test-pfx-password"


def _self_signed(key: rsa.RSAPrivateKey, common_name: str) -> x509.Certificate:
    name = x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, common_name)])
    now = datetime.datetime.now(datetime.UTC)
    return (
        x509.CertificateBuilder()
        .subject_name(name)
        .issuer_name(name)
        .public_key(key.public_key())
        .serial_number(x509.random_serial_number())
        .not_valid_before(now - datetime.timedelta(days=1))
        .not_valid_after(now + datetime.timedelta(days=30))
        .sign(key, hashes.SHA256())
    )


def build_pfx(
    key: Any = None,
    cert: Any = None,
    cas: list[Any] | None = None,
    password: str = PFX_PASSWORD,
) -> bytes:
    """Serialize a password-protected PKCS#12 container."""
    return pkcs12.serialize_key_and_certificates(
        b"sharepoint-bridge-test",
        key,
        cert,
        cas,
        serialization.BestAvailableEncryption(password.encode("utf-8")),
    )


@pytest.fixture(scope="session")
def rsa_key() -> rsa.RSAPrivateKey:
    return rsa.generate_private_key(public_exponent=65537, key_size=2048)


@pytest.fixture(scope="session")
def certificate(rsa_key: rsa.RSAPrivateKey) -> x509.Certificate:
    return _self_signed(rsa_key, "sharepoint-bridge-test")


@pytest.fixture(scope="session")
def second_certificate(rsa_key: rsa.RSAPrivateKey) -> x509.Certificate:
    """Another certificate for the same key."""
    return _self_signed(rsa_key, "sharepoint-bridge-test-2")


@pytest.fixture(scope="session")
def pfx_bytes(rsa_key: rsa.RSAPrivateKey, certificate: x509.Certificate) -> bytes:
    return build_pfx(rsa_key, certificate)


@pytest.fixture
def pfx_file(tmp_path: Path, pfx_bytes: bytes) -> Path:
    path = tmp_path / "bridge.pfx"
    path.write_bytes(pfx_bytes)
    return path


@pytest.fixture
def mock_operations() -> MagicMock:
    """A ResourceOperations stand-in for transport tests."""
    from sharepoint_bridge.resources.operations import ResourceOperations

    return MagicMock(spec=ResourceOperations)


@pytest.fixture(scope="session")
def pfx_password() -> str:
    return PFX_PASSWORD


@pytest.fixture(scope="session")
def make_pfx():
    """Factory building PKCS#12 containers from arbitrary key/certificate combinations."""
    return build_pfx
