"""PKCS#12 certificate container parsing with a fallback decode chain.

Certificate containers often reach the server through layers that treat them
as text (uploads, environment variables, copy/paste). Each decode strategy is
a pure ``bytes -> bytes`` function that undoes one kind of damage; strategies
are tried in order and the first candidate that parses as PKCS#12 wins.
"""

from __future__ import annotations

import base64
import hashlib
import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from pathlib import Path

from cryptography.hazmat.primitives.serialization import (
    Encoding,
    NoEncryption,
    PrivateFormat,
    PublicFormat,
    pkcs12,
)

from sharepoint_bridge.errors import CertificateCorruptedError, CertificateFormatError

logger = logging.getLogger(__name__)

# UTF-8 encoding of U+FFFD, left behind when binary bytes pass through a text decoder.
REPLACEMENT_MARKER = b"\xef\xbf\xbd"
CORRUPTION_SCAN_BYTES = 32


@dataclass(frozen=True)
class CertificateMaterial:
    """Private key and leaf certificate extracted from a container.

    Attributes:
        private_key_pem: PKCS#8 PEM of the private key, as msal expects it.
        certificate_der: DER encoding of the leaf certificate.
        thumbprint: SHA-1 of the DER, 40 uppercase hex characters.
    """

    private_key_pem: str = field(repr=False)
    certificate_der: bytes = field(repr=False)
    thumbprint: str


def raw_bytes(data: bytes) -> bytes:
    """Use the container exactly as received."""
    return data


def latin1_mapping(data: bytes) -> bytes:
    """Undo a binary -> latin-1 text -> UTF-8 round trip."""
    return data.decode("utf-8").encode("latin-1")


def bytewise_reconstruction(data: bytes) -> bytes:
    """Rebuild each byte from the low 8 bits of each decoded code point.

    Bytes that are not valid UTF-8 pass through unchanged (surrogateescape
    maps them to U+DC80..U+DCFF, whose low byte is the original byte).
    """
    text = data.decode("utf-8", errors="surrogateescape")
    return bytes(ord(ch) & 0xFF for ch in text)


def base64_text(data: bytes) -> bytes:
    """Treat the container as base64 text, ignoring armor lines and whitespace."""
    lines = [line for line in data.splitlines() if not line.strip().startswith(b"-----")]
    return base64.b64decode(b"".join(b"".join(lines).split()), validate=True)


DECODE_STRATEGIES: tuple[tuple[str, Callable[[bytes], bytes]], ...] = (
    ("raw", raw_bytes),
    ("latin1", latin1_mapping),
    ("bytewise", bytewise_reconstruction),
    ("base64", base64_text),
)


def check_not_corrupted(data: bytes) -> None:
    """Reject containers that a text decoder has already mangled.

    Raises:
        CertificateCorruptedError: If the replacement marker appears near the start.
    """
    if REPLACEMENT_MARKER in data[:CORRUPTION_SCAN_BYTES]:
        raise CertificateCorruptedError(
            "Certificate upload is corrupted: the file contains UTF-8 replacement "
            "characters, so it was transferred or stored as text. Re-upload the .pfx "
            "file in binary mode."
        )


def decode_container(
    data: bytes, password: str | None
) -> tuple[str, pkcs12.PKCS12KeyAndCertificates]:
    """Run the decode chain until one candidate parses as PKCS#12.

    Args:
        data: Container bytes as received.
        password: Container password, or None for an unprotected container.

    Returns:
        Tuple of (strategy name, parsed container).

    Raises:
        CertificateCorruptedError: If the bytes carry the replacement-character signature.
        CertificateFormatError: If no strategy yields a parseable container.
    """
    check_not_corrupted(data)
    secret = password.encode("utf-8") if password else None

    tried: list[bytes] = []
    attempted: list[str] = []
    first_error: str | None = None
    for name, strategy in DECODE_STRATEGIES:
        try:
            candidate = strategy(data)
        except ValueError:
            # UnicodeError and binascii.Error are both ValueError subclasses.
            logger.debug("[decode_container] strategy not applicable; strategy:%s", name)
            continue
        if not candidate or candidate in tried:
            continue
        tried.append(candidate)
        attempted.append(name)
        try:
            parsed = pkcs12.load_pkcs12(candidate, secret)
        except ValueError as exc:
            logger.debug("[decode_container] parse failed; strategy:%s;error:%s", name, exc)
            if first_error is None:
                first_error = str(exc)
            continue
        if name != "raw":
            logger.warning(
                "[decode_container] container recovered by fallback decoding; strategy:%s", name
            )
        return name, parsed

    raise CertificateFormatError(
        "Could not parse certificate container "
        f"(tried: {', '.join(attempted) or 'none'}): {first_error or 'no usable bytes'}. "
        "Check the file and its password."
    )


def _public_key_der(key: object) -> bytes:
    return key.public_bytes(Encoding.DER, PublicFormat.SubjectPublicKeyInfo)  # type: ignore[attr-defined]


def parse_certificate(data: bytes, password: str | None) -> CertificateMaterial:
    """Extract the private key, leaf certificate and thumbprint from a container.

    Args:
        data: PKCS#12 container bytes (possibly mangled in transit).
        password: Container password.

    Returns:
        CertificateMaterial for msal certificate credentials.

    Raises:
        CertificateCorruptedError: If the bytes were corrupted by a text transfer.
        CertificateFormatError: If the container cannot be parsed, or does not hold
            exactly one private key and exactly one matching leaf certificate.
    """
    _, parsed = decode_container(data, password)

    if parsed.key is None:
        raise CertificateFormatError("Certificate container holds no private key")

    key_public = _public_key_der(parsed.key.public_key())
    certificates = [parsed.cert] if parsed.cert is not None else []
    certificates.extend(parsed.additional_certs)
    leaves = [
        entry.certificate
        for entry in certificates
        if _public_key_der(entry.certificate.public_key()) == key_public
    ]
    if len(leaves) != 1:
        raise CertificateFormatError(
            f"Certificate container must hold exactly one leaf certificate for its key, "
            f"found {len(leaves)}"
        )

    der = leaves[0].public_bytes(Encoding.DER)
    private_key_pem = parsed.key.private_bytes(
        Encoding.PEM, PrivateFormat.PKCS8, NoEncryption()
    ).decode("ascii")
    thumbprint = hashlib.sha1(der).hexdigest().upper()  # noqa: S324
    logger.info("[parse_certificate] certificate parsed; thumbprint:%s", thumbprint)
    return CertificateMaterial(
        private_key_pem=private_key_pem,
        certificate_der=der,
        thumbprint=thumbprint,
    )


def load_certificate(path: str | Path, password: str | None) -> CertificateMaterial:
    """Read a container from disk and parse it.

    Raises:
        CertificateFormatError: If the file cannot be read or parsed.
    """
    try:
        data = Path(path).read_bytes()
    except OSError as exc:
        raise CertificateFormatError(f"Cannot read certificate file {path}: {exc.strerror}") from exc
    logger.info("[load_certificate] read certificate file; path:%s;bytes:%d", path, len(data))
    return parse_certificate(data, password)
