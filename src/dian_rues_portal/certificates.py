from __future__ import annotations

import base64
import binascii
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Union

from cryptography.hazmat.primitives.serialization import (
    Encoding,
    NoEncryption,
    PrivateFormat,
    pkcs12,
)

from .errors import CertificateConversionError


@dataclass(frozen=True)
class PemBundle:
    certificate_pem: bytes
    key_pem: bytes = b""


@dataclass(frozen=True)
class PemPaths:
    cert_path: Path
    key_path: Path


def decode_base64_blob(value: str) -> bytes:
    try:
        return base64.b64decode((value or "").strip(), validate=False)
    except (binascii.Error, ValueError) as e:
        raise CertificateConversionError(f"Certificate is not valid base64: {e}") from e


def convert_p12(blob: bytes, password: Optional[str]) -> PemBundle:
    """
    Decode a PKCS#12 (.p12/.pfx) blob into a PEM certificate + unencrypted PEM private key.
    """
    pwd = password.encode("utf-8") if password else None
    try:
        key, cert, _extra = pkcs12.load_key_and_certificates(blob, pwd)
    except Exception as e:
        raise CertificateConversionError(f"Could not convert P12 to PEM: {e}") from e

    if cert is None:
        raise CertificateConversionError("Could not convert P12 to PEM: no certificate found in the P12 file")
    if key is None:
        raise CertificateConversionError("Could not convert P12 to PEM: no private key found in the P12 file")

    return PemBundle(
        certificate_pem=cert.public_bytes(Encoding.PEM),
        key_pem=key.private_bytes(Encoding.PEM, PrivateFormat.TraditionalOpenSSL, NoEncryption()),
    )


def write_pem_bundle(bundle: PemBundle, out_dir: Union[str, Path]) -> PemPaths:
    d = Path(out_dir)
    d.mkdir(parents=True, exist_ok=True)
    cert_path = d / "cert.pem"
    key_path = d / "key.pem"
    cert_path.write_bytes(bundle.certificate_pem)
    key_path.write_bytes(bundle.key_pem)
    try:
        key_path.chmod(0o600)
    except OSError:
        pass
    return PemPaths(cert_path=cert_path.resolve(), key_path=key_path.resolve())
