"""Client identity and trust material for TLS and mutual TLS."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from os import PathLike
from pathlib import Path
from typing import List, Optional, Union

from cryptography import x509
from cryptography.exceptions import UnsupportedAlgorithm
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric.types import PrivateKeyTypes
from cryptography.x509.oid import NameOID

from gridsession.errors import ConfigurationError, CredentialError

LOGGER = logging.getLogger(__name__)

PathArg = Union[str, "PathLike[str]", None]
Material = Union[str, bytes]

_PEM_MARKER = b"-----BEGIN"


def _is_blank(value: PathArg) -> bool:
    return value is None or not str(value).strip()


def require_complete_pair(cert: object, key: object) -> bool:
    """Return True when both halves are present, False when both are absent.

    Raises ConfigurationError when only one is supplied. Performs no I/O.
    """

    cert_missing = cert is None or (isinstance(cert, (str, bytes)) and not cert.strip())
    key_missing = key is None or (isinstance(key, (str, bytes)) and not key.strip())
    if cert_missing != key_missing:
        raise ConfigurationError(
            "Missing one of the client certificate/key pair; both must be supplied or neither"
        )
    return not cert_missing


def _as_bytes(value: Material) -> bytes:
    return value.encode("utf-8") if isinstance(value, str) else bytes(value)


def load_certificates(data: Material) -> List[x509.Certificate]:
    """Parse a PEM bundle or a single DER certificate; the leaf comes first."""

    raw = _as_bytes(data)
    if not raw.strip():
        raise CredentialError("Certificate material is empty")
    try:
        if _PEM_MARKER in raw:
            return x509.load_pem_x509_certificates(raw)
        LOGGER.debug("Parsing DER certificate")
        return [x509.load_der_x509_certificate(raw)]
    except ValueError as exc:
        raise CredentialError(f"Unable to parse certificate: {exc}") from exc


def load_private_key(data: Material) -> PrivateKeyTypes:
    """Parse an unencrypted PEM or DER private key (PKCS#8, PKCS#1 or SEC1)."""

    raw = _as_bytes(data)
    if not raw.strip():
        raise CredentialError("Client private key is empty")
    try:
        if _PEM_MARKER in raw:
            return serialization.load_pem_private_key(raw, password=None)
        LOGGER.debug("Parsing DER private key")
        return serialization.load_der_private_key(raw, password=None)
    except TypeError as exc:
        raise CredentialError("Encrypted private keys are not supported; supply an unencrypted key") from exc
    except (ValueError, UnsupportedAlgorithm) as exc:
        raise CredentialError(f"Unable to parse private key: {exc}") from exc


def _certificates_pem(certificates: List[x509.Certificate]) -> bytes:
    return b"".join(cert.public_bytes(serialization.Encoding.PEM) for cert in certificates)


def _private_key_pem(key: PrivateKeyTypes) -> bytes:
    return key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.NoEncryption(),
    )


def _public_key_der(key) -> bytes:
    return key.public_bytes(
        encoding=serialization.Encoding.DER,
        format=serialization.PublicFormat.SubjectPublicKeyInfo,
    )


def normalize_certificate(data: Material) -> bytes:
    """Return the certificate chain as PEM, re-encoding DER input."""

    return _certificates_pem(load_certificates(data))


def normalize_private_key(data: Material) -> bytes:
    """Return the private key as unencrypted PKCS#8 PEM."""

    return _private_key_pem(load_private_key(data))


def certificate_host_name(data: Material) -> Optional[str]:
    """Name a certificate is valid for: first DNS SAN, then IP SAN, then CN."""

    leaf = load_certificates(data)[0]
    try:
        san = leaf.extensions.get_extension_for_class(x509.SubjectAlternativeName).value
    except x509.ExtensionNotFound:
        san = None
    if san is not None:
        dns_names = san.get_values_for_type(x509.DNSName)
        if dns_names:
            return dns_names[0]
        addresses = san.get_values_for_type(x509.IPAddress)
        if addresses:
            return str(addresses[0])
    common_names = leaf.subject.get_attributes_for_oid(NameOID.COMMON_NAME)
    if common_names:
        return str(common_names[0].value)
    return None


def _read_file(path: PathArg, what: str) -> bytes:
    resolved = Path(str(path)).expanduser()
    try:
        return resolved.read_bytes()
    except OSError as exc:
        LOGGER.error("Failed to read %s file %s: %s", what, resolved, exc)
        raise CredentialError(f"Unable to read {what} file {resolved}", path=str(resolved)) from exc


def load_trust_roots(path: PathArg) -> bytes:
    """Read a CA bundle used instead of the system trust store."""

    raw = _read_file(path, "CA certificate")
    try:
        return normalize_certificate(raw)
    except CredentialError as exc:
        exc.path = str(path)
        raise


@dataclass(frozen=True)
class ClientIdentity:
    """Certificate chain and private key presented to the server, both PEM."""

    certificate_chain: bytes
    private_key: bytes = field(repr=False)

    @classmethod
    def from_pem(cls, certificate: Material, private_key: Material) -> "ClientIdentity":
        """Parse and cross-check a certificate chain and its private key."""

        if not require_complete_pair(certificate, private_key):
            raise ConfigurationError("Client certificate and key are both empty")
        certificates = load_certificates(certificate)
        key = load_private_key(private_key)
        if _public_key_der(certificates[0].public_key()) != _public_key_der(key.public_key()):
            raise CredentialError("Client certificate does not match the private key")
        return cls(certificate_chain=_certificates_pem(certificates), private_key=_private_key_pem(key))

    @classmethod
    def from_files(cls, cert_path: PathArg, key_path: PathArg) -> Optional["ClientIdentity"]:
        """Load an identity from disk; returns None when neither path is set."""

        if not require_complete_pair(
            None if _is_blank(cert_path) else str(cert_path),
            None if _is_blank(key_path) else str(key_path),
        ):
            return None
        cert = _read_file(cert_path, "client certificate")
        key = _read_file(key_path, "client key")
        try:
            return cls.from_pem(cert, key)
        except CredentialError as exc:
            if exc.path is None:
                exc.path = str(cert_path)
            raise
