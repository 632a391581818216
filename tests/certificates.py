"""Throwaway X.509 material for TLS tests."""

from __future__ import annotations

import ipaddress
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Sequence

from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import ec, rsa
from cryptography.x509.oid import ExtendedKeyUsageOID, NameOID


@dataclass(frozen=True)
class Issued:
    certificate: x509.Certificate
    key: object

    @property
    def cert_pem(self) -> bytes:
        return self.certificate.public_bytes(serialization.Encoding.PEM)

    @property
    def cert_der(self) -> bytes:
        return self.certificate.public_bytes(serialization.Encoding.DER)

    @property
    def key_pem(self) -> bytes:
        return self.key.private_bytes(
            serialization.Encoding.PEM,
            serialization.PrivateFormat.PKCS8,
            serialization.NoEncryption(),
        )

    def key_bytes(self, encoding, private_format, password: bytes | None = None) -> bytes:
        encryption = (
            serialization.BestAvailableEncryption(password) if password else serialization.NoEncryption()
        )
        return self.key.private_bytes(encoding, private_format, encryption)


def _name(common_name: str) -> x509.Name:
    return x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, common_name)])


def _sans(dns: Sequence[str], ips: Sequence[str]) -> list:
    return [x509.DNSName(name) for name in dns] + [x509.IPAddress(ipaddress.ip_address(ip)) for ip in ips]


def _sign(subject: str, public_key, issuer: x509.Name, signing_key, *, ca: bool, usage, sans) -> x509.Certificate:
    now = datetime.now(timezone.utc)
    builder = (
        x509.CertificateBuilder()
        .subject_name(_name(subject))
        .issuer_name(issuer)
        .public_key(public_key)
        .serial_number(x509.random_serial_number())
        .not_valid_before(now - timedelta(minutes=5))
        .not_valid_after(now + timedelta(days=1))
        .add_extension(x509.BasicConstraints(ca=ca, path_length=None), critical=True)
    )
    if usage:
        builder = builder.add_extension(x509.ExtendedKeyUsage(usage), critical=False)
    if sans:
        builder = builder.add_extension(x509.SubjectAlternativeName(sans), critical=False)
    return builder.sign(signing_key, hashes.SHA256())


def new_key(kind: str = "ec"):
    if kind == "rsa":
        return rsa.generate_private_key(public_exponent=65537, key_size=2048)
    return ec.generate_private_key(ec.SECP256R1())


def self_signed(common_name: str, *, dns: Sequence[str] = (), ips: Sequence[str] = (), kind: str = "ec") -> Issued:
    """Server certificate that is its own trust root."""

    key = new_key(kind)
    certificate = _sign(
        common_name,
        key.public_key(),
        _name(common_name),
        key,
        ca=True,
        usage=[ExtendedKeyUsageOID.SERVER_AUTH],
        sans=_sans(dns, ips),
    )
    return Issued(certificate, key)


class CertificateAuthority:
    """Test CA issuing server and client leaf certificates."""

    def __init__(self, common_name: str = "gridsession test CA") -> None:
        self._key = new_key()
        self._name = _name(common_name)
        self.certificate = _sign(common_name, self._key.public_key(), self._name, self._key, ca=True, usage=None, sans=[])

    @property
    def cert_pem(self) -> bytes:
        return self.certificate.public_bytes(serialization.Encoding.PEM)

    def issue(
        self,
        common_name: str,
        *,
        dns: Sequence[str] = (),
        ips: Sequence[str] = (),
        client: bool = False,
        kind: str = "ec",
    ) -> Issued:
        key = new_key(kind)
        usage = [ExtendedKeyUsageOID.CLIENT_AUTH if client else ExtendedKeyUsageOID.SERVER_AUTH]
        certificate = _sign(
            common_name,
            key.public_key(),
            self._name,
            self._key,
            ca=False,
            usage=usage,
            sans=_sans(dns, ips),
        )
        return Issued(certificate, key)
