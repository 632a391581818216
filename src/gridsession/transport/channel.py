"""Secure gRPC channel construction for the control plane.

One factory produces channels for exactly one of three modes:

- plaintext (``http``/``grpc`` endpoints),
- TLS (``https``/``grpcs`` endpoints, no client identity),
- mutual TLS (secure endpoint plus a :class:`ClientIdentity`).

Relaxed validation pins whatever certificate the server presents as the only
trust root and expects the host name that certificate names, so servers
reached by IP or through an alias are accepted. It exists for test
environments and is never the default.
"""

from __future__ import annotations

import logging
import ssl
from dataclasses import dataclass
from typing import Callable, List, Optional, Sequence, Tuple, Union
from urllib.parse import urlsplit

import grpc

from gridsession.errors import ConfigurationError, CredentialError
from gridsession.transport.credentials import ClientIdentity, certificate_host_name, normalize_certificate

LOGGER = logging.getLogger(__name__)

SECURE_SCHEMES = {"https": 443, "grpcs": 443}
PLAINTEXT_SCHEMES = {"http": 80, "grpc": 80}

ChannelOption = Tuple[str, Union[int, str]]
CertificateFetcher = Callable[[Tuple[str, int]], str]


@dataclass(frozen=True)
class Endpoint:
    """Parsed control-plane URI."""

    uri: str
    scheme: str
    host: str
    port: int

    @property
    def secure(self) -> bool:
        return self.scheme in SECURE_SCHEMES

    @property
    def target(self) -> str:
        host = f"[{self.host}]" if ":" in self.host else self.host
        return f"{host}:{self.port}"

    @classmethod
    def parse(cls, uri: str) -> "Endpoint":
        if not uri or not uri.strip():
            raise ConfigurationError("Control-plane endpoint is empty")
        parts = urlsplit(uri.strip())
        scheme = parts.scheme.lower()
        if scheme not in SECURE_SCHEMES and scheme not in PLAINTEXT_SCHEMES:
            raise ConfigurationError(f"Unsupported endpoint scheme '{parts.scheme}' in {uri}")
        if not parts.hostname:
            raise ConfigurationError(f"Endpoint {uri} has no host")
        try:
            port = parts.port
        except ValueError as exc:
            raise ConfigurationError(f"Endpoint {uri} has an invalid port") from exc
        if port is None:
            port = SECURE_SCHEMES.get(scheme) or PLAINTEXT_SCHEMES[scheme]
        return cls(uri=uri.strip(), scheme=scheme, host=parts.hostname, port=port)


def channel_options(
    *,
    keepalive_time_ms: int = 10000,
    keepalive_timeout_ms: int = 5000,
    max_message_bytes: int = 16 * 1024 * 1024,
) -> List[ChannelOption]:
    return [
        ("grpc.keepalive_time_ms", keepalive_time_ms),
        ("grpc.keepalive_timeout_ms", keepalive_timeout_ms),
        ("grpc.keepalive_permit_without_calls", 1),
        ("grpc.max_send_message_length", max_message_bytes),
        ("grpc.max_receive_message_length", max_message_bytes),
    ]


class SecureChannelFactory:
    """Builds ready-to-use channels for one endpoint and identity configuration."""

    def __init__(
        self,
        endpoint: Union[str, Endpoint],
        identity: Optional[ClientIdentity] = None,
        *,
        strict_validation: bool = True,
        options: Optional[Sequence[ChannelOption]] = None,
        target_name_override: Optional[str] = None,
        root_certificates: Optional[bytes] = None,
        certificate_fetcher: CertificateFetcher = ssl.get_server_certificate,
    ) -> None:
        self.endpoint = endpoint if isinstance(endpoint, Endpoint) else Endpoint.parse(endpoint)
        if identity is not None and not self.endpoint.secure:
            raise ConfigurationError(
                f"Client certificates require a secure endpoint; got scheme '{self.endpoint.scheme}'"
            )
        self.identity = identity
        self.strict_validation = strict_validation
        self._options = list(options) if options is not None else channel_options()
        self._target_name_override = target_name_override
        self._root_certificates = root_certificates
        self._certificate_fetcher = certificate_fetcher

        LOGGER.info("Control plane endpoint %s (target %s)", self.endpoint.uri, self.endpoint.target)
        LOGGER.info("TLS activated: %s", self.endpoint.secure)
        if identity is not None:
            LOGGER.info("mTLS activated: client certificate will be presented")
        if root_certificates is not None and self.endpoint.secure:
            LOGGER.info("Server certificates validated against a custom CA bundle")
        if self.endpoint.secure and not strict_validation:
            LOGGER.warning("Server certificate validation is disabled for %s", self.endpoint.uri)

    @property
    def mode(self) -> str:
        if not self.endpoint.secure:
            return "plaintext"
        return "mtls" if self.identity is not None else "tls"

    def _server_root(self) -> bytes:
        address = (self.endpoint.host, self.endpoint.port)
        try:
            pem = self._certificate_fetcher(address)
        except (OSError, ssl.SSLError, ValueError) as exc:
            raise CredentialError(
                f"Unable to fetch server certificate from {self.endpoint.target}"
            ) from exc
        if not pem or "-----BEGIN CERTIFICATE-----" not in pem:
            raise CredentialError(f"Server at {self.endpoint.target} presented no certificate")
        return normalize_certificate(pem)

    def credentials(self) -> Tuple[Optional[grpc.ChannelCredentials], List[ChannelOption]]:
        """Return channel credentials (None for plaintext) and the options to use."""

        options = list(self._options)
        if not self.endpoint.secure:
            return None, options

        root_certificates = self._root_certificates
        if not self.strict_validation:
            root_certificates = self._server_root()
            expected_name = self._target_name_override or certificate_host_name(root_certificates)
            LOGGER.debug("Pinned server certificate for %s (name %s)", self.endpoint.target, expected_name)
            options.append(("grpc.ssl_target_name_override", expected_name or self.endpoint.host))
        elif self._target_name_override:
            options.append(("grpc.ssl_target_name_override", self._target_name_override))

        if self.identity is None:
            creds = grpc.ssl_channel_credentials(root_certificates=root_certificates)
        else:
            creds = grpc.ssl_channel_credentials(
                root_certificates=root_certificates,
                private_key=self.identity.private_key,
                certificate_chain=self.identity.certificate_chain,
            )
        return creds, options

    def build(self) -> grpc.Channel:
        creds, options = self.credentials()
        if creds is None:
            channel = grpc.insecure_channel(self.endpoint.target, options=options)
        else:
            channel = grpc.secure_channel(self.endpoint.target, creds, options=options)
        LOGGER.debug("Built %s channel to %s", self.mode, self.endpoint.target)
        return channel

    __call__ = build


def build_channel(
    endpoint: Union[str, Endpoint],
    identity: Optional[ClientIdentity] = None,
    strict_validation: bool = True,
    **kwargs,
) -> grpc.Channel:
    """Build a single channel; see :class:`SecureChannelFactory`."""

    return SecureChannelFactory(endpoint, identity, strict_validation=strict_validation, **kwargs).build()
