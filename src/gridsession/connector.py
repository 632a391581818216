"""Entry points that wire settings, channel factory, pool and session together."""

from __future__ import annotations

import logging
from typing import Any, Optional, Tuple, Union

from gridsession.config import ClientSettings, get_settings
from gridsession.errors import ConfigurationError
from gridsession.models import Session, TaskOptions
from gridsession.session import SessionService
from gridsession.transport import (
    ChannelPool,
    ClientIdentity,
    Endpoint,
    SecureChannelFactory,
    channel_options,
    require_complete_pair,
)
from gridsession.transport.credentials import PathArg, load_trust_roots

LOGGER = logging.getLogger(__name__)


def control_plane_connection_pool(
    endpoint: str,
    client_cert_path: PathArg = None,
    client_key_path: PathArg = None,
    ssl_validation: bool = True,
    *,
    client_pem: Optional[Tuple[Union[str, bytes], Union[str, bytes]]] = None,
    max_size: Optional[int] = None,
    acquire_timeout: Optional[float] = None,
    **factory_kwargs: Any,
) -> ChannelPool:
    """Create a channel pool for ``endpoint``.

    Client identity comes either from certificate/key paths or from an
    in-memory ``(certificate, key)`` pair, never both. A half-specified pair
    raises ConfigurationError before any file or network I/O. The identity is
    loaded once here; channels themselves are built lazily by the pool.
    """

    has_paths = require_complete_pair(
        None if client_cert_path is None else str(client_cert_path),
        None if client_key_path is None else str(client_key_path),
    )
    if has_paths and client_pem is not None:
        raise ConfigurationError("Pass certificate paths or client_pem, not both")
    parsed = Endpoint.parse(endpoint)

    if client_pem is not None:
        identity: Optional[ClientIdentity] = ClientIdentity.from_pem(*client_pem)
    else:
        identity = ClientIdentity.from_files(client_cert_path, client_key_path)

    factory = SecureChannelFactory(
        parsed,
        identity,
        strict_validation=ssl_validation,
        **factory_kwargs,
    )
    return ChannelPool(factory.build, max_size=max_size, acquire_timeout=acquire_timeout)


def connection_pool_from_settings(settings: Optional[ClientSettings] = None) -> ChannelPool:
    """Create a channel pool from :class:`ClientSettings`."""

    settings = settings or get_settings()
    root_certificates = None
    if settings.ca_cert_path is not None:
        root_certificates = load_trust_roots(settings.ca_cert_path)
    return control_plane_connection_pool(
        settings.endpoint,
        settings.client_cert_path,
        settings.client_key_path,
        settings.ssl_validation,
        max_size=settings.pool_max_size,
        acquire_timeout=settings.pool_acquire_timeout_seconds,
        options=channel_options(
            keepalive_time_ms=settings.keepalive_time_ms,
            keepalive_timeout_ms=settings.keepalive_timeout_ms,
            max_message_bytes=settings.max_message_bytes,
        ),
        target_name_override=settings.ssl_target_name_override,
        root_certificates=root_certificates,
    )


def open_session_service(
    settings: Optional[ClientSettings] = None,
    *,
    session: Union[Session, str, None] = None,
    task_options: Optional[TaskOptions] = None,
) -> SessionService:
    """Build a pool from settings and a SessionService on top of it.

    Creates a new session unless ``session`` is given.
    """

    settings = settings or get_settings()
    pool = connection_pool_from_settings(settings)
    try:
        return SessionService(pool, task_options=task_options, session=session, settings=settings)
    except Exception:
        pool.close()
        raise
