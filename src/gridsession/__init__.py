"""gridsession: sessions, task submission and channel pooling for a compute control plane.

Usage:
    from gridsession import control_plane_connection_pool, SessionService

    pool = control_plane_connection_pool("https://cp.example:5001")
    service = SessionService(pool)
    task_id = service.submit_task(b"\\x01\\x02")
    result = service.get_result(task_id)
"""

__version__ = "0.1.0"

from gridsession.config import ClientSettings, get_settings
from gridsession.connector import (
    connection_pool_from_settings,
    control_plane_connection_pool,
    open_session_service,
)
from gridsession.errors import (
    ConfigurationError,
    CredentialError,
    GridSessionError,
    NotReadyError,
    OperationCancelledError,
    PoolClosedError,
    PoolExhaustedError,
    ResultTimeoutError,
    ResultUnavailableError,
    SessionCreationError,
    SubmissionError,
    UnknownTaskError,
)
from gridsession.models import Session, TaskOptions, TaskStatus
from gridsession.session import SessionService, SessionState
from gridsession.transport import ChannelPool, ClientIdentity, SecureChannelFactory, build_channel

__all__ = [
    "__version__",
    # Settings
    "ClientSettings",
    "get_settings",
    # Connection
    "ChannelPool",
    "ClientIdentity",
    "SecureChannelFactory",
    "build_channel",
    "connection_pool_from_settings",
    "control_plane_connection_pool",
    "open_session_service",
    # Session
    "Session",
    "SessionService",
    "SessionState",
    "TaskOptions",
    "TaskStatus",
    # Errors
    "ConfigurationError",
    "CredentialError",
    "GridSessionError",
    "NotReadyError",
    "OperationCancelledError",
    "PoolClosedError",
    "PoolExhaustedError",
    "ResultTimeoutError",
    "ResultUnavailableError",
    "SessionCreationError",
    "SubmissionError",
    "UnknownTaskError",
]
