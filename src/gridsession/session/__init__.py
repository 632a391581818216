"""Session lifecycle and task submission."""

from .retry import RetryPolicy, is_transient
from .service import SessionService
from .state import SessionState, SessionTracker

__all__ = ["RetryPolicy", "SessionService", "SessionState", "SessionTracker", "is_transient"]
