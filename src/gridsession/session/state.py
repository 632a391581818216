"""Session binding state for a SessionService instance."""

from __future__ import annotations

import enum
import threading
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional

from gridsession.errors import NotReadyError
from gridsession.models import Session


class SessionState(enum.Enum):
    """UNBOUND -> CREATING -> BOUND; a failed creation falls back to UNBOUND."""

    UNBOUND = "UNBOUND"
    CREATING = "CREATING"
    BOUND = "BOUND"


@dataclass
class SessionTracker:
    """In-memory session metadata."""

    state: SessionState = SessionState.UNBOUND
    session: Optional[Session] = None
    last_transition_at: datetime = field(default_factory=lambda: datetime.now(tz=timezone.utc))
    _lock: threading.Lock = field(default_factory=threading.Lock, init=False, repr=False)

    def transition(self, next_state: SessionState, *, session: Optional[Session] = None) -> None:
        """Move the session into a new state, validating allowed transitions."""

        with self._lock:
            if not self._is_valid_transition(self.state, next_state):
                raise ValueError(f"Invalid transition {self.state.value} → {next_state.value}")
            if session is not None:
                self.session = session
            self.state = next_state
            self.last_transition_at = datetime.now(tz=timezone.utc)

    @staticmethod
    def _is_valid_transition(current: SessionState, nxt: SessionState) -> bool:
        allowed = {
            SessionState.UNBOUND: {SessionState.CREATING, SessionState.BOUND},
            SessionState.CREATING: {SessionState.BOUND, SessionState.UNBOUND},
            SessionState.BOUND: {SessionState.BOUND},
        }
        return nxt in allowed.get(current, set())

    def bind(self, session: Session) -> None:
        """Bind (or rebind) to ``session``."""

        self.transition(SessionState.BOUND, session=session)

    def require_bound(self) -> Session:
        session = self.session
        if self.state is not SessionState.BOUND or session is None:
            raise NotReadyError(self.state.value)
        return session
