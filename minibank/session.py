"""
Session Module

An authenticated operator session with a cancellable idle timer. Every use
restarts the timer; when it fires the session's expiry event is set and any
further use raises SessionExpiredError. Expiry only ends the session, it never
rolls back work already committed.
"""

from datetime import datetime
from typing import Callable, Dict, Optional
import threading
import uuid

from .errors import SessionExpiredError
from .logging_config import get_logger, log_action
from .models import Identity, Role


class Session:
    """Authenticated session bound to one identity"""

    def __init__(self, username: str, role: Role, idle_timeout: float,
                 on_expire: Optional[Callable[['Session'], None]] = None):
        self.token = str(uuid.uuid4())
        self.username = username
        self.role = role
        self.idle_timeout = idle_timeout
        self.created_at = datetime.now()
        self.expired = threading.Event()
        self._on_expire = on_expire
        self._timer: Optional[threading.Timer] = None
        self._lock = threading.Lock()
        self.logger = get_logger("minibank.session")
        self._start_timer()

    def _start_timer(self) -> None:
        if self.idle_timeout and self.idle_timeout > 0:
            self._timer = threading.Timer(self.idle_timeout, self._expire)
            self._timer.daemon = True
            self._timer.start()

    def _expire(self) -> None:
        with self._lock:
            if self.expired.is_set():
                return
            self.expired.set()
            self._timer = None
        log_action(self.logger, "info", "Session timed out", user_id=self.username,
                   action="session_timeout", resource=f"session:{self.token}")
        if self._on_expire:
            self._on_expire(self)

    @property
    def is_active(self) -> bool:
        return not self.expired.is_set()

    @property
    def is_admin(self) -> bool:
        return self.role == Role.ADMIN

    def touch(self) -> None:
        """Record activity: restart the idle timer, or fail if already expired"""
        with self._lock:
            if self.expired.is_set():
                raise SessionExpiredError("Session expired", "session_expired")
            if self._timer:
                self._timer.cancel()
            self._start_timer()

    def close(self) -> None:
        """End the session now without firing the expiry callback"""
        with self._lock:
            if self._timer:
                self._timer.cancel()
                self._timer = None
            self.expired.set()

    def wait_expired(self, timeout: Optional[float] = None) -> bool:
        return self.expired.wait(timeout)


class SessionManager:
    """Tracks live sessions by token"""

    def __init__(self, idle_timeout: float = 10.0):
        self.idle_timeout = idle_timeout
        self._sessions: Dict[str, Session] = {}
        self._lock = threading.RLock()
        self.logger = get_logger("minibank.session")

    def create(self, identity: Identity) -> Session:
        session = Session(identity.username, identity.role, self.idle_timeout, on_expire=self._discard)
        with self._lock:
            self._sessions[session.token] = session
        log_action(self.logger, "info", "Session opened", user_id=identity.username,
                   action="session_open", extra={"role": identity.role.value})
        return session

    def _discard(self, session: Session) -> None:
        with self._lock:
            self._sessions.pop(session.token, None)

    def get(self, token: str) -> Session:
        """Look up a live session and record activity on it"""
        with self._lock:
            session = self._sessions.get(token)
        if not session or not session.is_active:
            raise SessionExpiredError("Session expired or unknown", "session_expired")
        session.touch()
        return session

    def close(self, token: str) -> bool:
        with self._lock:
            session = self._sessions.pop(token, None)
        if not session:
            return False
        session.close()
        log_action(self.logger, "info", "Session closed", user_id=session.username, action="session_close")
        return True

    def close_all(self) -> None:
        with self._lock:
            sessions = list(self._sessions.values())
            self._sessions = {}
        for session in sessions:
            session.close()

    def active_count(self) -> int:
        with self._lock:
            return sum(1 for s in self._sessions.values() if s.is_active)
