"""
Feedback Module

Append-only service feedback and the complaint stack. Complaints are kept
newest first; undo removes the most recent complaint of any user.
"""

from datetime import datetime
from typing import Callable, List, Optional
import threading

from .errors import ValidationError
from .logging_config import get_logger, log_action
from .models import FEEDBACK_SERVICES, Feedback
from .persistence import RecordStore, ensure_storable


class FeedbackBox:
    """Service feedback entries in submission order"""

    def __init__(self, record_store: RecordStore,
                 clock: Optional[Callable[[], datetime]] = None,
                 lock: Optional[threading.RLock] = None):
        self.record_store = record_store
        self.clock = clock or datetime.now
        self._lock = lock or threading.RLock()
        self._entries: List[Feedback] = []
        self.logger = get_logger("minibank.feedback")

    def load(self) -> None:
        with self._lock:
            self._entries = self.record_store.load_feedback()

    def save(self) -> None:
        with self._lock:
            self.record_store.save_feedback(self._entries)

    def submit(self, username: str, service: str, text: str) -> Feedback:
        if service not in FEEDBACK_SERVICES:
            service = "Other"
        ensure_storable(username, "|", "Username")
        ensure_storable(text or "", "|", "Feedback")

        with self._lock:
            entry = Feedback(
                username=username,
                service=service,
                text=text or "",
                timestamp=self.clock().replace(microsecond=0)
            )
            self._entries.append(entry)
            self.save()

            log_action(self.logger, "info", "Service feedback submitted",
                       user_id=username, action="submit_feedback", extra={"service": service})
            return entry

    def all(self, service: Optional[str] = None) -> List[Feedback]:
        with self._lock:
            if service is None:
                return list(self._entries)
            return [f for f in self._entries if f.service == service]

    def clear(self) -> None:
        with self._lock:
            self._entries = []


class ComplaintStack:
    """Last-in first-out complaints"""

    def __init__(self, record_store: RecordStore, lock: Optional[threading.RLock] = None):
        self.record_store = record_store
        self._lock = lock or threading.RLock()
        self._complaints: List[str] = []  # newest first
        self.logger = get_logger("minibank.feedback")

    def load(self) -> None:
        with self._lock:
            self._complaints = self.record_store.load_complaints()

    def save(self) -> None:
        with self._lock:
            self.record_store.save_complaints(self._complaints)

    def push(self, text: str, username: Optional[str] = None) -> str:
        if not text or not text.strip():
            raise ValidationError("Complaint text is required")
        ensure_storable(text, "\n", "Complaint")

        with self._lock:
            self._complaints.insert(0, text)
            self.save()
            log_action(self.logger, "info", "Complaint submitted", user_id=username, action="push_complaint")
            return text

    def undo_last(self) -> Optional[str]:
        """Pop the newest complaint; None when the stack is empty"""
        with self._lock:
            if not self._complaints:
                return None
            removed = self._complaints.pop(0)
            self.save()
            log_action(self.logger, "info", "Last complaint removed", action="undo_complaint")
            return removed

    def all(self) -> List[str]:
        with self._lock:
            return list(self._complaints)

    def __len__(self) -> int:
        with self._lock:
            return len(self._complaints)

    def clear(self) -> None:
        with self._lock:
            self._complaints = []
