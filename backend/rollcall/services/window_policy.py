"""Temporal state of an attendance session."""
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional

@dataclass
class WindowState:
    """Result of evaluating a session's window at a given instant."""
    is_open: bool
    is_late: bool
    window_closes_at: datetime
    session_ends_at: datetime
    remaining_window_seconds: int
    remaining_session_seconds: int
    error: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            'isOpen': self.is_open,
            'isLate': self.is_late,
            'windowClosedAt': self.window_closes_at.isoformat(),
            'sessionEndsAt': self.session_ends_at.isoformat(),
            'remainingWindowSeconds': self.remaining_window_seconds,
            'remainingSessionSeconds': self.remaining_session_seconds,
            'error': self.error
        }

class WindowPolicy:
    """
    Decides whether a check-in is legal right now.

    Evaluated server-side on every attempt; client timers are advisory.
    All times are naive UTC.
    """

    LATE_THRESHOLD_MINUTES = 10

    SESSION_ENDED = 'Session has ended'
    SESSION_EXPIRED = 'Session has expired'
    WINDOW_CLOSED = ('Attendance window has closed. '
                     'Please contact your professor for manual attendance.')

    @staticmethod
    def window_end(session) -> datetime:
        return session.starts_at + timedelta(minutes=session.window_minutes)

    @staticmethod
    def session_end(session) -> datetime:
        return session.starts_at + timedelta(minutes=session.duration_minutes)

    @classmethod
    def is_expired(cls, session, now: datetime) -> bool:
        """Sweeper rule: a session is over once its full duration has elapsed."""
        return now >= cls.session_end(session)

    @classmethod
    def evaluate(cls, session, now: datetime) -> WindowState:
        """Compute open/late state of ``session`` at ``now``."""
        window_end = cls.window_end(session)
        session_end = cls.session_end(session)

        if not session.is_active:
            return WindowState(False, False, window_end, session_end, 0, 0, cls.SESSION_ENDED)

        # Safety net independent of the sweeper
        if now > session_end:
            return WindowState(False, False, window_end, session_end, 0, 0, cls.SESSION_EXPIRED)

        is_open = now <= window_end
        late_threshold = session.starts_at + timedelta(minutes=cls.LATE_THRESHOLD_MINUTES)
        is_late = late_threshold < now <= window_end

        return WindowState(
            is_open=is_open,
            is_late=is_late,
            window_closes_at=window_end,
            session_ends_at=session_end,
            remaining_window_seconds=max(0, int((window_end - now).total_seconds())),
            remaining_session_seconds=max(0, int((session_end - now).total_seconds())),
            error=None if is_open else cls.WINDOW_CLOSED
        )
