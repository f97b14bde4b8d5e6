"""Closes expired sessions and records absences for members who never checked in."""
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional

from sqlalchemy.exc import SQLAlchemyError

from rollcall import db
from rollcall.models.attendance import AttendanceRecord
from rollcall.models.attendance_session import AttendanceSession
from rollcall.services.record_store import RecordStore
from rollcall.services.window_policy import WindowPolicy
from rollcall.utils.helpers import utcnow

logger = logging.getLogger(__name__)

@dataclass
class SweepResult:
    ended_count: int = 0
    session_ids: List[int] = field(default_factory=list)

    def to_dict(self):
        return {'endedCount': self.ended_count, 'sessionIds': self.session_ids}

class SessionSweeper:
    """
    Periodic reconciliation job.

    Safe to run concurrently with check-ins and with itself: absences are
    inserted with conflict-skipping, so a member who checks in at the last
    moment keeps their record.
    """

    TIME_EXPIRED = 'time_expired'

    @staticmethod
    def backfill_absences(session: AttendanceSession, now: datetime) -> int:
        """Mark every enrolled member without a record as absent. Does not commit."""
        recorded = {
            member_id for (member_id,) in
            db.session.query(AttendanceRecord.member_id).filter_by(session_id=session.id)
        }
        missing = session.class_group.roster_ids() - recorded
        return RecordStore.insert_absences(session, missing, now)

    @classmethod
    def run(cls, now: Optional[datetime] = None) -> SweepResult:
        """Close every active session whose duration has elapsed."""
        now = now or utcnow()
        result = SweepResult()

        active = AttendanceSession.query.filter_by(is_active=True).all()
        for session in active:
            if not WindowPolicy.is_expired(session, now):
                continue

            session_id = session.id
            try:
                absent = cls.backfill_absences(session, now)
                session.close(cls.TIME_EXPIRED, now)
                db.session.commit()
            except SQLAlchemyError:
                db.session.rollback()
                logger.exception("Failed to close session %s", session_id)
                continue

            result.ended_count += 1
            result.session_ids.append(session_id)
            logger.info("Session %s closed (time expired), %d member(s) marked absent",
                        session_id, absent)

        if result.ended_count:
            logger.info("Sweep closed %d session(s)", result.ended_count)
        return result
