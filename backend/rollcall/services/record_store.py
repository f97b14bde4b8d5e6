"""Attendance record persistence, absence backfill and audited manual overrides."""
import logging
from datetime import datetime
from typing import Iterable, List, Optional

from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.exc import IntegrityError

from rollcall import db
from rollcall.models.attendance import (
    AttendanceMethod, AttendanceRecord, AttendanceStatus, ReviewStatus
)
from rollcall.models.attendance_session import AttendanceSession
from rollcall.models.audit_log import AttendanceAuditLog
from rollcall.utils.errors import (
    AlreadyRecordedError, AuthorizationError, StorageConstraintViolation, ValidationError
)
from rollcall.utils.helpers import utcnow
from rollcall.utils.validators import Validator

logger = logging.getLogger(__name__)

_UPSERT_DIALECTS = {
    'postgresql': postgresql.insert,
    'sqlite': sqlite.insert,
}

class RecordStore:
    """
    Owns every write to attendance_records.

    The (session_id, member_id) unique constraint is the source of truth:
    inserts are attempted and a constraint violation means another writer won.
    """

    @staticmethod
    def find(session_id: int, member_id: int) -> Optional[AttendanceRecord]:
        return AttendanceRecord.query.filter_by(session_id=session_id, member_id=member_id).first()

    @classmethod
    def insert_record(
        cls,
        session: AttendanceSession,
        member_id: int,
        method: AttendanceMethod,
        status: AttendanceStatus,
        verification_score: Optional[float] = None,
        late_submission: bool = False,
        review_status: Optional[ReviewStatus] = None,
        manual_reason: Optional[str] = None,
        now: Optional[datetime] = None
    ) -> AttendanceRecord:
        """
        Insert and commit one record.

        Raises:
            AlreadyRecordedError: a record for (session, member) already exists
            StorageConstraintViolation: any other integrity failure
        """
        record = AttendanceRecord(
            session_id=session.id,
            class_id=session.class_id,
            member_id=member_id,
            timestamp=now or utcnow(),
            method=method,
            status=status,
            verification_score=verification_score,
            late_submission=late_submission,
            review_status=review_status,
            manual_reason=manual_reason
        )
        db.session.add(record)

        try:
            db.session.commit()
        except IntegrityError as exc:
            db.session.rollback()
            exists = db.session.query(AttendanceRecord.id).filter_by(
                session_id=session.id, member_id=member_id
            ).first()
            if exists is not None:
                logger.info("Concurrent check-in for session %s member %s resolved by constraint",
                            session.id, member_id)
                raise AlreadyRecordedError()
            logger.error("Attendance insert failed for session %s member %s: %s",
                         session.id, member_id, exc.orig)
            raise StorageConstraintViolation('Failed to record attendance')

        return record

    @classmethod
    def insert_absences(
        cls,
        session: AttendanceSession,
        member_ids: Iterable[int],
        now: Optional[datetime] = None
    ) -> int:
        """
        Add absent rows for ``member_ids``, skipping pairs that already have a record.

        Does not commit; the caller closes the session in the same transaction.
        Returns the number of rows actually inserted.
        """
        now = now or utcnow()
        rows = [
            {
                'session_id': session.id,
                'class_id': session.class_id,
                'member_id': member_id,
                'timestamp': now,
                'method': AttendanceMethod.AUTO,
                'status': AttendanceStatus.ABSENT,
                'late_submission': False,
                'created_at': now,
                'updated_at': now,
            }
            for member_id in sorted(set(member_ids))
        ]
        if not rows:
            return 0

        insert = _UPSERT_DIALECTS.get(db.session.get_bind().dialect.name)
        if insert is not None:
            stmt = insert(AttendanceRecord).values(rows).on_conflict_do_nothing(
                index_elements=['session_id', 'member_id']
            )
            return db.session.execute(stmt).rowcount

        # Backends without ON CONFLICT: one savepoint per row
        inserted = 0
        for row in rows:
            try:
                with db.session.begin_nested():
                    db.session.add(AttendanceRecord(**row))
                inserted += 1
            except IntegrityError:
                logger.debug("Absence for session %s member %s already recorded",
                             session.id, row['member_id'])
        return inserted

    # =================== MANUAL OVERRIDE ===================

    @classmethod
    def override(
        cls,
        session: AttendanceSession,
        member_id: int,
        new_status,
        reason,
        actor,
        now: Optional[datetime] = None,
        _retried: bool = False
    ) -> AttendanceRecord:
        """
        Set a member's status by hand, bypassing the window.

        The record change and its audit entry are committed together.

        Raises:
            StorageConstraintViolation: the write failed for a reason other than
                a concurrent check-in creating the same record
        """
        reason = Validator.validate_reason(reason)

        if not session.class_group.is_owned_by(actor):
            raise AuthorizationError("Only the class owner can change attendance")

        try:
            status = AttendanceStatus(new_status)
        except ValueError:
            raise ValidationError("Status must be one of: present, late, absent")

        if not session.class_group.is_enrolled(member_id):
            raise AuthorizationError("Member is not enrolled in this class")

        now = now or utcnow()
        record = cls.find(session.id, member_id)

        if record is not None:
            previous = record.status.value
            record.status = status
            record.method = AttendanceMethod.MANUAL
            record.manual_reason = reason
            record.review_status = ReviewStatus.VERIFIED
            action = 'update'
        else:
            previous = None
            record = AttendanceRecord(
                session_id=session.id,
                class_id=session.class_id,
                member_id=member_id,
                timestamp=now,
                method=AttendanceMethod.MANUAL,
                status=status,
                late_submission=True,
                review_status=ReviewStatus.VERIFIED,
                manual_reason=reason
            )
            db.session.add(record)
            action = 'create'

        try:
            db.session.flush()
        except IntegrityError as exc:
            db.session.rollback()
            if action == 'create' and not _retried:
                # A check-in landed between the lookup and the insert
                return cls.override(session, member_id, status.value, reason, actor, now, _retried=True)
            logger.error("Manual %s failed for session %s member %s: %s",
                         action, session.id, member_id, exc.orig)
            raise StorageConstraintViolation('Failed to update attendance')

        db.session.add(AttendanceAuditLog(
            record_id=record.id,
            session_id=session.id,
            member_id=member_id,
            actor_id=actor.id,
            action=action,
            previous_status=previous,
            new_status=status.value,
            reason=reason
        ))
        db.session.commit()

        logger.info("Manual %s by %s: session %s member %s %s -> %s",
                    action, actor.id, session.id, member_id, previous, status.value)
        return record

    # =================== QUERIES ===================

    @staticmethod
    def records_for_session(session_id: int) -> List[AttendanceRecord]:
        return (AttendanceRecord.query
                .filter_by(session_id=session_id)
                .order_by(AttendanceRecord.timestamp, AttendanceRecord.id)
                .all())

    @staticmethod
    def audit_log_for_session(session_id: int) -> List[AttendanceAuditLog]:
        return (AttendanceAuditLog.query
                .filter_by(session_id=session_id)
                .order_by(AttendanceAuditLog.created_at, AttendanceAuditLog.id)
                .all())

    @staticmethod
    def pending_review(session_id: int) -> List[AttendanceRecord]:
        """Records accepted without full proof, waiting for the owner."""
        return (AttendanceRecord.query
                .filter_by(session_id=session_id, review_status=ReviewStatus.UNVERIFIED)
                .order_by(AttendanceRecord.timestamp)
                .all())
