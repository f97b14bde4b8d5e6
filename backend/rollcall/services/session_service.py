"""Session lifecycle operations performed by the class owner."""
import logging
from datetime import datetime
from typing import Any, Optional, Tuple

from flask import current_app

from rollcall import db
from rollcall.models.attendance_session import AttendanceSession
from rollcall.models.class_group import ClassGroup
from rollcall.services.session_sweeper import SessionSweeper
from rollcall.services.signed_code_service import SignedCode, SignedCodeService
from rollcall.utils.errors import AuthorizationError, ValidationError
from rollcall.utils.helpers import utcnow
from rollcall.utils.validators import Validator

logger = logging.getLogger(__name__)

class SessionService:
    """Service for starting, ending and configuring attendance sessions."""

    ENDED_BY_OWNER = 'ended_by_owner'

    @staticmethod
    def _require_owner(class_group: ClassGroup, user) -> None:
        if not class_group.is_owned_by(user):
            raise AuthorizationError("Only the class owner can manage its sessions")

    @classmethod
    def start_session(
        cls,
        class_group: ClassGroup,
        owner,
        window_minutes: Any = None,
        duration_minutes: Any = None,
        latitude: Any = None,
        longitude: Any = None,
        now: Optional[datetime] = None
    ) -> Tuple[AttendanceSession, SignedCode]:
        """
        Open a session starting ``now`` and issue its first signed code.

        When the owner sends a position it becomes the class anchor.
        """
        cls._require_owner(class_group, owner)
        now = now or utcnow()

        max_duration = current_app.config.get('MAX_DURATION_MINUTES', 480)
        if duration_minutes is None:
            duration_minutes = current_app.config.get('DEFAULT_DURATION_MINUTES', 60)
        duration = Validator.validate_minutes(duration_minutes, 'duration_minutes', 1, max_duration)

        if window_minutes is None:
            window_minutes = min(current_app.config.get('DEFAULT_WINDOW_MINUTES', 15), duration)
        window = Validator.validate_minutes(window_minutes, 'window_minutes', 1, duration)

        if latitude is not None or longitude is not None:
            class_group.latitude, class_group.longitude = Validator.validate_coordinates(latitude, longitude)

        session = AttendanceSession(
            class_id=class_group.id,
            date=now.date(),
            start_time=now.time().replace(microsecond=0),
            window_minutes=window,
            duration_minutes=duration,
            is_active=True
        )
        db.session.add(session)
        db.session.flush()

        # issue() commits the session together with its first secret
        code = SignedCodeService.issue(session, now)

        logger.info("Session %s started for class %s by %s (window %d, duration %d)",
                    session.id, class_group.id, owner.id, window, duration)
        return session, code

    @classmethod
    def end_session(cls, session: AttendanceSession, owner, now: Optional[datetime] = None) -> int:
        """Close a session early; members without a record are marked absent."""
        cls._require_owner(session.class_group, owner)
        if not session.is_active:
            raise ValidationError("Session has already ended")

        now = now or utcnow()
        absent = SessionSweeper.backfill_absences(session, now)
        session.close(cls.ENDED_BY_OWNER, now)
        db.session.commit()

        logger.info("Session %s ended by owner %s, %d member(s) marked absent",
                    session.id, owner.id, absent)
        return absent

    @classmethod
    def update_location(
        cls,
        class_group: ClassGroup,
        owner,
        latitude: Any,
        longitude: Any,
        radius: Any = None
    ) -> ClassGroup:
        """Set the class anchor; check-ins read it fresh on every attempt."""
        cls._require_owner(class_group, owner)

        lat, lng = Validator.validate_coordinates(latitude, longitude)
        class_group.latitude = lat
        class_group.longitude = lng
        if radius is not None:
            class_group.proximity_radius_meters = Validator.validate_radius(radius)

        db.session.commit()
        logger.info("Class %s location set to (%.6f, %.6f), radius %sm",
                    class_group.id, lat, lng, class_group.proximity_radius_meters)
        return class_group

    @classmethod
    def rotate_code(cls, session: AttendanceSession, owner, now: Optional[datetime] = None) -> SignedCode:
        """Replace the session's live code; the previous one stops verifying."""
        cls._require_owner(session.class_group, owner)
        if not session.is_active:
            raise ValidationError("Session has ended")
        return SignedCodeService.issue(session, now)
