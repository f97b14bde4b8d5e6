"""
Check-in pipeline.

Every submission goes through the same pre-checks (session, window,
enrollment, existing record) before the method-specific verification
runs. The pipeline never lets an engine error escape: each attempt ends
in a :class:`CheckInOutcome`.
"""
import logging
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional

from flask import current_app

from rollcall import db
from rollcall.models.attendance import (
    AttendanceMethod, AttendanceRecord, AttendanceStatus, ReviewStatus
)
from rollcall.models.attendance_session import AttendanceSession
from rollcall.services.enrollment_service import EnrollmentService
from rollcall.services.geo_service import GeoService
from rollcall.services.record_store import RecordStore
from rollcall.services.signed_code_service import SignedCodeService
from rollcall.services.vision_oracle import Similarity, VisionOracle, get_vision_oracle
from rollcall.services.window_policy import WindowPolicy
from rollcall.utils.errors import (
    AlreadyRecordedError, AttendanceError, AuthorizationError, NotFoundError,
    NotRegisteredError, OutOfRangeError, ValidationError, VerificationFailedError,
    WindowClosedError
)
from rollcall.utils.helpers import utcnow
from rollcall.utils.validators import Validator

logger = logging.getLogger(__name__)

class OutcomeStatus(Enum):
    ACCEPTED = 'accepted'
    ACCEPTED_PENDING_REVIEW = 'accepted_pending_review'
    ALREADY_RECORDED = 'already_recorded'
    REJECTED = 'rejected'

@dataclass
class CheckInRequest:
    """One member submission."""
    method: str
    image: Optional[str] = None
    code_payload: Any = None
    latitude: Any = None
    longitude: Any = None
    accuracy: Any = None
    is_timeout_fallback: bool = False
    location_status: Optional[str] = None

    @classmethod
    def from_json(cls, data: Dict[str, Any]) -> 'CheckInRequest':
        return cls(
            method=data.get('method'),
            image=data.get('image'),
            code_payload=data.get('codePayload'),
            latitude=data.get('latitude'),
            longitude=data.get('longitude'),
            accuracy=data.get('accuracy'),
            is_timeout_fallback=bool(data.get('isTimeoutFallback', False)),
            location_status=data.get('locationStatus')
        )

@dataclass
class Verdict:
    """What a verification strategy decided about an accepted attempt."""
    method: AttendanceMethod
    score: float
    review_status: Optional[ReviewStatus] = ReviewStatus.VERIFIED
    pending_reason: Optional[str] = None
    distance: Optional[float] = None
    allowed_radius: Optional[float] = None
    room: Optional[str] = None

@dataclass
class CheckInOutcome:
    """Terminal result of one check-in attempt."""
    status: OutcomeStatus
    record: Optional[AttendanceRecord] = None
    is_late: bool = False
    verdict: Optional[Verdict] = None
    error: Optional[AttendanceError] = None

    @property
    def success(self) -> bool:
        return self.status != OutcomeStatus.REJECTED

    @property
    def http_status(self) -> int:
        if self.error is not None and self.status == OutcomeStatus.REJECTED:
            return self.error.status_code
        return 200

    def to_response(self) -> Dict[str, Any]:
        """Response body of the check-in endpoint."""
        if self.status == OutcomeStatus.REJECTED:
            body = {'success': False}
            body.update(self.error.to_dict())
            return body

        body = {
            'success': True,
            'alreadyCheckedIn': self.status == OutcomeStatus.ALREADY_RECORDED,
            'pendingReview': self.status == OutcomeStatus.ACCEPTED_PENDING_REVIEW,
            'isLate': self.is_late,
        }
        if self.record is not None:
            body['status'] = self.record.status.value
        if self.verdict is not None:
            body['method'] = self.verdict.method.value
            body['verificationScore'] = self.verdict.score
            if self.verdict.distance is not None:
                body['distance'] = round(self.verdict.distance)
                body['allowedRadius'] = self.verdict.allowed_radius
            if self.verdict.room is not None:
                body['room'] = self.verdict.room
            if self.verdict.pending_reason:
                body['reviewReason'] = self.verdict.pending_reason
        if self.status == OutcomeStatus.ALREADY_RECORDED:
            body['message'] = AlreadyRecordedError().message
        return body

def _accuracy_score(accuracy: Optional[float]) -> float:
    if accuracy is None:
        return 0.5
    return max(0.0, min(1.0, (100 - accuracy) / 100))

class CheckInService:
    """Service running member check-ins through the verification channels."""

    TIMEOUT_FALLBACK_SCORE = 0.3

    @classmethod
    def check_in(
        cls,
        session_id: int,
        member_id: int,
        request: CheckInRequest,
        now: Optional[datetime] = None,
        oracle: Optional[VisionOracle] = None
    ) -> CheckInOutcome:
        """
        Run one check-in attempt.

        Args:
            session_id: Target session
            member_id: Submitting member
            request: Method and its proof
            now: Evaluation instant, server clock by default

        Returns:
            CheckInOutcome; rejections carry the typed error
        """
        now = now or utcnow()

        try:
            return cls._run(session_id, member_id, request, now, oracle)
        except AlreadyRecordedError:
            record = RecordStore.find(session_id, member_id)
            return CheckInOutcome(
                OutcomeStatus.ALREADY_RECORDED,
                record=record,
                is_late=bool(record and record.late_submission)
            )
        except AttendanceError as error:
            logger.info("Check-in rejected: session %s member %s method %s: %s",
                        session_id, member_id, request.method, error.message)
            return CheckInOutcome(OutcomeStatus.REJECTED, error=error)

    @classmethod
    def _run(cls, session_id, member_id, request, now, oracle) -> CheckInOutcome:
        # 1. Session
        session = db.session.get(AttendanceSession, session_id)
        if session is None:
            raise NotFoundError("Session not found")

        # 2. Window, evaluated server-side on every attempt
        window = WindowPolicy.evaluate(session, now)
        if not window.is_open:
            raise WindowClosedError(window.error)

        # 3. Enrollment
        if not session.class_group.is_enrolled(member_id):
            raise AuthorizationError("You are not enrolled in this class")

        # 4. Fast path for repeat submissions; the insert below stays authoritative
        if RecordStore.find(session.id, member_id) is not None:
            raise AlreadyRecordedError()

        if request.method == AttendanceMethod.FACE.value:
            verdict = cls._verify_face(session, member_id, request, oracle or get_vision_oracle())
        elif request.method == AttendanceMethod.CODE.value:
            verdict, window = cls._verify_code(session, request, now)
        elif request.method == AttendanceMethod.PROXIMITY.value:
            verdict = cls._verify_proximity(session, request)
        else:
            raise ValidationError("method must be one of: face, code, proximity")

        manual_reason = None
        if verdict.pending_reason:
            manual_reason = f"Proximity unverified: {verdict.pending_reason}. Flagged for professor review."

        record = RecordStore.insert_record(
            session,
            member_id,
            method=verdict.method,
            status=AttendanceStatus.LATE if window.is_late else AttendanceStatus.PRESENT,
            verification_score=verdict.score,
            late_submission=window.is_late,
            review_status=verdict.review_status,
            manual_reason=manual_reason,
            now=now
        )

        status = (OutcomeStatus.ACCEPTED_PENDING_REVIEW
                  if verdict.review_status == ReviewStatus.UNVERIFIED
                  else OutcomeStatus.ACCEPTED)

        logger.info("Check-in %s: session %s member %s method %s score %.2f late=%s",
                    status.value, session.id, member_id, verdict.method.value,
                    verdict.score, window.is_late)

        return CheckInOutcome(status, record=record, is_late=window.is_late, verdict=verdict)

    # =================== STRATEGIES ===================

    @staticmethod
    def _verify_face(session, member_id, request, oracle: VisionOracle) -> Verdict:
        latitude, longitude = Validator.validate_coordinates(request.latitude, request.longitude)

        class_group = session.class_group
        if not class_group.has_anchor():
            raise ValidationError("Class location not configured. Face check-in requires a class location.")

        location = GeoService.verify_location(latitude, longitude, class_group)
        if not location['is_inside']:
            raise OutOfRangeError(location['distance'], location['allowed_radius'], location['room'])

        if not request.image:
            raise ValidationError("Face image required")

        descriptor = EnrollmentService.get_descriptor(member_id)
        if descriptor is None:
            raise NotRegisteredError()

        comparison = oracle.compare_faces(request.image, descriptor)
        if not comparison.is_valid:
            raise VerificationFailedError(comparison.reason or "Face could not be analyzed")

        min_confidence = current_app.config.get('FACE_UNCERTAIN_MIN_CONFIDENCE', 70)
        accepted = (
            comparison.similarity == Similarity.LIKELY_SAME
            or (comparison.similarity == Similarity.UNCERTAIN
                and comparison.confidence_score >= min_confidence)
        )
        if not accepted:
            raise VerificationFailedError("Face verification failed. Please try again.")

        return Verdict(
            method=AttendanceMethod.FACE,
            score=round(comparison.confidence_score / 100, 3),
            distance=location['distance'],
            allowed_radius=location['allowed_radius'],
            room=location['room']
        )

    @staticmethod
    def _verify_code(session, request, now):
        if not request.code_payload:
            raise ValidationError("QR code data required")

        payload = SignedCodeService.parse(request.code_payload)
        if payload['sessionId'] != session.id:
            raise VerificationFailedError("QR code is for a different session")

        verified = SignedCodeService.verify(payload, now)
        return Verdict(method=AttendanceMethod.CODE, score=1.0), verified.window

    @classmethod
    def _verify_proximity(cls, session, request) -> Verdict:
        if request.is_timeout_fallback or request.location_status == 'timeout':
            return Verdict(
                method=AttendanceMethod.PROXIMITY,
                score=cls.TIMEOUT_FALLBACK_SCORE,
                review_status=ReviewStatus.UNVERIFIED,
                pending_reason='location_timeout',
                room=session.class_group.room
            )

        latitude, longitude = Validator.validate_coordinates(request.latitude, request.longitude)
        accuracy_score = _accuracy_score(Validator.validate_accuracy(request.accuracy))

        class_group = session.class_group
        if not class_group.has_anchor():
            return Verdict(
                method=AttendanceMethod.PROXIMITY,
                score=round(accuracy_score, 3),
                review_status=ReviewStatus.UNVERIFIED,
                pending_reason='class_location_not_configured',
                room=class_group.room
            )

        location = GeoService.verify_location(latitude, longitude, class_group)
        if not location['is_inside']:
            raise OutOfRangeError(location['distance'], location['allowed_radius'], location['room'])

        radius = location['allowed_radius']
        distance_score = max(0.0, (radius - location['distance']) / radius)

        return Verdict(
            method=AttendanceMethod.PROXIMITY,
            score=round(distance_score * 0.7 + accuracy_score * 0.3, 3),
            distance=location['distance'],
            allowed_radius=radius,
            room=location['room']
        )
