"""Error taxonomy for the attendance engine."""
from typing import Any, Dict, Optional


class AttendanceError(Exception):
    """Base class for every engine error that reaches a caller."""

    code = 'attendance_error'
    status_code = 400

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        data = {'error': self.message, 'code': self.code}
        data.update(self.details)
        return data


class ValidationError(AttendanceError):
    """Malformed coordinates, missing fields. Reported immediately, never retried."""
    code = 'validation_error'
    status_code = 400


class AuthorizationError(AttendanceError):
    """Caller is not enrolled in the class, or not the session owner."""
    code = 'not_authorized'
    status_code = 403


class NotFoundError(AttendanceError):
    code = 'not_found'
    status_code = 404


class WindowClosedError(AttendanceError):
    """The attendance window rejects the attempt. Only a manual override can help."""
    code = 'window_closed'
    status_code = 400

    def __init__(self, message: str):
        super().__init__(message, {'windowClosed': True})


class NotRegisteredError(AttendanceError):
    code = 'face_not_registered'
    status_code = 400

    def __init__(self, message: str = 'Face not registered. Please register your face first.'):
        super().__init__(message)


class DuplicateIdentityError(AttendanceError):
    """Enrollment captures match another member's stored descriptor."""
    code = 'duplicate_identity'
    status_code = 409

    def __init__(self, similarity: float):
        super().__init__(
            'This face is already registered under another identity.',
            {'similarity': similarity},
        )


class OutOfRangeError(AttendanceError):
    """Member is outside the class geofence."""
    code = 'out_of_range'
    status_code = 400

    def __init__(self, distance: float, allowed_radius: float, room: Optional[str] = None):
        super().__init__(
            'You are not within the classroom proximity.',
            {'distance': round(distance), 'allowedRadius': allowed_radius, 'room': room},
        )
        self.distance = distance
        self.allowed_radius = allowed_radius
        self.room = room


class VerificationFailedError(AttendanceError):
    """The verification channel rejected the member's proof."""
    code = 'verification_failed'
    status_code = 401


class ServiceUnavailableError(AttendanceError):
    """The vision oracle is throttling or unreachable. Safe to retry later."""
    code = 'service_busy'
    status_code = 503

    def __init__(self, message: str = 'Verification service is busy. Please try again shortly.'):
        super().__init__(message, {'serviceBusy': True})


class AlreadyRecordedError(AttendanceError):
    """Not a failure: a record already exists for (session, member)."""
    code = 'already_recorded'
    status_code = 200

    def __init__(self, message: str = 'Your attendance was already recorded for this session'):
        super().__init__(message, {'alreadyCheckedIn': True})


class StorageConstraintViolation(AttendanceError):
    """A storage constraint other than the record uniqueness rule was violated."""
    code = 'storage_error'
    status_code = 500
