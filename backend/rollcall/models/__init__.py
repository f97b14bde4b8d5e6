"""Models package with all models."""
from .base import BaseModel
from .user import User, UserRole
from .class_group import ClassGroup, ClassEnrollment
from .attendance_session import AttendanceSession
from .attendance import AttendanceRecord, AttendanceMethod, AttendanceStatus, ReviewStatus
from .audit_log import AttendanceAuditLog
from .enrollment_profile import EnrollmentProfile

__all__ = [
    'BaseModel', 'User', 'UserRole',
    'ClassGroup', 'ClassEnrollment',
    'AttendanceSession', 'AttendanceRecord',
    'AttendanceMethod', 'AttendanceStatus', 'ReviewStatus',
    'AttendanceAuditLog', 'EnrollmentProfile'
]
