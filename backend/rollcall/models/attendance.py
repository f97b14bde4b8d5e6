"""Attendance record model with verification details."""
from enum import Enum
from rollcall import db
from rollcall.models.base import BaseModel
from rollcall.utils.helpers import utcnow

class AttendanceMethod(Enum):
    """How a record was produced."""
    FACE = 'face'
    CODE = 'code'
    PROXIMITY = 'proximity'
    MANUAL = 'manual'
    AUTO = 'auto'  # absence backfilled when the session closed

class AttendanceStatus(Enum):
    """Attendance status enumeration."""
    PRESENT = 'present'
    LATE = 'late'
    ABSENT = 'absent'

class ReviewStatus(Enum):
    """Proximity sub-status; unverified records wait for the owner's review."""
    VERIFIED = 'verified'
    UNVERIFIED = 'unverified'

class AttendanceRecord(BaseModel):
    """Attendance record model; at most one per (session, member)."""

    __tablename__ = 'attendance_records'
    __table_args__ = (
        db.UniqueConstraint('session_id', 'member_id', name='uq_attendance_session_member'),
    )

    session_id = db.Column(db.Integer, db.ForeignKey('attendance_sessions.id'), nullable=False, index=True)
    class_id = db.Column(db.Integer, db.ForeignKey('classes.id'), nullable=False)
    member_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=False, index=True)
    timestamp = db.Column(db.DateTime, default=utcnow, nullable=False)

    method = db.Column(db.Enum(AttendanceMethod), nullable=False)
    status = db.Column(db.Enum(AttendanceStatus), nullable=False, default=AttendanceStatus.PRESENT)

    # Verification details
    verification_score = db.Column(db.Float, nullable=True)  # 0..1
    late_submission = db.Column(db.Boolean, default=False, nullable=False)
    review_status = db.Column(db.Enum(ReviewStatus), nullable=True)
    manual_reason = db.Column(db.Text, nullable=True)

    member = db.relationship('User', backref=db.backref('attendance_records', lazy='dynamic'))

    def needs_review(self) -> bool:
        return self.review_status == ReviewStatus.UNVERIFIED

    def to_dict(self):
        """Convert to dictionary."""
        data = super().to_dict()
        data['needs_review'] = self.needs_review()
        return data

    def __repr__(self):
        return f'<AttendanceRecord {self.session_id}-{self.member_id} {self.status.value}>'
