"""Attendance session with its window settings and live signed-code slot."""
from datetime import datetime
from rollcall import db
from rollcall.models.base import BaseModel

class AttendanceSession(BaseModel):
    """One bounded attendance-taking period for a class meeting."""

    __tablename__ = 'attendance_sessions'

    class_id = db.Column(db.Integer, db.ForeignKey('classes.id'), nullable=False, index=True)
    date = db.Column(db.Date, nullable=False)
    start_time = db.Column(db.Time, nullable=False)  # UTC
    window_minutes = db.Column(db.Integer, nullable=False, default=15)
    duration_minutes = db.Column(db.Integer, nullable=False, default=60)
    is_active = db.Column(db.Boolean, nullable=False, default=True, index=True)
    end_time = db.Column(db.DateTime, nullable=True)
    closed_reason = db.Column(db.String(30), nullable=True)  # time_expired, ended_by_owner

    # At most one live signed-code secret per session
    code_secret = db.Column(db.String(64), nullable=True)
    code_expires_at = db.Column(db.DateTime, nullable=True)

    # Relationships
    class_group = db.relationship('ClassGroup', backref=db.backref('sessions', lazy='dynamic'))
    records = db.relationship('AttendanceRecord', backref='session', lazy='dynamic')

    @property
    def starts_at(self) -> datetime:
        return datetime.combine(self.date, self.start_time)

    def close(self, reason: str, now: datetime) -> None:
        """Close the session; only end_time and closed_reason change afterwards."""
        self.is_active = False
        self.end_time = now
        self.closed_reason = reason
        self.code_secret = None
        self.code_expires_at = None

    def to_dict(self):
        """Convert to dictionary."""
        return super().to_dict(exclude=['code_secret'])

    def __repr__(self):
        return f'<AttendanceSession {self.id} class={self.class_id}>'
