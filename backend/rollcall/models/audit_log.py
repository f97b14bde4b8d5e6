"""Append-only audit trail of manual attendance changes."""
from rollcall import db
from rollcall.models.base import BaseModel

class AttendanceAuditLog(BaseModel):
    """One manual status change. Written once, never updated."""

    __tablename__ = 'attendance_audit_log'

    record_id = db.Column(db.Integer, db.ForeignKey('attendance_records.id'), nullable=False, index=True)
    session_id = db.Column(db.Integer, db.ForeignKey('attendance_sessions.id'), nullable=False, index=True)
    member_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=False)
    actor_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=False)

    action = db.Column(db.String(10), nullable=False)  # create, update
    previous_status = db.Column(db.String(10), nullable=True)
    new_status = db.Column(db.String(10), nullable=False)
    reason = db.Column(db.Text, nullable=False)

    record = db.relationship('AttendanceRecord', backref=db.backref('audit_entries', lazy='dynamic'))

    def __repr__(self):
        return f'<AttendanceAuditLog {self.record_id} {self.previous_status}->{self.new_status}>'
