"""Stored face descriptor bundle of a member."""
from rollcall import db
from rollcall.models.base import BaseModel

class EnrollmentProfile(BaseModel):
    """Multi-angle descriptor bundle; one per member, upserted on re-registration."""

    __tablename__ = 'enrollment_profiles'

    member_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=False, unique=True, index=True)
    descriptor_ciphertext = db.Column(db.Text, nullable=False)  # Fernet token
    quality_score = db.Column(db.Float, nullable=False)
    registration_method = db.Column(db.String(50), nullable=False, default='multi_angle')
    registered_at = db.Column(db.DateTime, nullable=False)

    member = db.relationship('User', backref=db.backref('enrollment_profile', uselist=False))

    def to_dict(self):
        """Convert to dictionary without the descriptor."""
        return super().to_dict(exclude=['descriptor_ciphertext'])
