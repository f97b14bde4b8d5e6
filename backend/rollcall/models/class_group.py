"""Class model carrying the geographic anchor used for proximity checks."""
from rollcall import db
from rollcall.models.base import BaseModel

class ClassGroup(BaseModel):
    """A class (course section) and its ClassLocation anchor."""

    __tablename__ = 'classes'

    name = db.Column(db.String(255), nullable=False)
    code = db.Column(db.String(50), nullable=True)
    room = db.Column(db.String(50), nullable=True)
    owner_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=False)

    # Location anchor; NULL until the owner starts a session or sets it
    latitude = db.Column(db.Float, nullable=True)
    longitude = db.Column(db.Float, nullable=True)
    proximity_radius_meters = db.Column(db.Float, nullable=False, default=50)

    # Relationships
    owner = db.relationship('User', backref=db.backref('owned_classes', lazy='dynamic'))
    enrollments = db.relationship('ClassEnrollment', backref='class_group', lazy='dynamic')

    def has_anchor(self) -> bool:
        """Check if the owner configured a location."""
        return self.latitude is not None and self.longitude is not None

    def is_owned_by(self, user) -> bool:
        return user is not None and self.owner_id == user.id

    def roster_ids(self) -> set:
        """Member ids enrolled in this class."""
        return {enrollment.member_id for enrollment in self.enrollments}

    def is_enrolled(self, member_id: int) -> bool:
        return self.enrollments.filter_by(member_id=member_id).first() is not None

    def to_dict(self):
        """Convert to dictionary."""
        data = super().to_dict()
        data['location'] = {
            'latitude': self.latitude,
            'longitude': self.longitude,
            'radius_meters': self.proximity_radius_meters
        }
        return data

    def __repr__(self):
        return f'<ClassGroup {self.name}>'

class ClassEnrollment(BaseModel):
    """Roster membership of a member in a class."""

    __tablename__ = 'class_enrollments'
    __table_args__ = (
        db.UniqueConstraint('class_id', 'member_id', name='uq_class_enrollment'),
    )

    class_id = db.Column(db.Integer, db.ForeignKey('classes.id'), nullable=False, index=True)
    member_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=False, index=True)

    member = db.relationship('User', backref=db.backref('enrollments', lazy='dynamic'))
