"""User model referenced by sessions, rosters and records."""
from enum import Enum
from rollcall import db
from rollcall.models.base import BaseModel

class UserRole(Enum):
    """User roles enumeration."""
    STUDENT = 'student'
    PROFESSOR = 'professor'
    ADMIN = 'admin'

class User(BaseModel):
    """Members (students) and session owners (professors)."""

    __tablename__ = 'users'

    email = db.Column(db.String(255), unique=True, nullable=False, index=True)
    name = db.Column(db.String(255), nullable=False)
    role = db.Column(db.Enum(UserRole), nullable=False, default=UserRole.STUDENT)
    is_active = db.Column(db.Boolean, default=True, nullable=False)

    def is_professor(self) -> bool:
        """Check if user may own sessions."""
        return self.role in [UserRole.PROFESSOR, UserRole.ADMIN]

    def is_student(self) -> bool:
        """Check if user is a student."""
        return self.role == UserRole.STUDENT

    def __repr__(self) -> str:
        return f'<User {self.email}>'
