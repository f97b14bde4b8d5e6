"""Shared fixtures for the attendance engine tests."""
from datetime import datetime, timedelta

import pytest
from flask_jwt_extended import create_access_token

from rollcall import create_app, db
from rollcall.models.attendance_session import AttendanceSession
from rollcall.models.class_group import ClassEnrollment, ClassGroup
from rollcall.models.user import User, UserRole
from rollcall.services.vision_oracle import (
    DuplicateMatch, FaceAnalysis, FaceComparison, Liveness, Similarity, VisionOracle
)

SESSION_START = datetime(2026, 3, 2, 10, 0)

CLASS_LAT = 30.0444
CLASS_LNG = 31.2357

CAPTURES = {angle: f'{angle}-image' for angle in ('front', 'left', 'right', 'up', 'blink')}


def minutes_after_start(minutes, seconds=0):
    return SESSION_START + timedelta(minutes=minutes, seconds=seconds)


class FakeVisionOracle(VisionOracle):
    """Deterministic oracle; tests tweak its canned answers."""

    def __init__(self):
        self.analyses = {}
        self.comparison = FaceComparison('valid', Similarity.LIKELY_SAME, 92.0, 'features match')
        self.duplicate = DuplicateMatch(False, None, 12.0)
        self.error = None
        self.calls = []

    def analyze_face(self, image, expected_pose):
        self.calls.append(('analyze_face', expected_pose))
        if self.error:
            raise self.error
        if expected_pose in self.analyses:
            return self.analyses[expected_pose]
        return FaceAnalysis(
            face_count=1,
            liveness=Liveness.LIVE,
            quality_score=80.0,
            descriptor=f'descriptor of {image}',
            pose_verified=True,
            status='success'
        )

    def compare_faces(self, candidate_image, reference_descriptor):
        self.calls.append(('compare_faces', reference_descriptor))
        if self.error:
            raise self.error
        return self.comparison

    def find_duplicate(self, new_descriptor, other_descriptors):
        self.calls.append(('find_duplicate', sorted(other_descriptors)))
        if self.error:
            raise self.error
        return self.duplicate


@pytest.fixture
def app():
    """Create test app."""
    app = create_app('testing')
    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture
def oracle(app):
    fake = FakeVisionOracle()
    app.extensions['vision_oracle'] = fake
    return fake


@pytest.fixture
def professor(app):
    return User(email='prof@university.edu', name='Prof Owner', role=UserRole.PROFESSOR).save()


@pytest.fixture
def other_professor(app):
    return User(email='other.prof@university.edu', name='Other Prof', role=UserRole.PROFESSOR).save()


@pytest.fixture
def student(app):
    return User(email='student@university.edu', name='First Student', role=UserRole.STUDENT).save()


@pytest.fixture
def second_student(app):
    return User(email='second@university.edu', name='Second Student', role=UserRole.STUDENT).save()


@pytest.fixture
def outsider(app):
    """A student who is not enrolled in the class."""
    return User(email='outsider@university.edu', name='Not Enrolled', role=UserRole.STUDENT).save()


@pytest.fixture
def class_group(app, professor, student, second_student):
    class_group = ClassGroup(
        name='Distributed Systems',
        code='CS401',
        room='B-204',
        owner_id=professor.id,
        latitude=CLASS_LAT,
        longitude=CLASS_LNG,
        proximity_radius_meters=50
    ).save()
    for member in (student, second_student):
        ClassEnrollment(class_id=class_group.id, member_id=member.id).save()
    return class_group


@pytest.fixture
def session(app, class_group):
    """Active session starting 10:00 with a 15 minute window and 60 minute duration."""
    return AttendanceSession(
        class_id=class_group.id,
        date=SESSION_START.date(),
        start_time=SESSION_START.time(),
        window_minutes=15,
        duration_minutes=60,
        is_active=True
    ).save()


@pytest.fixture
def auth_headers(app):
    def make(user):
        token = create_access_token(identity=str(user.id))
        return {'Authorization': f'Bearer {token}'}
    return make
