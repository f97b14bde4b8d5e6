"""Tests for session lifecycle operations."""
import pytest

from rollcall.models.attendance import AttendanceMethod, AttendanceStatus
from rollcall.services.record_store import RecordStore
from rollcall.services.session_service import SessionService
from rollcall.services.signed_code_service import SignedCodeService
from rollcall.utils.errors import AuthorizationError, ValidationError, VerificationFailedError

from conftest import SESSION_START, minutes_after_start


def test_start_session_uses_defaults_and_issues_code(class_group, professor):
    session, code = SessionService.start_session(class_group, professor, now=SESSION_START)

    assert session.is_active
    assert session.starts_at == SESSION_START
    assert session.window_minutes == 15
    assert session.duration_minutes == 60
    assert code.sessionId == session.id
    assert session.code_secret == code.secret


def test_start_session_sets_owner_position_as_anchor(class_group, professor):
    SessionService.start_session(class_group, professor, latitude=48.8566, longitude='2.3522',
                                 now=SESSION_START)

    assert class_group.latitude == 48.8566
    assert class_group.longitude == 2.3522


def test_start_session_requires_owner(class_group, other_professor):
    with pytest.raises(AuthorizationError):
        SessionService.start_session(class_group, other_professor, now=SESSION_START)


@pytest.mark.parametrize('window, duration', [(0, 60), (61, 60), (15, 481), (15, 0), ('15', 60)])
def test_start_session_validates_minutes(class_group, professor, window, duration):
    with pytest.raises(ValidationError):
        SessionService.start_session(class_group, professor, window_minutes=window,
                                     duration_minutes=duration, now=SESSION_START)


def test_short_session_caps_default_window(class_group, professor):
    session, _ = SessionService.start_session(class_group, professor, duration_minutes=10,
                                              now=SESSION_START)
    assert session.window_minutes == 10


def test_end_session_backfills_and_closes(session, professor, student, second_student):
    RecordStore.insert_record(session, student.id, AttendanceMethod.CODE, AttendanceStatus.PRESENT)

    absent = SessionService.end_session(session, professor, now=minutes_after_start(20))

    assert absent == 1
    assert session.is_active is False
    assert session.closed_reason == 'ended_by_owner'
    assert session.end_time == minutes_after_start(20)
    assert RecordStore.find(session.id, second_student.id).method == AttendanceMethod.AUTO


def test_end_session_twice_rejected(session, professor):
    SessionService.end_session(session, professor, now=minutes_after_start(20))
    with pytest.raises(ValidationError):
        SessionService.end_session(session, professor, now=minutes_after_start(21))


def test_end_session_requires_owner(session, other_professor):
    with pytest.raises(AuthorizationError):
        SessionService.end_session(session, other_professor)


def test_update_location(class_group, professor):
    SessionService.update_location(class_group, professor, 51.5074, -0.1278, radius=75)

    assert (class_group.latitude, class_group.longitude) == (51.5074, -0.1278)
    assert class_group.proximity_radius_meters == 75


@pytest.mark.parametrize('lat, lng, radius', [(95, 0, None), (0, 0, 0), (0, 0, -5), (None, 0, None)])
def test_update_location_validates(class_group, professor, lat, lng, radius):
    with pytest.raises(ValidationError):
        SessionService.update_location(class_group, professor, lat, lng, radius=radius)


def test_update_location_requires_owner(class_group, other_professor):
    with pytest.raises(AuthorizationError):
        SessionService.update_location(class_group, other_professor, 51.5, -0.12)


def test_rotate_code_invalidates_previous(session, professor):
    first = SessionService.rotate_code(session, professor, now=minutes_after_start(1))
    second = SessionService.rotate_code(session, professor, now=minutes_after_start(1, seconds=30))

    with pytest.raises(VerificationFailedError):
        SignedCodeService.verify(first.to_dict(), minutes_after_start(1, seconds=29))
    assert SignedCodeService.verify(second.to_dict(), minutes_after_start(1, seconds=35))


def test_rotate_code_refuses_closed_session(session, professor):
    SessionService.end_session(session, professor, now=minutes_after_start(20))
    with pytest.raises(ValidationError):
        SessionService.rotate_code(session, professor)
