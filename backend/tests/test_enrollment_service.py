"""Tests for multi-angle face enrollment."""
import json

import pytest

from rollcall import db
from rollcall.models.enrollment_profile import EnrollmentProfile
from rollcall.services.enrollment_service import EnrollmentService
from rollcall.services.vision_oracle import DuplicateMatch, FaceAnalysis, Liveness
from rollcall.utils.errors import (
    DuplicateIdentityError, NotRegisteredError, ServiceUnavailableError, ValidationError,
    VerificationFailedError
)

from conftest import CAPTURES


def analysis(**overrides):
    values = dict(
        face_count=1,
        liveness=Liveness.LIVE,
        quality_score=80.0,
        descriptor='descriptor',
        pose_verified=True,
        status='success'
    )
    values.update(overrides)
    return FaceAnalysis(**values)


def test_register_stores_encrypted_composite(student, oracle):
    result = EnrollmentService.register(student.id, CAPTURES)

    assert result.success
    assert result.quality_score == 80.0

    profile = EnrollmentProfile.query.filter_by(member_id=student.id).one()
    assert 'descriptor of front-image' not in profile.descriptor_ciphertext

    composite = json.loads(EnrollmentService.get_descriptor(student.id))
    assert composite['descriptors'] == {
        angle: f'descriptor of {angle}-image' for angle in ('front', 'left', 'right', 'up')
    }
    assert composite['liveness_confirmed'] is True
    assert [call[1] for call in oracle.calls] == ['front', 'left', 'right', 'up', 'blink']


def test_quality_score_is_the_mean(student, oracle):
    oracle.analyses['left'] = analysis(quality_score=70.0)
    oracle.analyses['up'] = analysis(quality_score=90.0)

    result = EnrollmentService.register(student.id, CAPTURES)

    assert result.quality_score == 80.0


def test_missing_angle_rejected(student, oracle):
    captures = dict(CAPTURES)
    del captures['blink']

    result = EnrollmentService.register(student.id, captures)

    assert not result.success
    assert isinstance(result.error, ValidationError)
    assert result.error.details['missing'] == ['blink']
    assert oracle.calls == []


@pytest.mark.parametrize('bad', [
    analysis(liveness=Liveness.UNCERTAIN),
    analysis(liveness=Liveness.SPOOF),
    analysis(face_count=2),
    analysis(quality_score=59.0),
    analysis(pose_verified=False),
    analysis(descriptor=None),
    analysis(status='failure', reason='too dark'),
])
def test_any_failing_capture_aborts(student, oracle, bad):
    oracle.analyses['right'] = bad

    result = EnrollmentService.register(student.id, CAPTURES)

    assert not result.success
    assert isinstance(result.error, VerificationFailedError)
    assert result.error.message.startswith('right:')
    assert len(result.all_errors) == 1
    assert not EnrollmentService.has_profile(student.id)


def test_blink_capture_needs_no_descriptor(student, oracle):
    oracle.analyses['blink'] = analysis(descriptor=None)
    assert EnrollmentService.register(student.id, CAPTURES).success


def test_all_failures_are_reported(student, oracle):
    oracle.analyses['front'] = analysis(quality_score=10.0)
    oracle.analyses['up'] = analysis(liveness=Liveness.SPOOF)

    result = EnrollmentService.register(student.id, CAPTURES)

    assert result.error.message.startswith('front:')
    assert [e.split(':')[0] for e in result.all_errors] == ['front', 'up']


def test_duplicate_identity_rejected(student, second_student, oracle):
    assert EnrollmentService.register(student.id, CAPTURES).success

    oracle.duplicate = DuplicateMatch(True, student.id, 90.0)
    result = EnrollmentService.register(second_student.id, CAPTURES)

    assert not result.success
    assert isinstance(result.error, DuplicateIdentityError)
    assert result.error.status_code == 409
    assert not EnrollmentService.has_profile(second_student.id)
    assert ('find_duplicate', [student.id]) in oracle.calls


def test_similarity_at_threshold_counts_as_duplicate(student, second_student, oracle):
    EnrollmentService.register(student.id, CAPTURES)
    oracle.duplicate = DuplicateMatch(False, None, 85.0)

    result = EnrollmentService.register(second_student.id, CAPTURES)

    assert isinstance(result.error, DuplicateIdentityError)


def test_similarity_below_threshold_allowed(student, second_student, oracle):
    EnrollmentService.register(student.id, CAPTURES)
    oracle.duplicate = DuplicateMatch(False, None, 84.0)

    assert EnrollmentService.register(second_student.id, CAPTURES).success


def test_reregistration_replaces_profile(student, oracle):
    EnrollmentService.register(student.id, CAPTURES)
    oracle.analyses['front'] = analysis(descriptor='new front', quality_score=100.0)

    EnrollmentService.register(student.id, CAPTURES)

    assert EnrollmentProfile.query.filter_by(member_id=student.id).count() == 1
    composite = json.loads(EnrollmentService.get_descriptor(student.id))
    assert composite['descriptors']['front'] == 'new front'


def test_own_profile_not_searched_for_duplicates(student, oracle):
    EnrollmentService.register(student.id, CAPTURES)
    oracle.calls.clear()

    EnrollmentService.register(student.id, CAPTURES)

    assert not any(call[0] == 'find_duplicate' for call in oracle.calls)


def test_oracle_busy_propagates(student, oracle):
    oracle.error = ServiceUnavailableError()
    with pytest.raises(ServiceUnavailableError):
        EnrollmentService.register(student.id, CAPTURES)
    assert not EnrollmentService.has_profile(student.id)


def test_oracle_duplicate_flag_rejects_below_threshold(student, second_student, oracle):
    EnrollmentService.register(student.id, CAPTURES)
    oracle.duplicate = DuplicateMatch(True, student.id, 40.0)

    result = EnrollmentService.register(second_student.id, CAPTURES)

    assert isinstance(result.error, DuplicateIdentityError)
    assert not EnrollmentService.has_profile(second_student.id)


def test_unreadable_profile_reports_not_registered(student, oracle):
    EnrollmentService.register(student.id, CAPTURES)
    profile = EnrollmentProfile.query.filter_by(member_id=student.id).one()
    profile.descriptor_ciphertext = 'not-a-fernet-token'
    db.session.commit()

    with pytest.raises(NotRegisteredError):
        EnrollmentService.get_descriptor(student.id)
