"""Test HTTP endpoints."""
import json
from datetime import date

from rollcall import db
from rollcall.models.attendance import AttendanceRecord
from rollcall.models.audit_log import AttendanceAuditLog
from rollcall.services.session_service import SessionService

from conftest import CAPTURES, CLASS_LAT, CLASS_LNG


def start_now(class_group, professor):
    return SessionService.start_session(class_group, professor)


def test_health_check(client):
    """Test health endpoint."""
    response = client.get('/health')
    assert response.status_code == 200
    data = json.loads(response.data)
    assert data['status'] == 'healthy'


def test_checkin_requires_token(client):
    response = client.post('/api/attendance/checkin', json={'sessionId': 1, 'method': 'code'})
    assert response.status_code == 401
    assert response.get_json()['message'] == 'Authorization token required'


def test_professor_cannot_check_in(client, professor, auth_headers):
    response = client.post('/api/attendance/checkin', headers=auth_headers(professor),
                           json={'sessionId': 1, 'method': 'code'})
    assert response.status_code == 403


def test_code_check_in_over_http(client, class_group, professor, student, auth_headers):
    session, code = start_now(class_group, professor)

    response = client.post('/api/attendance/checkin', headers=auth_headers(student), json={
        'sessionId': session.id,
        'method': 'code',
        'codePayload': code.to_json()
    })

    assert response.status_code == 200
    data = response.get_json()
    assert data['success'] is True
    assert data['alreadyCheckedIn'] is False
    assert data['isLate'] is False
    assert data['status'] == 'present'

    again = client.post('/api/attendance/checkin', headers=auth_headers(student), json={
        'sessionId': session.id,
        'method': 'code',
        'codePayload': code.to_dict()
    })
    assert again.status_code == 200
    assert again.get_json()['alreadyCheckedIn'] is True
    assert AttendanceRecord.query.count() == 1


def test_out_of_range_check_in_over_http(client, class_group, professor, student, auth_headers):
    session, _ = start_now(class_group, professor)

    response = client.post('/api/attendance/checkin', headers=auth_headers(student), json={
        'sessionId': session.id,
        'method': 'proximity',
        'latitude': CLASS_LAT + 0.01,
        'longitude': CLASS_LNG
    })

    assert response.status_code == 400
    data = response.get_json()
    assert data['success'] is False
    assert data['code'] == 'out_of_range'
    assert data['allowedRadius'] == 50
    assert data['room'] == 'B-204'


def test_checkin_requires_session_id(client, student, auth_headers):
    response = client.post('/api/attendance/checkin', headers=auth_headers(student),
                           json={'method': 'code'})
    assert response.status_code == 400
    assert response.get_json()['code'] == 'validation_error'


def test_window_endpoint(client, class_group, professor, student, auth_headers):
    session, _ = start_now(class_group, professor)

    response = client.get(f'/api/attendance/sessions/{session.id}/window', headers=auth_headers(student))

    assert response.status_code == 200
    data = response.get_json()['data']
    assert data['isOpen'] is True
    assert 0 < data['remainingWindowSeconds'] <= 15 * 60


def test_window_endpoint_unknown_session(client, student, auth_headers):
    response = client.get('/api/attendance/sessions/404/window', headers=auth_headers(student))
    assert response.status_code == 404


def test_register_face_over_http(client, student, oracle, auth_headers):
    response = client.post('/api/enrollment/register', headers=auth_headers(student),
                           json={'captures': CAPTURES})

    assert response.status_code == 200
    assert response.get_json() == {'success': True, 'qualityScore': 80.0}

    status = client.get('/api/enrollment/status', headers=auth_headers(student))
    assert status.get_json()['data']['registered'] is True


def test_register_face_reports_all_errors(client, student, oracle, auth_headers):
    response = client.post('/api/enrollment/register', headers=auth_headers(student),
                           json={'captures': {'front': 'x'}})

    assert response.status_code == 400
    assert response.get_json()['success'] is False


def test_start_session_over_http(client, class_group, professor, auth_headers):
    response = client.post('/api/sessions', headers=auth_headers(professor), json={
        'class_id': class_group.id,
        'window_minutes': 10,
        'duration_minutes': 90
    })

    assert response.status_code == 201
    data = response.get_json()['data']
    assert data['session']['window_minutes'] == 10
    assert 'code_secret' not in data['session']
    assert data['code']['qr_image'].startswith('data:image/png;base64,')
    assert data['code']['payload']['sessionId'] == data['session']['id']


def test_student_cannot_start_session(client, class_group, student, auth_headers):
    response = client.post('/api/sessions', headers=auth_headers(student),
                           json={'class_id': class_group.id})
    assert response.status_code == 403


def test_other_professor_cannot_end_session(client, session, other_professor, auth_headers):
    response = client.post(f'/api/sessions/{session.id}/end', headers=auth_headers(other_professor))
    assert response.status_code == 403
    assert response.get_json()['code'] == 'not_authorized'


def test_update_location_over_http(client, class_group, professor, auth_headers):
    response = client.put(f'/api/sessions/classes/{class_group.id}/location', headers=auth_headers(professor),
                          json={'latitude': 40.0, 'longitude': -3.7, 'radius': 30})

    assert response.status_code == 200
    assert response.get_json()['data']['location'] == {
        'latitude': 40.0, 'longitude': -3.7, 'radius_meters': 30
    }


def test_override_and_audit_over_http(client, session, professor, student, auth_headers):
    response = client.post(f'/api/sessions/{session.id}/records/{student.id}/override',
                           headers=auth_headers(professor),
                           json={'status': 'present', 'reason': 'Signed the paper sheet'})

    assert response.status_code == 200
    assert response.get_json()['data']['method'] == 'manual'
    assert AttendanceAuditLog.query.count() == 1

    audit = client.get(f'/api/sessions/{session.id}/audit', headers=auth_headers(professor))
    entries = audit.get_json()['data']['entries']
    assert entries[0]['reason'] == 'Signed the paper sheet'

    records = client.get(f'/api/sessions/{session.id}/records', headers=auth_headers(professor))
    assert records.get_json()['data']['total'] == 1


def test_override_without_reason_rejected(client, session, professor, student, auth_headers):
    response = client.post(f'/api/sessions/{session.id}/records/{student.id}/override',
                           headers=auth_headers(professor), json={'status': 'present'})
    assert response.status_code == 400
    assert AttendanceAuditLog.query.count() == 0


def test_sweep_endpoint(client, session, professor, auth_headers):
    session.date = date(2020, 1, 1)
    db.session.commit()

    response = client.post('/api/sessions/sweep', headers=auth_headers(professor))

    assert response.status_code == 200
    assert response.get_json()['data'] == {'endedCount': 1, 'sessionIds': [session.id]}
