"""Session owner API endpoints: lifecycle, signed codes, location and manual overrides."""
from flask import Blueprint, current_app, g, request
from flask_jwt_extended import jwt_required

from rollcall import limiter
from rollcall.models.attendance_session import AttendanceSession
from rollcall.models.class_group import ClassGroup
from rollcall.services.record_store import RecordStore
from rollcall.services.session_service import SessionService
from rollcall.services.session_sweeper import SessionSweeper
from rollcall.services.signed_code_service import SignedCodeService
from rollcall.utils.decorators import professor_required
from rollcall.utils.errors import AuthorizationError, NotFoundError, ValidationError
from rollcall.utils.helpers import success_response
from rollcall.utils.validators import Validator

sessions_bp = Blueprint('sessions', __name__)

def _get_session(session_id: int) -> AttendanceSession:
    session = AttendanceSession.get_by_id(session_id)
    if session is None:
        raise NotFoundError("Session not found")
    return session

def _get_owned_session(session_id: int) -> AttendanceSession:
    session = _get_session(session_id)
    if not session.class_group.is_owned_by(g.current_user):
        raise AuthorizationError("You can only manage sessions of your own classes")
    return session

def _code_data(code) -> dict:
    return {
        'payload': code.to_dict(),
        'qr_image': SignedCodeService.render_qr(code),
        'expires_in': current_app.config.get('SIGNED_CODE_TTL_SECONDS', 30)
    }

@sessions_bp.route('', methods=['POST'])
@jwt_required()
@professor_required
@limiter.limit("30 per hour")
def start_session():
    """Open an attendance session for one of the owner's classes."""
    data = request.get_json(silent=True) or {}

    validation = Validator.validate_required_fields(data, ['class_id'])
    if not validation['is_valid']:
        raise ValidationError(validation['errors'][0])

    class_group = ClassGroup.get_by_id(data['class_id'])
    if class_group is None:
        raise NotFoundError("Class not found")

    session, code = SessionService.start_session(
        class_group,
        g.current_user,
        window_minutes=data.get('window_minutes'),
        duration_minutes=data.get('duration_minutes'),
        latitude=data.get('latitude'),
        longitude=data.get('longitude')
    )

    response = success_response(
        data={'session': session.to_dict(), 'code': _code_data(code)},
        message="Session started successfully"
    )
    return response, 201

@sessions_bp.route('/<int:session_id>/end', methods=['POST'])
@jwt_required()
@professor_required
def end_session(session_id):
    """End a session early and mark the remaining members absent."""
    session = _get_session(session_id)
    absent = SessionService.end_session(session, g.current_user)

    return success_response(
        data={'session': session.to_dict(), 'marked_absent': absent},
        message="Session ended"
    )

@sessions_bp.route('/<int:session_id>/code', methods=['POST'])
@jwt_required()
@professor_required
@limiter.limit("10 per minute")
def rotate_code(session_id):
    """Issue a fresh signed code; the previous one stops verifying."""
    session = _get_session(session_id)
    code = SessionService.rotate_code(session, g.current_user)

    return success_response(data=_code_data(code), message="Code rotated")

@sessions_bp.route('/classes/<int:class_id>/location', methods=['PUT'])
@jwt_required()
@professor_required
def update_location(class_id):
    """Set the class anchor used by face and proximity check-ins."""
    data = request.get_json(silent=True) or {}

    class_group = ClassGroup.get_by_id(class_id)
    if class_group is None:
        raise NotFoundError("Class not found")

    class_group = SessionService.update_location(
        class_group,
        g.current_user,
        data.get('latitude'),
        data.get('longitude'),
        radius=data.get('radius')
    )
    return success_response(data=class_group.to_dict(), message="Class location updated")

@sessions_bp.route('/<int:session_id>/records/<int:member_id>/override', methods=['POST'])
@jwt_required()
@professor_required
def override_record(session_id, member_id):
    """Manually set a member's status; always audited."""
    data = request.get_json(silent=True) or {}
    session = _get_session(session_id)

    record = RecordStore.override(
        session,
        member_id,
        data.get('status'),
        data.get('reason'),
        g.current_user
    )
    return success_response(data=record.to_dict(), message="Attendance updated")

@sessions_bp.route('/<int:session_id>/records', methods=['GET'])
@jwt_required()
@professor_required
def list_records(session_id):
    """All records of a session; ``?pending=1`` keeps only those awaiting review."""
    session = _get_owned_session(session_id)

    if request.args.get('pending'):
        records = RecordStore.pending_review(session.id)
    else:
        records = RecordStore.records_for_session(session.id)

    return success_response(data={
        'session': session.to_dict(),
        'records': [record.to_dict() for record in records],
        'total': len(records)
    })

@sessions_bp.route('/<int:session_id>/audit', methods=['GET'])
@jwt_required()
@professor_required
def audit_log(session_id):
    """Manual changes made to a session's records."""
    session = _get_owned_session(session_id)
    entries = RecordStore.audit_log_for_session(session.id)

    return success_response(data={'entries': [entry.to_dict() for entry in entries]})

@sessions_bp.route('/sweep', methods=['POST'])
@jwt_required()
@professor_required
@limiter.limit("10 per minute")
def sweep():
    """Operator trigger for the session sweeper."""
    result = SessionSweeper.run()
    return success_response(data=result.to_dict(), message=f"Closed {result.ended_count} session(s)")
