"""Member check-in API endpoints."""
from flask import Blueprint, g, jsonify, request
from flask_jwt_extended import jwt_required

from rollcall import db, limiter
from rollcall.models.attendance_session import AttendanceSession
from rollcall.services.checkin_service import CheckInRequest, CheckInService
from rollcall.services.window_policy import WindowPolicy
from rollcall.utils.decorators import student_required
from rollcall.utils.errors import NotFoundError, ValidationError
from rollcall.utils.helpers import success_response, utcnow

checkin_bp = Blueprint('checkin', __name__)

@checkin_bp.route('/checkin', methods=['POST'])
@jwt_required()
@student_required
@limiter.limit("20 per minute")
def check_in():
    """Submit attendance through face, code or proximity verification."""
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        raise ValidationError("Request body must be a JSON object")

    session_id = data.get('sessionId')
    if isinstance(session_id, bool) or not isinstance(session_id, int):
        raise ValidationError("sessionId is required")

    outcome = CheckInService.check_in(
        session_id=session_id,
        member_id=g.current_user.id,
        request=CheckInRequest.from_json(data)
    )
    return jsonify(outcome.to_response()), outcome.http_status

@checkin_bp.route('/sessions/<int:session_id>/window', methods=['GET'])
@jwt_required()
def window_state(session_id):
    """Advisory timer state; the check-in endpoint re-evaluates on every attempt."""
    session = db.session.get(AttendanceSession, session_id)
    if session is None:
        raise NotFoundError("Session not found")

    state = WindowPolicy.evaluate(session, utcnow())
    return success_response(data=state.to_dict())
