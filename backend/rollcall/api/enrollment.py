"""Face enrollment API endpoints."""
from flask import Blueprint, g, jsonify, request
from flask_jwt_extended import jwt_required

from rollcall import limiter
from rollcall.services.enrollment_service import EnrollmentService
from rollcall.utils.decorators import student_required
from rollcall.utils.helpers import success_response

enrollment_bp = Blueprint('enrollment', __name__)

@enrollment_bp.route('/register', methods=['POST'])
@jwt_required()
@student_required
@limiter.limit("5 per hour")
def register_face():
    """Register the current member's five-angle face captures."""
    data = request.get_json(silent=True) or {}

    result = EnrollmentService.register(g.current_user.id, data.get('captures'))
    status_code = 200 if result.success else result.error.status_code
    return jsonify(result.to_dict()), status_code

@enrollment_bp.route('/status', methods=['GET'])
@jwt_required()
@student_required
def registration_status():
    """Whether the current member has a face profile."""
    return success_response(data={'registered': EnrollmentService.has_profile(g.current_user.id)})
