"""Custom decorators for authorization."""
from functools import wraps
from flask import g
from flask_jwt_extended import get_jwt_identity
from rollcall import db
from rollcall.models.user import User
from rollcall.utils.helpers import error_response

def _load_current_user():
    current_user_id = get_jwt_identity()
    try:
        return db.session.get(User, int(current_user_id))
    except (TypeError, ValueError):
        return None

def professor_required(f):
    """Decorator to require a session owner (professor or admin)."""
    @wraps(f)
    def decorated_function(*args, **kwargs):
        user = _load_current_user()

        if not user or not user.is_active:
            return error_response("User not found", 404)

        if not user.is_professor():
            return error_response("Professor access required", 403)

        g.current_user = user
        return f(*args, **kwargs)
    return decorated_function

def student_required(f):
    """Decorator to require student role."""
    @wraps(f)
    def decorated_function(*args, **kwargs):
        user = _load_current_user()

        if not user or not user.is_active:
            return error_response("User not found", 404)

        if not user.is_student():
            return error_response("Student access required", 403)

        g.current_user = user
        return f(*args, **kwargs)
    return decorated_function
