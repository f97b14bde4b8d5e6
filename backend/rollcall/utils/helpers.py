"""Helper functions for the application."""
from datetime import datetime, timezone
from flask import jsonify
from typing import Any

def utcnow() -> datetime:
    """Naive UTC timestamp, matching how datetimes are stored."""
    return datetime.now(timezone.utc).replace(tzinfo=None)

def to_epoch_ms(value: datetime) -> int:
    """Convert a naive UTC datetime to epoch milliseconds."""
    return int(value.replace(tzinfo=timezone.utc).timestamp() * 1000)

def from_epoch_ms(value: int) -> datetime:
    """Convert epoch milliseconds to a naive UTC datetime."""
    return datetime.fromtimestamp(value / 1000, tz=timezone.utc).replace(tzinfo=None)

def handle_error(error, status_code: int):
    """Handle application errors with consistent format."""
    return jsonify({
        'error': True,
        'message': str(error),
        'status_code': status_code
    }), status_code

def attendance_error_response(error):
    """Render an engine error with its structured details."""
    body = {
        'success': False,
        'message': error.message,
        'status_code': error.status_code
    }
    body.update(error.to_dict())
    return jsonify(body), error.status_code

def success_response(data: Any = None, message: str = "Success"):
    """Return consistent success response."""
    response = {
        'error': False,
        'message': message
    }

    if data is not None:
        response['data'] = data

    return jsonify(response)

def error_response(message: str, status_code: int = 400):
    """Return consistent error response."""
    return jsonify({
        'error': True,
        'message': message,
        'status_code': status_code
    }), status_code
