"""Validation utilities for the application."""
import math
from typing import Any, Dict, List, Optional, Tuple

from rollcall.utils.errors import ValidationError

class Validator:
    """Validation helper class."""

    @staticmethod
    def _to_float(value: Any, field: str) -> float:
        if isinstance(value, bool):
            raise ValidationError(f"{field} must be a number")
        try:
            number = float(value)
        except (TypeError, ValueError):
            raise ValidationError(f"{field} must be a number")
        if math.isnan(number) or math.isinf(number):
            raise ValidationError(f"{field} must be a finite number")
        return number

    @staticmethod
    def validate_coordinates(latitude: Any, longitude: Any) -> Tuple[float, float]:
        """Validate GPS coordinates and return them as floats."""
        if latitude is None or longitude is None:
            raise ValidationError("Location required: please enable GPS to check in.")

        lat = Validator._to_float(latitude, 'latitude')
        lng = Validator._to_float(longitude, 'longitude')

        if lat < -90 or lat > 90 or lng < -180 or lng > 180:
            raise ValidationError("Invalid GPS coordinates")

        return lat, lng

    @staticmethod
    def validate_accuracy(accuracy: Any) -> Optional[float]:
        """Reported GPS accuracy in meters; optional, never negative."""
        if accuracy is None:
            return None
        value = Validator._to_float(accuracy, 'accuracy')
        if value < 0:
            raise ValidationError("accuracy must not be negative")
        return value

    @staticmethod
    def validate_radius(radius: Any) -> float:
        value = Validator._to_float(radius, 'radius')
        if value <= 0:
            raise ValidationError("radius must be greater than zero")
        return value

    @staticmethod
    def validate_reason(reason: Any) -> str:
        """A manual change must always say why."""
        if not isinstance(reason, str) or not reason.strip():
            raise ValidationError("A reason is required for manual attendance changes")
        return reason.strip()

    @staticmethod
    def validate_minutes(value: Any, field: str, minimum: int, maximum: int) -> int:
        if isinstance(value, bool) or not isinstance(value, int):
            raise ValidationError(f"{field} must be an integer")
        if value < minimum or value > maximum:
            raise ValidationError(f"{field} must be between {minimum} and {maximum}")
        return value

    @staticmethod
    def validate_required_fields(data: Dict, required_fields: List[str]) -> Dict[str, Any]:
        """Validate required fields in data."""
        errors = []

        for field in required_fields:
            if field not in data or data[field] in (None, ''):
                errors.append(f"Missing required field: {field}")

        return {
            "is_valid": len(errors) == 0,
            "errors": errors
        }
