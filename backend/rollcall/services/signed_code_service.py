"""Rotating signed-code generation and validation service."""
import base64
import hashlib
import hmac
import io
import json
import logging
import secrets
from dataclasses import dataclass, asdict
from datetime import datetime, timedelta
from typing import Any, Dict, Optional, Union

import qrcode
from flask import current_app

from rollcall import db
from rollcall.models.attendance_session import AttendanceSession
from rollcall.services.window_policy import WindowPolicy, WindowState
from rollcall.utils.errors import NotFoundError, ValidationError, VerificationFailedError, WindowClosedError
from rollcall.utils.helpers import from_epoch_ms, to_epoch_ms, utcnow

logger = logging.getLogger(__name__)

@dataclass
class SignedCode:
    """Payload displayed by the session owner and scanned by members."""
    sessionId: int
    issuedAt: int
    secret: str
    expiresAt: int
    signature: str

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), separators=(',', ':'))

@dataclass
class VerifiedCode:
    """A code that passed every check, with the window it was accepted in."""
    session: AttendanceSession
    window: WindowState

class SignedCodeService:
    """Service for signed rotating code operations."""

    REQUIRED_FIELDS = ('sessionId', 'issuedAt', 'secret', 'expiresAt', 'signature')
    # 9999-12-31T23:59:59.999Z in epoch milliseconds; also fits a signed 64-bit id
    MAX_INTEGER = 253402300799999

    @staticmethod
    def _server_key() -> bytes:
        key = current_app.config.get('SIGNED_CODE_KEY') or current_app.config['SECRET_KEY']
        return key.encode()

    @staticmethod
    def canonicalize(session_id: int, issued_at: int, secret: str, expires_at: int) -> bytes:
        """Canonical JSON of the signed fields: sorted keys, compact separators."""
        body = {
            'sessionId': session_id,
            'issuedAt': issued_at,
            'secret': secret,
            'expiresAt': expires_at
        }
        return json.dumps(body, sort_keys=True, separators=(',', ':')).encode()

    @classmethod
    def sign(cls, session_id: int, issued_at: int, secret: str, expires_at: int) -> str:
        digest = hmac.new(
            cls._server_key(),
            cls.canonicalize(session_id, issued_at, secret, expires_at),
            hashlib.sha256
        ).digest()
        return base64.b64encode(digest).decode()

    @classmethod
    def issue(cls, session: AttendanceSession, now: Optional[datetime] = None) -> SignedCode:
        """
        Generate a fresh code for ``session``.

        The new secret replaces the previous one, so older codes stop verifying.
        """
        now = now or utcnow()
        ttl = current_app.config.get('SIGNED_CODE_TTL_SECONDS', 30)
        expires = now + timedelta(seconds=ttl)

        secret = secrets.token_urlsafe(32)
        issued_at = to_epoch_ms(now)
        expires_at = to_epoch_ms(expires)

        session.code_secret = secret
        session.code_expires_at = expires
        db.session.commit()

        logger.debug("Issued signed code for session %s (expires %s)", session.id, expires.isoformat())

        return SignedCode(
            sessionId=session.id,
            issuedAt=issued_at,
            secret=secret,
            expiresAt=expires_at,
            signature=cls.sign(session.id, issued_at, secret, expires_at)
        )

    @classmethod
    def parse(cls, payload: Union[str, Dict[str, Any]]) -> Dict[str, Any]:
        """Accept the scanned payload as a JSON string or an already decoded object."""
        if isinstance(payload, str):
            try:
                payload = json.loads(payload)
            except json.JSONDecodeError:
                raise ValidationError("Invalid QR data format")

        if not isinstance(payload, dict):
            raise ValidationError("Invalid QR data format")

        for field in cls.REQUIRED_FIELDS:
            if field not in payload or payload[field] in (None, ''):
                raise ValidationError(f"Missing field: {field}")

        for field in ('sessionId', 'issuedAt', 'expiresAt'):
            value = payload[field]
            if isinstance(value, bool) or not isinstance(value, int):
                raise ValidationError(f"Invalid field: {field}")
            if not 0 < value <= cls.MAX_INTEGER:
                raise ValidationError("Invalid QR data format")

        if not isinstance(payload['secret'], str) or not isinstance(payload['signature'], str):
            raise ValidationError("Invalid QR data format")

        return payload

    @classmethod
    def verify(cls, payload: Union[str, Dict[str, Any]], now: Optional[datetime] = None) -> VerifiedCode:
        """
        Validate a scanned code.

        Checks, in order: expiry, signature, live secret of the session, window.
        Raises on the first failing check.
        """
        now = now or utcnow()
        data = cls.parse(payload)

        if now > from_epoch_ms(data['expiresAt']):
            raise VerificationFailedError("QR code has expired")

        expected = cls.sign(data['sessionId'], data['issuedAt'], data['secret'], data['expiresAt'])
        if not hmac.compare_digest(expected.encode(), data['signature'].encode()):
            logger.warning("Signed code with bad signature for session %s", data['sessionId'])
            raise VerificationFailedError("Invalid QR code")

        session = db.session.get(AttendanceSession, data['sessionId'])
        if session is None:
            raise NotFoundError("Session not found")

        if not session.code_secret or not hmac.compare_digest(session.code_secret, data['secret']):
            raise VerificationFailedError("QR code is no longer valid")

        window = WindowPolicy.evaluate(session, now)
        if not window.is_open:
            raise WindowClosedError(window.error)

        return VerifiedCode(session=session, window=window)

    @staticmethod
    def render_qr(code: SignedCode) -> str:
        """Render the payload as a PNG QR image data URI for the owner's display."""
        qr = qrcode.QRCode(
            version=None,  # Auto-determine size
            error_correction=qrcode.constants.ERROR_CORRECT_M,
            box_size=10,
            border=4,
        )
        qr.add_data(code.to_json())
        qr.make(fit=True)

        img = qr.make_image(fill_color="black", back_color="white")

        buffered = io.BytesIO()
        img.save(buffered, format="PNG")
        img_str = base64.b64encode(buffered.getvalue()).decode()

        return f"data:image/png;base64,{img_str}"
