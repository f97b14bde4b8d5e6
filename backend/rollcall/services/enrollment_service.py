"""Face enrollment service: multi-angle registration and duplicate-identity search."""
import base64
import hashlib
import json
import logging
from dataclasses import dataclass, field
from functools import lru_cache
from typing import Dict, List, Optional

from cryptography.fernet import Fernet, InvalidToken
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC
from flask import current_app

from rollcall import db
from rollcall.models.enrollment_profile import EnrollmentProfile
from rollcall.services.vision_oracle import FaceAnalysis, Liveness, VisionOracle, get_vision_oracle
from rollcall.utils.errors import (
    AttendanceError, DuplicateIdentityError, NotRegisteredError, ValidationError,
    VerificationFailedError
)
from rollcall.utils.helpers import utcnow

logger = logging.getLogger(__name__)

@dataclass
class EnrollmentResult:
    """Face registration result data structure."""
    success: bool
    member_id: int
    quality_score: Optional[float] = None
    error: Optional[AttendanceError] = None
    all_errors: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict:
        if self.success:
            return {'success': True, 'qualityScore': self.quality_score}
        data = {'success': False, 'error': self.error.message, 'code': self.error.code}
        if self.all_errors:
            data['allErrors'] = self.all_errors
        return data

@lru_cache(maxsize=8)
def _fernet_for(secret: str) -> Fernet:
    salt = hashlib.sha256(b"rollcall:enrollment").digest()[:16]
    kdf = PBKDF2HMAC(
        algorithm=hashes.SHA256(),
        length=32,
        salt=salt,
        iterations=100000,
    )
    return Fernet(base64.urlsafe_b64encode(kdf.derive(secret.encode())))

class EnrollmentService:
    """
    Registers members' face descriptor bundles.

    Security rules:
    - All five captures must pass, or nothing is saved
    - Liveness must be "live"; "uncertain" is rejected like "spoof"
    - A bundle matching another member's at or above the duplicate
      threshold is refused, so one person cannot enroll twice
    - Descriptors are encrypted at rest
    """

    CAPTURE_ANGLES = ('front', 'left', 'right', 'up', 'blink')
    DIRECTIONAL_ANGLES = ('front', 'left', 'right', 'up')
    REGISTRATION_METHOD = 'multi_angle_v1'

    # =================== ENCRYPTION ===================

    @staticmethod
    def _fernet() -> Fernet:
        secret = current_app.config.get('ENROLLMENT_ENCRYPTION_KEY') or current_app.config['SECRET_KEY']
        return _fernet_for(secret)

    @classmethod
    def encrypt_descriptor(cls, descriptor: str) -> str:
        return cls._fernet().encrypt(descriptor.encode()).decode()

    @classmethod
    def decrypt_descriptor(cls, ciphertext: str) -> str:
        return cls._fernet().decrypt(ciphertext.encode()).decode()

    # =================== VALIDATION ===================

    @classmethod
    def check_capture(cls, angle: str, analysis: FaceAnalysis) -> Optional[str]:
        """Return the rejection reason for one capture, or None when it passes."""
        min_quality = current_app.config.get('ENROLLMENT_MIN_QUALITY', 60)

        if not analysis.succeeded:
            return f"{angle}: {analysis.reason or 'analysis failed'}"
        if analysis.face_count != 1:
            return f"{angle}: exactly one face must be visible (found {analysis.face_count})"
        if analysis.liveness != Liveness.LIVE:
            return f"{angle}: liveness check failed ({analysis.liveness.value})"
        if analysis.quality_score < min_quality:
            return f"{angle}: image quality too low ({analysis.quality_score:.0f} < {min_quality})"
        if not analysis.pose_verified:
            return f"{angle}: expected pose not detected"
        if angle in cls.DIRECTIONAL_ANGLES and not analysis.descriptor:
            return f"{angle}: no facial features could be extracted"
        return None

    @classmethod
    def build_composite(cls, analyses: Dict[str, FaceAnalysis]) -> str:
        """Combine the directional descriptors; the blink capture only proves liveness."""
        composite = {
            'descriptors': {angle: analyses[angle].descriptor for angle in cls.DIRECTIONAL_ANGLES},
            'quality_scores': {angle: analyses[angle].quality_score for angle in cls.CAPTURE_ANGLES},
            'liveness_confirmed': True,
            'registration_method': cls.REGISTRATION_METHOD,
        }
        return json.dumps(composite, sort_keys=True)

    # =================== REGISTRATION ===================

    @classmethod
    def register(
        cls,
        member_id: int,
        captures: Dict[str, str],
        oracle: Optional[VisionOracle] = None
    ) -> EnrollmentResult:
        """
        Register (or re-register) a member's face bundle.

        Args:
            member_id: Member's user id
            captures: Still images keyed by angle (front, left, right, up, blink)
            oracle: Vision oracle; defaults to the app's configured client

        Returns:
            EnrollmentResult; ``error`` holds the typed rejection when it fails.
            ServiceUnavailableError propagates so throttling is never reported
            as a rejected face.
        """
        if not isinstance(captures, dict):
            return EnrollmentResult(False, member_id, error=ValidationError('captures must be an object'))

        missing = [angle for angle in cls.CAPTURE_ANGLES if not captures.get(angle)]
        if missing:
            return EnrollmentResult(
                False, member_id,
                error=ValidationError('All capture angles are required for secure registration',
                                      {'missing': missing})
            )

        oracle = oracle or get_vision_oracle()

        analyses = {}
        errors = []
        for angle in cls.CAPTURE_ANGLES:
            analysis = oracle.analyze_face(captures[angle], angle)
            analyses[angle] = analysis
            reason = cls.check_capture(angle, analysis)
            if reason:
                errors.append(reason)

        if errors:
            logger.info("Enrollment rejected for member %s: %s", member_id, errors[0])
            return EnrollmentResult(
                False, member_id,
                error=VerificationFailedError(errors[0]),
                all_errors=errors
            )

        composite = cls.build_composite(analyses)

        threshold = current_app.config.get('DUPLICATE_SIMILARITY_THRESHOLD', 85)
        others = cls.other_descriptors(member_id)
        if others:
            match = oracle.find_duplicate(composite, others)
            if match.is_duplicate or match.highest_similarity >= threshold:
                logger.warning(
                    "Duplicate identity: member %s matches member %s (similarity %.0f)",
                    member_id, match.matched_member_id, match.highest_similarity
                )
                return EnrollmentResult(
                    False, member_id, error=DuplicateIdentityError(match.highest_similarity)
                )

        quality = round(sum(a.quality_score for a in analyses.values()) / len(analyses), 1)
        cls._upsert(member_id, composite, quality)

        logger.info("Face registered for member %s (quality %.1f)", member_id, quality)
        return EnrollmentResult(True, member_id, quality_score=quality)

    @classmethod
    def _upsert(cls, member_id: int, composite: str, quality: float) -> EnrollmentProfile:
        profile = EnrollmentProfile.query.filter_by(member_id=member_id).first()
        if profile is None:
            profile = EnrollmentProfile(member_id=member_id)
            db.session.add(profile)

        profile.descriptor_ciphertext = cls.encrypt_descriptor(composite)
        profile.quality_score = quality
        profile.registration_method = cls.REGISTRATION_METHOD
        profile.registered_at = utcnow()
        db.session.commit()
        return profile

    # =================== LOOKUPS ===================

    @classmethod
    def other_descriptors(cls, member_id: int) -> Dict[int, str]:
        """Decrypted descriptors of every other enrolled member."""
        result = {}
        profiles = EnrollmentProfile.query.filter(EnrollmentProfile.member_id != member_id).all()
        for profile in profiles:
            try:
                result[profile.member_id] = cls.decrypt_descriptor(profile.descriptor_ciphertext)
            except InvalidToken:
                logger.error("Cannot decrypt enrollment profile of member %s", profile.member_id)
        return result

    @staticmethod
    def has_profile(member_id: int) -> bool:
        return EnrollmentProfile.query.filter_by(member_id=member_id).first() is not None

    @classmethod
    def get_descriptor(cls, member_id: int) -> Optional[str]:
        """
        Decrypted composite descriptor of ``member_id``, or None when not enrolled.

        Raises NotRegisteredError when the stored profile cannot be decrypted.
        """
        profile = EnrollmentProfile.query.filter_by(member_id=member_id).first()
        if profile is None:
            return None
        try:
            return cls.decrypt_descriptor(profile.descriptor_ciphertext)
        except InvalidToken:
            logger.error("Cannot decrypt enrollment profile of member %s", member_id)
            raise NotRegisteredError("Face profile unreadable, please re-register")
