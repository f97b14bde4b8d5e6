"""
Vision oracle client.

The oracle is an external image-understanding service used for liveness,
pose and visual-similarity judgments. Its answers are best-effort and are
never treated as identity-grade biometrics. Everything else in the engine
talks to it only through :class:`VisionOracle`, so tests can substitute a
deterministic fake.
"""
import json
import logging
import math
import re
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

import requests
from flask import current_app

from rollcall.utils.errors import ServiceUnavailableError

logger = logging.getLogger(__name__)


class Liveness(Enum):
    LIVE = 'live'
    SPOOF = 'spoof'
    UNCERTAIN = 'uncertain'


class Similarity(Enum):
    LIKELY_SAME = 'likely_same'
    UNCERTAIN = 'uncertain'
    LIKELY_DIFFERENT = 'likely_different'


@dataclass
class FaceAnalysis:
    """Oracle judgment of a single capture."""
    face_count: int
    liveness: Liveness
    quality_score: float
    descriptor: Optional[str]
    pose_verified: bool
    status: str  # success | failure
    reason: str = ''

    @property
    def succeeded(self) -> bool:
        return self.status == 'success'


@dataclass
class FaceComparison:
    """Oracle comparison of a candidate image against a stored descriptor."""
    status: str  # valid | invalid
    similarity: Similarity
    confidence_score: float
    reason: str = ''

    @property
    def is_valid(self) -> bool:
        return self.status == 'valid'


@dataclass
class DuplicateMatch:
    is_duplicate: bool
    matched_member_id: Optional[int]
    highest_similarity: float


class VisionOracle(ABC):
    """Contract of the external image-understanding capability."""

    @abstractmethod
    def analyze_face(self, image: str, expected_pose: str) -> FaceAnalysis:
        """Judge face count, liveness, quality and pose of one capture."""

    @abstractmethod
    def compare_faces(self, candidate_image: str, reference_descriptor: str) -> FaceComparison:
        """Compare a live capture against a stored descriptor."""

    @abstractmethod
    def find_duplicate(self, new_descriptor: str, other_descriptors: Dict[int, str]) -> DuplicateMatch:
        """Search stored descriptors of other members for the same face."""


POSE_INSTRUCTIONS = {
    'front': 'The person must look straight at the camera.',
    'left': 'The person must have the head turned to their left.',
    'right': 'The person must have the head turned to their right.',
    'up': 'The person must have the head tilted upwards.',
    'blink': 'The person must be caught mid-blink with eyes closed or closing (liveness check).',
}

ANALYZE_PROMPT = """You are a facial feature extraction system for an attendance platform.
You are NOT a biometric identity verifier.

Validate the image: exactly one real human face, clearly visible, not a photo of a photo,
a screen or a printed image. {pose_instruction}

Return ONLY JSON:
{{
  "face_count": number,
  "liveness": "live | spoof | uncertain",
  "quality_score": number (0-100),
  "pose_verified": true | false,
  "descriptor": "textual descriptor of distinguishing features (face shape, eye spacing, nose, jawline) or null",
  "status": "success | failure",
  "reason": "brief explanation"
}}"""

COMPARE_PROMPT = """You are a visual similarity analysis system assisting an attendance platform.
You are NOT a biometric identity verifier.

Compare the face in the image with these reference features stored at registration:
{reference}

First validate the image (exactly one clearly visible face); if that fails return "invalid".
High similarity -> "likely_same", moderate -> "uncertain", low -> "likely_different".

Return ONLY JSON:
{{
  "status": "valid | invalid",
  "similarity_result": "likely_same | uncertain | likely_different",
  "confidence_score": number (0-100),
  "reason": "brief explanation"
}}"""

DUPLICATE_PROMPT = """You compare textual face descriptors for an attendance platform.
Decide whether the NEW descriptor describes the same person as any of the STORED descriptors.

NEW:
{new}

STORED (keyed by member id):
{stored}

Return ONLY JSON:
{{
  "is_duplicate": true | false,
  "matched_member_id": number or null,
  "highest_similarity": number (0-100)
}}"""

_FENCE = re.compile(r'```(?:json)?\s*|\s*```')


def _image_url(image: str) -> str:
    """Accept raw base64 or a data URI."""
    if image.startswith('data:'):
        return image
    return f'data:image/jpeg;base64,{image}'


def _number(value, default: float = 0.0) -> float:
    """Numeric field of an oracle answer; NaN and infinity make the answer unusable."""
    if value is None:
        return default
    try:
        number = float(value)
    except (TypeError, ValueError):
        return default
    if not math.isfinite(number):
        logger.error("Non-finite number in vision oracle answer: %r", value)
        raise ServiceUnavailableError('Face verification service returned an invalid answer')
    return number


def _enum_or(enum_cls, value, default):
    try:
        return enum_cls(value)
    except ValueError:
        return default


class HttpVisionOracle(VisionOracle):
    """
    Oracle backed by an OpenAI-compatible chat-completions gateway.

    HTTP 429 is retried with exponential backoff (base delay doubling for
    ``max_retries`` retries); exhaustion, transport errors and unusable answers
    raise :class:`ServiceUnavailableError`, never a verification failure.
    """

    def __init__(
        self,
        url: str,
        api_key: Optional[str],
        model: str,
        timeout: float = 45,
        max_retries: int = 3,
        backoff_seconds: float = 2,
        session: Optional[requests.Session] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.url = url
        self.api_key = api_key
        self.model = model
        self.timeout = timeout
        self.max_retries = max_retries
        self.backoff_seconds = backoff_seconds
        self.session = session or requests.Session()
        self.sleep = sleep

    @classmethod
    def from_config(cls, config) -> 'HttpVisionOracle':
        return cls(
            url=config['VISION_ORACLE_URL'],
            api_key=config.get('VISION_ORACLE_API_KEY'),
            model=config.get('VISION_ORACLE_MODEL', 'google/gemini-2.5-flash'),
            timeout=config.get('VISION_ORACLE_TIMEOUT', 45),
            max_retries=config.get('VISION_ORACLE_MAX_RETRIES', 3),
            backoff_seconds=config.get('VISION_ORACLE_BACKOFF_SECONDS', 2),
        )

    # =================== TRANSPORT ===================

    def _post(self, body: Dict[str, Any]) -> requests.Response:
        """POST with retry on throttling."""
        if not self.api_key:
            logger.error("Vision oracle API key not configured")
            raise ServiceUnavailableError('Face verification service unavailable')

        headers = {
            'Authorization': f'Bearer {self.api_key}',
            'Content-Type': 'application/json',
        }

        for attempt in range(self.max_retries + 1):
            try:
                response = self.session.post(self.url, json=body, headers=headers, timeout=self.timeout)
            except requests.RequestException as exc:
                logger.error("Vision oracle request failed: %s", exc)
                raise ServiceUnavailableError('Face verification service unavailable')

            if response.status_code != 429:
                return response

            if attempt < self.max_retries:
                wait = self.backoff_seconds * (2 ** attempt)
                logger.warning("Vision oracle rate limited, retry %d/%d in %ss",
                               attempt + 1, self.max_retries, wait)
                self.sleep(wait)

        logger.error("Vision oracle still rate limited after %d retries", self.max_retries)
        raise ServiceUnavailableError()

    def _ask(self, system_prompt: str, content: List[Dict[str, Any]]) -> Dict[str, Any]:
        """Send one chat-completion request and decode the JSON answer."""
        body = {
            'model': self.model,
            'messages': [
                {'role': 'system', 'content': system_prompt},
                {'role': 'user', 'content': content},
            ],
        }
        response = self._post(body)

        if not response.ok:
            logger.error("Vision oracle error: %s", response.status_code)
            raise ServiceUnavailableError('Face verification service error')

        try:
            answer = response.json()['choices'][0]['message']['content']
            data = json.loads(_FENCE.sub('', answer).strip())
        except (ValueError, KeyError, IndexError, TypeError):
            data = None

        if not isinstance(data, dict):
            logger.error("Unparseable vision oracle answer: %.300s", response.text)
            raise ServiceUnavailableError('Face verification service returned an invalid answer')
        return data

    # =================== OPERATIONS ===================

    def analyze_face(self, image: str, expected_pose: str) -> FaceAnalysis:
        prompt = ANALYZE_PROMPT.format(pose_instruction=POSE_INSTRUCTIONS.get(expected_pose, ''))
        data = self._ask(prompt, [
            {'type': 'text', 'text': f'Analyze this "{expected_pose}" capture.'},
            {'type': 'image_url', 'image_url': {'url': _image_url(image)}},
        ])

        return FaceAnalysis(
            face_count=int(_number(data.get('face_count'))),
            liveness=_enum_or(Liveness, data.get('liveness'), Liveness.UNCERTAIN),
            quality_score=_number(data.get('quality_score')),
            descriptor=data.get('descriptor') or None,
            pose_verified=bool(data.get('pose_verified')),
            status='success' if data.get('status') == 'success' else 'failure',
            reason=data.get('reason') or '',
        )

    def compare_faces(self, candidate_image: str, reference_descriptor: str) -> FaceComparison:
        data = self._ask(COMPARE_PROMPT.format(reference=reference_descriptor), [
            {'type': 'text', 'text': 'Compare this face with the stored reference features.'},
            {'type': 'image_url', 'image_url': {'url': _image_url(candidate_image)}},
        ])

        return FaceComparison(
            status='valid' if data.get('status') == 'valid' else 'invalid',
            similarity=_enum_or(Similarity, data.get('similarity_result'), Similarity.LIKELY_DIFFERENT),
            confidence_score=_number(data.get('confidence_score')),
            reason=data.get('reason') or '',
        )

    def find_duplicate(self, new_descriptor: str, other_descriptors: Dict[int, str]) -> DuplicateMatch:
        if not other_descriptors:
            return DuplicateMatch(False, None, 0.0)

        stored = json.dumps({str(k): v for k, v in other_descriptors.items()}, indent=2)
        data = self._ask(DUPLICATE_PROMPT.format(new=new_descriptor, stored=stored), [
            {'type': 'text', 'text': 'Check the new descriptor for duplicates.'},
        ])

        matched = data.get('matched_member_id')
        try:
            matched = int(matched) if matched is not None else None
        except (TypeError, ValueError, OverflowError):
            matched = None

        return DuplicateMatch(
            is_duplicate=bool(data.get('is_duplicate')),
            matched_member_id=matched,
            highest_similarity=_number(data.get('highest_similarity')),
        )


def get_vision_oracle() -> VisionOracle:
    """Oracle bound to the current app; tests install their own under extensions."""
    oracle = current_app.extensions.get('vision_oracle')
    if oracle is None:
        oracle = HttpVisionOracle.from_config(current_app.config)
        current_app.extensions['vision_oracle'] = oracle
    return oracle
