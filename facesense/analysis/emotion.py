"""Dominant-Signal Extraction Module

This module reduces one expression-probability vector to a single discrete
emotion label and keeps bounded smoothing windows of the resolved labels.

Two channels share the same reduction primitive:
    - Face channel: probabilities from the perception engine, with neutral
      suppression, history capacity 7
    - Text channel: scores parsed from a chat classifier reply, without neutral
      suppression, history capacity 1
"""

import logging
import math
import numbers
import re
from collections import deque
from typing import Deque, Dict, Hashable, Mapping, Optional, Tuple

from facesense.models.enums import EMOTION_LABELS, Emotion
from facesense.analysis.debounce import IdempotencyGuard
from facesense.config.config_loader import config


logger = logging.getLogger(__name__)


NEUTRAL = Emotion.NEUTRAL.value
OTHERS = "others"

# Matches classifier reply lines such as "happy: 72.4%"
_SCORE_LINE = re.compile(r'^([a-zA-Z]+)\s*:\s*([+-]?\d+(?:\.\d+)?)\s*%?')

_EMOTION_ALIASES: Dict[str, str] = {
    "neutral": "neutral", "중립": "neutral",
    "happy": "happy", "기쁨": "happy", "positive": "happy",
    "sad": "sad", "슬픔": "sad",
    "angry": "angry", "분노": "angry",
    "fearful": "fearful", "fear": "fearful", "두려움": "fearful",
    "disgusted": "disgusted", "혐오": "disgusted",
    "surprised": "surprised", "놀람": "surprised",
}


def _is_score(value) -> bool:
    return (
        isinstance(value, numbers.Real)
        and not isinstance(value, bool)
        and math.isfinite(value)
    )


def _numeric_scores(scores: Mapping[str, float]) -> Dict[str, float]:
    """Keep known labels with finite numeric values, in mapping order"""
    return {
        label: float(value)
        for label, value in scores.items()
        if label in EMOTION_LABELS and _is_score(value)
    }


def _argmax(scores: Dict[str, float]) -> Optional[str]:
    # Strict comparison: the first maximum encountered wins ties
    top_label = None
    top_value = -math.inf
    for label, value in scores.items():
        if top_label is None or value > top_value:
            top_label = label
            top_value = value
    return top_label


def dominant_emotion(
    scores: Optional[Mapping[str, float]],
    suppress_neutral: bool = False,
    suppression_threshold: float = 0.01
) -> Optional[str]:
    """Reduce a score vector to its dominant label.

    With ``suppress_neutral``, neutral is excluded from the reduction if and
    only if at least one non-neutral label scores at or above
    ``suppression_threshold``.

    Args:
        scores: Mapping of emotion label to score
        suppress_neutral: Apply the neutral-suppression rule
        suppression_threshold: Minimum non-neutral score that suppresses neutral

    Returns:
        The dominant label, or None if the mapping is empty or holds no
        numeric entries for known labels
    """
    if not scores:
        return None

    numeric = _numeric_scores(scores)
    if not numeric:
        return None

    if suppress_neutral:
        competing = {k: v for k, v in numeric.items() if k != NEUTRAL}
        if any(v >= suppression_threshold for v in competing.values()):
            return _argmax(competing)

    return _argmax(numeric)


def dominant_face_emotion(
    scores: Optional[Mapping[str, float]],
    suppression_threshold: float = 0.01
) -> Optional[str]:
    """Dominant label of a facial expression vector, neutral-suppressed"""
    return dominant_emotion(scores, suppress_neutral=True,
                            suppression_threshold=suppression_threshold)


def dominant_text_emotion(scores: Optional[Mapping[str, float]]) -> Optional[str]:
    """Dominant label of a text score vector"""
    return dominant_emotion(scores, suppress_neutral=False)


def parse_scores_from_text(text: Optional[str]) -> Dict[str, float]:
    """Parse a classifier reply of "label: value%" lines.

    Unknown labels and malformed lines are ignored, values are clamped to
    [0, 100] and labels missing from the reply are filled with 0.

    Args:
        text: Raw classifier reply

    Returns:
        Scores for all 7 labels, parsed labels first in reply order
    """
    result: Dict[str, float] = {}

    for line in (text or "").splitlines():
        line = line.strip()
        if not line:
            continue
        match = _SCORE_LINE.match(line)
        if not match:
            continue
        label = match.group(1).lower()
        value = float(match.group(2))
        if label in EMOTION_LABELS and math.isfinite(value):
            result[label] = max(0.0, min(100.0, value))

    for label in EMOTION_LABELS:
        result.setdefault(label, 0.0)
    return result


def normalize_emotion(value) -> str:
    """Map an emotion name or alias (English or Korean) onto a known label.

    Returns:
        One of the 7 labels, "neutral" for an empty value, "others" when the
        value is not recognized
    """
    if not value:
        return NEUTRAL
    return _EMOTION_ALIASES.get(str(value).strip().lower(), OTHERS)


class EmotionHistory:
    """Bounded FIFO of resolved emotion labels.

    Appends evict the oldest entry once the capacity is reached. Readers get an
    immutable snapshot.
    """

    def __init__(self, capacity: int):
        if capacity < 1:
            raise ValueError(f"capacity must be >= 1, got {capacity}")
        self.capacity = capacity
        self._entries: Deque[str] = deque(maxlen=capacity)

    def append(self, label: str):
        if label not in EMOTION_LABELS:
            raise ValueError(f"Unknown emotion label: {label!r}")
        self._entries.append(label)

    def snapshot(self) -> Tuple[str, ...]:
        return tuple(self._entries)

    def latest(self) -> Optional[str]:
        return self._entries[-1] if self._entries else None

    def __len__(self) -> int:
        return len(self._entries)


class EmotionExtractor:
    """Owns the face and text emotion histories.

    The extractor is the only writer of its histories. Created once per
    process by the host application and passed to the sampling loop.

    Attributes:
        face_history: Smoothing window of face labels
        text_history: Smoothing window of text labels
        suppression_threshold: Non-neutral score that suppresses neutral
    """

    def __init__(
        self,
        face_history_size: Optional[int] = None,
        text_history_size: Optional[int] = None,
        suppression_threshold: Optional[float] = None
    ):
        if face_history_size is None:
            face_history_size = config.get('emotion.face_history_size', 7)
        if text_history_size is None:
            text_history_size = config.get('emotion.text_history_size', 1)
        if suppression_threshold is None:
            suppression_threshold = config.get('emotion.neutral_suppression_threshold', 0.01)

        self.face_history = EmotionHistory(face_history_size)
        self.text_history = EmotionHistory(text_history_size)
        self.suppression_threshold = suppression_threshold
        self._text_guard = IdempotencyGuard(window=1)

        logger.info(
            f"EmotionExtractor initialized with face_history={face_history_size}, "
            f"text_history={text_history_size}"
        )

    def resolve_face_emotion(self, scores: Optional[Mapping[str, float]]) -> Optional[str]:
        """Compute the dominant face label without touching history"""
        return dominant_face_emotion(scores, self.suppression_threshold)

    def record_face_emotion(self, label: str):
        """Append an already resolved face label"""
        self.face_history.append(label)

    def update_face_emotion(self, scores: Optional[Mapping[str, float]]) -> Optional[str]:
        """Resolve a face expression vector and append it to history.

        Returns:
            The appended label, or None (history untouched) for a malformed vector
        """
        label = self.resolve_face_emotion(scores)
        if label is None:
            logger.debug("Face expression vector had no numeric entries, skipping update")
            return None
        self.record_face_emotion(label)
        return label

    def update_text_emotion(
        self,
        scores: Optional[Mapping[str, float]],
        message_id: Optional[Hashable] = None
    ) -> Optional[str]:
        """Resolve a text score vector and append it to history.

        Args:
            scores: Scores parsed from the classifier reply
            message_id: Id of the chat message; a repeat of the last id is ignored

        Returns:
            The appended label, or None if nothing was appended
        """
        label = dominant_text_emotion(scores)
        if label is None:
            return None
        if message_id is not None and not self._text_guard.check_and_mark(message_id):
            return None
        self.text_history.append(label)
        return label

    def current_emotion(self) -> str:
        """Latest text label, falling back to the latest face label, then neutral"""
        return self.text_history.latest() or self.face_history.latest() or NEUTRAL
