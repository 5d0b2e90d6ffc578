"""Name trigger for enrollment

Watches user chat messages for self-introductions ("내 이름은 민수야",
"my name is Alex") and turns them into enrollment requests. Questions about
a name ("내 이름이 뭐야?", "what's my name") never trigger enrollment.
"""

import logging
import re
from typing import Hashable, Optional

from facesense.models.results import EnrollmentRequest
from facesense.analysis.debounce import IdempotencyGuard


logger = logging.getLogger(__name__)


MIN_NAME_LENGTH = 2

_SUFFIX = r'(?:입니다|이에요|예요|이야|야)'

_QUESTION_PATTERNS = (
    re.compile(r'이름[이가]?\s*(뭐|무엇|뭔|누구)', re.IGNORECASE),
    re.compile(r'이름\s*(알아|기억|뭐|누구|물어|찾아)', re.IGNORECASE),
    re.compile(r"\b(what|who)(\s+is|'s)?\s+my\s+name\b", re.IGNORECASE),
    re.compile(r'\b(know|remember)\s+my\s+name\b', re.IGNORECASE),
)

_NAME_PATTERNS = (
    re.compile(r'(?:^|\s)(?:내\s*이름은|제\s*이름은)\s*([^\s"\']+)\s*' + _SUFFIX + r'?\s*$', re.IGNORECASE),
    re.compile(r'^(?:내\s*이름은|제\s*이름은)\s*["\']?(.+?)["\']?\s*' + _SUFFIX + r'?\s*$', re.IGNORECASE),
    re.compile(r'(?:^|\s)(?:my\s+name\s+is|call\s+me)\s+["\']?([^\s"\']+)["\']?\s*[.!]?\s*$', re.IGNORECASE),
)

_NOT_A_NAME = re.compile(r'^(뭐|무엇|누구|뭔지|모름|몰라|모르|뭐야|뭔데|무언가|what|who|unknown)', re.IGNORECASE)
_TRAILING_SUFFIX = re.compile(_SUFFIX + r'$', re.IGNORECASE)
_EDGE_QUOTES = re.compile(r'^["\']|["\']$')
_NON_NAME_CHARS = re.compile(r'[^\w-]')


def extract_name(text: Optional[str]) -> Optional[str]:
    """Extract the name from a self-introduction.

    Args:
        text: User chat message

    Returns:
        The cleaned name, or None when the message is not a self-introduction,
        is a question about a name, or the name is shorter than 2 characters
    """
    raw = re.sub(r'\s+', ' ', text or '').strip()
    if not raw:
        return None

    if any(pattern.search(raw) for pattern in _QUESTION_PATTERNS):
        logger.debug(f"Name question detected, not enrolling: {raw}")
        return None

    name = None
    for pattern in _NAME_PATTERNS:
        match = pattern.search(raw)
        if match:
            name = match.group(1).strip()
            break
    if not name:
        return None

    if _NOT_A_NAME.match(name):
        logger.debug(f"Question-like name rejected: {raw}")
        return None

    name = _EDGE_QUOTES.sub('', name).strip()
    name = _TRAILING_SUFFIX.sub('', name).strip()
    name = _NON_NAME_CHARS.sub('', name).strip()

    if len(name) < MIN_NAME_LENGTH:
        return None
    return name


class NameTrigger:
    """Turns chat messages into deduplicated enrollment requests.

    A message id that already produced a request is ignored, so re-delivered
    messages do not enroll twice. Messages without a name never mark their id.
    """

    def __init__(self, window: int = 1):
        self._guard = IdempotencyGuard(window=window)

    def process(self, message_id: Hashable, text: Optional[str]) -> Optional[EnrollmentRequest]:
        """Inspect one user message.

        Args:
            message_id: Id of the chat message
            text: Message text

        Returns:
            An EnrollmentRequest, or None if the message does not introduce a
            name or was already handled
        """
        if message_id is None or self._guard.seen(message_id):
            return None

        name = extract_name(text)
        if name is None:
            return None

        self._guard.check_and_mark(message_id)
        logger.info(f"Enrollment triggered for '{name}' by message {message_id}")
        return EnrollmentRequest(correlation_id=str(message_id), identity_label=name)
