"""Descriptor store helpers and the in-process repository

The authoritative descriptor store lives behind the ``DescriptorRepository``
interface. This module holds what every backend shares: the payload parser,
the content signature and artifact name sanitizing, plus a process-local
repository used by tests and the demo.
"""

import copy
import logging
import math
import numbers
import re
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence

from facesense.models.interfaces import DescriptorRepository, PersistenceError, Unsubscribe
from facesense.models.results import DescriptorStore, StoreFetchResult


logger = logging.getLogger(__name__)


ARTIFACT_URL_PREFIX = "/known/"

_UNSAFE_NAME_CHARS = re.compile(r'[^\w가-힣_.-]')


def store_signature(store: Mapping[str, Sequence[Any]]) -> str:
    """Cheap content signature: each label with its embedding count.

    Example: ``{"alice": [v1, v2], "bob": [v3]}`` -> ``"alice:2|bob:1"``

    Backslash, ``:`` and ``|`` inside labels are backslash-escaped so two
    different stores never share a signature.
    """
    return "|".join(
        f"{_escape_label(label)}:{len(descriptors or [])}" for label, descriptors in store.items()
    )


def _escape_label(label: str) -> str:
    return label.replace("\\", "\\\\").replace(":", "\\:").replace("|", "\\|")


def sanitize_artifact_name(name: str) -> str:
    """Replace characters that are unsafe in a file name with underscores"""
    safe = _UNSAFE_NAME_CHARS.sub("_", name.strip())
    if not safe or safe.strip(".") == "":
        raise PersistenceError(f"Invalid artifact name: {name!r}")
    return safe


def _parse_descriptor(label: str, raw: Any) -> List[float]:
    if isinstance(raw, (str, bytes)) or not isinstance(raw, Sequence):
        raise ValueError(f"Descriptor for '{label}' is not a list")
    if not raw:
        raise ValueError(f"Descriptor for '{label}' is empty")
    values = []
    for value in raw:
        if isinstance(value, bool) or not isinstance(value, numbers.Real) or not math.isfinite(value):
            raise ValueError(f"Descriptor for '{label}' holds a non-numeric value: {value!r}")
        values.append(float(value))
    return values


def parse_descriptor_payload(payload: Any) -> DescriptorStore:
    """Parse a raw descriptor store payload.

    Two shapes are accepted::

        {"alice": [[0.1, ...], ...], "bob": [...]}
        [{"label": "alice", "descriptors": [[0.1, ...], ...]}, ...]

    Entries of the list form that repeat a label are merged in order.

    Args:
        payload: Decoded JSON payload

    Returns:
        Descriptor store in payload order

    Raises:
        ValueError: If the payload has neither shape or holds malformed entries
    """
    if isinstance(payload, Mapping):
        entries = list(payload.items())
    elif isinstance(payload, list):
        entries = []
        for item in payload:
            if not isinstance(item, Mapping) or "label" not in item:
                raise ValueError(f"Malformed descriptor entry: {item!r}")
            entries.append((item["label"], item.get("descriptors") or []))
    else:
        raise ValueError(f"Unexpected descriptor payload type: {type(payload).__name__}")

    store: DescriptorStore = {}
    for label, descriptors in entries:
        if not isinstance(label, str) or not label.strip():
            raise ValueError(f"Invalid identity label: {label!r}")
        if isinstance(descriptors, (str, bytes)) or not isinstance(descriptors, Sequence):
            raise ValueError(f"Descriptors for '{label}' are not a list")
        parsed = [_parse_descriptor(label, raw) for raw in descriptors]
        store.setdefault(label, []).extend(parsed)
    return store


class InMemoryDescriptorRepository(DescriptorRepository):
    """Process-local descriptor repository.

    The store reports NOT_FOUND until it is initialized, either with an
    initial store or by the first append. Appends notify subscribers
    synchronously on the calling event loop.

    Attributes:
        artifacts: Saved artifacts by sanitized name
        append_calls: Number of append_descriptor calls
        save_calls: Number of save_artifact calls
    """

    def __init__(self, initial_store: Optional[DescriptorStore] = None):
        self._store: DescriptorStore = copy.deepcopy(initial_store) if initial_store is not None else {}
        self._initialized = initial_store is not None
        self._subscribers: List[Callable[[], None]] = []
        self.artifacts: Dict[str, bytes] = {}
        self.append_calls = 0
        self.save_calls = 0
        self.fetch_calls = 0

    async def fetch_descriptor_store(self) -> StoreFetchResult:
        self.fetch_calls += 1
        if not self._initialized:
            return StoreFetchResult.not_found()
        return StoreFetchResult.found(copy.deepcopy(self._store))

    async def append_descriptor(self, label: str, embedding: Sequence[float]) -> None:
        self.append_calls += 1
        if not label or not label.strip():
            raise PersistenceError("Identity label must not be empty")
        try:
            descriptor = _parse_descriptor(label, list(embedding))
        except (TypeError, ValueError) as e:
            raise PersistenceError(str(e)) from e

        self._store.setdefault(label, []).append(descriptor)
        self._initialized = True
        logger.info(f"Descriptor appended for '{label}' ({len(descriptor)} floats)")
        self.notify_change()

    async def save_artifact(self, data: bytes, name: str) -> str:
        self.save_calls += 1
        safe = sanitize_artifact_name(name)
        self.artifacts[safe] = bytes(data)
        return f"{ARTIFACT_URL_PREFIX}{safe}"

    async def subscribe_invalidation(self, on_change: Callable[[], None]) -> Unsubscribe:
        self._subscribers.append(on_change)

        async def unsubscribe():
            if on_change in self._subscribers:
                self._subscribers.remove(on_change)

        return unsubscribe

    def notify_change(self):
        """Deliver a change notification to every subscriber"""
        for callback in list(self._subscribers):
            try:
                callback()
            except Exception as e:
                logger.error(f"Invalidation subscriber failed: {e}", exc_info=True)
