"""Identity Matcher

Immutable nearest-neighbor index over enrolled face embeddings. A matcher is
built once from one copy of the descriptor store and never mutated; the store
synchronizer replaces it wholesale when the store content changes.
"""

import logging
from typing import List, Mapping, Optional, Sequence, Tuple

import numpy as np

from facesense.models.results import MatchResult


logger = logging.getLogger(__name__)


UNKNOWN_LABEL = "unknown"
DEFAULT_MATCH_THRESHOLD = 0.8


class IdentityMatcher:
    """Exhaustive Euclidean nearest-neighbor search.

    Embeddings of all labels are flattened into one read-only matrix, rows in
    store order (labels in mapping order, each label's embeddings in list
    order), so ties resolve to the first (label, embedding) pair.

    Attributes:
        threshold: Largest distance still accepted as a match
        unknown_label: Label reported when the nearest distance exceeds threshold
        signature: Content signature of the store this matcher was built from
    """

    def __init__(
        self,
        labels: Sequence[str],
        embeddings: np.ndarray,
        threshold: float = DEFAULT_MATCH_THRESHOLD,
        unknown_label: str = UNKNOWN_LABEL,
        signature: Optional[str] = None
    ):
        matrix = np.array(embeddings, dtype=np.float64)
        if matrix.ndim != 2 or matrix.shape[0] == 0:
            raise ValueError("Matcher needs at least one embedding")
        if matrix.shape[0] != len(labels):
            raise ValueError(
                f"Got {len(labels)} labels for {matrix.shape[0]} embeddings"
            )
        if threshold <= 0:
            raise ValueError(f"threshold must be positive, got {threshold}")

        matrix.setflags(write=False)
        self._labels: Tuple[str, ...] = tuple(labels)
        self._matrix = matrix
        self.threshold = threshold
        self.unknown_label = unknown_label
        self.signature = signature

    @classmethod
    def from_store(
        cls,
        store: Mapping[str, Sequence[Sequence[float]]],
        threshold: float = DEFAULT_MATCH_THRESHOLD,
        unknown_label: str = UNKNOWN_LABEL,
        signature: Optional[str] = None
    ) -> "IdentityMatcher":
        """Build a matcher from a descriptor store copy.

        Args:
            store: Mapping of identity label to its list of embeddings
            threshold: Match distance threshold
            unknown_label: Sentinel for rejected matches
            signature: Content signature to attach to the snapshot

        Raises:
            ValueError: If the store holds no embeddings or the embeddings do
                not share one dimension
        """
        labels: List[str] = []
        rows: List[np.ndarray] = []
        dimension = None

        for label, descriptors in store.items():
            for descriptor in descriptors:
                row = np.asarray(descriptor, dtype=np.float64).ravel()
                if dimension is None:
                    dimension = row.size
                elif row.size != dimension:
                    raise ValueError(
                        f"Embedding for '{label}' has {row.size} dimensions, expected {dimension}"
                    )
                labels.append(label)
                rows.append(row)

        if not rows:
            raise ValueError("Descriptor store holds no embeddings")

        return cls(labels, np.vstack(rows), threshold=threshold,
                   unknown_label=unknown_label, signature=signature)

    @property
    def labels(self) -> Tuple[str, ...]:
        """Distinct labels in first-seen order"""
        return tuple(dict.fromkeys(self._labels))

    @property
    def dimension(self) -> int:
        return int(self._matrix.shape[1])

    def __len__(self) -> int:
        return int(self._matrix.shape[0])

    def best_match(self, embedding: Sequence[float]) -> MatchResult:
        """Find the closest enrolled embedding.

        Args:
            embedding: Query embedding

        Returns:
            MatchResult with the owning label, or the unknown sentinel when the
            nearest distance exceeds the threshold. The distance is reported in
            both cases.

        Raises:
            ValueError: If the query dimension differs from the stored one
        """
        query = np.asarray(embedding, dtype=np.float64).ravel()
        if query.size != self.dimension:
            raise ValueError(
                f"Query has {query.size} dimensions, matcher expects {self.dimension}"
            )

        distances = np.linalg.norm(self._matrix - query, axis=1)
        index = int(np.argmin(distances))
        distance = float(distances[index])

        if not distance <= self.threshold:
            return MatchResult(label=self.unknown_label, distance=distance)
        return MatchResult(label=self._labels[index], distance=distance)

    def __repr__(self) -> str:
        return (
            f"IdentityMatcher(labels={len(self.labels)}, embeddings={len(self)}, "
            f"threshold={self.threshold})"
        )
