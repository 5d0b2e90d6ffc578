"""Unit tests for IdentityMatcher"""

import math

import numpy as np
import pytest

from facesense.identity.matcher import UNKNOWN_LABEL, IdentityMatcher


class TestIdentityMatcher:
    """Test suite for IdentityMatcher"""

    def test_identical_vector_matches_with_zero_distance(self):
        matcher = IdentityMatcher.from_store({"alice": [[0.1, 0.2, 0.3]]})
        result = matcher.best_match([0.1, 0.2, 0.3])

        assert result.label == "alice"
        assert result.distance == 0.0

    def test_distance_above_threshold_is_unknown(self):
        matcher = IdentityMatcher.from_store({"alice": [[0.0, 0.0]]}, threshold=0.8)
        result = matcher.best_match([1.2, 0.0])

        assert result.label == UNKNOWN_LABEL
        assert result.distance == pytest.approx(1.2)

    def test_distance_equal_to_threshold_matches(self):
        matcher = IdentityMatcher.from_store({"alice": [[0.0, 0.0]]}, threshold=0.5)
        assert matcher.best_match([0.5, 0.0]).label == "alice"

    def test_nan_distance_is_unknown(self):
        matcher = IdentityMatcher.from_store({"alice": [[0.0, 0.0, 0.0]]})
        result = matcher.best_match([float("nan"), 0.0, 0.0])

        assert result.label == UNKNOWN_LABEL
        assert math.isnan(result.distance)

    def test_global_nearest_embedding_wins(self):
        store = {
            "alice": [[0.0, 0.0], [5.0, 5.0]],
            "bob": [[1.0, 1.0]],
        }
        matcher = IdentityMatcher.from_store(store)

        assert matcher.best_match([4.9, 5.0]).label == "alice"
        assert matcher.best_match([0.9, 1.0]).label == "bob"

    def test_ties_go_to_first_pair(self):
        store = {"alice": [[1.0, 0.0]], "bob": [[-1.0, 0.0]]}
        matcher = IdentityMatcher.from_store(store, threshold=2.0)

        result = matcher.best_match([0.0, 0.0])
        assert result.label == "alice"
        assert result.distance == pytest.approx(1.0)

    def test_custom_unknown_label(self):
        matcher = IdentityMatcher.from_store({"alice": [[0.0]]}, threshold=0.1, unknown_label="stranger")
        assert matcher.best_match([1.0]).label == "stranger"

    def test_labels_and_size(self):
        matcher = IdentityMatcher.from_store({"alice": [[0.0], [1.0]], "bob": [[2.0]], "carol": []})

        assert matcher.labels == ("alice", "bob")
        assert len(matcher) == 3
        assert matcher.dimension == 1

    def test_snapshot_is_read_only(self):
        source = [[0.0, 0.0]]
        matcher = IdentityMatcher.from_store({"alice": source})
        source[0][0] = 9.0

        assert matcher.best_match([0.0, 0.0]).distance == 0.0
        with pytest.raises(ValueError):
            matcher._matrix[0, 0] = 1.0

    def test_empty_store_raises(self):
        with pytest.raises(ValueError):
            IdentityMatcher.from_store({})
        with pytest.raises(ValueError):
            IdentityMatcher.from_store({"alice": []})

    def test_mixed_dimensions_raise(self):
        with pytest.raises(ValueError):
            IdentityMatcher.from_store({"alice": [[0.0, 0.0]], "bob": [[0.0, 0.0, 0.0]]})

    def test_query_dimension_mismatch_raises(self):
        matcher = IdentityMatcher.from_store({"alice": [[0.0, 0.0]]})
        with pytest.raises(ValueError):
            matcher.best_match([0.0, 0.0, 0.0])

    def test_accepts_numpy_query(self):
        matcher = IdentityMatcher.from_store({"alice": [np.ones(128).tolist()]})
        result = matcher.best_match(np.ones(128, dtype=np.float32))

        assert result.label == "alice"
        assert result.distance == pytest.approx(0.0)

    def test_invalid_threshold(self):
        with pytest.raises(ValueError):
            IdentityMatcher.from_store({"alice": [[0.0]]}, threshold=0)
