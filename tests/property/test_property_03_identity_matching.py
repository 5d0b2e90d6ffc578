"""Property-based tests for identity matching

Property 3: Nearest neighbor with threshold
A stored embedding always matches its own label at distance 0, and a query
farther than the threshold from every stored embedding is reported as the
unknown sentinel together with its true nearest distance.
"""

import numpy as np
from hypothesis import given, strategies as st, settings

from facesense.identity.matcher import IdentityMatcher, UNKNOWN_LABEL


@st.composite
def store_strategy(draw):
    """Generate a descriptor store with distinct labels and one shared dimension"""
    dimension = draw(st.integers(min_value=1, max_value=16))
    labels = draw(st.lists(
        st.text(alphabet="abcdefghij", min_size=1, max_size=6),
        min_size=1, max_size=5, unique=True
    ))
    component = st.floats(min_value=-1.0, max_value=1.0, allow_nan=False)
    store = {}
    for label in labels:
        count = draw(st.integers(min_value=1, max_value=4))
        store[label] = [
            draw(st.lists(component, min_size=dimension, max_size=dimension))
            for _ in range(count)
        ]
    return store


@given(store=store_strategy(), data=st.data())
@settings(max_examples=100, deadline=None)
def test_stored_embedding_matches_at_zero_distance(store, data):
    """Querying with an enrolled embedding returns a label holding that embedding"""
    matcher = IdentityMatcher.from_store(store)
    label = data.draw(st.sampled_from(list(store)))
    embedding = data.draw(st.sampled_from(store[label]))

    result = matcher.best_match(embedding)

    assert result.distance == 0.0
    # Duplicate embeddings across labels resolve to the first owner
    owners = [name for name, descriptors in store.items() if embedding in descriptors]
    assert result.label == owners[0]


@given(store=store_strategy(), offset=st.floats(min_value=3.0, max_value=100.0))
@settings(max_examples=100, deadline=None)
def test_distant_query_is_unknown(store, offset):
    """Queries beyond the threshold get the sentinel label and the real distance"""
    matcher = IdentityMatcher.from_store(store, threshold=0.8)
    dimension = matcher.dimension
    # Every stored component is within [-1, 1], so this query is at least `offset - 1` away
    query = [offset] * dimension

    result = matcher.best_match(query)

    rows = np.array([d for descriptors in store.values() for d in descriptors])
    expected = float(np.min(np.linalg.norm(rows - np.array(query), axis=1)))
    assert result.label == UNKNOWN_LABEL
    assert np.isclose(result.distance, expected)


@given(store=store_strategy(), threshold=st.floats(min_value=0.01, max_value=5.0), data=st.data())
@settings(max_examples=100, deadline=None)
def test_label_depends_only_on_threshold(store, threshold, data):
    """The reported distance is the same whatever the threshold"""
    dimension = len(next(iter(store.values()))[0])
    query = data.draw(st.lists(
        st.floats(min_value=-2.0, max_value=2.0, allow_nan=False),
        min_size=dimension, max_size=dimension
    ))
    strict = IdentityMatcher.from_store(store, threshold=threshold).best_match(query)
    loose = IdentityMatcher.from_store(store, threshold=1e9).best_match(query)

    assert strict.distance == loose.distance
    if strict.distance <= threshold:
        assert strict.label == loose.label
    else:
        assert strict.label == UNKNOWN_LABEL
