"""Property-based tests for store synchronization

Property 4: Refresh short-circuit
Refreshing against an unchanged store keeps the very same matcher instance,
while any change in per-label embedding counts publishes a new one.
"""

import asyncio

from hypothesis import given, strategies as st, settings

from facesense.identity.repository import InMemoryDescriptorRepository, store_signature
from facesense.identity.synchronizer import StoreSynchronizer


@st.composite
def store_strategy(draw):
    labels = draw(st.lists(
        st.text(alphabet="xyzuvw", min_size=1, max_size=4),
        min_size=1, max_size=4, unique=True
    ))
    return {
        label: [[float(i), 0.0] for i in range(draw(st.integers(min_value=1, max_value=3)))]
        for label in labels
    }


@given(store=store_strategy(), repeats=st.integers(min_value=1, max_value=5))
@settings(max_examples=100, deadline=None)
def test_unchanged_store_keeps_instance(store, repeats):
    """Repeated refreshes of the same content never rebuild"""
    async def scenario():
        synchronizer = StoreSynchronizer(InMemoryDescriptorRepository(store), threshold=0.8, poll_interval=0)
        await synchronizer.refresh()
        first = synchronizer.current_matcher()
        for _ in range(repeats):
            assert await synchronizer.refresh() is False
        return first, synchronizer

    first, synchronizer = asyncio.run(scenario())

    assert synchronizer.current_matcher() is first
    assert synchronizer.rebuild_count == 1
    assert first.signature == store_signature(store)


@given(store=store_strategy(), data=st.data())
@settings(max_examples=100, deadline=None)
def test_appended_embedding_publishes_new_instance(store, data):
    """An append changes the signature and swaps the snapshot"""
    label = data.draw(st.sampled_from(list(store)))

    async def scenario():
        repository = InMemoryDescriptorRepository(store)
        synchronizer = StoreSynchronizer(repository, threshold=0.8, poll_interval=0)
        await synchronizer.refresh()
        first = synchronizer.current_matcher()
        await repository.append_descriptor(label, [9.0, 9.0])
        assert await synchronizer.refresh() is True
        return first, synchronizer.current_matcher()

    first, second = asyncio.run(scenario())

    assert second is not first
    assert len(second) == len(first) + 1
    assert second.best_match([9.0, 9.0]).label == label
