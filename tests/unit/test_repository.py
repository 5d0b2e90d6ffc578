"""Unit tests for descriptor store helpers and the in-memory repository"""

import pytest

from facesense.models.enums import FetchStatus
from facesense.models.interfaces import PersistenceError
from facesense.identity.repository import (
    InMemoryDescriptorRepository,
    parse_descriptor_payload,
    sanitize_artifact_name,
    store_signature
)


class TestStoreSignature:
    """Test suite for store_signature"""

    def test_label_counts_in_order(self):
        store = {"alice": [[0.0], [1.0]], "bob": [[2.0]]}
        assert store_signature(store) == "alice:2|bob:1"

    def test_changes_when_a_descriptor_is_appended(self):
        before = store_signature({"bob": [[0.0]]})
        after = store_signature({"bob": [[0.0], [1.0]]})
        assert before != after

    def test_empty_store(self):
        assert store_signature({}) == ""

    def test_separators_in_labels_do_not_collide(self):
        first = store_signature({"a:1|b": [[0.0]]})
        second = store_signature({"a": [[0.0]], "b": [[0.0]]})

        assert first != second
        assert first == "a\\:1\\|b:1"


class TestParseDescriptorPayload:
    """Test suite for parse_descriptor_payload"""

    def test_mapping_form(self):
        store = parse_descriptor_payload({"alice": [[1, 2.5]]})
        assert store == {"alice": [[1.0, 2.5]]}

    def test_list_form_merges_repeated_labels(self):
        payload = [
            {"label": "alice", "descriptors": [[0.0, 1.0]]},
            {"label": "bob", "descriptors": []},
            {"label": "alice", "descriptors": [[2.0, 3.0]]},
        ]
        store = parse_descriptor_payload(payload)

        assert list(store) == ["alice", "bob"]
        assert store["alice"] == [[0.0, 1.0], [2.0, 3.0]]
        assert store["bob"] == []

    def test_list_form_tolerates_missing_descriptors(self):
        assert parse_descriptor_payload([{"label": "alice"}]) == {"alice": []}

    @pytest.mark.parametrize("payload", [
        "not a store",
        42,
        [{"name": "alice"}],
        {"": [[0.0]]},
        {"alice": "0,1"},
        {"alice": [[0.0, "x"]]},
        {"alice": [[]]},
        {"alice": [[float("inf")]]},
    ])
    def test_malformed_payloads(self, payload):
        with pytest.raises(ValueError):
            parse_descriptor_payload(payload)


class TestSanitizeArtifactName:
    """Test suite for sanitize_artifact_name"""

    def test_keeps_korean_and_word_characters(self):
        assert sanitize_artifact_name("민수.png") == "민수.png"
        assert sanitize_artifact_name("bob_1-a.png") == "bob_1-a.png"

    def test_replaces_unsafe_characters(self):
        assert sanitize_artifact_name("../etc/pass wd.png") == ".._etc_pass_wd.png"

    def test_rejects_empty_names(self):
        with pytest.raises(PersistenceError):
            sanitize_artifact_name("  ")
        with pytest.raises(PersistenceError):
            sanitize_artifact_name("..")


class TestInMemoryDescriptorRepository:
    """Test suite for InMemoryDescriptorRepository"""

    @pytest.mark.asyncio
    async def test_not_found_until_initialized(self):
        repository = InMemoryDescriptorRepository()
        result = await repository.fetch_descriptor_store()

        assert result.status == FetchStatus.NOT_FOUND
        assert result.store is None

    @pytest.mark.asyncio
    async def test_append_creates_label_and_notifies(self):
        repository = InMemoryDescriptorRepository()
        notifications = []
        await repository.subscribe_invalidation(lambda: notifications.append(1))

        await repository.append_descriptor("bob", [1.0, 1.0])
        result = await repository.fetch_descriptor_store()

        assert result.is_found
        assert result.store == {"bob": [[1.0, 1.0]]}
        assert notifications == [1]

    @pytest.mark.asyncio
    async def test_fetch_returns_a_copy(self):
        repository = InMemoryDescriptorRepository({"bob": [[0.0]]})
        result = await repository.fetch_descriptor_store()
        result.store["bob"].append([9.0])

        again = await repository.fetch_descriptor_store()
        assert again.store == {"bob": [[0.0]]}

    @pytest.mark.asyncio
    async def test_unsubscribe_stops_notifications(self):
        repository = InMemoryDescriptorRepository()
        notifications = []
        unsubscribe = await repository.subscribe_invalidation(lambda: notifications.append(1))
        await unsubscribe()

        await repository.append_descriptor("bob", [1.0])
        assert notifications == []

    @pytest.mark.asyncio
    async def test_append_rejects_invalid_input(self):
        repository = InMemoryDescriptorRepository()

        with pytest.raises(PersistenceError):
            await repository.append_descriptor("", [1.0])
        with pytest.raises(PersistenceError):
            await repository.append_descriptor("bob", [])

    @pytest.mark.asyncio
    async def test_save_artifact_returns_known_url(self):
        repository = InMemoryDescriptorRepository()
        url = await repository.save_artifact(b"png-bytes", "bob smith.png")

        assert url == "/known/bob_smith.png"
        assert repository.artifacts["bob_smith.png"] == b"png-bytes"
        assert repository.save_calls == 1
