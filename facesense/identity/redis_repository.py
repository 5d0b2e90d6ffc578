"""Redis-backed descriptor repository

Layout under the configured key prefix:
    <prefix>:labels                list of labels in first-enrollment order
    <prefix>:label_set             set of labels, guards against duplicate list entries
    <prefix>:descriptors:<label>   list of JSON-encoded embeddings
    <prefix>:descriptors-change    pub/sub channel announcing appends

Face crops are written to a local artifact directory and served under /known/.
"""

import asyncio
import json
import logging
from pathlib import Path
from typing import Callable, Optional, Sequence, Set

import redis.asyncio as redis
from redis.exceptions import RedisError

from facesense.models.interfaces import DescriptorRepository, PersistenceError, Unsubscribe
from facesense.models.results import StoreFetchResult
from facesense.identity.repository import (
    ARTIFACT_URL_PREFIX,
    parse_descriptor_payload,
    sanitize_artifact_name
)
from facesense.config.config_loader import config


logger = logging.getLogger(__name__)


def _text(value) -> str:
    return value.decode("utf-8") if isinstance(value, bytes) else str(value)


class RedisDescriptorRepository(DescriptorRepository):
    """Descriptor repository on Redis lists with pub/sub invalidation.

    Attributes:
        redis_url: Redis connection URL
        key_prefix: Prefix of every key and the change channel
        artifact_dir: Directory face crops are written to
        redis_client: Async Redis client (initialized in connect())
    """

    def __init__(
        self,
        redis_url: Optional[str] = None,
        key_prefix: Optional[str] = None,
        artifact_dir: Optional[str] = None,
        client: Optional[redis.Redis] = None
    ):
        self.redis_url = redis_url or config.get('redis.url', 'redis://localhost:6379')
        self.key_prefix = key_prefix or config.get('redis.key_prefix', 'facesense')
        self.artifact_dir = Path(artifact_dir or config.get('persistence.artifact_dir', 'data/known'))
        self.redis_client: Optional[redis.Redis] = client
        self._listeners: Set[asyncio.Task] = set()

    @property
    def labels_key(self) -> str:
        return f"{self.key_prefix}:labels"

    @property
    def label_set_key(self) -> str:
        return f"{self.key_prefix}:label_set"

    @property
    def change_channel(self) -> str:
        return f"{self.key_prefix}:descriptors-change"

    def descriptors_key(self, label: str) -> str:
        return f"{self.key_prefix}:descriptors:{label}"

    async def connect(self):
        """Create the Redis client if none was injected"""
        if self.redis_client is None:
            self.redis_client = redis.from_url(self.redis_url)
            logger.info(f"Connected to Redis at {self.redis_url}")

    async def close(self):
        """Stop invalidation listeners and close the client"""
        for task in list(self._listeners):
            task.cancel()
        if self._listeners:
            await asyncio.gather(*self._listeners, return_exceptions=True)
        if self.redis_client is not None:
            await self.redis_client.aclose()
            self.redis_client = None
            logger.info("Redis connection closed")

    def _client(self) -> redis.Redis:
        if self.redis_client is None:
            raise PersistenceError("Redis repository is not connected")
        return self.redis_client

    async def fetch_descriptor_store(self) -> StoreFetchResult:
        try:
            client = self._client()
            labels = [_text(label) for label in await client.lrange(self.labels_key, 0, -1)]
            if not labels:
                return StoreFetchResult.not_found()

            payload = {}
            for label in labels:
                raw = await client.lrange(self.descriptors_key(label), 0, -1)
                payload[label] = [json.loads(_text(item)) for item in raw]

            return StoreFetchResult.found(parse_descriptor_payload(payload))

        except (RedisError, PersistenceError) as e:
            return StoreFetchResult.error(f"Redis fetch failed: {e}")
        except ValueError as e:
            # json.JSONDecodeError is a ValueError
            return StoreFetchResult.error(f"Malformed descriptor data: {e}")

    async def append_descriptor(self, label: str, embedding: Sequence[float]) -> None:
        if not label or not label.strip():
            raise PersistenceError("Identity label must not be empty")
        try:
            encoded = json.dumps([float(value) for value in embedding])
        except (TypeError, ValueError) as e:
            raise PersistenceError(f"Embedding is not numeric: {e}") from e

        client = self._client()
        try:
            # Descriptor first so a concurrent fetch never sees the label without it
            await client.rpush(self.descriptors_key(label), encoded)
            if await client.sadd(self.label_set_key, label):
                await client.rpush(self.labels_key, label)
            await client.publish(self.change_channel, "updated")
        except RedisError as e:
            raise PersistenceError(f"Failed to append descriptor for '{label}': {e}") from e

        logger.info(f"Descriptor appended for '{label}'")

    async def save_artifact(self, data: bytes, name: str) -> str:
        safe = sanitize_artifact_name(name)
        path = self.artifact_dir / safe
        try:
            await asyncio.to_thread(self._write_file, path, data)
        except OSError as e:
            raise PersistenceError(f"Failed to save artifact {safe}: {e}") from e
        logger.info(f"Artifact saved: {path}")
        return f"{ARTIFACT_URL_PREFIX}{safe}"

    @staticmethod
    def _write_file(path: Path, data: bytes):
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(data)

    async def subscribe_invalidation(self, on_change: Callable[[], None]) -> Unsubscribe:
        client = self._client()
        pubsub = client.pubsub()
        try:
            await pubsub.subscribe(self.change_channel)
        except RedisError as e:
            await pubsub.aclose()
            raise PersistenceError(f"Failed to subscribe to {self.change_channel}: {e}") from e

        task = asyncio.create_task(self._listen(pubsub, on_change))
        self._listeners.add(task)
        task.add_done_callback(self._listeners.discard)
        logger.info(f"Subscribed to {self.change_channel}")

        async def unsubscribe():
            task.cancel()
            await asyncio.gather(task, return_exceptions=True)
            try:
                await pubsub.unsubscribe(self.change_channel)
            except RedisError as e:
                logger.warning(f"Failed to unsubscribe from {self.change_channel}: {e}")
            finally:
                await pubsub.aclose()

        return unsubscribe

    async def _listen(self, pubsub, on_change: Callable[[], None]):
        try:
            async for message in pubsub.listen():
                if message.get("type") != "message":
                    continue
                try:
                    on_change()
                except Exception as e:
                    logger.error(f"Invalidation callback failed: {e}", exc_info=True)
        except asyncio.CancelledError:
            logger.info("Invalidation listener cancelled")
        except RedisError as e:
            logger.error(f"Invalidation listener stopped: {e}", exc_info=True)

