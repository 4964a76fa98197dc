"""Redis-backed fragment and outcome store.

Fragments are JSON strings keyed by ``{prefix}:fragment:{id}`` with a sorted
set ``{prefix}:recency`` (score = timestamp) for newest-first listing.
Outcome cards live under ``{prefix}:outcome:{id}`` indexed by
``{prefix}:outcomes``. Nothing expires and nothing is deleted by the core;
the only rewrite is the embedding back-fill, which uses ``SET ... XX``.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from typing import Protocol
from typing import runtime_checkable
from typing import TYPE_CHECKING

from redis.asyncio import Redis  # type: ignore[import-untyped]

from cuidado.memory.schemas import create_fragment
from cuidado.memory.schemas import Fragment
from cuidado.memory.schemas import OutcomeCard

if TYPE_CHECKING:
    from cuidado.engine.embeddings import EmbeddingProvider

logger = logging.getLogger(__name__)

_LESSON_TAG = "lesson"
_LESSON_SCAN = 100
_CLEAR_BATCH_SIZE = 100


def _decode(raw: bytes | str) -> str:
    return raw.decode() if isinstance(raw, bytes) else raw


@runtime_checkable
class FragmentStore(Protocol):
    """What the chat pipeline needs from persistent memory."""

    async def list_recent(self, limit: int) -> list[Fragment]: ...

    async def append(
        self,
        text: str,
        tags: list[str],
        trust: float = 0.6,
        source: str | None = None,
    ) -> Fragment: ...

    async def backfill_missing_embeddings(
        self,
        fragments: Sequence[Fragment],
        embedder: EmbeddingProvider,
    ) -> list[Fragment]: ...

    async def write_outcome(self, card: OutcomeCard) -> None: ...

    async def latest_outcomes(self, n: int = 10) -> list[OutcomeCard]: ...

    async def latest_lessons(self, n: int = 10) -> list[Fragment]: ...


class RedisFragmentStore(FragmentStore):
    """Append-only fragment memory on a ``redis.asyncio`` client."""

    def __init__(self, redis: Redis, *, key_prefix: str = "cuidado") -> None:
        self._redis = redis
        self._prefix = key_prefix
        self._fragment_key = f"{key_prefix}:fragment"
        self._recency_key = f"{key_prefix}:recency"
        self._outcome_key = f"{key_prefix}:outcome"
        self._outcomes_key = f"{key_prefix}:outcomes"

    # -- write --

    async def add(self, fragment: Fragment) -> Fragment:
        """Persist an already-built fragment and return it."""
        pipe = self._redis.pipeline()
        pipe.set(f"{self._fragment_key}:{fragment.id}", fragment.model_dump_json())
        pipe.zadd(self._recency_key, {fragment.id: fragment.timestamp})
        await pipe.execute()
        logger.debug("fragment stored id=%s tags=%s", fragment.id, fragment.tags)
        return fragment

    async def append(
        self,
        text: str,
        tags: list[str],
        trust: float = 0.6,
        source: str | None = None,
    ) -> Fragment:
        return await self.add(create_fragment(text, tags=tags, trust=trust, source=source))

    async def backfill_missing_embeddings(
        self,
        fragments: Sequence[Fragment],
        embedder: EmbeddingProvider,
    ) -> list[Fragment]:
        """Embed fragments lacking a vector and persist the vectors.

        Returns *fragments* in the same order with embeddings filled in.
        ``EmbeddingError`` from *embedder* propagates and nothing is written.
        Fragments whose key has disappeared are not recreated.
        """
        missing = [f for f in fragments if not f.is_embedded]
        if not missing:
            return list(fragments)

        vectors = await embedder.embed([f.text for f in missing])
        updated = {
            fragment.id: fragment.model_copy(update={"embedding": vector})
            for fragment, vector in zip(missing, vectors)
        }

        pipe = self._redis.pipeline()
        for fragment in updated.values():
            pipe.set(
                f"{self._fragment_key}:{fragment.id}",
                fragment.model_dump_json(),
                xx=True,
            )
        await pipe.execute()
        logger.info("embeddings backfilled count=%d", len(updated))
        return [updated.get(f.id, f) for f in fragments]

    async def write_outcome(self, card: OutcomeCard) -> None:
        pipe = self._redis.pipeline()
        pipe.set(f"{self._outcome_key}:{card.id}", card.model_dump_json())
        pipe.zadd(self._outcomes_key, {card.id: card.timestamp})
        await pipe.execute()
        logger.debug("outcome stored id=%s outcome=%s", card.id, card.outcome)

    # -- read --

    async def list_recent(self, limit: int) -> list[Fragment]:
        """Return up to *limit* fragments, newest first."""
        if limit <= 0:
            return []
        raw = await self._fetch_newest(self._recency_key, self._fragment_key, limit)
        return [Fragment.model_validate_json(data) for data in raw]

    async def latest_outcomes(self, n: int = 10) -> list[OutcomeCard]:
        if n <= 0:
            return []
        raw = await self._fetch_newest(self._outcomes_key, self._outcome_key, n)
        return [OutcomeCard.model_validate_json(data) for data in raw]

    async def latest_lessons(self, n: int = 10) -> list[Fragment]:
        """Newest lesson-tagged fragments among the last 100 written."""
        recent = await self.list_recent(_LESSON_SCAN)
        return [f for f in recent if _LESSON_TAG in f.tags][:n]

    async def clear(self) -> None:
        """Remove every key under this store's prefix (tests and resets)."""
        batch: list = []
        async for key in self._redis.scan_iter(match=f"{self._prefix}:*"):
            batch.append(key)
            if len(batch) >= _CLEAR_BATCH_SIZE:
                await self._redis.delete(*batch)
                batch.clear()
        if batch:
            await self._redis.delete(*batch)

    async def close(self) -> None:
        await self._redis.aclose()

    # -- internal --

    async def _fetch_newest(
        self, index_key: str, item_key: str, limit: int
    ) -> list[bytes | str]:
        ids = await self._redis.zrevrange(index_key, 0, limit - 1)
        if not ids:
            return []

        decoded_ids = [_decode(raw_id) for raw_id in ids]
        pipe = self._redis.pipeline()
        for item_id in decoded_ids:
            pipe.get(f"{item_key}:{item_id}")
        raw_results = await pipe.execute()

        stale_ids = [iid for iid, raw in zip(decoded_ids, raw_results) if raw is None]
        if stale_ids:
            await self._redis.zrem(index_key, *stale_ids)
        return [raw for raw in raw_results if raw is not None]
