"""Cuidado: FastMCP server exposing the chat pipeline and fragment memory.

Tools delegate to ``ChatPipeline`` and ``RedisFragmentStore``. Call
``configure()`` before using the server; ``main()`` does so from the
environment and then runs the stdio transport.
"""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from time import perf_counter

from dotenv import load_dotenv
from fastmcp import FastMCP
from pydantic import ValidationError
from redis.asyncio import Redis  # type: ignore[import-untyped]

from cuidado.audit import AuditEventType
from cuidado.audit import AuditLogger
from cuidado.config import AuditConfig
from cuidado.config import EmbeddingConfig
from cuidado.config import HelperConfig
from cuidado.config import ModelConfig
from cuidado.config import PlannerConfig
from cuidado.config import PolicyConfig
from cuidado.config import RetrievalConfig
from cuidado.config import StoreConfig
from cuidado.engine import build_chat_adapter
from cuidado.engine import build_embedding_provider
from cuidado.engine import ChatModel
from cuidado.engine import EmbeddingError
from cuidado.engine import EmbeddingProvider
from cuidado.engine import HelperGate
from cuidado.engine import PolicyProvider
from cuidado.engine import ToolRegistry
from cuidado.engine import TurnResult
from cuidado.engine.pipeline import ChatPipeline
from cuidado.engine.pipeline import Shaper
from cuidado.memory import create_fragment
from cuidado.memory import RedisFragmentStore
from cuidado.models import ChatInput
from cuidado.models import LessonsResult
from cuidado.models import OutcomesResult
from cuidado.models import RecallInput
from cuidado.models import RecallResult
from cuidado.models import RememberInput
from cuidado.models import RememberResult
from cuidado.models import TurnStatsResult
from cuidado.observability import metrics_snapshot
from cuidado.observability import record_latency
from cuidado.retrieval import hybrid_retrieve

logger = logging.getLogger(__name__)

mcp = FastMCP("Cuidado")

# ---------------------------------------------------------------------------
# Backends (set via configure())
# ---------------------------------------------------------------------------

_store: RedisFragmentStore | None = None
_embedder: EmbeddingProvider | None = None
_pipeline: ChatPipeline | None = None
_audit_logger: AuditLogger | None = None
_retrieval_config: RetrievalConfig = RetrievalConfig()


async def configure(
    redis_url: str | None = None,
    *,
    store_config: StoreConfig | None = None,
    model_config: ModelConfig | None = None,
    embedding_config: EmbeddingConfig | None = None,
    helper_config: HelperConfig | None = None,
    retrieval_config: RetrievalConfig | None = None,
    planner_config: PlannerConfig | None = None,
    policy_config: PolicyConfig | None = None,
    audit_config: AuditConfig | None = None,
    chat_model: ChatModel | None = None,
    embedder: EmbeddingProvider | None = None,
    helper_model: ChatModel | None = None,
    policy: PolicyProvider | None = None,
    shaper: Shaper | None = None,
) -> None:
    """Wire Redis, model adapters and the chat pipeline.

    Explicit adapters take precedence over the ones built from config.
    Without a *shaper* the pipeline uses the reader-aware ``ResponseShaper``.
    Must be called before the MCP tools can function.
    """
    global _store, _embedder, _pipeline, _audit_logger, _retrieval_config
    if _store is not None:
        try:
            await _store.close()
        except RuntimeError:
            # Tests may reconfigure across event loops.
            pass

    store_cfg = store_config or StoreConfig()
    model_cfg = model_config or ModelConfig()
    helper_cfg = helper_config or HelperConfig()
    _retrieval_config = retrieval_config or RetrievalConfig()

    _audit_logger = AuditLogger(audit_config or AuditConfig())
    _store = RedisFragmentStore(
        Redis.from_url(redis_url or store_cfg.redis_url),
        key_prefix=store_cfg.key_prefix,
    )
    _embedder = embedder or build_embedding_provider(embedding_config or EmbeddingConfig())

    if helper_model is None and helper_cfg.enabled:
        helper_model = build_chat_adapter(helper_cfg.model)

    _pipeline = ChatPipeline(
        store=_store,
        embedder=_embedder,
        model=chat_model or build_chat_adapter(model_cfg),
        model_config=model_cfg,
        helper=HelperGate(helper_model, helper_cfg, audit=_audit_logger),
        policy=policy,
        tools=ToolRegistry(_store),
        shaper=shaper,
        audit=_audit_logger,
        retrieval_config=_retrieval_config,
        planner_config=planner_config,
        policy_config=policy_config,
    )
    logger.info(
        "configured model=%s embed_provider=%s helper_enabled=%s",
        model_cfg.model,
        type(_embedder).__name__,
        helper_cfg.enabled,
    )


async def shutdown() -> None:
    """Close backend clients and release server resources."""
    global _store, _embedder, _pipeline, _audit_logger
    if _store is not None:
        await _store.close()
        _store = None
    _embedder = None
    _pipeline = None
    _audit_logger = None


async def _reset_store() -> None:
    """Clear all stored fragments and outcomes (test cleanup)."""
    if _store is not None:
        await _store.clear()


def _get_store() -> RedisFragmentStore:
    if _store is None:
        raise RuntimeError("Fragment store not configured. Call configure() first.")
    return _store


def _get_pipeline() -> ChatPipeline:
    if _pipeline is None:
        raise RuntimeError("Chat pipeline not configured. Call configure() first.")
    return _pipeline


def _validation_message(exc: ValidationError) -> str:
    err = exc.errors()[0] if exc.errors() else {}
    return str(err.get("msg", "Invalid input"))


# ---------------------------------------------------------------------------
# Tools
# ---------------------------------------------------------------------------


@mcp.tool
async def chat(message: str, user_criticality: float = 0.0) -> TurnResult:
    """Run one chat turn through retrieval, planning and safety checks.

    Args:
        message: The user's message.
        user_criticality: 0-1 weight on how much is at stake for the user.
    """
    start = perf_counter()
    ok = False
    try:
        pipeline = _get_pipeline()
        try:
            validated = ChatInput.model_validate(
                {"message": message, "user_criticality": user_criticality}
            )
        except ValidationError as exc:
            return TurnResult(
                status="rejected",
                error_code="validation_error",
                message=_validation_message(exc),
            )

        result = await pipeline.run_turn(validated.message, validated.user_criticality)
        ok = result.status != "error"
        return result
    finally:
        record_latency(
            operation="mcp.chat",
            duration_ms=(perf_counter() - start) * 1000,
            ok=ok,
        )


@mcp.tool
async def remember(
    text: str,
    tags: list[str] | None = None,
    trust: float = 0.6,
    source: str | None = None,
) -> RememberResult:
    """Store a note or lesson as a retrievable fragment.

    Args:
        text: Content to remember.
        tags: Optional labels such as "lesson" or "policy".
        trust: Trust score in [0, 1].
        source: Optional provenance label.
    """
    start = perf_counter()
    ok = False
    try:
        store = _get_store()
        try:
            validated = RememberInput.model_validate(
                {"text": text, "tags": tags or [], "trust": trust, "source": source}
            )
            fragment = create_fragment(
                validated.text,
                tags=validated.tags,
                trust=validated.trust,
                source=validated.source,
            )
        except ValidationError as exc:
            return RememberResult(
                fragment_id="",
                status="rejected",
                error_code="validation_error",
                message=_validation_message(exc),
            )
        except ValueError as exc:
            return RememberResult(
                fragment_id="",
                status="rejected",
                error_code="validation_error",
                message=str(exc),
            )

        await store.add(fragment)
        if _audit_logger is not None:
            await _audit_logger.emit(
                AuditEventType.FRAGMENT_APPENDED,
                fragment_id=fragment.id,
                tags=fragment.tags,
            )
        ok = True
        return RememberResult(fragment_id=fragment.id)
    finally:
        record_latency(
            operation="mcp.remember",
            duration_ms=(perf_counter() - start) * 1000,
            ok=ok,
        )


@mcp.tool
async def recall(query: str, k: int = 6) -> RecallResult:
    """Hybrid (BM25 + dense) retrieval over stored fragments, no generation.

    Args:
        query: Natural language query.
        k: Maximum number of hits.
    """
    start = perf_counter()
    ok = False
    try:
        store = _get_store()
        if _embedder is None:
            raise RuntimeError("Embedder not configured. Call configure() first.")
        try:
            validated = RecallInput.model_validate({"query": query, "k": k})
        except ValidationError as exc:
            return RecallResult(
                status="error",
                error_code="validation_error",
                message=_validation_message(exc),
            )

        try:
            fragments = await store.list_recent(_retrieval_config.candidate_limit)
            fragments = await store.backfill_missing_embeddings(fragments, _embedder)
            vectors = await _embedder.embed([validated.query])
        except EmbeddingError as exc:
            return RecallResult(
                status="error",
                error_code="upstream_unavailable",
                message=str(exc),
            )
        if not vectors:
            return RecallResult(
                status="error",
                error_code="upstream_unavailable",
                message="embedding provider returned no query vector",
            )

        hits = hybrid_retrieve(
            fragments, vectors[0], validated.query, validated.k, config=_retrieval_config
        )
        ok = True
        return RecallResult(hits=hits)
    finally:
        record_latency(
            operation="mcp.recall",
            duration_ms=(perf_counter() - start) * 1000,
            ok=ok,
        )


@mcp.tool
async def recent_outcomes(limit: int = 10) -> OutcomesResult:
    """List the newest outcome cards.

    Args:
        limit: Maximum number of cards (1-100).
    """
    store = _get_store()
    limit = max(1, min(limit, 100))
    return OutcomesResult(outcomes=await store.latest_outcomes(limit))


@mcp.tool
async def recent_lessons(limit: int = 10) -> LessonsResult:
    """List the newest lesson fragments written by finished turns.

    Args:
        limit: Maximum number of lessons (1-100).
    """
    store = _get_store()
    limit = max(1, min(limit, 100))
    return LessonsResult(lessons=await store.latest_lessons(limit))


@mcp.tool
async def turn_stats() -> TurnStatsResult:
    """Report stage latencies, the finished-turn tally and the last turn's signals."""
    pipeline = _get_pipeline()
    snapshot = metrics_snapshot()
    return TurnStatsResult(
        stages=snapshot["stages"],
        turns=snapshot["turns"],
        last_signals=pipeline.last_signals,
    )


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------


async def _configure_from_env() -> None:
    await configure(
        store_config=StoreConfig.from_env(),
        model_config=ModelConfig.from_env(),
        embedding_config=EmbeddingConfig.from_env(),
        helper_config=HelperConfig.from_env(),
        retrieval_config=RetrievalConfig.from_env(),
        planner_config=PlannerConfig.from_env(),
        policy_config=PolicyConfig.from_env(),
        audit_config=AuditConfig.from_env(),
    )


def main() -> None:
    """Load ``.env``, configure from ``CUIDADO_*`` variables and serve over stdio."""
    load_dotenv(dotenv_path=Path.cwd() / ".env", override=False)
    logging.basicConfig(level=logging.INFO)

    asyncio.run(_configure_from_env())
    mcp.run()


if __name__ == "__main__":
    main()
