"""Application configuration dataclasses.

Frozen dataclasses with sensible defaults for each subsystem. Defaults can
be overridden at construction time, or read from ``CUIDADO_*`` environment
variables through each ``from_env()`` classmethod.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from dataclasses import field


def _env_str(name: str, default: str) -> str:
    return os.getenv(name, default)


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    return float(raw)


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    return int(raw)


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() == "true"


@dataclass(frozen=True)
class ModelConfig:
    """Chat model provider settings (primary model or helper model)."""

    provider: str = "ollama"
    model: str = "mistral:7b-instruct"
    base_url: str = "http://127.0.0.1:11434"
    api_key: str | None = None
    temperature: float = 0.7
    top_p: float = 0.9
    timeout_seconds: float = 60.0

    @classmethod
    def from_env(cls, prefix: str = "CUIDADO_MODEL") -> ModelConfig:
        defaults = cls()
        return cls(
            provider=_env_str(f"{prefix}_PROVIDER", defaults.provider),
            model=_env_str(f"{prefix}_NAME", defaults.model),
            base_url=_env_str(f"{prefix}_BASE_URL", defaults.base_url),
            api_key=os.getenv(f"{prefix}_API_KEY") or None,
            temperature=_env_float(f"{prefix}_TEMPERATURE", defaults.temperature),
            top_p=_env_float(f"{prefix}_TOP_P", defaults.top_p),
            timeout_seconds=_env_float(
                f"{prefix}_TIMEOUT_SECONDS", defaults.timeout_seconds
            ),
        )


@dataclass(frozen=True)
class EmbeddingConfig:
    """Embedding provider settings."""

    provider: str = "ollama"
    model: str = "nomic-embed-text"
    base_url: str = "http://127.0.0.1:11434"
    timeout_seconds: float = 60.0

    @classmethod
    def from_env(cls) -> EmbeddingConfig:
        defaults = cls()
        return cls(
            provider=_env_str("CUIDADO_EMBED_PROVIDER", defaults.provider),
            model=_env_str("CUIDADO_EMBED_MODEL", defaults.model),
            base_url=_env_str("CUIDADO_EMBED_BASE_URL", defaults.base_url),
            timeout_seconds=_env_float(
                "CUIDADO_EMBED_TIMEOUT_SECONDS", defaults.timeout_seconds
            ),
        )


@dataclass(frozen=True)
class RetrievalConfig:
    """Hybrid retrieval constants (BM25, RRF) and candidate sizing."""

    top_k: int = 6
    bm25_k1: float = 1.5
    bm25_b: float = 0.75
    rrf_kappa: float = 60.0
    candidate_limit: int = 600
    context_chars: int = 320

    @classmethod
    def from_env(cls) -> RetrievalConfig:
        defaults = cls()
        return cls(
            top_k=_env_int("CUIDADO_RETRIEVAL_TOP_K", defaults.top_k),
            bm25_k1=_env_float("CUIDADO_BM25_K1", defaults.bm25_k1),
            bm25_b=_env_float("CUIDADO_BM25_B", defaults.bm25_b),
            rrf_kappa=_env_float("CUIDADO_RRF_KAPPA", defaults.rrf_kappa),
            candidate_limit=_env_int(
                "CUIDADO_CANDIDATE_LIMIT", defaults.candidate_limit
            ),
            context_chars=_env_int("CUIDADO_CONTEXT_CHARS", defaults.context_chars),
        )


@dataclass(frozen=True)
class PlannerConfig:
    """Mode-selection thresholds for the planner."""

    uncertainty_threshold: float = 0.55
    novelty_threshold: float = 0.55
    value_at_risk_threshold: float = 0.50

    @classmethod
    def from_env(cls) -> PlannerConfig:
        defaults = cls()
        return cls(
            uncertainty_threshold=_env_float(
                "CUIDADO_PLANNER_U", defaults.uncertainty_threshold
            ),
            novelty_threshold=_env_float("CUIDADO_PLANNER_N", defaults.novelty_threshold),
            value_at_risk_threshold=_env_float(
                "CUIDADO_PLANNER_V", defaults.value_at_risk_threshold
            ),
        )


@dataclass(frozen=True)
class HelperConfig:
    """Reasoning-helper engagement triggers, hourly budget, and clipping."""

    enabled: bool = False
    trigger_uncertainty: float = 0.65
    trigger_novelty: float = 0.65
    trigger_value_at_risk: float = 0.55
    max_calls_per_hour: int = 30
    max_chars_in: int = 6000
    max_chars_out: int = 6000
    max_context_chars: int = 2000
    max_context_bullets: int = 8
    model: ModelConfig = field(
        default_factory=lambda: ModelConfig(
            provider="openai",
            model="gpt-4o-mini",
            base_url="https://api.openai.com/v1",
            temperature=0.5,
            top_p=0.9,
        )
    )

    @classmethod
    def from_env(cls) -> HelperConfig:
        defaults = cls()
        model_defaults = defaults.model
        return cls(
            enabled=_env_bool("CUIDADO_HELPER_ENABLE", defaults.enabled),
            trigger_uncertainty=_env_float(
                "CUIDADO_HELPER_TRIGGER_U", defaults.trigger_uncertainty
            ),
            trigger_novelty=_env_float(
                "CUIDADO_HELPER_TRIGGER_N", defaults.trigger_novelty
            ),
            trigger_value_at_risk=_env_float(
                "CUIDADO_HELPER_TRIGGER_V", defaults.trigger_value_at_risk
            ),
            max_calls_per_hour=_env_int(
                "CUIDADO_HELPER_MAX_TURNS_PER_HOUR", defaults.max_calls_per_hour
            ),
            max_chars_in=_env_int("CUIDADO_HELPER_MAX_CHARS_IN", defaults.max_chars_in),
            max_chars_out=_env_int(
                "CUIDADO_HELPER_MAX_CHARS_OUT", defaults.max_chars_out
            ),
            model=ModelConfig(
                provider=_env_str("CUIDADO_HELPER_PROVIDER", model_defaults.provider),
                model=_env_str("CUIDADO_HELPER_MODEL", model_defaults.model),
                base_url=_env_str("CUIDADO_HELPER_BASE_URL", model_defaults.base_url),
                api_key=os.getenv("CUIDADO_HELPER_API_KEY") or None,
                temperature=model_defaults.temperature,
                top_p=model_defaults.top_p,
                timeout_seconds=_env_float(
                    "CUIDADO_HELPER_TIMEOUT_SECONDS", model_defaults.timeout_seconds
                ),
            ),
        )


@dataclass(frozen=True)
class PolicyConfig:
    """Instruction-surface composition settings."""

    token_budget: int = 1800

    @classmethod
    def from_env(cls) -> PolicyConfig:
        return cls(
            token_budget=_env_int("CUIDADO_POLICY_TOKEN_BUDGET", cls().token_budget)
        )


@dataclass(frozen=True)
class StoreConfig:
    """Redis fragment store settings."""

    redis_url: str = "redis://localhost:6379"
    key_prefix: str = "cuidado"

    @classmethod
    def from_env(cls) -> StoreConfig:
        defaults = cls()
        return cls(
            redis_url=_env_str("CUIDADO_REDIS_URL", defaults.redis_url),
            key_prefix=_env_str("CUIDADO_KEY_PREFIX", defaults.key_prefix),
        )


@dataclass(frozen=True)
class AuditConfig:
    """Settings for the JSONL audit logger."""

    file_path: str = "cuidado_audit.jsonl"
    enabled: bool = True

    @classmethod
    def from_env(cls) -> AuditConfig:
        defaults = cls()
        return cls(
            file_path=_env_str("CUIDADO_AUDIT_FILE", defaults.file_path),
            enabled=_env_bool("CUIDADO_AUDIT_ENABLED", defaults.enabled),
        )
