"""Engine domain: signals, planning, safety, helper escalation, shaping and model adapters."""

from cuidado.engine.composer import compose_policy_surface
from cuidado.engine.embeddings import build_embedding_provider
from cuidado.engine.embeddings import EmbeddingError
from cuidado.engine.embeddings import EmbeddingProvider
from cuidado.engine.embeddings import NoopEmbeddingAdapter
from cuidado.engine.embeddings import OllamaEmbeddingAdapter
from cuidado.engine.helper import HelperBudget
from cuidado.engine.helper import HelperGate
from cuidado.engine.helper import HelperOutcome
from cuidado.engine.llm_adapters import build_chat_adapter
from cuidado.engine.llm_adapters import ChatModel
from cuidado.engine.llm_adapters import LLMError
from cuidado.engine.llm_adapters import LLMTimeoutError
from cuidado.engine.llm_adapters import NoopChatAdapter
from cuidado.engine.llm_adapters import OllamaChatAdapter
from cuidado.engine.llm_adapters import OpenAICompatibleChatAdapter
from cuidado.engine.planner import make_plan
from cuidado.engine.policy import Constitution
from cuidado.engine.policy import Persona
from cuidado.engine.policy import PolicyProvider
from cuidado.engine.policy import StaticPolicyProvider
from cuidado.engine.safety import post_check
from cuidado.engine.safety import pre_check
from cuidado.engine.schemas import ControlSignals
from cuidado.engine.schemas import InterfaceSignals
from cuidado.engine.schemas import PlannerDecision
from cuidado.engine.schemas import PostCheckResult
from cuidado.engine.schemas import PreCheckResult
from cuidado.engine.schemas import ReaderEnvironment
from cuidado.engine.schemas import ReaderPrediction
from cuidado.engine.schemas import SafetyFlag
from cuidado.engine.schemas import TurnResult
from cuidado.engine.schemas import UserModel
from cuidado.engine.shaping import ResponseShaper
from cuidado.engine.shaping import shape_response
from cuidado.engine.shaping import simulate_reader
from cuidado.engine.signals import compute_signals
from cuidado.engine.signals import SignalInputs
from cuidado.engine.tool_calls import NoToolCall
from cuidado.engine.tool_calls import parse_tool_call
from cuidado.engine.tool_calls import ToolCall
from cuidado.engine.tool_calls import ToolRegistry
from cuidado.engine.tool_calls import ToolResult

__all__ = [
    "ChatModel",
    "Constitution",
    "ControlSignals",
    "EmbeddingError",
    "EmbeddingProvider",
    "HelperBudget",
    "HelperGate",
    "HelperOutcome",
    "InterfaceSignals",
    "LLMError",
    "LLMTimeoutError",
    "NoToolCall",
    "NoopChatAdapter",
    "NoopEmbeddingAdapter",
    "OllamaChatAdapter",
    "OllamaEmbeddingAdapter",
    "OpenAICompatibleChatAdapter",
    "Persona",
    "PlannerDecision",
    "PolicyProvider",
    "PostCheckResult",
    "PreCheckResult",
    "ReaderEnvironment",
    "ReaderPrediction",
    "ResponseShaper",
    "SafetyFlag",
    "SignalInputs",
    "StaticPolicyProvider",
    "ToolCall",
    "ToolRegistry",
    "ToolResult",
    "TurnResult",
    "UserModel",
    "build_chat_adapter",
    "build_embedding_provider",
    "compose_policy_surface",
    "compute_signals",
    "make_plan",
    "parse_tool_call",
    "post_check",
    "pre_check",
    "shape_response",
    "simulate_reader",
]
