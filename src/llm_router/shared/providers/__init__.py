"""Multi-provider LLM routing core.

Per-key state, round-robin key rotation, key-level retry, the bounded tool
loop, the tiered router and the background health checker.
"""

from llm_router.shared.providers.types import (
    KeyHealth,
    ModelSpec,
    ProviderConfig,
    ProviderHealth,
)
from llm_router.shared.providers.key_state import KeyPolicy, KeyState
from llm_router.shared.providers.key_manager import KeyManager
from llm_router.shared.providers.registry import Provider, RouterState, RouterStats
from llm_router.shared.providers.gateway import ResilientProviderGateway
from llm_router.shared.providers.tool_loop import ToolExecutionLoop
from llm_router.shared.providers.router import LLMRouter
from llm_router.shared.providers.health import KeyHealthChecker

__all__ = [
    "KeyHealth",
    "KeyHealthChecker",
    "KeyManager",
    "KeyPolicy",
    "KeyState",
    "LLMRouter",
    "ModelSpec",
    "Provider",
    "ProviderConfig",
    "ProviderHealth",
    "ResilientProviderGateway",
    "RouterState",
    "RouterStats",
    "ToolExecutionLoop",
]
