"""In-memory fakes for the router ports, plus a fully wired test harness."""

from __future__ import annotations

from typing import Any, Callable, Sequence

from llm_router.domain.entities import Completion, ConversationMessage
from llm_router.domain.exceptions import LocalModelError
from llm_router.ports.outbound import CompletionPort, LocalModelPort
from llm_router.shared.providers import (
    KeyHealthChecker,
    KeyPolicy,
    LLMRouter,
    ModelSpec,
    ProviderConfig,
    ResilientProviderGateway,
    RouterState,
    ToolExecutionLoop,
)


class FakeClock:
    """Monotonic clock advanced by hand."""

    def __init__(self, start: float = 1_000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


Handler = Callable[..., Completion]


class FakeCompletionClient(CompletionPort):
    """Scripted upstream: ``handler(**call)`` returns a Completion or raises."""

    def __init__(self, handler: Handler | None = None) -> None:
        self.handler = handler or (lambda **_: Completion(content="ok", model="m"))
        self.calls: list[dict[str, Any]] = []
        self.probe_results: dict[str, bool] = {}
        self.probed: list[str] = []

    async def complete(self, **kwargs: Any) -> Completion:
        kwargs["messages"] = list(kwargs["messages"])
        self.calls.append(kwargs)
        return self.handler(**kwargs)

    async def probe(self, *, base_url: str, api_key: str, timeout: float | None = None) -> bool:
        self.probed.append(api_key)
        return self.probe_results.get(api_key, False)

    def keys_used(self) -> list[str]:
        return [c["api_key"] for c in self.calls]


class FakeLocalModel(LocalModelPort):
    def __init__(self, content: str = "local answer", *, fail: bool = False) -> None:
        self.model = "llama3.1:8b"
        self.content = content
        self.fail = fail
        self.available = True
        self.calls: list[list[ConversationMessage]] = []

    async def chat(
        self, messages: Sequence[ConversationMessage], *, temperature: float = 0.6
    ) -> Completion:
        self.calls.append(list(messages))
        if self.fail:
            raise LocalModelError("Local AI unreachable: ConnectError")
        return Completion(content=self.content, model=self.model)

    async def is_available(self) -> bool:
        return self.available


def provider_config(
    provider_id: str,
    keys: Sequence[str],
    *,
    priority: int = 1,
    models: Sequence[str] = ("primary", "fallback"),
    supports_tools: bool = True,
) -> ProviderConfig:
    return ProviderConfig(
        provider_id=provider_id,
        display_name=provider_id.upper(),
        base_url=f"https://{provider_id}.example/v1",
        models=tuple(ModelSpec(m, supports_tools=supports_tools) for m in models),
        api_keys=tuple(keys),
        priority=priority,
    )


class RouterHarness:
    """Router wired to fakes, with zero backoff."""

    def __init__(
        self,
        configs: Sequence[ProviderConfig],
        *,
        clock: FakeClock,
        client: CompletionPort | None = None,
        local: LocalModelPort | None = None,
        preferred: str | None = None,
        max_rounds: int = 5,
        tool_timeout_s: float = 45.0,
        max_retries: int = 2,
    ) -> None:
        self.clock = clock
        self.client = client or FakeCompletionClient()
        self.local = local
        self.state = RouterState.from_configs(
            configs, policy=KeyPolicy(), clock=clock, preferred_provider_id=preferred
        )
        self.gateway = ResilientProviderGateway(
            self.client, self.state, max_retries=max_retries, backoff_base=0.0, backoff_max=0.0
        )
        self.tool_loop = ToolExecutionLoop(
            self.gateway, self.state, max_rounds=max_rounds, tool_timeout_s=tool_timeout_s
        )
        self.router = LLMRouter(self.state, self.gateway, self.tool_loop, local)
        self.checker = KeyHealthChecker(self.state, self.client, local, interval_s=300.0)
