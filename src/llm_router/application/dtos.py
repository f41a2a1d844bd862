"""Data Transfer Objects — Pydantic models for API boundaries.

DTOs adapt the router's in-memory snapshots for the operator REST surface;
they are not used on the request path.
"""

from __future__ import annotations

from pydantic import BaseModel, Field

from llm_router.domain.enums import KeyStatus


# ═══════════════════════════════════════════════════════════════
#  Common
# ═══════════════════════════════════════════════════════════════
class ErrorResponse(BaseModel):
    code: str
    message: str


class HealthResponse(BaseModel):
    status: str = "ok"
    version: str = "0.1.0"
    environment: str = "development"
    providers: int = 0
    local_available: bool = False


# ═══════════════════════════════════════════════════════════════
#  Provider status
# ═══════════════════════════════════════════════════════════════
class KeyStatusResponse(BaseModel):
    index: int
    masked: str
    status: KeyStatus
    consecutive_failures: int = 0
    circuit_open: bool = False
    disabled: bool = False
    auth_failed: bool = False
    cooldown_remaining_s: float = 0.0
    calls: int = 0
    tokens: int = 0
    errors: int = 0


class ProviderStatusResponse(BaseModel):
    provider_id: str
    display_name: str
    models: list[str] = Field(default_factory=list)
    supports_tools: bool = False
    available_keys: int = 0
    keys: list[KeyStatusResponse] = Field(default_factory=list)


class LocalStatusResponse(BaseModel):
    available: bool = False
    model: str | None = None


class LastUsedResponse(BaseModel):
    provider: str
    model: str


class RouterStatusResponse(BaseModel):
    providers: list[ProviderStatusResponse] = Field(default_factory=list)
    preferred: str | None = None
    last_used: LastUsedResponse | None = None
    local: LocalStatusResponse = Field(default_factory=LocalStatusResponse)
    stats: dict[str, int] = Field(default_factory=dict)


# ═══════════════════════════════════════════════════════════════
#  Operator actions
# ═══════════════════════════════════════════════════════════════
class PreferredProviderRequest(BaseModel):
    provider_id: str = Field(..., min_length=1, max_length=64)


class PreferredProviderResponse(BaseModel):
    status: str = "updated"
    provider_id: str


class KeyResetResponse(BaseModel):
    status: str = "reset"
    provider_id: str
    key: KeyStatusResponse
