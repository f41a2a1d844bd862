"""Router exception hierarchy.

All exceptions inherit from ``RouterError`` so callers can catch the entire
family in one clause while still discriminating on subclass.  Upstream
failures are classified once, in the HTTP adapter, from status codes and
transport exception types; everything downstream dispatches on ``kind``.
"""

from __future__ import annotations

from llm_router.domain.enums import UpstreamErrorKind


class RouterError(Exception):
    """Base class for all router errors."""

    def __init__(self, message: str, *, code: str = "ROUTER_ERROR") -> None:
        self.message = message
        self.code = code
        super().__init__(message)


# ── Upstream call outcomes ───────────────────────────────────
class UpstreamError(RouterError):
    """A single upstream completion call failed."""

    kind: UpstreamErrorKind = UpstreamErrorKind.TRANSPORT
    retryable: bool = False

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        self.status_code = status_code
        super().__init__(message, code=f"UPSTREAM_{self.kind.name}")


class RateLimitedError(UpstreamError):
    """HTTP 429 — recoverable after a cooldown on the same key."""

    kind = UpstreamErrorKind.RATE_LIMITED


class BillingExhaustedError(UpstreamError):
    """HTTP 402 — quota or billing exhausted for this key."""

    kind = UpstreamErrorKind.BILLING_EXHAUSTED


class AuthFailureError(UpstreamError):
    """HTTP 401/403 — the credential was rejected."""

    kind = UpstreamErrorKind.AUTH_FAILURE


class TransientTransportError(UpstreamError):
    """Timeout, connection failure or 502/503/504 — worth retrying in place."""

    kind = UpstreamErrorKind.TRANSIENT
    retryable = True


class TransportError(UpstreamError):
    """Any other non-2xx response."""

    kind = UpstreamErrorKind.TRANSPORT

    def __init__(self, status_code: int, body: str) -> None:
        self.body = body[:200]
        super().__init__(f"HTTP {status_code}: {self.body}", status_code=status_code)


class ProtocolError(UpstreamError):
    """2xx response whose body could not be interpreted as a completion."""

    kind = UpstreamErrorKind.PROTOCOL


# ── Aggregate failures ───────────────────────────────────────
class ProviderExhaustedError(RouterError):
    """Every key of a provider failed for one model."""

    def __init__(self, provider_id: str, errors: dict[str, str]) -> None:
        self.provider_id = provider_id
        self.errors = errors
        super().__init__(
            f"{provider_id}: all {len(errors)} keys exhausted",
            code="PROVIDER_EXHAUSTED",
        )


class LocalModelError(RouterError):
    def __init__(self, message: str) -> None:
        super().__init__(message, code="LOCAL_MODEL_ERROR")


# ── Operator API ─────────────────────────────────────────────
class UnknownProviderError(RouterError):
    def __init__(self, provider_id: str) -> None:
        super().__init__(f"Provider {provider_id!r} is not configured", code="UNKNOWN_PROVIDER")


class UnknownKeyError(RouterError):
    def __init__(self, provider_id: str, index: int) -> None:
        super().__init__(
            f"Provider {provider_id!r} has no key #{index}", code="UNKNOWN_KEY"
        )


class AdminAuthError(RouterError):
    def __init__(self, message: str = "Admin API key required") -> None:
        super().__init__(message, code="ADMIN_AUTH_ERROR")
