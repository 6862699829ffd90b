"""Ledger API configuration values."""

from __future__ import annotations

from dataclasses import dataclass

from .env import float_env_var, optional_env_var, require_env_vars
from .http_resilience import NO_RETRY, CacheConfig, RateLimit, ResilienceConfig

LEDGER_TIMEOUT_SECONDS = 15.0
DEFAULT_CONFIRMATION_POLL_SECONDS = 1.0
DEFAULT_CONFIRMATION_TIMEOUT_SECONDS = 120.0


def is_capabilities_payload(payload: object) -> bool:
    """Only the static capability document is worth caching; state reads never are."""

    return isinstance(payload, dict) and "operations" in payload and "items" not in payload


@dataclass(frozen=True)
class LedgerConfig:
    """Holds Ledger gateway configuration values."""

    base_url: str
    contract_address: str
    resilience: ResilienceConfig
    api_token: str | None = None
    confirmation_poll_seconds: float = DEFAULT_CONFIRMATION_POLL_SECONDS
    confirmation_timeout_seconds: float = DEFAULT_CONFIRMATION_TIMEOUT_SECONDS


def default_ledger_resilience(base_url: str, *, api_token: str | None = None) -> ResilienceConfig:
    headers = {"Authorization": f"Bearer {api_token}"} if api_token else None
    return ResilienceConfig(
        name="ledger",
        base_url=base_url,
        timeout_seconds=LEDGER_TIMEOUT_SECONDS,
        retry=NO_RETRY,
        ratelimit=RateLimit(max_calls=10, per_seconds=1.0),
        cache=CacheConfig(backend="memory", should_cache=is_capabilities_payload),
        default_headers=headers,
    )


def get_ledger_config(*, resilience: ResilienceConfig | None = None) -> LedgerConfig:
    values = require_env_vars(("CARECHAIN_LEDGER_URL", "CARECHAIN_CONTRACT_ADDRESS"))
    base_url = values["CARECHAIN_LEDGER_URL"].rstrip("/")
    api_token = optional_env_var("CARECHAIN_LEDGER_TOKEN")
    return LedgerConfig(
        base_url=base_url,
        contract_address=values["CARECHAIN_CONTRACT_ADDRESS"],
        resilience=resilience or default_ledger_resilience(base_url, api_token=api_token),
        api_token=api_token,
        confirmation_poll_seconds=float_env_var(
            "CARECHAIN_CONFIRMATION_POLL_SECONDS", DEFAULT_CONFIRMATION_POLL_SECONDS
        ),
        confirmation_timeout_seconds=float_env_var(
            "CARECHAIN_CONFIRMATION_TIMEOUT_SECONDS", DEFAULT_CONFIRMATION_TIMEOUT_SECONDS
        ),
    )
