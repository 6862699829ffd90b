"""IPFS blob store configuration values."""

from __future__ import annotations

import os
from dataclasses import dataclass

from .http_resilience import RateLimit, ResilienceConfig, RetryPolicy

IPFS_DEFAULT_API_URL = "http://localhost:5001/api/v0"
IPFS_TIMEOUT_SECONDS = 60.0


@dataclass(frozen=True)
class IpfsConfig:
    api_url: str
    resilience: ResilienceConfig
    pin: bool = True


def get_ipfs_config(*, resilience: ResilienceConfig | None = None) -> IpfsConfig:
    api_url = (os.getenv("CARECHAIN_IPFS_API_URL") or IPFS_DEFAULT_API_URL).rstrip("/")
    return IpfsConfig(
        api_url=api_url,
        resilience=resilience
        or ResilienceConfig(
            name="ipfs",
            base_url=api_url,
            timeout_seconds=IPFS_TIMEOUT_SECONDS,
            retry=RetryPolicy(total=3),
            ratelimit=RateLimit(max_calls=5, per_seconds=1.0),
        ),
    )
