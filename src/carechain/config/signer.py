"""Signing key configuration."""

from __future__ import annotations

from dataclasses import dataclass, field

from .env import require_env_var


@dataclass(frozen=True)
class SignerConfig:
    private_key: str = field(repr=False)


def get_signer_config() -> SignerConfig:
    return SignerConfig(private_key=require_env_var("CARECHAIN_PRIVATE_KEY"))
