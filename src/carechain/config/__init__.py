"""Application configuration helpers."""

from __future__ import annotations

from .env import optional_env_var, require_env_var, require_env_vars
from .errors import ConfigurationError, MissingConfigurationError
from .http_resilience import NO_RETRY, CacheConfig, RateLimit, ResilienceConfig, RetryPolicy
from .ipfs import IpfsConfig, get_ipfs_config
from .ledger import LedgerConfig, default_ledger_resilience, get_ledger_config
from .logging import configure_logging
from .signer import SignerConfig, get_signer_config
from .sync import SyncConfig, get_sync_config

__all__ = [
    "NO_RETRY",
    "CacheConfig",
    "ConfigurationError",
    "IpfsConfig",
    "LedgerConfig",
    "MissingConfigurationError",
    "RateLimit",
    "ResilienceConfig",
    "RetryPolicy",
    "SignerConfig",
    "SyncConfig",
    "configure_logging",
    "default_ledger_resilience",
    "get_ipfs_config",
    "get_ledger_config",
    "get_signer_config",
    "get_sync_config",
    "optional_env_var",
    "require_env_var",
    "require_env_vars",
]
