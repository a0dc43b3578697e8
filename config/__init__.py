"""
Configuration loading utilities for licensekit.

RPC provider settings come from an optional YAML file overlaid by
environment variables (a .env file is honoured via python-dotenv).
Environment values always win over file values.
"""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import yaml
from dotenv import load_dotenv

from core.constants import (
    DEFAULT_RETRY_ATTEMPTS,
    DEFAULT_TIMEOUT_MS,
    ProviderKind,
)
from core.exceptions import ConfigurationError
from core.logging import mask_sensitive


CONFIG_DIR = Path(__file__).parent

# Environment variable names
ENV_KEYS = {
    "RPC_PROVIDER": "LICENSEKIT_RPC_PROVIDER",
    "RPC_API_KEY": "LICENSEKIT_RPC_API_KEY",
    "RPC_CUSTOM_URL": "LICENSEKIT_RPC_CUSTOM_URL",
    "RPC_FALLBACK_URLS": "LICENSEKIT_RPC_FALLBACK_URLS",
    "RPC_TIMEOUT_MS": "LICENSEKIT_RPC_TIMEOUT_MS",
    "RPC_RETRY_ATTEMPTS": "LICENSEKIT_RPC_RETRY_ATTEMPTS",
    "CHAIN_ID": "LICENSEKIT_CHAIN_ID",
    "LOG_LEVEL": "LICENSEKIT_LOG_LEVEL",
}

SENSITIVE_KEYS = {ENV_KEYS["RPC_API_KEY"]}


# =============================================================================
# PROVIDER CONFIG
# =============================================================================

@dataclass(frozen=True)
class NamedProvider:
    """Hosted provider addressed by name, e.g. 'alchemy' or 'infura'."""
    name: str
    api_key: Optional[str] = field(default=None, repr=False)


@dataclass(frozen=True)
class CustomProvider:
    """Self-supplied node URL, used verbatim."""
    url: Optional[str] = None


ProviderSource = Union[NamedProvider, CustomProvider]


@dataclass(frozen=True)
class RPCProviderConfig:
    """
    RPC provider configuration.

    source picks the primary endpoint; fallback_urls are tried after it, in
    order. retry_attempts and timeout_ms apply to every endpoint.
    """

    source: ProviderSource
    fallback_urls: tuple[str, ...] = ()
    retry_attempts: int = DEFAULT_RETRY_ATTEMPTS
    timeout_ms: int = DEFAULT_TIMEOUT_MS

    def __post_init__(self):
        object.__setattr__(self, "fallback_urls", tuple(self.fallback_urls or ()))
        for name in ("retry_attempts", "timeout_ms"):
            value = getattr(self, name)
            if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
                raise ConfigurationError(
                    f"{name} must be a positive integer, got {value!r}",
                    details={name: value},
                )

    @property
    def kind(self) -> ProviderKind:
        if isinstance(self.source, NamedProvider):
            return ProviderKind.NAMED
        return ProviderKind.CUSTOM

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "RPCProviderConfig":
        """
        Build from a plain mapping (YAML section or env overrides).

        Accepts either the explicit form
            provider_kind: named, provider_name: alchemy, api_key: ...
        or the shorthand
            provider: alchemy | infura | custom
        """
        kind = data.get("provider_kind")
        name = data.get("provider_name")
        shorthand = data.get("provider")

        if kind is None and shorthand:
            if str(shorthand).lower() == ProviderKind.CUSTOM.value:
                kind = ProviderKind.CUSTOM.value
            else:
                kind = ProviderKind.NAMED.value
                name = name or shorthand

        if kind is None:
            raise ConfigurationError("RPC provider kind is required")

        kind = str(kind).lower()
        if kind == ProviderKind.NAMED.value:
            if not name:
                raise ConfigurationError("provider_name is required for a named provider")
            source: ProviderSource = NamedProvider(
                name=str(name).lower(),
                api_key=data.get("api_key"),
            )
        elif kind == ProviderKind.CUSTOM.value:
            source = CustomProvider(url=data.get("custom_url"))
        else:
            raise ConfigurationError(f"Unknown provider kind: {kind}")

        return cls(
            source=source,
            fallback_urls=tuple(data.get("fallback_urls") or ()),
            retry_attempts=data.get("retry_attempts", DEFAULT_RETRY_ATTEMPTS),
            timeout_ms=data.get("timeout_ms", DEFAULT_TIMEOUT_MS),
        )


# =============================================================================
# ENVIRONMENT
# =============================================================================

def env_str(key: str, default: Optional[str] = None) -> Optional[str]:
    """Get an environment variable; empty values count as unset."""
    value = os.getenv(key)
    return value if value else default


def env_int(key: str, default: Optional[int] = None) -> Optional[int]:
    """
    Get an environment variable as int (default if unset).

    Raises:
        ConfigurationError: The variable is set but is not a base-10 integer
    """
    value = env_str(key)
    if value is None:
        return default
    try:
        return int(value, 10)
    except ValueError:
        raise ConfigurationError(
            f"{key} must be an integer, got {value!r}",
            details={"key": key},
        ) from None


def env_list(key: str, default: Optional[List[str]] = None) -> Optional[List[str]]:
    """Get a comma-separated environment variable as a list."""
    value = env_str(key)
    if value is None:
        return default
    return [part.strip() for part in value.split(",") if part.strip()]


def is_sensitive(key: str) -> bool:
    """Check if an environment key holds a secret."""
    return key in SENSITIVE_KEYS


def rpc_overrides_from_env() -> Dict[str, Any]:
    """RPC settings present in the environment, keyed like the YAML section."""
    overrides: Dict[str, Any] = {}

    provider = env_str(ENV_KEYS["RPC_PROVIDER"])
    if provider:
        overrides["provider"] = provider
    api_key = env_str(ENV_KEYS["RPC_API_KEY"])
    if api_key:
        overrides["api_key"] = api_key
    custom_url = env_str(ENV_KEYS["RPC_CUSTOM_URL"])
    if custom_url:
        overrides["custom_url"] = custom_url
    fallback_urls = env_list(ENV_KEYS["RPC_FALLBACK_URLS"])
    if fallback_urls is not None:
        overrides["fallback_urls"] = fallback_urls
    timeout_ms = env_int(ENV_KEYS["RPC_TIMEOUT_MS"])
    if timeout_ms is not None:
        overrides["timeout_ms"] = timeout_ms
    retry_attempts = env_int(ENV_KEYS["RPC_RETRY_ATTEMPTS"])
    if retry_attempts is not None:
        overrides["retry_attempts"] = retry_attempts

    return overrides


# =============================================================================
# FILES
# =============================================================================

def load_yaml(path: Union[str, Path]) -> Dict[str, Any]:
    """
    Load a YAML configuration file.

    Args:
        path: File path, or a file name inside the config directory

    Returns:
        Parsed YAML as dict
    """
    filepath = Path(path)
    if not filepath.is_absolute() and not filepath.exists():
        filepath = CONFIG_DIR / filepath
    if not filepath.exists():
        raise FileNotFoundError(f"Config file not found: {filepath}")

    with open(filepath, "r", encoding="utf-8") as f:
        return yaml.safe_load(f) or {}


def load_settings(path: Union[str, Path, None] = None) -> Dict[str, Any]:
    """
    Merge file settings with environment overrides.

    Returns:
        {"chain_id": int | None, "rpc": {...}, "log_level": str}
    """
    load_dotenv(override=False)

    data = load_yaml(path) if path else {}
    rpc = dict(data.get("rpc") or {})

    env_rpc = rpc_overrides_from_env()
    if "provider" in env_rpc:
        # Shorthand from the environment replaces an explicit kind from the file
        rpc.pop("provider_kind", None)
        rpc.pop("provider_name", None)
    rpc.update(env_rpc)

    return {
        "chain_id": env_int(ENV_KEYS["CHAIN_ID"], data.get("chain_id")),
        "rpc": rpc,
        "log_level": env_str(ENV_KEYS["LOG_LEVEL"], data.get("log_level", "INFO")),
    }


def validate_config(settings: Dict[str, Any]) -> List[str]:
    """
    Validate merged settings.

    Returns:
        Human-readable problems (empty when valid)
    """
    errors: List[str] = []

    chain_id = settings.get("chain_id")
    if isinstance(chain_id, bool) or not isinstance(chain_id, int) or chain_id <= 0:
        errors.append("Valid chain ID is required")

    rpc = settings.get("rpc")
    if not rpc:
        errors.append("RPC provider configuration is required")
        return errors

    kind = rpc.get("provider_kind")
    name = rpc.get("provider_name") or rpc.get("provider")
    if kind is None and name:
        kind = "custom" if str(name).lower() == "custom" else "named"

    if kind == "named":
        if not rpc.get("api_key"):
            errors.append(f"API key is required when using {name} provider")
    elif kind == "custom":
        if not rpc.get("custom_url"):
            errors.append("Custom URL is required when using custom provider")
    else:
        errors.append("RPC provider must be one of: named provider, custom")

    for key in ("retry_attempts", "timeout_ms"):
        value = rpc.get(key)
        if value is not None and (isinstance(value, bool) or not isinstance(value, int) or value <= 0):
            errors.append(f"{key} must be a positive integer")

    return errors


def load_rpc_config(
    path: Union[str, Path, None] = None,
) -> tuple[RPCProviderConfig, int]:
    """
    Load and validate RPC provider configuration.

    Raises:
        ConfigurationError: If the merged settings are invalid
    """
    settings = load_settings(path)
    errors = validate_config(settings)
    if errors:
        raise ConfigurationError(
            "Invalid RPC configuration: " + "; ".join(errors),
            details={"errors": errors},
        )
    return RPCProviderConfig.from_dict(settings["rpc"]), settings["chain_id"]


__all__ = [
    "CONFIG_DIR",
    "ENV_KEYS",
    "CustomProvider",
    "NamedProvider",
    "ProviderSource",
    "RPCProviderConfig",
    "env_int",
    "env_list",
    "env_str",
    "is_sensitive",
    "load_rpc_config",
    "load_settings",
    "load_yaml",
    "mask_sensitive",
    "rpc_overrides_from_env",
    "validate_config",
]
