"""
Constants for licensekit.

Contains enums, defaults, and configuration constants shared by the
RPC reliability engine.
"""

from enum import Enum
from typing import Final

# =============================================================================
# RETRY / TIMEOUT DEFAULTS
# =============================================================================

DEFAULT_RETRY_ATTEMPTS: Final[int] = 3
DEFAULT_TIMEOUT_MS: Final[int] = 30000

# Backoff before retry N (0-indexed) is BASE_DELAY_MS * 2**N
DEFAULT_BASE_DELAY_MS: Final[int] = 1000

# JSON-RPC
JSONRPC_VERSION: Final[str] = "2.0"

# Logger namespace
LOGGER_ROOT: Final[str] = "licensekit"


class ErrorCode(str, Enum):
    """
    Error codes for licensekit exceptions.

    Only the codes the engine itself raises live here. Wallet, contract
    and minting codes belong to the collaborators that raise them.
    """
    RPC_ERROR = "RPC_ERROR"
    NETWORK_ERROR = "NETWORK_ERROR"
    CONFIGURATION_ERROR = "CONFIGURATION_ERROR"
    UNKNOWN = "UNKNOWN"


class ProviderKind(str, Enum):
    """How the primary endpoint URL is obtained."""
    NAMED = "named"
    CUSTOM = "custom"


class ProviderState(str, Enum):
    """
    Provider lifecycle.

    UNINITIALIZED -> INITIALIZING -> READY
    UNINITIALIZED -> INITIALIZING -> FAILED (terminal)
    """
    UNINITIALIZED = "UNINITIALIZED"
    INITIALIZING = "INITIALIZING"
    READY = "READY"
    FAILED = "FAILED"
