"""
core - Core utilities for licensekit.

This package contains:
- constants.py: Enums and defaults
- exceptions.py: Typed exceptions with error codes
- logging.py: Structured JSON logging
"""

from core.constants import (
    DEFAULT_BASE_DELAY_MS,
    DEFAULT_RETRY_ATTEMPTS,
    DEFAULT_TIMEOUT_MS,
    ErrorCode,
    ProviderKind,
    ProviderState,
)
from core.exceptions import (
    ConfigurationError,
    EndpointError,
    LicenseKitError,
    NodeError,
    RequestTimeoutError,
    RPCError,
)
from core.logging import get_logger, mask_url, setup_logging

__all__ = [
    # Constants
    "DEFAULT_BASE_DELAY_MS",
    "DEFAULT_RETRY_ATTEMPTS",
    "DEFAULT_TIMEOUT_MS",
    "ErrorCode",
    "ProviderKind",
    "ProviderState",
    # Exceptions
    "ConfigurationError",
    "EndpointError",
    "LicenseKitError",
    "NodeError",
    "RequestTimeoutError",
    "RPCError",
    # Logging
    "get_logger",
    "mask_url",
    "setup_logging",
]
