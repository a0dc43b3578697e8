"""
Typed exceptions for licensekit.

Two error kinds reach callers:
- ConfigurationError: bad or incomplete config, or use before initialize().
  Never retried, raised before any network attempt.
- RPCError: every network-level failure, raised only once retries and
  failover are exhausted.

EndpointError and its subclasses describe a single failed attempt. They are
retained as RPCError.last_error and never escape the engine on their own.
"""

from typing import Any, Optional

from core.constants import ErrorCode


class LicenseKitError(Exception):
    """Base exception for licensekit."""

    def __init__(
        self,
        message: str,
        code: ErrorCode = ErrorCode.UNKNOWN,
        details: Optional[dict] = None,
        recoverable: bool = False,
        suggested_action: Optional[str] = None,
    ):
        super().__init__(message)
        self.message = message
        self.code = code
        self.details = details or {}
        self.recoverable = recoverable
        self.suggested_action = suggested_action

    def __str__(self):
        return f"[{self.code.value}] {self.message}"

    def to_dict(self) -> dict[str, Any]:
        """Serializable form for logs and error callbacks."""
        return {
            "code": self.code.value,
            "message": self.message,
            "details": self.details,
            "recoverable": self.recoverable,
            "suggested_action": self.suggested_action,
        }


class ConfigurationError(LicenseKitError):
    """Malformed config, unsupported chain, or provider not initialized."""

    def __init__(self, message: str, details: Optional[dict] = None):
        super().__init__(
            message,
            code=ErrorCode.CONFIGURATION_ERROR,
            details=details,
            recoverable=False,
            suggested_action="Check the RPC provider configuration",
        )


class RPCError(LicenseKitError):
    """RPC call failed after all retries on all endpoints."""

    def __init__(
        self,
        message: str,
        last_error: Optional[BaseException] = None,
        attempts: int = 0,
        details: Optional[dict] = None,
    ):
        super().__init__(
            message,
            code=ErrorCode.RPC_ERROR,
            details=details,
            recoverable=True,
            suggested_action="Check your network connection and try again",
        )
        self.last_error = last_error
        self.attempts = attempts


class EndpointError(LicenseKitError):
    """A single attempt against one endpoint failed."""

    def __init__(self, message: str, details: Optional[dict] = None):
        super().__init__(
            message,
            code=ErrorCode.NETWORK_ERROR,
            details=details,
            recoverable=True,
        )


class RequestTimeoutError(EndpointError):
    """Attempt lost the race against the per-attempt timer."""

    def __init__(self, timeout_ms: int, details: Optional[dict] = None):
        super().__init__(f"Request timed out after {timeout_ms}ms", details)
        self.timeout_ms = timeout_ms


class NodeError(EndpointError):
    """Node answered with a JSON-RPC error object."""

    def __init__(
        self,
        message: str,
        rpc_code: Optional[int] = None,
        details: Optional[dict] = None,
    ):
        super().__init__(message, details)
        self.rpc_code = rpc_code


def error_message(error: Optional[BaseException]) -> str:
    """
    Plain message of an underlying failure, without the code prefix.

    Used when embedding a cause in an aggregated RPCError message.
    """
    if error is None:
        return "Unknown error"
    if isinstance(error, LicenseKitError):
        return error.message
    return str(error) or error.__class__.__name__
