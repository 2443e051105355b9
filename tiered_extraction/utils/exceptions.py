"""
Custom Exceptions Module.

This module defines all custom exceptions used throughout the tiered
receipt extraction system. Engine errors are typed so the router can
tell "skip this tier" apart from "this tier produced bad output".

Exception Hierarchy:
    ReceiptExtractionError (base)
    ├── ConfigurationError
    ├── EngineError
    │   ├── UnsupportedInputError
    │   ├── UnavailableError
    │   ├── MalformedOutputError
    │   └── RemoteError
    └── AllTiersRejectedError
"""

from typing import Any, Optional


class ReceiptExtractionError(Exception):
    """
    Base exception for all receipt extraction errors.

    All custom exceptions in this system inherit from this class,
    allowing for easy catching of all system-specific errors.

    Attributes:
        message: Human-readable error message.
        details: Optional dictionary with additional error details.
    """

    def __init__(self, message: str, details: dict = None):
        """
        Initialize the exception.

        Args:
            message: Human-readable error message.
            details: Optional dictionary with additional context.
        """
        self.message = message
        self.details = details or {}
        super().__init__(self.message)

    def __str__(self) -> str:
        """Return string representation of the error."""
        if self.details:
            return f"{self.message} | Details: {self.details}"
        return self.message


class ConfigurationError(ReceiptExtractionError):
    """Raised when routing or engine configuration is invalid."""

    def __init__(self, setting: str, reason: str = None):
        message = f"Invalid configuration: {setting}"
        details = {"setting": setting, "reason": reason}
        super().__init__(message, details)


# =============================================================================
# ENGINE ERRORS
# =============================================================================

class EngineError(ReceiptExtractionError):
    """Base exception for errors raised by an engine adapter."""

    def __init__(self, engine: str, message: str, details: dict = None):
        self.engine = engine
        merged = {"engine": engine}
        merged.update(details or {})
        super().__init__(message, merged)


class UnsupportedInputError(EngineError):
    """
    Raised when the request cannot be sent to the engine at all.

    Empty documents and unsupported media types fail here, before
    any network call is made.

    Example:
        >>> raise UnsupportedInputError("gemini", "image/bmp", ["image/png"])
    """

    def __init__(self, engine: str, media_type: str, supported_types: list = None, reason: str = None):
        message = reason or f"Unsupported input for {engine}: '{media_type}'"
        details = {"media_type": media_type, "supported_types": supported_types or []}
        super().__init__(engine, message, details)


class UnavailableError(EngineError):
    """Raised when the engine is unconfigured or unreachable."""

    def __init__(self, engine: str, reason: str = None):
        message = f"Extraction engine not available: {engine}"
        super().__init__(engine, message, {"reason": reason})


class MalformedOutputError(EngineError):
    """
    Raised when engine output stays unparseable after salvage.

    The original (unrepaired) text is kept for diagnostics.
    """

    def __init__(self, engine: str, original_text: str, reason: str = None):
        self.original_text = original_text
        message = f"Malformed output from {engine}"
        details = {"reason": reason, "length": len(original_text or "")}
        super().__init__(engine, message, details)


class RemoteError(EngineError):
    """Raised when the remote capability reports a failure (e.g. throttling)."""

    def __init__(self, engine: str, reason: str = None, status_code: Optional[int] = None):
        self.status_code = status_code
        message = f"Remote engine call failed: {engine}"
        super().__init__(engine, message, {"reason": reason, "status_code": status_code})


# =============================================================================
# ROUTING ERRORS
# =============================================================================

class AllTiersRejectedError(ReceiptExtractionError):
    """
    Raised in strict mode when no tier produced an acceptable result.

    Carries the routing decision and the last produced result (which may
    be the empty default) so callers can still hand it to a reviewer.
    """

    def __init__(self, decision: Any, result: Any = None):
        self.decision = decision
        self.result = result
        message = "All extraction tiers rejected the request"
        super().__init__(message, {"reason": getattr(decision, "reason", None)})


# Export all exceptions
__all__ = [
    'ReceiptExtractionError',
    'ConfigurationError',
    'EngineError',
    'UnsupportedInputError',
    'UnavailableError',
    'MalformedOutputError',
    'RemoteError',
    'AllTiersRejectedError',
]
