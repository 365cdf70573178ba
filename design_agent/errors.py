"""Exception types shared across the agent core."""

from typing import Any

from design_agent.models.results import ErrorKind


class ToolError(Exception):
    """A failure detected inside a tool, converted to a ToolFailure at the tool boundary."""

    def __init__(self, message: str, kind: ErrorKind = ErrorKind.UNKNOWN, details: Any = None):
        super().__init__(message)
        self.message = message
        self.kind = kind
        self.details = details


class SecurityError(ToolError):
    """A sandbox escape attempt or a deny-listed command."""

    def __init__(self, message: str, details: Any = None):
        super().__init__(message, ErrorKind.SECURITY, details)


class StreamDecodeError(ValueError):
    """Raised when a raw event does not match any known stream event variant."""


class StreamProtocolError(RuntimeError):
    """Raised when a stream event arrives after the session reached a terminal state."""


class OperationCancelled(Exception):
    """Raised when the query's cancellation token fires while awaiting work."""


class ProviderNotConfiguredError(LookupError):
    """Raised when no model provider is registered for the requested name."""


class SessionBusyError(RuntimeError):
    """Raised when a session already has a query in flight."""
