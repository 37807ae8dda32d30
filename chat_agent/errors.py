"""Custom exceptions for the chat agent."""


class AgentError(Exception):
    """Base class for chat agent errors."""


class ConfigurationError(AgentError):
    """Raised when required settings are missing or the provider is unreachable at startup."""


class SessionTimeoutError(AgentError):
    """Raised when the chat session does not finish initializing in time."""


class TransportError(AgentError):
    """Raised by transports for session-level failures (pairing, connection)."""
