"""
Custom exceptions for siblingcast.
"""


class BaseSiblingcastError(Exception):
    """Base exception for all siblingcast errors."""
    pass


class ConfigError(BaseSiblingcastError):
    """Configuration-related errors."""
    pass


class PacketError(BaseSiblingcastError):
    """A packet could not be decoded from its wire shape."""
    pass


class TransportError(BaseSiblingcastError):
    """Base exception for transport errors."""
    pass


class MembershipError(TransportError):
    """The list of sibling workers could not be obtained."""

    def __init__(self, service_name: str, reason: str = ""):
        self.service_name = service_name
        self.reason = reason
        message = f"Could not list siblings of '{service_name}'"
        if reason:
            message += f": {reason}"
        super().__init__(message)


class BroadcastError(BaseSiblingcastError):
    """Base exception for broadcast round errors."""
    pass


class BroadcastTimeoutError(BroadcastError):
    """Fewer replies than siblings addressed arrived before the deadline."""

    def __init__(self, topic: str, timeout_seconds: float, expected: int, received: int):
        self.topic = topic
        self.timeout_seconds = timeout_seconds
        self.expected = expected
        self.received = received
        super().__init__(
            f"Broadcast '{topic}' timed out after {timeout_seconds}s "
            f"({received}/{expected} replies)"
        )
