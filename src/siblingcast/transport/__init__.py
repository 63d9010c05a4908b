"""
Transports: membership lookup, unicast send and the inbound stream.
"""
from .base import STATUS_ONLINE, SendResult, SiblingInfo, Transport
from .dispatcher import InboundDispatcher
from .http import HttpTransport
from .memory import MemoryHub, MemoryTransport

__all__ = [
    "STATUS_ONLINE",
    "HttpTransport",
    "InboundDispatcher",
    "MemoryHub",
    "MemoryTransport",
    "SendResult",
    "SiblingInfo",
    "Transport",
]
