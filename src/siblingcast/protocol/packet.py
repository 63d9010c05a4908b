"""
Packet exchanged between sibling workers, and correlation id generation.
"""
import itertools
import secrets
import time
from dataclasses import dataclass, field, replace
from typing import Any, Dict, Generic, Optional, TypeVar

from ..utils.exceptions import PacketError

T = TypeVar("T")

_REQUIRED_KEYS = ("correlation_id", "topic", "sender_id", "reply_to", "origin_id")

_round_counter = itertools.count(1)


def new_correlation_id() -> str:
    """
    Generate an id for one broadcast round.

    Millisecond timestamp, a per-process counter and a random suffix.
    The counter keeps ids unique among rounds started in the same
    millisecond; the random part keeps them apart across processes.
    """
    return f"{int(time.time() * 1000)}_{next(_round_counter)}_{secrets.token_hex(4)}"


@dataclass
class Packet(Generic[T]):
    """Unit exchanged over the transport."""
    correlation_id: str
    topic: str
    sender_id: str
    reply_to: str
    origin_id: str
    instance_id: str = ""
    payload: Optional[T] = field(default=None)
    is_reply: bool = False

    def make_reply(self, payload: Any, sender_id: str, instance_id: str) -> "Packet":
        """
        Build the reply to this request.

        The correlation id, topic and reply address are kept; the replying
        process becomes both sender and origin.
        """
        return replace(
            self,
            payload=payload,
            is_reply=True,
            sender_id=sender_id,
            origin_id=sender_id,
            instance_id=instance_id,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "correlation_id": self.correlation_id,
            "topic": self.topic,
            "sender_id": self.sender_id,
            "reply_to": self.reply_to,
            "origin_id": self.origin_id,
            "instance_id": self.instance_id,
            "payload": self.payload,
            "is_reply": self.is_reply,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Packet":
        """
        Decode a packet from its wire shape.

        Raises:
            PacketError: If the data is not a mapping or lacks required keys
        """
        if not isinstance(data, dict):
            raise PacketError(f"Packet must be a mapping, got {type(data).__name__}")

        missing = [key for key in _REQUIRED_KEYS if key not in data]
        if missing:
            raise PacketError(f"Packet is missing keys: {', '.join(missing)}")

        return cls(
            correlation_id=str(data["correlation_id"]),
            topic=str(data["topic"]),
            sender_id=str(data["sender_id"]),
            reply_to=str(data["reply_to"]),
            origin_id=str(data["origin_id"]),
            instance_id=str(data.get("instance_id") or ""),
            payload=data.get("payload"),
            is_reply=bool(data.get("is_reply", False)),
        )
