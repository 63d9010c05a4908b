"""
Per-topic payload codecs.

A codec turns a topic's answer into a JSON-friendly payload before it is
put on the wire and back again when replies are collected.
"""
from typing import Any, Callable, Generic, Optional, TypeVar

T = TypeVar("T")


def _identity(value: Any) -> Any:
    return value


class TopicCodec(Generic[T]):
    """Pair of encode/decode functions for one topic."""

    def __init__(
        self,
        encode: Optional[Callable[[T], Any]] = None,
        decode: Optional[Callable[[Any], T]] = None,
        name: str = "identity"
    ):
        self._encode = encode or _identity
        self._decode = decode or _identity
        self.name = name

    def encode(self, value: T) -> Any:
        return self._encode(value)

    def decode(self, payload: Any) -> T:
        return self._decode(payload)

    def __repr__(self) -> str:
        return f"TopicCodec({self.name})"


IDENTITY_CODEC: TopicCodec[Any] = TopicCodec()
