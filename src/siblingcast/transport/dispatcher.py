"""
Process-wide inbound packet stream.

Every packet a worker receives is pushed through one InboundDispatcher.
Any number of subscribers may listen at once; each supplies a predicate
and only sees packets it matches. All calls happen on the event loop
thread, so no locking is done.
"""
import uuid
from contextlib import contextmanager
from typing import Any, Callable, Dict, Iterator, Tuple

from ..protocol.packet import Packet
from ..utils.exceptions import PacketError
from ..utils.logging import logger

Predicate = Callable[[Packet], bool]
Callback = Callable[[Packet], None]


class InboundDispatcher:
    """Fan-out of inbound packets to predicate-filtered subscribers."""

    def __init__(self):
        self._subscribers: Dict[str, Tuple[Predicate, Callback]] = {}
        self.logger = logger.getChild("dispatcher")

    def subscribe(self, predicate: Predicate, on_match: Callback) -> str:
        """
        Register a subscriber.

        Args:
            predicate: Filter deciding whether a packet is for this subscriber
            on_match: Called with every matching packet

        Returns:
            Handle to pass to unsubscribe()
        """
        handle = str(uuid.uuid4())
        self._subscribers[handle] = (predicate, on_match)
        return handle

    def unsubscribe(self, handle: str) -> None:
        """Remove a subscriber. Unknown handles are ignored."""
        self._subscribers.pop(handle, None)

    @contextmanager
    def subscription(self, predicate: Predicate, on_match: Callback) -> Iterator[str]:
        """Subscribe for the duration of a with-block."""
        handle = self.subscribe(predicate, on_match)
        try:
            yield handle
        finally:
            self.unsubscribe(handle)

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    def dispatch(self, packet: Packet) -> int:
        """
        Deliver a packet to every matching subscriber.

        Subscribers may unsubscribe (themselves or others) while being
        called; a subscriber removed during delivery is skipped.

        Returns:
            Number of subscribers the packet was delivered to
        """
        delivered = 0
        for handle, (predicate, on_match) in list(self._subscribers.items()):
            if handle not in self._subscribers:
                continue
            try:
                if not predicate(packet):
                    continue
                on_match(packet)
                delivered += 1
            except Exception as e:
                self.logger.error(
                    f"Inbound subscriber failed on {packet.topic} "
                    f"({packet.correlation_id}): {e}"
                )
        return delivered

    def dispatch_raw(self, data: Any) -> int:
        """Decode a wire dict and dispatch it. Undecodable input is dropped."""
        try:
            packet = Packet.from_dict(data)
        except PacketError as e:
            self.logger.warning(f"Dropping undecodable packet: {e}")
            return 0
        return self.dispatch(packet)
