"""
Transport interface between sibling workers.
"""
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import List, Optional

from ..protocol.packet import Packet
from ..utils.logging import logger
from .dispatcher import InboundDispatcher

STATUS_ONLINE = "online"


@dataclass
class SiblingInfo:
    """One worker of the same named service, as reported by membership."""
    process_id: str
    instance_id: str
    name: str
    status: str = STATUS_ONLINE

    @property
    def online(self) -> bool:
        return self.status == STATUS_ONLINE


@dataclass
class SendResult:
    """Outcome of a best-effort unicast send."""
    target_id: str
    ok: bool
    error: Optional[str] = None


class Transport(ABC):
    """
    Membership lookup plus unicast send/receive for one worker.

    Implementations own the process-wide inbound stream in ``inbound``.
    """

    def __init__(self, self_id: str, service_name: str):
        """
        Initialize transport.

        Args:
            self_id: Process id of this worker
            service_name: Logical service name shared by all siblings
        """
        self.self_id = self_id
        self.service_name = service_name
        self.inbound = InboundDispatcher()
        self.logger = logger.getChild(f"transport.{self_id}")

    @abstractmethod
    async def list_siblings(self) -> List[SiblingInfo]:
        """
        List online workers sharing this worker's service name.

        Raises:
            MembershipError: If membership cannot be determined
        """

    @abstractmethod
    async def send_to(self, process_id: str, packet: Packet) -> SendResult:
        """Send a packet to one worker. Delivery problems never raise."""

    async def start(self) -> None:
        """Start the transport."""

    async def stop(self) -> None:
        """Stop the transport."""
