"""
In-memory transport for testing and single-loop experiments.

A MemoryHub plays the part of the process manager: it knows every
connected worker, its service name and status, and moves packets between
their inbound streams. Adverse conditions can be switched on per worker
(failing sends, dropped packets, broken membership lookup).
"""
import asyncio
import copy
from dataclasses import dataclass
from typing import Dict, List, Optional, Set, Tuple

from ..protocol.packet import Packet
from ..utils.exceptions import MembershipError
from ..utils.logging import logger
from .base import STATUS_ONLINE, SendResult, SiblingInfo, Transport

STATUS_STOPPED = "stopped"


@dataclass
class _Endpoint:
    transport: "MemoryTransport"
    instance_id: str
    name: str
    status: str = STATUS_ONLINE


class MemoryHub:
    """Shared registry and packet router for MemoryTransport instances."""

    def __init__(self, latency: float = 0.0):
        """
        Initialize hub.

        Args:
            latency: Delivery delay in seconds applied to every packet
        """
        self.latency = latency
        self._endpoints: Dict[str, _Endpoint] = {}
        self._failing_targets: Set[str] = set()
        self._dropping_senders: Set[str] = set()
        self._membership_error: Optional[str] = None
        self.sent: List[Tuple[str, str, Packet]] = []
        self.logger = logger.getChild("memory_hub")

    def connect(
        self,
        process_id: str,
        instance_id: Optional[str] = None,
        name: str = "siblingcast",
        status: str = STATUS_ONLINE
    ) -> "MemoryTransport":
        """Create a transport for a new worker and register it."""
        transport = MemoryTransport(self, process_id, name)
        self._endpoints[process_id] = _Endpoint(
            transport=transport,
            instance_id=instance_id if instance_id is not None else process_id,
            name=name,
            status=status,
        )
        return transport

    def disconnect(self, process_id: str) -> None:
        self._endpoints.pop(process_id, None)

    def set_status(self, process_id: str, status: str) -> None:
        self._endpoints[process_id].status = status

    def fail_sends_to(self, process_id: str, failing: bool = True) -> None:
        """Make every send to this worker report failure."""
        if failing:
            self._failing_targets.add(process_id)
        else:
            self._failing_targets.discard(process_id)

    def drop_from(self, process_id: str, dropping: bool = True) -> None:
        """Silently lose every packet this worker sends."""
        if dropping:
            self._dropping_senders.add(process_id)
        else:
            self._dropping_senders.discard(process_id)

    def fail_membership(self, reason: Optional[str] = "process manager unavailable") -> None:
        """Make list_siblings() raise until called again with None."""
        self._membership_error = reason

    def members(self, service_name: str) -> List[SiblingInfo]:
        """
        List online workers of one service.

        Raises:
            MembershipError: If membership failure is switched on
        """
        if self._membership_error is not None:
            raise MembershipError(service_name, self._membership_error)

        return [
            SiblingInfo(
                process_id=process_id,
                instance_id=endpoint.instance_id,
                name=endpoint.name,
                status=endpoint.status,
            )
            for process_id, endpoint in self._endpoints.items()
            if endpoint.name == service_name and endpoint.status == STATUS_ONLINE
        ]

    def deliver(self, sender_id: str, target_id: str, packet: Packet) -> SendResult:
        """Route a packet to its target's inbound stream."""
        endpoint = self._endpoints.get(target_id)
        if endpoint is None or endpoint.status == STATUS_STOPPED:
            return SendResult(target_id, ok=False, error="unknown or stopped process")

        if target_id in self._failing_targets:
            return SendResult(target_id, ok=False, error="send failed")

        self.sent.append((sender_id, target_id, packet))

        if sender_id in self._dropping_senders:
            self.logger.debug(f"{sender_id} -> {target_id}: dropped ({packet.topic})")
            return SendResult(target_id, ok=True)

        # Round-trip through the wire shape so receivers never share objects
        wire = copy.deepcopy(packet.to_dict())
        loop = asyncio.get_running_loop()
        if self.latency > 0:
            loop.call_later(self.latency, endpoint.transport.inbound.dispatch_raw, wire)
        else:
            loop.call_soon(endpoint.transport.inbound.dispatch_raw, wire)

        self.logger.debug(f"{sender_id} -> {target_id}: {packet.topic}")
        return SendResult(target_id, ok=True)


class MemoryTransport(Transport):
    """Transport of one worker connected to a MemoryHub."""

    def __init__(self, hub: MemoryHub, self_id: str, service_name: str):
        super().__init__(self_id, service_name)
        self.hub = hub
        self.list_calls = 0
        self.send_calls = 0

    async def list_siblings(self) -> List[SiblingInfo]:
        self.list_calls += 1
        return self.hub.members(self.service_name)

    async def send_to(self, process_id: str, packet: Packet) -> SendResult:
        self.send_calls += 1
        return self.hub.deliver(self.self_id, process_id, packet)
