"""
HTTP transport between sibling worker processes.

Every worker serves two endpoints (see siblingcast.web.app):

- ``GET  /cluster/health``  liveness and identity, used for membership
- ``POST /cluster/packets`` inbound packets, fed into ``inbound``

Membership is the configured roster filtered down to the workers that
answer the health probe as online members of the same service.
"""
import asyncio
from typing import Dict, List, Optional

import aiohttp

from ..config.loader import SiblingConfig
from ..protocol.packet import Packet
from ..utils.exceptions import MembershipError
from .base import STATUS_ONLINE, SendResult, SiblingInfo, Transport

HEALTH_PATH = "/cluster/health"
PACKETS_PATH = "/cluster/packets"


class HttpTransport(Transport):
    """Transport using aiohttp against a static roster of workers."""

    def __init__(
        self,
        self_id: str,
        service_name: str,
        roster: List[SiblingConfig],
        probe_timeout: float = 1.0,
        send_timeout: float = 5.0
    ):
        """
        Initialize HTTP transport.

        Args:
            self_id: Process id of this worker
            service_name: Logical service name shared by all siblings
            roster: Every worker that may be part of the cluster
            probe_timeout: Seconds to wait for one health probe
            send_timeout: Seconds to wait for one packet POST
        """
        super().__init__(self_id, service_name)
        self.roster: Dict[str, SiblingConfig] = {s.process_id: s for s in roster}
        self.probe_timeout = probe_timeout
        self.send_timeout = send_timeout
        self._session: Optional[aiohttp.ClientSession] = None

    async def start(self) -> None:
        if self._session is None:
            self._session = aiohttp.ClientSession()
        self.logger.info(f"HTTP transport started ({len(self.roster)} roster entries)")

    async def stop(self) -> None:
        if self._session:
            await self._session.close()
            self._session = None
        self.logger.info("HTTP transport stopped")

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None:
            self._session = aiohttp.ClientSession()
        return self._session

    async def _probe(self, sibling: SiblingConfig) -> Optional[SiblingInfo]:
        """Ask one worker for its health; None when unreachable or foreign."""
        url = f"{sibling.url}{HEALTH_PATH}"
        try:
            async with self._get_session().get(
                url,
                timeout=aiohttp.ClientTimeout(total=self.probe_timeout)
            ) as response:
                if response.status != 200:
                    self.logger.debug(f"Probe {url} returned {response.status}")
                    return None
                body = await response.json()
        except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as e:
            self.logger.debug(f"Probe {url} failed: {e}")
            return None

        if not isinstance(body, dict):
            self.logger.debug(f"Probe {url} returned a non-object body")
            return None
        if body.get("service") != self.service_name:
            return None

        return SiblingInfo(
            process_id=sibling.process_id,
            instance_id=str(body.get("instance_id") or sibling.instance_id or sibling.process_id),
            name=self.service_name,
            status=body.get("status", "unknown"),
        )

    async def list_siblings(self) -> List[SiblingInfo]:
        if not self.roster:
            raise MembershipError(self.service_name, "roster is empty")

        probes = await asyncio.gather(*(self._probe(s) for s in self.roster.values()))
        online = [info for info in probes if info is not None and info.status == STATUS_ONLINE]

        self.logger.debug(f"{len(online)}/{len(self.roster)} roster entries online")
        return online

    async def send_to(self, process_id: str, packet: Packet) -> SendResult:
        sibling = self.roster.get(process_id)
        if sibling is None:
            return SendResult(process_id, ok=False, error="not in roster")

        url = f"{sibling.url}{PACKETS_PATH}"
        try:
            async with self._get_session().post(
                url,
                json=packet.to_dict(),
                timeout=aiohttp.ClientTimeout(total=self.send_timeout)
            ) as response:
                if response.status >= 300:
                    return SendResult(process_id, ok=False, error=f"HTTP {response.status}")
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            return SendResult(process_id, ok=False, error=str(e) or type(e).__name__)

        return SendResult(process_id, ok=True)
