"""
Requester side of the broadcast protocol.

A broadcast round sends one request per online sibling, then collects
replies carrying the round's correlation id until every addressed
sibling has answered or the deadline passes. All round state lives in
the call itself; concurrent rounds share nothing but the inbound stream.
"""
import asyncio
from typing import Any, List, Optional, Tuple

from ..config.loader import ProcessIdentity
from ..protocol.codec import IDENTITY_CODEC, TopicCodec
from ..protocol.packet import Packet, new_correlation_id
from ..transport.base import SendResult, SiblingInfo, Transport
from ..utils.exceptions import BroadcastTimeoutError
from ..utils.logging import logger
from .responder import Responder

DEFAULT_TIMEOUT_SECONDS = 10.0


class Requester:
    """Issues broadcast rounds and collects the replies."""

    def __init__(
        self,
        identity: ProcessIdentity,
        transport: Transport,
        responder: Optional[Responder] = None,
        include_self: bool = True,
        default_timeout: float = DEFAULT_TIMEOUT_SECONDS
    ):
        """
        Initialize requester.

        Args:
            identity: Identity of this worker
            transport: Transport for membership, sends and replies
            responder: Local responder, answers rounds in standalone mode
            include_self: Address this worker too (its own responder replies)
            default_timeout: Deadline in seconds when none is given
        """
        self.identity = identity
        self.transport = transport
        self.responder = responder
        self.include_self = include_self
        self.default_timeout = default_timeout
        self.logger = logger.getChild("requester")

    def _targets(self, siblings: List[SiblingInfo]) -> List[SiblingInfo]:
        if self.include_self:
            return siblings
        return [s for s in siblings if s.process_id != self.identity.self_id]

    async def _send(self, process_id: str, packet: Packet) -> SendResult:
        try:
            return await self.transport.send_to(process_id, packet)
        except Exception as e:
            return SendResult(process_id, ok=False, error=str(e) or type(e).__name__)

    async def _send_all(self, packet: Packet, siblings: List[SiblingInfo]) -> None:
        results = await asyncio.gather(*(self._send(s.process_id, packet) for s in siblings))
        for result in results:
            if not result.ok:
                self.logger.debug(
                    f"Request '{packet.topic}' to {result.target_id} not delivered: {result.error}"
                )

    async def _prepare(
        self,
        topic: str,
        payload: Any,
        correlation_id: Optional[str]
    ) -> Tuple[Packet, List[SiblingInfo]]:
        """Fetch the current siblings and build the request packet."""
        siblings = self._targets(await self.transport.list_siblings())
        self_id = self.identity.self_id

        packet = Packet(
            correlation_id=correlation_id or new_correlation_id(),
            topic=topic,
            sender_id=self_id,
            reply_to=self_id,
            origin_id=self_id,
            instance_id=self.identity.instance_id,
            payload={} if payload is None else payload,
            is_reply=False,
        )
        return packet, siblings

    async def broadcast(
        self,
        topic: str,
        payload: Any = None,
        correlation_id: Optional[str] = None
    ) -> int:
        """
        Send a request to every online sibling.

        Send failures are discarded per target; the count is of siblings
        addressed, not of siblings that will answer.

        Args:
            topic: Question being asked
            payload: Request payload (default: empty mapping)
            correlation_id: Round id (default: a fresh one)

        Returns:
            Number of siblings addressed

        Raises:
            MembershipError: If the sibling list cannot be obtained
        """
        packet, siblings = await self._prepare(topic, payload, correlation_id)
        await self._send_all(packet, siblings)
        return len(siblings)

    async def broadcast_and_collect(
        self,
        topic: str,
        timeout: Optional[float] = None,
        payload: Any = None,
        codec: Optional[TopicCodec] = None
    ) -> List[Any]:
        """
        Ask every sibling and wait for all of their answers.

        In standalone mode no transport is used: the result is the single
        local answer. A reply whose payload cannot be decoded is dropped
        and counts as missing.

        Args:
            topic: Question being asked
            timeout: Deadline in seconds (default: default_timeout)
            payload: Request payload
            codec: Decodes each reply payload

        Returns:
            Reply payloads sorted by the replying worker's instance id

        Raises:
            BroadcastTimeoutError: If not every addressed sibling replied in time
            MembershipError: If the sibling list cannot be obtained
        """
        timeout = self.default_timeout if timeout is None else timeout
        codec = codec or IDENTITY_CODEC

        if not self.identity.clustered:
            return await self._answer_standalone(topic, codec)

        correlation_id = new_correlation_id()
        done: asyncio.Future = asyncio.get_running_loop().create_future()
        collected: List[Tuple[str, Any]] = []
        expected: Optional[int] = None

        def is_ours(packet: Packet) -> bool:
            return (
                packet.is_reply
                and packet.topic == topic
                and packet.correlation_id == correlation_id
            )

        def check_quorum() -> None:
            if expected is not None and len(collected) >= expected and not done.done():
                replies = sorted(collected[:expected], key=lambda reply: reply[0])
                done.set_result([value for _, value in replies])

        def on_reply(packet: Packet) -> None:
            if done.done():
                return
            try:
                value = codec.decode(packet.payload)
            except Exception as e:
                self.logger.warning(
                    f"Round {correlation_id}: undecodable '{topic}' reply "
                    f"from {packet.sender_id} dropped: {e}"
                )
                return
            collected.append((packet.instance_id, value))
            check_quorum()

        # Subscribed before sending so an early reply is not missed
        with self.transport.inbound.subscription(is_ours, on_reply):
            packet, siblings = await self._prepare(topic, payload, correlation_id)
            expected = len(siblings)
            self.logger.debug(f"Round {correlation_id} '{topic}' addressing {expected} siblings")

            if expected == 0:
                return []

            # Sends run under the round deadline
            sends = asyncio.ensure_future(self._send_all(packet, siblings))
            try:
                return await asyncio.wait_for(done, timeout)
            except asyncio.TimeoutError:
                self.logger.warning(
                    f"Round {correlation_id} '{topic}' timed out: "
                    f"{len(collected)}/{expected} replies"
                )
                raise BroadcastTimeoutError(topic, timeout, expected, len(collected)) from None
            finally:
                if not sends.done():
                    sends.cancel()

    async def _answer_standalone(self, topic: str, codec: TopicCodec) -> List[Any]:
        if self.responder is None or not self.responder.handles(topic):
            return []
        return [codec.decode(await self.responder.answer_locally(topic))]
