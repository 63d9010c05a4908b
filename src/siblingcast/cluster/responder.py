"""
Responder side of the broadcast protocol.

Answers inbound requests for the topics registered on this worker and
sends the answer back to the requester. Anything that goes wrong while
answering stays local: the requester simply gets no reply from us.
"""
import asyncio
import inspect
from typing import Any, Awaitable, Callable, Dict, Optional, Set, Tuple, Union

from ..config.loader import ProcessIdentity
from ..protocol.codec import IDENTITY_CODEC, TopicCodec
from ..protocol.packet import Packet
from ..transport.base import Transport
from ..utils.logging import logger

Producer = Callable[[], Union[Any, Awaitable[Any]]]


class Responder:
    """Per-process request handler registry bound to the inbound stream."""

    def __init__(self, identity: ProcessIdentity, transport: Transport):
        """
        Initialize responder.

        Args:
            identity: Identity of this worker
            transport: Transport used for the inbound stream and replies
        """
        self.identity = identity
        self.transport = transport
        self._producers: Dict[str, Tuple[Producer, TopicCodec]] = {}
        self._tasks: Set[asyncio.Task] = set()
        self._handle: Optional[str] = None
        self.logger = logger.getChild("responder")

    def register(self, topic: str, producer: Producer, codec: Optional[TopicCodec] = None) -> None:
        """
        Register the answer producer for a topic.

        Args:
            topic: Topic to answer
            producer: Sync or async callable computing the local answer
            codec: Encodes the answer into a wire payload
        """
        self._producers[topic] = (producer, codec or IDENTITY_CODEC)
        self.logger.debug(f"Registered producer for '{topic}'")

    def unregister(self, topic: str) -> None:
        self._producers.pop(topic, None)

    def handles(self, topic: str) -> bool:
        return topic in self._producers

    @property
    def running(self) -> bool:
        return self._handle is not None

    def start(self) -> None:
        """Listen for requests. Calling it twice keeps one subscription."""
        if self._handle is not None:
            return
        self._handle = self.transport.inbound.subscribe(
            lambda packet: not packet.is_reply,
            self.on_request
        )
        self.logger.info(f"Responder started on process {self.identity.self_id}")

    async def stop(self) -> None:
        """Stop listening and cancel answers still being computed."""
        if self._handle is not None:
            self.transport.inbound.unsubscribe(self._handle)
            self._handle = None

        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

        self.logger.info("Responder stopped")

    def on_request(self, packet: Packet) -> None:
        """Handle one inbound request packet."""
        if packet.topic not in self._producers:
            self.logger.debug(f"No producer for '{packet.topic}', ignoring request")
            return

        task = asyncio.get_running_loop().create_task(self._reply(packet))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def answer_locally(self, topic: str) -> Any:
        """
        Compute and encode the local answer for a topic.

        Raises:
            KeyError: If no producer is registered for the topic
        """
        producer, codec = self._producers[topic]
        value = producer()
        if inspect.isawaitable(value):
            value = await value
        return codec.encode(value)

    async def _reply(self, packet: Packet) -> None:
        try:
            answer = await self.answer_locally(packet.topic)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            self.logger.error(
                f"Producer for '{packet.topic}' failed, not replying "
                f"to {packet.reply_to}: {e}"
            )
            return

        reply = packet.make_reply(answer, self.identity.self_id, self.identity.instance_id)

        try:
            result = await self.transport.send_to(packet.reply_to, reply)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            self.logger.error(f"Reply to {packet.reply_to} raised: {e}")
            return

        if not result.ok:
            # Fire-and-forget: the requester will time out without us
            self.logger.debug(f"Reply to {packet.reply_to} not delivered: {result.error}")
