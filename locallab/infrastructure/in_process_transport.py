import asyncio
import logging
from collections import defaultdict

from ..domain.contracts.broadcast import BroadcastTransportContract, Envelope

logger = logging.getLogger(__name__)


class InProcessTransport(BroadcastTransportContract):
    """Fan out envelopes to in-process subscribers, one queue per subscriber."""

    def __init__(self) -> None:
        self._subscribers: dict[str, list[asyncio.Queue[Envelope]]] = defaultdict(list)

    def subscribe(self, topic: str) -> "asyncio.Queue[Envelope]":
        queue: asyncio.Queue[Envelope] = asyncio.Queue()
        self._subscribers[topic].append(queue)
        return queue

    def unsubscribe(self, topic: str, queue: "asyncio.Queue[Envelope]") -> None:
        queues = self._subscribers.get(topic, [])
        if queue in queues:
            queues.remove(queue)
        if not queues:
            self._subscribers.pop(topic, None)

    def publish(self, topic: str, envelope: Envelope) -> None:
        queues = self._subscribers.get(topic)
        if not queues:
            logger.debug("No subscribers for %s", topic)
            return
        for queue in queues:
            queue.put_nowait(envelope)
