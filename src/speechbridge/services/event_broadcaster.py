"""WebSocket fan-out of pipeline events and streamed audio."""

import asyncio
import base64
import logging
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Deque, Dict, List, Optional

from fastapi import WebSocket

from speechbridge.services.pipeline.models import PipelineEvent

logger = logging.getLogger(__name__)


@dataclass
class Subscriber:
    """
    Tracks a single downstream WebSocket consumer.

    Messages are queued on ``outbox`` and written by the subscriber's own
    sender task, so publishing never waits on the network.
    """

    client_id: str
    websocket: WebSocket
    outbox: "asyncio.Queue[Dict[str, Any]]"
    receive_audio: bool = True
    connected_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    sender: Optional[asyncio.Task] = None


class EventBroadcaster:
    """
    Manages subscriber connections and broadcasts pipeline messages.

    Attributes:
        send_timeout: Seconds a single WebSocket write may take before the
                      subscriber is dropped
        max_pending: Messages buffered per subscriber before it is dropped
    """

    def __init__(
        self,
        history_size: int = 100,
        sample_rate: int = 24000,
        send_timeout: float = 5.0,
        max_pending: int = 256,
    ):
        self.subscribers: Dict[str, Subscriber] = {}
        self.sample_rate = sample_rate
        self.send_timeout = send_timeout
        self.max_pending = max_pending
        self._history: Deque[Dict[str, Any]] = deque(maxlen=history_size)

    async def connect(
        self,
        websocket: WebSocket,
        client_id: str,
        receive_audio: bool = True,
        replay: int = 0,
    ) -> Subscriber:
        """Accept a WebSocket, queue up to ``replay`` recent events and start its sender."""
        await websocket.accept()
        self.disconnect(client_id)

        subscriber = Subscriber(
            client_id=client_id,
            websocket=websocket,
            outbox=asyncio.Queue(maxsize=self.max_pending),
            receive_audio=receive_audio,
        )
        if replay > 0:
            for message in self.recent_events(limit=min(replay, self.max_pending)):
                subscriber.outbox.put_nowait(message)

        self.subscribers[client_id] = subscriber
        subscriber.sender = asyncio.create_task(self._send_loop(subscriber))
        logger.info(f"Event subscriber connected: {client_id}")
        return subscriber

    def disconnect(self, client_id: str, subscriber: Optional[Subscriber] = None) -> None:
        """
        Remove a subscriber and stop its sender.

        When ``subscriber`` is given, nothing happens unless it is still the
        registered entry for ``client_id``.
        """
        current = self.subscribers.get(client_id)
        if current is None or (subscriber is not None and current is not subscriber):
            return
        del self.subscribers[client_id]
        subscriber = current
        if subscriber.sender is not None and subscriber.sender is not asyncio.current_task():
            subscriber.sender.cancel()
        logger.info(f"Event subscriber disconnected: {client_id}")

    def enqueue(self, client_id: str, message: Dict[str, Any]) -> bool:
        """Queue a message for one subscriber; a full outbox drops the subscriber."""
        subscriber = self.subscribers.get(client_id)
        if subscriber is None:
            return False
        try:
            subscriber.outbox.put_nowait(message)
        except asyncio.QueueFull:
            logger.warning(f"Subscriber {client_id} is not keeping up, dropping it")
            self.disconnect(client_id)
            return False
        return True

    def broadcast(self, message: Dict[str, Any], audio: bool = False) -> int:
        """Queue a message for all subscribers (audio only to those who asked)."""
        queued = 0
        for client_id, subscriber in list(self.subscribers.items()):
            if audio and not subscriber.receive_audio:
                continue
            if self.enqueue(client_id, message):
                queued += 1
        return queued

    async def publish(self, event: PipelineEvent) -> None:
        """Record a pipeline event and queue it for every subscriber."""
        message = event.as_message()
        self._history.append(message)
        queued = self.broadcast(message)
        logger.debug(f"Queued {message['type']} for {queued} subscriber(s)")

    def forward_audio(self, pcm: bytes, start_time: float) -> None:
        """Playback listener: stream appended audio to subscribers."""
        if not self.subscribers:
            return
        self.broadcast(
            {
                "type": "audio_chunk",
                "data": base64.b64encode(pcm).decode("utf-8"),
                "sample_rate": self.sample_rate,
                "start_time": start_time,
            },
            audio=True,
        )

    def recent_events(self, limit: Optional[int] = None) -> List[Dict[str, Any]]:
        events = list(self._history)
        if limit is not None:
            events = events[-limit:]
        return events

    async def _send_loop(self, subscriber: Subscriber) -> None:
        while True:
            message = await subscriber.outbox.get()
            try:
                await asyncio.wait_for(
                    subscriber.websocket.send_json(message),
                    timeout=self.send_timeout,
                )
            except asyncio.TimeoutError:
                logger.warning(
                    f"Send to {subscriber.client_id} stalled for {self.send_timeout:.1f}s, dropping it"
                )
                break
            except Exception as e:
                logger.warning(f"Error sending to {subscriber.client_id}: {e}")
                break

        self.disconnect(subscriber.client_id, subscriber)


__all__ = ["EventBroadcaster", "Subscriber"]
