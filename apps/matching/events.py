"""Analytics and notification events."""

import json
import logging
from abc import ABC, abstractmethod
from functools import partial
from typing import Any

import redis.asyncio as redis
from redis.exceptions import RedisError

from apps.workers.background import BackgroundTaskQueue
from core.errors import TelemetryFailure

logger = logging.getLogger(__name__)

SWIPE_RECORDED = "swipe.recorded"
MATCH_CREATED = "match.created"
MATCH_DEACTIVATED = "match.deactivated"


class EventSink(ABC):
    @abstractmethod
    async def emit(self, event_name: str, payload: dict[str, Any]) -> None:
        """Deliver one event. Raises TelemetryFailure on delivery errors."""


class RedisStreamEventSink(EventSink):
    """Appends events to one Redis stream per event name."""

    def __init__(self, client: redis.Redis, maxlen: int = 10000) -> None:
        self.client = client
        self.maxlen = maxlen

    async def emit(self, event_name: str, payload: dict[str, Any]) -> None:
        # Stream fields must be flat strings
        fields = {key: value if isinstance(value, str) else json.dumps(value) for key, value in payload.items()}
        try:
            await self.client.xadd(event_name, fields, maxlen=self.maxlen, approximate=True)
        except RedisError as e:
            raise TelemetryFailure(f"Failed to emit {event_name}: {e}") from e


class EventPublisher:
    """Hands events to the background queue so callers never wait on delivery."""

    def __init__(self, sink: EventSink, tasks: BackgroundTaskQueue) -> None:
        self.sink = sink
        self.tasks = tasks

    def publish(self, event_name: str, payload: dict[str, Any]) -> None:
        if not self.tasks.submit(event_name, partial(self.sink.emit, event_name, payload)):
            logger.warning(f"Event {event_name} dropped: {payload}")
