"""
Work queue implementation using Redis Streams.

Each lane is one stream read through a consumer group, so several workers
share a lane and every item goes to one of them. Acknowledged items are
deleted from the stream, so the stream length counts waiting and in-flight
items together; delivered but unacknowledged items are subtracted from it
to report what is still waiting.
"""

import json
import logging
from datetime import datetime
from typing import Any, Optional
from uuid import uuid4

import redis

from process_engine.config import Settings, get_settings
from process_engine.messaging.base import WorkQueue
from process_engine.messaging.models import Lane, QueueItem

logger = logging.getLogger(__name__)


class RedisQueue(WorkQueue):
    """
    Redis Streams work queue.

    Supports consumer groups for reliable processing.
    """

    def __init__(
        self,
        client: redis.Redis,
        consumer_id: Optional[str] = None,
        settings: Optional[Settings] = None,
    ):
        self.client = client
        self.settings = settings or get_settings()
        self.stream_prefix = f"{self.settings.redis.key_prefix}:stream:"
        self.consumer_group = self.settings.queue.consumer_group
        self.consumer_id = consumer_id or f"consumer-{uuid4().hex[:8]}"
        self.block_ms = self.settings.queue.block_ms
        self._initialized: set[Lane] = set()

    def stream_key(self, lane: Lane) -> str:
        return f"{self.stream_prefix}{lane.value}"

    def init(self, lane: Lane) -> None:
        """Initialize the stream and consumer group of a lane."""
        try:
            # Create consumer group (creates stream if not exists)
            self.client.xgroup_create(
                self.stream_key(lane),
                self.consumer_group,
                id="0",
                mkstream=True,
            )
        except redis.ResponseError as e:
            # Group already exists
            if "BUSYGROUP" not in str(e):
                raise
        self._initialized.add(lane)

    def push(self, item: QueueItem) -> QueueItem:
        """
        Publish an item to its lane's stream.

        The stream message ID is stored as the item's receipt.
        """
        data = {
            "id": item.id,
            "uuid": item.uuid,
            "queue": item.queue or "",
            "job": item.job or "",
            "args": json.dumps(item.args, default=str),
            "created_at": item.created_at.isoformat(),
        }

        item.receipt = self.client.xadd(self.stream_key(item.lane), data)
        logger.debug(f"Enqueued {item.lane.value} item {item.uuid} ({item.receipt})")
        return item

    def pop(self, lane: Lane) -> Optional[QueueItem]:
        """
        Read the next item of a lane for this consumer.

        Uses XREADGROUP for reliable processing with consumer groups.
        """
        if lane not in self._initialized:
            self.init(lane)

        try:
            messages = self.client.xreadgroup(
                groupname=self.consumer_group,
                consumername=self.consumer_id,
                streams={self.stream_key(lane): ">"},
                count=1,
                # BLOCK 0 would wait forever
                block=self.block_ms if self.block_ms > 0 else None,
            )
        except redis.ResponseError as e:
            if "NOGROUP" in str(e):
                self.init(lane)
                return None
            raise

        if not messages:
            return None

        for _, stream_messages in messages:
            for msg_id, msg_data in stream_messages:
                return self._parse(lane, msg_id, msg_data)

        return None

    def _parse(self, lane: Lane, msg_id: str, msg_data: dict[str, Any]) -> QueueItem:
        return QueueItem(
            id=msg_data["id"],
            lane=lane,
            uuid=msg_data["uuid"],
            queue=msg_data.get("queue") or None,
            job=msg_data.get("job") or None,
            args=json.loads(msg_data.get("args") or "null"),
            created_at=datetime.fromisoformat(msg_data["created_at"]),
            receipt=msg_id,
        )

    def acknowledge(self, item: QueueItem) -> None:
        """Acknowledge successful item processing and drop it from the stream."""
        if item.receipt is None:
            return
        key = self.stream_key(item.lane)
        self.client.xack(key, self.consumer_group, item.receipt)
        self.client.xdel(key, item.receipt)

    def pending(self, lane: Lane) -> int:
        """Count items waiting to be delivered to a worker."""
        outstanding = int(self.client.xlen(self.stream_key(lane)))
        return max(outstanding - self.in_flight(lane), 0)

    def in_flight(self, lane: Lane) -> int:
        """Count items delivered to a worker but not yet acknowledged."""
        try:
            info = self.client.xpending(self.stream_key(lane), self.consumer_group)
        except redis.ResponseError as e:
            # No group yet, so nothing was delivered
            if "NOGROUP" in str(e):
                return 0
            raise
        return int(info["pending"]) if info else 0
