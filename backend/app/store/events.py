"""
Change notifications over Redis pub/sub.

Every write to the document store publishes a small JSON message on the
collection's channel. Live views listen on those channels and recompute
their snapshots. Writers outside this service (the analysis pipeline)
must call ``publish_change`` after they touch ``jobs`` or ``repositories``.
"""

import asyncio
import json
import logging
from typing import Any, Dict, Optional

import redis
import redis.asyncio as aioredis
from redis.exceptions import RedisError

from app.config import settings
from app.store.base import (
    ChangeEvent,
    ChangeListener,
    ChangeOp,
    ErrorListener,
    Unsubscribe,
)
from app.store.exceptions import StoreUnavailableError

logger = logging.getLogger(__name__)


def channel_for(collection: str) -> str:
    return f"{settings.STORE_CHANNEL_PREFIX}{collection}"


def encode_change(event: ChangeEvent) -> str:
    return json.dumps(
        {"collection": event.collection, "op": event.op.value, "id": event.doc_id}
    )


def decode_change(data: Any) -> Optional[ChangeEvent]:
    """Parse a pub/sub payload; returns None for anything malformed."""
    if isinstance(data, bytes):
        data = data.decode("utf-8")
    try:
        payload: Dict[str, Any] = json.loads(data)
        return ChangeEvent(
            collection=payload["collection"],
            op=ChangeOp(payload["op"]),
            doc_id=str(payload["id"]),
        )
    except (TypeError, ValueError, KeyError):
        return None


def _get_redis_client():
    """Get a synchronous Redis client."""
    return redis.from_url(settings.REDIS_URL)


def publish_change(collection: str, op: ChangeOp, doc_id: str) -> bool:
    """
    Publish a change message for one document.

    Returns:
        True if published successfully, False otherwise
    """
    event = ChangeEvent(collection=collection, op=op, doc_id=doc_id)
    try:
        redis_client = _get_redis_client()
        redis_client.publish(channel_for(collection), encode_change(event))
        return True
    except RedisError as e:
        logger.error(f"Failed to publish {op.value} for {collection}/{doc_id}: {e}")
        return False


class ChangeFeed:
    """Async listener side of the change channels."""

    def __init__(self, redis_url: Optional[str] = None, poll_timeout: float = 1.0):
        self.redis_url = redis_url or settings.REDIS_URL
        self.poll_timeout = poll_timeout

    async def listen(
        self,
        collection: str,
        on_change: ChangeListener,
        on_error: Optional[ErrorListener] = None,
    ) -> Unsubscribe:
        """
        Start a listener task for ``collection``.

        Returns once Redis has acknowledged the SUBSCRIBE (or the attempt has
        failed and ``on_error`` was told), so every change published after
        this call returns is delivered. The returned function stops
        dispatching immediately and tears the subscription down.
        """
        closed = False
        channel = channel_for(collection)
        loop = asyncio.get_running_loop()
        subscribed = loop.create_future()

        async def _run() -> None:
            redis_client = aioredis.from_url(self.redis_url)
            pubsub = redis_client.pubsub()
            try:
                await pubsub.subscribe(channel)
                if not subscribed.done():
                    subscribed.set_result(None)
                while True:
                    message = await pubsub.get_message(
                        ignore_subscribe_messages=True, timeout=self.poll_timeout
                    )
                    if message is None:
                        continue
                    event = decode_change(message.get("data"))
                    if event is None:
                        logger.warning(f"Ignoring malformed change message on {channel}")
                        continue
                    if closed:
                        return
                    on_change(event)
            except (RedisError, OSError) as e:
                logger.warning(f"Change feed for {collection} lost: {e}")
                if on_error is not None and not closed:
                    on_error(StoreUnavailableError(f"Change feed unavailable: {e}"))
            finally:
                try:
                    await pubsub.unsubscribe(channel)
                    await pubsub.aclose()
                    await redis_client.aclose()
                except (RedisError, OSError) as e:
                    logger.debug(f"Change feed cleanup for {collection} failed: {e}")

        task = loop.create_task(_run())
        # A feed that never subscribed still releases the caller
        task.add_done_callback(lambda _: subscribed.done() or subscribed.set_result(None))

        def unsubscribe() -> None:
            nonlocal closed
            if closed:
                return
            closed = True
            task.cancel()

        try:
            await subscribed
        except asyncio.CancelledError:
            unsubscribe()
            raise
        return unsubscribe
