"""
Event Emitter — schema-gated publishing of domain events.

Each ``emit()`` builds the action-specific message, logs a redacted copy,
validates it against the action schema and makes exactly one publish call.
There is no retry and no dedup; delivery guarantees belong to the transport.
The Redis transport appends to streams that ``RedisStreamConsumer`` reads
through a consumer group, acknowledging each entry once it is handled.

Security Note:
    The message handed to the logger is always a ``redact()`` copy.
    Validation errors are re-raised without chaining the pydantic error,
    whose text would carry the offending input values.
"""
import asyncio
import logging
from typing import Any, Awaitable, Callable, Mapping, Optional, Protocol, runtime_checkable

import orjson
from pydantic import ValidationError as PydanticValidationError
from redis.exceptions import ResponseError

from .conf import SecretsConfig
from .errors import ConfigurationFault, MessageInvalid, PublishError
from .models import EVENT_ADAPTER, describe_errors
from .utils import redact

logger = logging.getLogger("fpw.events")

# stream entry field carrying the encoded event
MESSAGE_FIELD = "message"


@runtime_checkable
class Publisher(Protocol):
    """Pub/sub transport."""

    async def publish(self, topic: str, message: bytes) -> None:
        ...


class MemoryPublisher:
    """Records published messages in order; used by tests and local runs."""

    def __init__(self):
        self.published: list[tuple[str, bytes]] = []

    async def publish(self, topic: str, message: bytes) -> None:
        self.published.append((topic, message))

    def messages(self, topic: Optional[str] = None) -> list[dict]:
        """Decoded messages, optionally only those sent to ``topic``."""
        return [
            orjson.loads(body) for name, body in self.published
            if topic is None or name == topic
        ]


class RedisPublisher:
    """Appends events to Redis streams named after the configured topics.

    Stream entries stay until they are trimmed, so a message published while
    no consumer is running is delivered once one starts.
    """

    def __init__(self, redis: Any, maxlen: Optional[int] = None):
        self._redis = redis
        self._maxlen = maxlen

    async def publish(self, topic: str, message: bytes) -> None:
        entry_id = await self._redis.xadd(
            topic, {MESSAGE_FIELD: message}, maxlen=self._maxlen, approximate=True,
        )
        logger.debug("Appended entry %s to stream %s", entry_id, topic)


class RedisStreamConsumer:
    """Reads Redis streams through a consumer group and hands on each message.

    An entry is acknowledged only once ``handler`` returns. A handler failure
    leaves it pending, and ``run()`` reads pending entries again before new
    ones. Messages that fail their schema are logged and acknowledged.
    """

    def __init__(
        self,
        redis: Any,
        streams: list[str],
        handler: Callable[[bytes], Awaitable[Any]],
        *,
        group: str = "fpw-secret-writer",
        consumer: str = "writer-1",
        block_ms: int = 5000,
        count: int = 10,
    ):
        self._redis = redis
        self._streams = list(streams)
        self._handler = handler
        self.group = group
        self.consumer = consumer
        self.block_ms = block_ms
        self.count = count

    async def ensure_groups(self) -> None:
        """Create the consumer group on every stream, from the first entry."""
        for stream in self._streams:
            try:
                await self._redis.xgroup_create(stream, self.group, id="0", mkstream=True)
                logger.info("Created consumer group %s on %s", self.group, stream)
            except ResponseError as err:
                if "BUSYGROUP" not in str(err):
                    raise

    async def poll(self, pending: bool = False) -> int:
        """Read one batch and dispatch it.

        Args:
            pending: Re-read entries delivered to this consumer but never
                acknowledged, instead of new ones.

        Returns:
            Number of entries acknowledged.
        """
        start = "0" if pending else ">"
        response = await self._redis.xreadgroup(
            self.group,
            self.consumer,
            {stream: start for stream in self._streams},
            count=self.count,
            block=None if pending else self.block_ms,
        )
        acked = 0
        for stream, entries in response or []:
            if isinstance(stream, bytes):
                stream = stream.decode("utf-8")
            for entry_id, fields in entries:
                if await self._dispatch(stream, entry_id, fields):
                    await self._redis.xack(stream, self.group, entry_id)
                    acked += 1
        return acked

    async def _dispatch(self, stream: str, entry_id: Any, fields: Mapping) -> bool:
        body = fields.get(MESSAGE_FIELD.encode("utf-8"), fields.get(MESSAGE_FIELD))
        if body is None:
            logger.error("Entry %s on %s has no message field", entry_id, stream)
            return True
        try:
            await self._handler(body)
        except MessageInvalid as err:
            logger.error("Dropping entry %s on %s: %s", entry_id, stream, err.message)
            return True
        except Exception as err:
            logger.error(
                "Error handling entry %s on %s: %s",
                entry_id, stream, type(err).__name__,
            )
            return False
        return True

    async def run(self) -> None:
        """Consume until cancelled, starting with anything left pending."""
        await self.ensure_groups()
        await self.poll(pending=True)
        logger.info("Consuming %s as %s/%s", self._streams, self.group, self.consumer)
        while True:
            try:
                await self.poll()
            except Exception as err:
                logger.error("Stream read failed: %s", type(err).__name__)
                await asyncio.sleep(1)


def encode_event(event: Any) -> bytes:
    """Serialize a validated event with its wire (camelCase) names."""
    return orjson.dumps(event.model_dump(by_alias=True))


def decode_event(message: bytes) -> Any:
    """Parse and validate a published message back into a domain event.

    Raises:
        MessageInvalid: If the message is not JSON or fails its schema.
    """
    try:
        return EVENT_ADAPTER.validate_python(orjson.loads(message))
    except orjson.JSONDecodeError:
        raise MessageInvalid("Event message is not valid JSON") from None
    except PydanticValidationError as err:
        raise MessageInvalid(
            f"Event message invalid: {describe_errors(err)}"
        ) from None


class EventEmitter:
    """Validates and publishes domain events to their configured topics."""

    def __init__(self, config: SecretsConfig, publisher: Publisher):
        self._config = config
        self._publisher = publisher

    async def emit(self, action: str, payload: Mapping[str, Any]) -> Any:
        """Validate and publish one ``action`` event built from ``payload``.

        Args:
            action: One of store, retrieve, nuke, sendCode.
            payload: Event fields by wire name (``userToken`` ...).

        Returns:
            The validated event model that was published.

        Raises:
            MessageInvalid: If the message fails its schema; nothing is published.
            PublishError: If no topic is configured or the transport fails.
        """
        message = {"action": action, **payload}
        logger.debug("Message for %s event: %s", action, redact(message))

        try:
            event = EVENT_ADAPTER.validate_python(message)
        except PydanticValidationError as err:
            msg = f"Error validating message: {action} message invalid ({describe_errors(err)})"
            logger.error(msg)
            raise MessageInvalid(msg) from None
        logger.info("Message validated OK")

        topic = self._config.topic_for(action)
        if not topic:
            fault = ConfigurationFault(f"No topic configured for {action} events")
            logger.error(fault.message)
            raise PublishError(f"Error publishing message: {fault.message}") from fault

        try:
            await self._publisher.publish(topic, encode_event(event))
        except Exception as err:
            logger.error(
                "Error publishing %s message to %s: %s",
                action, topic, type(err).__name__,
            )
            raise PublishError(
                f"Error publishing message to {topic}"
            ) from err

        logger.info("Published %s event for user %s", action, event.user_token)
        return event
