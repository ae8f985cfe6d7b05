"""
Secret Writer — downstream consumer that applies published events.

``store`` events are encrypted and written to the userdata store, overwriting
any previous record for the same (user token, normalized application).
``nuke`` events delete every object under the user's prefix; the deletion is
idempotent, so redelivered nuke events are harmless. Other actions are
acknowledged and ignored.

Security Note:
    Plaintext exists in memory only while a record is being encrypted.
    Never log plaintext or ciphertext values.
"""
import logging
from typing import Any

from ..conf import SecretsConfig
from ..events import decode_event
from ..models import NukeEvent, SecretRecord, StoreEvent
from ..storage import ObjectStore, application_key, user_prefix
from .crypto import encrypt_record, serialize_record, userdata_key

logger = logging.getLogger("fpw.vault")


class SecretWriter:
    """Applies store / nuke events to the encrypted userdata store."""

    def __init__(self, config: SecretsConfig, userdata: ObjectStore):
        self._config = config
        self._userdata = userdata

    async def handle(self, message: bytes) -> Any:
        """Decode one published message and apply it.

        Args:
            message: Raw event body as published by ``EventEmitter``.

        Returns:
            The decoded domain event.

        Raises:
            MessageInvalid: If the message is not a valid domain event.
        """
        event = decode_event(message)
        if isinstance(event, StoreEvent):
            await self.write(event)
        elif isinstance(event, NukeEvent):
            await self.nuke(event.user_token)
        else:
            logger.debug(
                "Ignoring %s event for user %s", event.action, event.user_token,
            )
        return event

    async def write(self, event: StoreEvent) -> str:
        """Encrypt and persist the record carried by a store event.

        Returns:
            The object key the record was written to.
        """
        record = SecretRecord(
            secret=event.secret,
            raw_application=event.raw_application,
            normalized_application=event.normalized_application,
            user_token=event.user_token,
        )
        object_key = application_key(record.normalized_application, record.user_token)
        ciphertext = encrypt_record(
            serialize_record(record), userdata_key(self._config), object_key,
        )
        await self._userdata.put(object_key, ciphertext)
        logger.info(
            "Stored secret (%d chars) for user %s at %s/%s",
            len(record.secret), record.user_token,
            self._config.userdata_namespace, object_key,
        )
        return object_key

    async def nuke(self, user_token: str) -> dict:
        """Delete every object stored for a user.

        Returns:
            Stats dict with keys: total, deleted, errors.
        """
        keys = await self._userdata.keys(user_prefix(user_token))
        stats = {"total": len(keys), "deleted": 0, "errors": 0}
        logger.info("Nuking %d object(s) for user %s", len(keys), user_token)

        for key in keys:
            try:
                await self._userdata.delete(key)
                stats["deleted"] += 1
            except Exception as err:
                logger.error(
                    "Error deleting %s/%s: %s",
                    self._config.userdata_namespace, key, type(err).__name__,
                )
                stats["errors"] += 1

        logger.info("Nuke complete for user %s: %s", user_token, stats)
        return stats
