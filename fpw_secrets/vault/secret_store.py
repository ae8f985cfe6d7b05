"""
SecretStore — per-user encrypted secrets keyed by normalized application.

Provides the two halves of the secret lifecycle:
- ``store(secret, application, user_token)``: publish a ``store`` event;
  a downstream consumer (``SecretWriter``) performs the encrypted write
- ``retrieve(normalized_application, user_token)``: synchronous read and
  decrypt of the stored record

Security Note:
    Never log plaintext or ciphertext values. Only log user tokens,
    application keys, object locations and secret lengths.
"""
import logging
from typing import Any

import orjson
from pydantic import ValidationError as PydanticValidationError

from ..conf import SecretsConfig
from ..errors import StoreParseError, StoreReadError
from ..events import EventEmitter
from ..models import StoredSecret
from ..storage import ObjectStore, application_key
from ..utils import normalize_application, safe_trim
from .crypto import DecryptionError, decrypt_record, deserialize_record, userdata_key

logger = logging.getLogger("fpw.vault")


class SecretStore:
    """Encrypted secret storage bound to a user token.

    Writes are asynchronous: ``store()`` only validates and publishes the
    record as an event. Reads are synchronous: ``retrieve()`` goes straight
    to the userdata store and decrypts with the deployment key.
    """

    def __init__(
        self,
        config: SecretsConfig,
        userdata: ObjectStore,
        emitter: EventEmitter,
    ):
        self._config = config
        self._userdata = userdata
        self._emitter = emitter

    def _location(self, object_key: str) -> str:
        return f"{self._config.userdata_namespace}/{object_key}"

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def store(self, secret: str, raw_application: str, user_token: str) -> Any:
        """Publish a ``store`` event for the secret.

        Args:
            secret: Secret text (3-256 chars after trimming).
            raw_application: Application name as the user typed it.
            user_token: Owner of the secret.

        Returns:
            The published StoreEvent.

        Raises:
            MessageInvalid: If secret or application lengths are out of range;
                nothing is published.
            PublishError: If the event could not be published.
        """
        logger.info("Publishing store secret event for user %s", user_token)
        application = safe_trim(raw_application)
        payload = {
            "secret": safe_trim(secret),
            "rawApplication": application,
            "normalizedApplication": normalize_application(application),
            "userToken": user_token,
        }
        return await self._emitter.emit("store", payload)

    async def retrieve(self, normalized_application: str, user_token: str) -> dict:
        """Read and decrypt the secret stored for an application.

        Args:
            normalized_application: Canonical application key.
            user_token: Owner of the secret.

        Returns:
            ``{"secret": ..., "rawApplication": ...}``

        Raises:
            StoreReadError: If the object is absent, unreadable, or does not
                decrypt with the configured key.
            StoreParseError: If the decrypted content is not a secret record.
        """
        logger.info(
            "Retrieving secret for %s, application: %s",
            user_token, normalized_application,
        )
        object_key = application_key(normalized_application, user_token)
        location = self._location(object_key)
        key = userdata_key(self._config)

        try:
            blob = await self._userdata.get(object_key)
        except Exception as err:
            logger.error("Error reading %s: %s", location, type(err).__name__)
            raise StoreReadError(f"Error reading {location}") from err
        if blob is None:
            logger.warning("No secret stored at %s", location)
            raise StoreReadError(f"No secret stored at {location}")
        logger.debug("Successfully read %s", location)

        try:
            plaintext = decrypt_record(blob, key, object_key)
        except DecryptionError as err:
            logger.error("Error decrypting %s: %s", location, err)
            raise StoreReadError(f"Unable to decrypt {location}") from None

        try:
            record = StoredSecret.model_validate(deserialize_record(plaintext))
        except (orjson.JSONDecodeError, PydanticValidationError):
            logger.error("Error parsing record for %s", location)
            raise StoreParseError(f"Malformed record at {location}") from None

        logger.debug(
            "Retrieved secret (%d chars) from %s", len(record.secret), location,
        )
        return record.disclose()
