"""
Authorized Request Service — time-boxed grants (ARIDs) for one application.

A grant binds a user token to one application until ``expireEpoch``. Grants
are issued elsewhere and read from ``arid/{aridId}``; this service resolves
them, rejects expired ones, and performs the store / retrieve action the
grant authorizes.

Invariants:
    - GrantNotFound iff no record exists; GrantExpired iff now > expireEpoch
    - The expiry check runs before any mutation or disclosure
    - isFirstTime is passed through and never affects validation
"""
import logging
from typing import Any, Optional

import orjson
from pydantic import ValidationError as PydanticValidationError

from .errors import GrantExpired, GrantNotFound, StoreParseError, StoreReadError
from .events import EventEmitter
from .models import AuthorizedRequest
from .storage import ObjectStore, arid_key
from .utils import Clock, current_epoch, is_expired
from .vault import SecretStore

logger = logging.getLogger("fpw.grants")


class AuthorizedRequestService:
    """Resolves grants and carries out the actions they authorize."""

    def __init__(
        self,
        grants: ObjectStore,
        secrets: SecretStore,
        emitter: EventEmitter,
        clock: Optional[Clock] = None,
    ):
        self._grants = grants
        self._secrets = secrets
        self._emitter = emitter
        self._clock = clock or current_epoch

    async def _read(self, arid_id: str) -> AuthorizedRequest:
        key = arid_key(arid_id)
        try:
            blob = await self._grants.get(key)
        except Exception as err:
            logger.error("Error reading %s: %s", key, type(err).__name__)
            raise StoreReadError(f"Error reading {key}") from err
        if blob is None:
            logger.debug("Key not found: %s", key)
            raise GrantNotFound(arid_id)
        logger.debug("Successfully read %s", key)

        try:
            data = orjson.loads(blob)
            if isinstance(data, dict):
                data.setdefault("aridId", arid_id)
            return AuthorizedRequest.model_validate(data)
        except (orjson.JSONDecodeError, PydanticValidationError):
            logger.error("Error parsing json for %s", key)
            raise StoreParseError(f"Malformed authorized request {key}") from None

    async def resolve_grant(self, arid_id: str) -> AuthorizedRequest:
        """Fetch a grant and check it has not expired.

        Raises:
            GrantNotFound: No grant is stored under ``arid_id``.
            GrantExpired: The grant exists but ``now > expireEpoch``.
            StoreReadError / StoreParseError: Store failure or malformed record.
        """
        grant = await self._read(arid_id)
        now = self._clock()
        if is_expired(grant.expire_epoch, now):
            logger.warning("Request was made for expired Arid: %s", arid_id)
            logger.debug(
                "Expired Arid encountered, current epoch: %d, arid expire epoch: %d",
                now, grant.expire_epoch,
            )
            raise GrantExpired(arid_id, grant.expire_epoch)
        return grant

    async def get_authorized_request(self, arid_id: str) -> dict:
        """Return details about a valid grant, never the secret."""
        logger.info("Retrieving authorized request for %s", arid_id)
        grant = await self.resolve_grant(arid_id)
        logger.debug(
            "Retrieved arid for %s from %s", grant.normalized_application, arid_key(arid_id),
        )
        return grant.details()

    async def consume_for_store(self, arid_id: str, secret: str) -> Any:
        """Store a secret for the grant's user and application.

        Returns:
            The published StoreEvent.
        """
        grant = await self.resolve_grant(arid_id)
        return await self._secrets.store(secret, grant.raw_application, grant.user_token)

    async def consume_for_retrieve(self, arid_id: str) -> dict:
        """Disclose the secret for the grant's user and application.

        The secret is read synchronously; a ``retrieve`` event is emitted
        once the read succeeded.

        Returns:
            ``{"secret": ..., "rawApplication": ...}``
        """
        grant = await self.resolve_grant(arid_id)
        disclosed = await self._secrets.retrieve(
            grant.normalized_application, grant.user_token,
        )
        await self._emitter.emit("retrieve", {
            "rawApplication": grant.raw_application,
            "normalizedApplication": grant.normalized_application,
            "userToken": grant.user_token,
        })
        return disclosed
