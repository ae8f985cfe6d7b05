"""
Verification Code Service — issue and validate short-lived codes.

Codes are generated and delivered downstream of the ``sendCode`` event; this
service only triggers issuance and checks presented codes against the stored
``codes/{normalizedPhone}`` record.

Invariants:
    - validate() is True iff the stored code matches and now <= expireEpoch
    - Not found, mismatch and expired all return False; callers cannot tell
      them apart
    - Validation does not consume the code; expiry is the only invalidation

Security Note:
    Never log presented or stored code values.
"""
import hmac
import logging
from typing import Any, Optional

import orjson
from pydantic import ValidationError as PydanticValidationError

from .errors import StoreParseError, StoreReadError
from .events import EventEmitter
from .identity import IdentityResolver
from .models import VerificationCode
from .storage import ObjectStore, code_key
from .utils import Clock, current_epoch, is_expired

logger = logging.getLogger("fpw.codes")


class VerificationCodeService:
    """Issues codes through the event pipeline and validates presented codes."""

    def __init__(
        self,
        resolver: IdentityResolver,
        codes: ObjectStore,
        emitter: EventEmitter,
        clock: Optional[Clock] = None,
    ):
        self._resolver = resolver
        self._codes = codes
        self._emitter = emitter
        self._clock = clock or current_epoch

    async def issue(self, normalized_phone: str) -> Any:
        """Request a new code for a phone number.

        Returns:
            The published SendCodeEvent.
        """
        user_token = await self._resolver.token_from_phone(normalized_phone)
        return await self.publish_send_code(user_token)

    async def publish_send_code(self, user_token: str) -> Any:
        logger.info("Publishing send code event for user %s", user_token)
        return await self._emitter.emit("sendCode", {"userToken": user_token})

    async def _load(self, normalized_phone: str) -> Optional[VerificationCode]:
        key = code_key(normalized_phone)
        try:
            blob = await self._codes.get(key)
        except Exception as err:
            logger.error("Error reading verification code %s: %s", key, type(err).__name__)
            raise StoreReadError(f"Error reading verification code {key}") from err
        if blob is None:
            return None
        try:
            return VerificationCode.model_validate(orjson.loads(blob))
        except (orjson.JSONDecodeError, PydanticValidationError):
            logger.error("Error parsing verification code record %s", key)
            raise StoreParseError(f"Malformed verification code record {key}") from None

    async def validate(self, code: Optional[str], user_token: str) -> bool:
        """Check a presented code for the phone behind ``user_token``.

        Args:
            code: Code as presented by the caller.
            user_token: Token resolved from the caller's phone number.

        Returns:
            True only if a stored code matches and has not expired.

        Raises:
            StoreReadError: If the code store cannot be read.
            StoreParseError: If the stored record is malformed.
        """
        if not isinstance(code, str) or not code:
            logger.warning("Verification code is not present")
            return False

        normalized_phone = await self._resolver.phone_from_token(user_token)
        record = await self._load(normalized_phone)
        if record is None:
            logger.warning("No verification code on record for user %s", user_token)
            return False

        if not hmac.compare_digest(record.code.encode("utf-8"), code.encode("utf-8")):
            logger.warning("Verification code mismatch for user %s", user_token)
            return False

        now = self._clock()
        if is_expired(record.expire_epoch, now):
            logger.debug(
                "Expired verification code for user %s, current epoch: %d, expire epoch: %d",
                user_token, now, record.expire_epoch,
            )
            return False

        logger.info("Verification code validated for user %s", user_token)
        return True
