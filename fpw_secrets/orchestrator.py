"""
Lifecycle Orchestrator — store, retrieve and nuke flows.

Every flow resolves the user token, validates the credential that gates it,
performs the action and returns a plain outcome. External calls are awaited
one after another; nothing in a flow runs concurrently.

Entry points:
    send_code(phone)                              ungated, emits sendCode
    store_secret(credential, secret, application) code- or grant-gated
    store_secret_with_grant(arid_id, secret)      grant-gated
    retrieve_secret(phone, application)           ungated direct read
    retrieve_secret_with_grant(arid_id)           grant-gated read
    nuke(credential)                              code- or grant-gated
    describe_grant(arid_id)                       grant details, no secret
"""
import logging
from typing import Any, Optional

from .codes import VerificationCodeService
from .conf import SecretsConfig
from .credentials import Authorization, Credential
from .errors import CredentialInvalid, GrantError, MessageInvalid, ValidationError
from .events import EventEmitter, Publisher
from .grants import AuthorizedRequestService
from .identity import IdentityResolver
from .storage import ObjectStore
from .utils import Clock, normalize_application, safe_trim
from .vault import SecretStore

logger = logging.getLogger("fpw.orchestrator")


def _collapse(err: GrantError) -> CredentialInvalid:
    logger.warning("Authorized request rejected: %s", err.message)
    return CredentialInvalid("Authorized request is not valid or is expired")


class LifecycleOrchestrator:
    """Composes identity, credentials, the secret store and the event emitter."""

    def __init__(
        self,
        resolver: IdentityResolver,
        codes: VerificationCodeService,
        grants: AuthorizedRequestService,
        secrets: SecretStore,
        emitter: EventEmitter,
    ):
        self.resolver = resolver
        self.codes = codes
        self.grants = grants
        self.secrets = secrets
        self.emitter = emitter

    @classmethod
    def build(
        cls,
        config: SecretsConfig,
        resolver: IdentityResolver,
        *,
        codes_store: ObjectStore,
        grants_store: ObjectStore,
        userdata_store: ObjectStore,
        publisher: Publisher,
        clock: Optional[Clock] = None,
    ) -> "LifecycleOrchestrator":
        """Wire every component from one configuration.

        Args:
            config: Immutable deployment configuration.
            resolver: Phone to user-token resolver.
            codes_store: Verification code records.
            grants_store: Authorized request records.
            userdata_store: Encrypted secret records.
            publisher: Pub/sub transport.
            clock: Epoch-seconds clock, ``round(time.time())`` by default.

        Returns:
            Ready-to-use orchestrator.
        """
        emitter = EventEmitter(config, publisher)
        secrets = SecretStore(config, userdata_store, emitter)
        codes = VerificationCodeService(resolver, codes_store, emitter, clock=clock)
        grants = AuthorizedRequestService(grants_store, secrets, emitter, clock=clock)
        return cls(resolver, codes, grants, secrets, emitter)

    async def authorize(self, credential: Credential) -> Authorization:
        return await credential.authorize(self.resolver, self.codes, self.grants)

    # ------------------------------------------------------------------
    # Flows
    # ------------------------------------------------------------------

    async def send_code(self, phone: str) -> Any:
        return await self.codes.issue(phone)

    async def store_secret(
        self,
        credential: Credential,
        secret: str,
        application: Optional[str] = None,
    ) -> Any:
        """Store a secret once the credential is validated.

        A grant is scoped to its own application, which takes precedence
        over ``application``.
        """
        auth = await self.authorize(credential)
        target = auth.raw_application or application
        if not target:
            raise ValidationError("An application is required to store a secret")
        return await self.secrets.store(secret, target, auth.user_token)

    async def store_secret_with_grant(self, arid_id: str, secret: str) -> Any:
        try:
            return await self.grants.consume_for_store(arid_id, secret)
        except GrantError as err:
            raise _collapse(err) from err

    async def retrieve_secret(self, phone: str, application: str) -> dict:
        """Direct retrieve: trusts the phone to token resolution alone.

        Returns:
            ``{"secret": ..., "rawApplication": ...}``
        """
        raw_application = safe_trim(application)
        normalized = normalize_application(raw_application)
        if not 2 <= len(normalized) <= 256:
            raise MessageInvalid(
                "Error validating message: normalizedApplication length out of range"
            )
        user_token = await self.resolver.token_from_phone(phone)
        disclosed = await self.secrets.retrieve(normalized, user_token)
        await self.emitter.emit("retrieve", {
            "rawApplication": raw_application,
            "normalizedApplication": normalized,
            "userToken": user_token,
        })
        return disclosed

    async def retrieve_secret_with_grant(self, arid_id: str) -> dict:
        try:
            return await self.grants.consume_for_retrieve(arid_id)
        except GrantError as err:
            raise _collapse(err) from err

    async def nuke(self, credential: Credential) -> Any:
        """Request irreversible deletion of everything stored for the user."""
        auth = await self.authorize(credential)
        logger.info("Publishing nuke account event for user %s", auth.user_token)
        return await self.emitter.emit("nuke", {"userToken": auth.user_token})

    async def describe_grant(self, arid_id: str) -> dict:
        try:
            return await self.grants.get_authorized_request(arid_id)
        except GrantError as err:
            raise _collapse(err) from err
