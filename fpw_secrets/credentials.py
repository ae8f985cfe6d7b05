"""Credentials — the two ways a caller proves it may act for a user.

A verification code (phone-originated requests) and a grant (link-originated
requests) both resolve to the same ``Authorization``, so the lifecycle
actions never need to know which one was presented. Every failure is
collapsed to ``CredentialInvalid``; the grant-specific reason is only logged.
"""
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Optional

from .codes import VerificationCodeService
from .errors import CredentialInvalid, GrantError
from .grants import AuthorizedRequestService
from .identity import IdentityResolver

logger = logging.getLogger("fpw.credentials")


@dataclass(frozen=True)
class Authorization:
    """A validated (user token, scope) pair.

    ``normalized_application`` is set when the credential is scoped to one
    application (grants); code credentials authorize the whole account.
    """
    user_token: str
    raw_application: Optional[str] = None
    normalized_application: Optional[str] = None
    is_first_time: bool = False


class Credential(ABC):
    """Something presented by a caller that can be turned into an Authorization."""

    @abstractmethod
    async def authorize(
        self,
        resolver: IdentityResolver,
        codes: VerificationCodeService,
        grants: AuthorizedRequestService,
    ) -> Authorization:
        """Validate the credential.

        Raises:
            CredentialInvalid: Missing, mismatched or expired credential.
        """


@dataclass(frozen=True)
class VerificationCodeCredential(Credential):
    phone: str
    code: Optional[str] = field(default=None, repr=False)

    async def authorize(self, resolver, codes, grants) -> Authorization:
        user_token = await resolver.token_from_phone(self.phone)
        if not await codes.validate(self.code, user_token):
            logger.warning("Verification code presented is not valid or is expired")
            raise CredentialInvalid(
                "Verification code presented is not valid or is expired"
            )
        return Authorization(user_token=user_token)


@dataclass(frozen=True)
class GrantCredential(Credential):
    arid_id: str

    async def authorize(self, resolver, codes, grants) -> Authorization:
        try:
            grant = await grants.resolve_grant(self.arid_id)
        except GrantError as err:
            logger.warning("Authorized request rejected: %s", err.message)
            raise CredentialInvalid(
                "Authorized request is not valid or is expired"
            ) from err
        return Authorization(
            user_token=grant.user_token,
            raw_application=grant.raw_application,
            normalized_application=grant.normalized_application,
            is_first_time=grant.is_first_time,
        )
