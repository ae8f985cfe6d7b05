"""Identity resolution port.

Phone numbers are mapped to stable opaque user tokens by an external
resolver; the derivation itself lives outside this package.
"""
from typing import Protocol, runtime_checkable


@runtime_checkable
class IdentityResolver(Protocol):
    """Maps phone numbers to user tokens and back."""

    async def token_from_phone(self, phone: str) -> str:
        """Return the user token (20-100 chars) for a raw phone number."""
        ...

    async def phone_from_token(self, user_token: str) -> str:
        """Return the normalized phone number a user token was issued for."""
        ...
