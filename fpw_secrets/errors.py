"""Error Hierarchy — typed failures for the secret lifecycle.

Invariants:
    - Every error carries the HTTP status the boundary responds with
    - Messages never contain secrets, verification codes or key material
    - GrantNotFound / GrantExpired stay distinct internally and collapse
      to CredentialInvalid before reaching a caller
"""


class FpwError(Exception):
    """Base exception for all FPW failures."""

    http_status: int = 500

    def __init__(self, message: str = ""):
        super().__init__(message)
        self.message = message


# ─── Caller errors (400 / 401) ─────────────────────────────────────

class ValidationError(FpwError):
    """Malformed input or schema mismatch."""
    http_status = 400


class MessageInvalid(ValidationError):
    """A domain event failed its action-specific schema."""


class CredentialInvalid(FpwError):
    """Verification code or grant missing, mismatched or expired."""
    http_status = 401

    def __init__(self, message: str = "Credential presented is not valid or is expired"):
        super().__init__(message)


class GrantError(FpwError):
    """Internal grant failure, collapsed to CredentialInvalid at the boundary."""
    http_status = 401

    def __init__(self, arid_id: str, message: str):
        super().__init__(message)
        self.arid_id = arid_id


class GrantNotFound(GrantError):
    def __init__(self, arid_id: str):
        super().__init__(arid_id, f"Authorized request {arid_id} not found")


class GrantExpired(GrantError):
    def __init__(self, arid_id: str, expire_epoch: int):
        super().__init__(arid_id, f"Authorized request {arid_id} is expired")
        self.expire_epoch = expire_epoch


# ─── Infrastructure errors (500) ───────────────────────────────────

class StoreReadError(FpwError):
    """Backing object absent, unreadable or undecryptable."""


class StoreParseError(FpwError):
    """Stored content is not a well-formed record."""


class PublishError(FpwError):
    """Publishing to the pub/sub topic failed; safe for the caller to retry."""
    retryable = True


class ConfigurationFault(FpwError):
    """A required deployment setting is missing or unusable."""


def status_for(exc: BaseException) -> int:
    """Map any exception to the status code returned at the boundary."""
    if isinstance(exc, FpwError):
        return exc.http_status
    return 500
