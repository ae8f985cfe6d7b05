"""
FPW Models — stored records, domain events and request bodies.

Wire names are camelCase (``userToken``, ``expireEpoch`` ...) through field
aliases; attributes are snake_case. Domain events reject unknown keys and are
validated through a single discriminated-union adapter keyed on ``action``.

Security Note:
    Secret and code fields are declared ``repr=False``. Validation failures
    are described with ``describe_errors()``, which never echoes input values.
"""
from typing import Annotated, Literal, Optional, Union

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    StringConstraints,
    TypeAdapter,
    ValidationError as PydanticValidationError,
)

UserToken = Annotated[str, StringConstraints(min_length=20, max_length=100)]
Application = Annotated[str, StringConstraints(min_length=2, max_length=256)]
SecretText = Annotated[str, StringConstraints(min_length=3, max_length=256)]
Code = Annotated[str, StringConstraints(min_length=4, max_length=10)]
Phone = Annotated[str, StringConstraints(min_length=10, max_length=32)]


def describe_errors(err: PydanticValidationError) -> str:
    """Summarize a pydantic error by location and type only."""
    parts = []
    for item in err.errors(include_url=False, include_context=False, include_input=False):
        loc = ".".join(str(p) for p in item["loc"]) or "(root)"
        parts.append(f"{loc}: {item['type']}")
    return "; ".join(parts)


# ---------------------------------------------------------------------------
# Stored records
# ---------------------------------------------------------------------------

class VerificationCode(BaseModel):
    """Short-lived numeric code bound to a normalized phone number."""

    model_config = ConfigDict(populate_by_name=True)

    normalized_phone: str = Field(alias="normalizedPhone", min_length=1)
    code: Code = Field(repr=False)
    expire_epoch: int = Field(alias="expireEpoch")


class AuthorizedRequest(BaseModel):
    """Grant (ARID) binding a user token to one application until expiry."""

    model_config = ConfigDict(populate_by_name=True)

    arid_id: str = Field(alias="aridId", min_length=1)
    user_token: UserToken = Field(alias="userToken")
    raw_application: Application = Field(alias="rawApplication")
    normalized_application: Application = Field(alias="normalizedApplication")
    expire_epoch: int = Field(alias="expireEpoch")
    is_first_time: bool = Field(default=False, alias="isFirstTime")

    def details(self) -> dict:
        """Grant details safe to return to a caller (no secret involved)."""
        return self.model_dump(by_alias=True, exclude={"arid_id"})


class SecretRecord(BaseModel):
    """One secret per (user token, normalized application)."""

    model_config = ConfigDict(populate_by_name=True)

    secret: SecretText = Field(repr=False)
    raw_application: Application = Field(alias="rawApplication")
    normalized_application: Application = Field(alias="normalizedApplication")
    user_token: UserToken = Field(alias="userToken")


class StoredSecret(BaseModel):
    """The part of a decrypted SecretRecord disclosed on retrieve."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    secret: str = Field(repr=False)
    raw_application: str = Field(alias="rawApplication")

    def disclose(self) -> dict:
        return {"secret": self.secret, "rawApplication": self.raw_application}


# ---------------------------------------------------------------------------
# Domain events
# ---------------------------------------------------------------------------

_EVENT_CONFIG = ConfigDict(extra="forbid", populate_by_name=True, frozen=True)


class StoreEvent(BaseModel):
    model_config = _EVENT_CONFIG

    action: Literal["store"]
    secret: SecretText = Field(repr=False)
    raw_application: Application = Field(alias="rawApplication")
    normalized_application: Application = Field(alias="normalizedApplication")
    user_token: UserToken = Field(alias="userToken")


class RetrieveEvent(BaseModel):
    model_config = _EVENT_CONFIG

    action: Literal["retrieve"]
    raw_application: Application = Field(alias="rawApplication")
    normalized_application: Application = Field(alias="normalizedApplication")
    user_token: UserToken = Field(alias="userToken")


class NukeEvent(BaseModel):
    model_config = _EVENT_CONFIG

    action: Literal["nuke"]
    user_token: UserToken = Field(alias="userToken")


class SendCodeEvent(BaseModel):
    model_config = _EVENT_CONFIG

    action: Literal["sendCode"]
    user_token: UserToken = Field(alias="userToken")


DomainEvent = Annotated[
    Union[StoreEvent, RetrieveEvent, NukeEvent, SendCodeEvent],
    Field(discriminator="action"),
]

EVENT_ADAPTER: TypeAdapter = TypeAdapter(DomainEvent)


# ---------------------------------------------------------------------------
# Request bodies (boundary shape validation)
# ---------------------------------------------------------------------------

_BODY_CONFIG = ConfigDict(extra="forbid", populate_by_name=True)


class StoreSecretBody(BaseModel):
    model_config = _BODY_CONFIG

    application: Application
    secret: SecretText = Field(repr=False)
    phone: Phone


class RetrieveSecretBody(BaseModel):
    model_config = _BODY_CONFIG

    application: Application
    phone: Phone


class SendCodeBody(BaseModel):
    model_config = _BODY_CONFIG

    phone: Phone


class NukeBody(BaseModel):
    model_config = _BODY_CONFIG

    phone: Phone
    verification_code: Optional[str] = Field(
        default=None, alias="verificationCode", repr=False,
    )


class GrantStoreBody(BaseModel):
    model_config = _BODY_CONFIG

    secret: SecretText = Field(repr=False)
