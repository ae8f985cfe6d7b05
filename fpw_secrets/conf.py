"""
FPW Configuration — deployment settings, built once at process start.

Reads settings from environment variables:
    FPW_USERDATA_KEY = <symmetric key for the userdata store, >= 32 bytes>
    FPW_{STORE,RETRIEVE,NUKE,SENDCODE}_TOPIC = <pub/sub topic names>
    FPW_{USERDATA,AUTHREQ,CODES}_NAMESPACE = <store namespaces>
    FPW_REDIS_URL = <redis connection url>

The resulting ``SecretsConfig`` is frozen and passed to each component
constructor; business modules never read the environment themselves.

Security Note:
    Never log key material. Only log whether a key is present and its length.
"""
import os
import logging
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

logger = logging.getLogger("fpw.conf")

KEY_LENGTH = 32  # AES-256

_TOPIC_FIELDS = {
    "store": "store_topic",
    "retrieve": "retrieve_topic",
    "nuke": "nuke_topic",
    "sendCode": "sendcode_topic",
}


class SecretsConfig(BaseModel):
    """Validated, immutable deployment configuration."""

    model_config = ConfigDict(frozen=True)

    userdata_key: bytes = Field(default=b"", repr=False)
    store_topic: Optional[str] = None
    retrieve_topic: Optional[str] = None
    nuke_topic: Optional[str] = None
    sendcode_topic: Optional[str] = None
    userdata_namespace: str = Field(default="fpw-userdata", min_length=1)
    authreq_namespace: str = Field(default="fpw-authreq", min_length=1)
    codes_namespace: str = Field(default="fpw-codes", min_length=1)
    redis_url: str = "redis://localhost:6379/0"

    @field_validator("userdata_key", mode="before")
    @classmethod
    def encode_key(cls, v):
        """Accept the key as text (environment) or raw bytes."""
        if v is None:
            return b""
        if isinstance(v, str):
            return v.encode("utf-8")
        return v

    @field_validator(
        "store_topic", "retrieve_topic", "nuke_topic", "sendcode_topic",
        mode="before",
    )
    @classmethod
    def blank_topic_is_missing(cls, v):
        if isinstance(v, str) and not v.strip():
            return None
        return v

    @property
    def key_is_valid(self) -> bool:
        """True when the userdata key is long enough for AES-256."""
        return len(self.userdata_key) >= KEY_LENGTH

    def topic_for(self, action: str) -> Optional[str]:
        """Return the topic configured for an event action, if any."""
        field = _TOPIC_FIELDS.get(action)
        if field is None:
            return None
        return getattr(self, field)

    @classmethod
    def from_env(cls) -> "SecretsConfig":
        """Create SecretsConfig by loading values from environment.

        Returns:
            Populated SecretsConfig instance.
        """
        env = os.environ
        config = cls(
            userdata_key=env.get("FPW_USERDATA_KEY", ""),
            store_topic=env.get("FPW_STORE_TOPIC"),
            retrieve_topic=env.get("FPW_RETRIEVE_TOPIC"),
            nuke_topic=env.get("FPW_NUKE_TOPIC"),
            sendcode_topic=env.get("FPW_SENDCODE_TOPIC"),
            userdata_namespace=env.get("FPW_USERDATA_NAMESPACE", "fpw-userdata"),
            authreq_namespace=env.get("FPW_AUTHREQ_NAMESPACE", "fpw-authreq"),
            codes_namespace=env.get("FPW_CODES_NAMESPACE", "fpw-codes"),
            redis_url=env.get("FPW_REDIS_URL", "redis://localhost:6379/0"),
        )
        if not config.key_is_valid:
            logger.error(
                "FPW_USERDATA_KEY missing or shorter than %d bytes (got %d)",
                KEY_LENGTH, len(config.userdata_key),
            )
        missing = [a for a in _TOPIC_FIELDS if config.topic_for(a) is None]
        if missing:
            logger.warning("No topic configured for action(s): %s", missing)
        return config
