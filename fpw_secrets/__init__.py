"""FPW Secrets.

Short-lived verification codes and authorized-request grants gating a
per-user encrypted secret store, with schema-gated domain events.
"""
from .version import __version__
from .conf import SecretsConfig
from .errors import (
    FpwError,
    ValidationError,
    MessageInvalid,
    CredentialInvalid,
    GrantNotFound,
    GrantExpired,
    StoreReadError,
    StoreParseError,
    PublishError,
    ConfigurationFault,
)
from .codes import VerificationCodeService
from .grants import AuthorizedRequestService
from .credentials import Authorization, GrantCredential, VerificationCodeCredential
from .events import EventEmitter, MemoryPublisher, RedisPublisher, RedisStreamConsumer
from .orchestrator import LifecycleOrchestrator
from .storage import MemoryObjectStore, RedisObjectStore
from .vault import SecretStore, SecretWriter

__all__ = [
    "__version__",
    "SecretsConfig",
    "FpwError",
    "ValidationError",
    "MessageInvalid",
    "CredentialInvalid",
    "GrantNotFound",
    "GrantExpired",
    "StoreReadError",
    "StoreParseError",
    "PublishError",
    "ConfigurationFault",
    "VerificationCodeService",
    "AuthorizedRequestService",
    "Authorization",
    "GrantCredential",
    "VerificationCodeCredential",
    "EventEmitter",
    "MemoryPublisher",
    "RedisPublisher",
    "RedisStreamConsumer",
    "LifecycleOrchestrator",
    "MemoryObjectStore",
    "RedisObjectStore",
    "SecretStore",
    "SecretWriter",
]
