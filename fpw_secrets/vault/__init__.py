"""Secret Vault — encrypted per-user secret storage.

Security Note (Threat Model):
    All records share one deployment-wide symmetric key. Anyone holding that
    key and read access to the userdata store can decrypt every secret.
    Decrypted secrets exist in process memory only for the duration of a
    retrieve or write.
"""

from .secret_store import SecretStore
from .writer import SecretWriter
from .crypto import fill_key, encrypt_record, decrypt_record

__all__ = [
    "SecretStore",
    "SecretWriter",
    "fill_key",
    "encrypt_record",
    "decrypt_record",
]
