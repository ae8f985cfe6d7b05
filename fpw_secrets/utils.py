"""Small helpers shared by the services: trimming, normalization, redaction, time."""
import time
import unicodedata
from typing import Any, Callable, Mapping

Clock = Callable[[], int]

# keys whose values must never reach a log record
SECRET_FIELDS = frozenset({"secret"})


def current_epoch() -> int:
    """Current Unix time in whole seconds (rounded, not truncated)."""
    return round(time.time())


def is_expired(expire_epoch: int, now: int) -> bool:
    """A credential is expired only once ``now`` is strictly past its expiry."""
    return now > expire_epoch


def safe_trim(value: Any) -> Any:
    """Strip surrounding whitespace from strings, pass anything else through."""
    if isinstance(value, str):
        return value.strip()
    return value


def normalize_application(application: str) -> str:
    """Canonical lookup key for a user-supplied application name.

    Accents are folded, case is folded and everything that is not a letter
    or digit in any script is dropped, so "My App", "my-app" and "MY APP "
    share one key while "Почта" stays "почта".
    """
    if not isinstance(application, str):
        return ""
    decomposed = unicodedata.normalize("NFKD", application)
    stripped = "".join(c for c in decomposed if not unicodedata.combining(c))
    return "".join(c for c in stripped.casefold() if c.isalnum())


def redact(payload: Mapping[str, Any]) -> dict:
    """Return a copy of ``payload`` that is safe to hand to a logger.

    Secret values are replaced by a length placeholder; the original
    mapping is left untouched.
    """
    cleaned = {}
    for key, value in payload.items():
        if key in SECRET_FIELDS:
            length = len(value) if isinstance(value, (str, bytes)) else 0
            cleaned[key] = f"(removed {length} chars)"
        elif isinstance(value, Mapping):
            cleaned[key] = redact(value)
        else:
            cleaned[key] = value
    return cleaned
