"""
Logging setup and masking of secrets before payloads reach debug output.
"""
import logging
import re
from typing import Any

MASK = "***MASKED***"

SENSITIVE_KEYS = ("token", "secret", "password", "authorization", "code")

_QUERY_SECRET_RE = re.compile(r"([?&](?:token|secret|password|authorization|code)=)([^&]*)", re.IGNORECASE)


def configure_logging(debug: bool = False) -> None:
    """Root logger at DEBUG when the toggle is on, INFO otherwise."""
    logging.basicConfig(
        level=logging.DEBUG if debug else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    # httpx logs every request URL at INFO, which would include authorization codes
    logging.getLogger("httpx").setLevel(logging.WARNING)


def mask_sensitive(data: Any) -> Any:
    """
    Copy of data with secret-looking values replaced by MASK.
    Dict keys containing a sensitive word are masked; strings get their secret query params masked.
    """
    if isinstance(data, str):
        return _QUERY_SECRET_RE.sub(rf"\g<1>{MASK}", data)
    if isinstance(data, dict):
        masked = {}
        for key, value in data.items():
            if any(word in str(key).lower() for word in SENSITIVE_KEYS):
                masked[key] = MASK
            else:
                masked[key] = mask_sensitive(value)
        return masked
    if isinstance(data, (list, tuple)):
        return [mask_sensitive(v) for v in data]
    return data
