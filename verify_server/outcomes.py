"""
Result of a verification step, handed from the service to the HTTP layer.
"""
import enum
from dataclasses import dataclass
from typing import Any


class Outcome(str, enum.Enum):
    CONSENT_REQUIRED = "consent_required"
    SUCCESS = "success"
    DECLINED = "declined"
    # Missing params, forged, consumed and expired tokens all land here on purpose
    EXPIRED = "expired"
    PROVIDER_ERROR = "provider_error"
    INELIGIBLE = "ineligible"
    GRANT_FAILED = "grant_failed"


@dataclass(frozen=True)
class VerificationResult:
    outcome: Outcome
    state: str | None = None
    # Non-sensitive summary shown to the user (provider error text)
    detail: str | None = None
    claims: dict[str, Any] | None = None
