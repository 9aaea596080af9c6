"""Authorization gate for editing and deleting historical closings.

The store only asks whether a candidate credential is granted; the policy
behind it belongs to the integrator.
"""

import hmac
from enum import Enum
from typing import Protocol

from daily_closing.config import get_settings


class AuthDecision(str, Enum):
    GRANTED = "granted"
    DENIED = "denied"


class Authorizer(Protocol):
    def check_secret(self, candidate: str | None) -> AuthDecision: ...


class SharedSecretAuthorizer:
    """Grants when the candidate matches one shared code.

    The code is not tied to a user and has no lockout; swap in a role-based
    ``Authorizer`` where per-user attribution is required.
    """

    def __init__(self, secret: str | None = None):
        if secret is None:
            secret = get_settings().edit_secret.get_secret_value()
        self._secret = secret

    def check_secret(self, candidate: str | None) -> AuthDecision:
        if candidate is None:
            return AuthDecision.DENIED
        if hmac.compare_digest(candidate.encode("utf-8"), self._secret.encode("utf-8")):
            return AuthDecision.GRANTED
        return AuthDecision.DENIED
