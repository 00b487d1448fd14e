"""
Trust policy deciding whether a request is admitted after signature checking
"""

from dataclasses import dataclass
from http import HTTPStatus
from typing import Union

from care_guides.signing import VerificationOutcome

UNAUTHORIZED = "Unauthorized"
SERVER_NOT_CONFIGURED = "Server not configured"


@dataclass(frozen=True)
class Admit:
    # whether the request carried a valid signature (surfaced as meta.signed)
    verified: bool


@dataclass(frozen=True)
class Reject:
    error: str
    detail: str
    status: int

    def payload(self) -> dict:
        return {"ok": False, "error": self.error, "detail": self.detail}


Decision = Union[Admit, Reject]


def decide(outcome: VerificationOutcome, allow_unsigned: bool) -> Decision:
    if outcome is VerificationOutcome.MISCONFIGURED:
        # a server that cannot verify never admits anything as trusted
        return Reject(
            SERVER_NOT_CONFIGURED,
            "Signature verification is not configured",
            HTTPStatus.INTERNAL_SERVER_ERROR,
        )
    if outcome is VerificationOutcome.INVALID:
        return Reject(UNAUTHORIZED, "Invalid signature", HTTPStatus.UNAUTHORIZED)
    if outcome is VerificationOutcome.MISSING:
        if allow_unsigned:
            return Admit(verified=False)
        return Reject(UNAUTHORIZED, "Missing signature", HTTPStatus.UNAUTHORIZED)
    return Admit(verified=True)
