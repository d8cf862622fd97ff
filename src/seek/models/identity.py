"""Identity models — wallet challenges and verification results."""

from __future__ import annotations

import enum
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Optional


class IdentityFailure(str, enum.Enum):
    """Why an identity verification did not succeed."""
    UNKNOWN_NONCE = "unknown_nonce"
    NONCE_EXPIRED = "nonce_expired"
    WALLET_MISMATCH = "wallet_mismatch"
    MESSAGE_MISMATCH = "message_mismatch"
    INVALID_SIGNATURE = "invalid_signature"
    NO_CREDENTIAL = "no_credential"
    CREDENTIAL_BOUND_ELSEWHERE = "credential_bound_elsewhere"
    OWNERSHIP_CHECK_FAILED = "ownership_check_failed"


@dataclass(frozen=True)
class WalletChallenge:
    """A single-use sign-in challenge bound to one wallet."""
    nonce: str
    wallet: str
    message: str
    issued_utc: datetime
    expires_utc: datetime


@dataclass(frozen=True)
class IdentityVerification:
    """Result of verifying wallet ownership and credential possession."""
    wallet: str
    verified: bool
    bound_token_id: Optional[str] = None
    verified_utc: Optional[datetime] = None
    error: Optional[str] = None
    failure: Optional[IdentityFailure] = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "wallet": self.wallet,
            "verified": self.verified,
            "bound_token_id": self.bound_token_id,
            "verified_utc": self.verified_utc.isoformat() if self.verified_utc else None,
            "error": self.error,
            "failure": self.failure.value if self.failure else None,
        }
