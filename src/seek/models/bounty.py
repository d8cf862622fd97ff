"""Bounty data models — bounties, missions, secrets, verdicts.

A bounty is one staked attempt by one wallet to photograph one mission
target before a deadline. Missions are immutable catalog entries. The
mission secret (digest + salt) exists only between commitment and reveal.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Optional


class BountyStatus(str, enum.Enum):
    """Lifecycle states of a bounty."""
    PENDING = "pending"
    VALIDATING = "validating"
    WON = "won"
    LOST = "lost"
    EXPIRED = "expired"


ACTIVE_STATUSES = frozenset({BountyStatus.PENDING, BountyStatus.VALIDATING})
TERMINAL_STATUSES = frozenset(
    {BountyStatus.WON, BountyStatus.LOST, BountyStatus.EXPIRED}
)


@dataclass(frozen=True)
class Mission:
    """A photographable target. Served read-only by the catalog."""
    mission_id: str
    tier: int
    description: str
    keywords: tuple[str, ...]
    difficulty: str


@dataclass(frozen=True)
class MissionSecret:
    """Reveal material for a committed mission (32-byte digest + salt)."""
    mission_digest: bytes
    salt: bytes


@dataclass(frozen=True)
class CommitmentRecord:
    """Output of a commit: the public commitment plus its secret."""
    bounty_id: str
    commitment: bytes
    secret: MissionSecret

    @property
    def commitment_hex(self) -> str:
        return "0x" + self.commitment.hex()


@dataclass
class Bounty:
    """A single staked bounty attempt.

    ``status`` is only changed through BountyStateStore. ``commitment``
    never changes after creation.
    """
    bounty_id: str
    mission_id: str
    player_wallet: str
    tier: int
    stake: int  # token base units
    status: BountyStatus
    created_utc: datetime
    expires_utc: datetime
    settlement_ref: str
    commitment: str
    start_tx_ref: Optional[str] = None
    settlement_tx_ref: Optional[str] = None
    finalization_tx_ref: Optional[str] = None
    jackpot_won: Optional[bool] = None
    verdict: Optional[bool] = None
    mission_revealed: bool = False
    attestation_verified: bool = False
    attestation_kind: Optional[str] = None
    credential_verified: bool = False
    resolved_utc: Optional[datetime] = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "bounty_id": self.bounty_id,
            "mission_id": self.mission_id,
            "player_wallet": self.player_wallet,
            "tier": self.tier,
            "stake": str(self.stake),
            "status": self.status.value,
            "created_utc": self.created_utc.isoformat(),
            "expires_utc": self.expires_utc.isoformat(),
            "settlement_ref": self.settlement_ref,
            "commitment": self.commitment,
            "start_tx_ref": self.start_tx_ref,
            "settlement_tx_ref": self.settlement_tx_ref,
            "finalization_tx_ref": self.finalization_tx_ref,
            "jackpot_won": self.jackpot_won,
            "attestation_verified": self.attestation_verified,
            "attestation_kind": self.attestation_kind,
            "credential_verified": self.credential_verified,
            "resolved_utc": self.resolved_utc.isoformat() if self.resolved_utc else None,
        }


@dataclass(frozen=True)
class PhotoMetadata:
    """Capture metadata extracted from a submitted photo. All optional."""
    captured_utc: Optional[datetime] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    device_make: Optional[str] = None
    device_model: Optional[str] = None

    @property
    def has_gps(self) -> bool:
        return self.latitude is not None and self.longitude is not None

    @property
    def has_device(self) -> bool:
        return bool(self.device_make) or bool(self.device_model)


@dataclass(frozen=True)
class VerificationResult:
    """The adjudicated verdict for one submitted photo."""
    is_valid: bool
    confidence: float
    reasoning: str
    detected_objects: tuple[str, ...] = ()
    is_screenshot: bool = False
    matches_target: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "is_valid": self.is_valid,
            "confidence": self.confidence,
            "reasoning": self.reasoning,
            "detected_objects": list(self.detected_objects),
            "is_screenshot": self.is_screenshot,
            "matches_target": self.matches_target,
        }


@dataclass
class PendingFinalization:
    """A proposed settlement waiting for its challenge window to close."""
    settlement_ref: str
    bounty_id: str
    player_wallet: str
    challenge_ends_utc: datetime
    enqueued_utc: datetime
    attempts: int = 0
    deferrals: int = 0
    last_error: Optional[str] = None
    exhausted_utc: Optional[datetime] = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "settlement_ref": self.settlement_ref,
            "bounty_id": self.bounty_id,
            "player_wallet": self.player_wallet,
            "challenge_ends_utc": self.challenge_ends_utc.isoformat(),
            "enqueued_utc": self.enqueued_utc.isoformat(),
            "attempts": self.attempts,
            "deferrals": self.deferrals,
            "last_error": self.last_error,
            "exhausted_utc": (
                self.exhausted_utc.isoformat() if self.exhausted_utc else None
            ),
        }

    @staticmethod
    def from_dict(data: dict[str, Any]) -> PendingFinalization:
        exhausted = data.get("exhausted_utc")
        return PendingFinalization(
            settlement_ref=data["settlement_ref"],
            bounty_id=data["bounty_id"],
            player_wallet=data["player_wallet"],
            challenge_ends_utc=datetime.fromisoformat(data["challenge_ends_utc"]),
            enqueued_utc=datetime.fromisoformat(data["enqueued_utc"]),
            attempts=int(data.get("attempts", 0)),
            deferrals=int(data.get("deferrals", 0)),
            last_error=data.get("last_error"),
            exhausted_utc=datetime.fromisoformat(exhausted) if exhausted else None,
        )


@dataclass(frozen=True)
class FinalizationReceipt:
    """Outcome of a successful on-chain finalize call."""
    tx_ref: str
    jackpot_won: bool = False


@dataclass(frozen=True)
class SettlementOutcome:
    """What the sequencer did for one adjudicated bounty."""
    bounty_id: str
    success: bool
    reveal_tx_ref: Optional[str]
    propose_tx_ref: str
    challenge_ends_utc: datetime
    extra: dict[str, Any] = field(default_factory=dict)
