"""Core data models for the Seek protocol."""

from seek.models.attestation import (
    AttestationConfidence,
    AttestationKind,
    AttestationPayload,
    AttestationResult,
    HardwareAttestation,
    StandardAttestation,
)
from seek.models.bounty import (
    ACTIVE_STATUSES,
    TERMINAL_STATUSES,
    Bounty,
    BountyStatus,
    CommitmentRecord,
    FinalizationReceipt,
    Mission,
    MissionSecret,
    PendingFinalization,
    PhotoMetadata,
    SettlementOutcome,
    VerificationResult,
)
from seek.models.identity import (
    IdentityFailure,
    IdentityVerification,
    WalletChallenge,
)

__all__ = [
    "ACTIVE_STATUSES",
    "TERMINAL_STATUSES",
    "AttestationConfidence",
    "AttestationKind",
    "AttestationPayload",
    "AttestationResult",
    "Bounty",
    "BountyStatus",
    "CommitmentRecord",
    "FinalizationReceipt",
    "HardwareAttestation",
    "IdentityFailure",
    "IdentityVerification",
    "Mission",
    "MissionSecret",
    "PendingFinalization",
    "PhotoMetadata",
    "SettlementOutcome",
    "StandardAttestation",
    "VerificationResult",
    "WalletChallenge",
]
