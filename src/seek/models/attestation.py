"""Device attestation payloads — a closed set of evidence kinds.

Every payload carries its ``kind``. The verifier keeps one provider per
kind and refuses to start if any kind is unhandled.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass
from datetime import datetime
from typing import Optional, Union


class AttestationKind(str, enum.Enum):
    """Capability tag of an attestation payload."""
    STANDARD = "standard"
    HARDWARE = "hardware"


class AttestationConfidence(str, enum.Enum):
    NONE = "none"
    LOW = "low"
    HIGH = "high"


@dataclass(frozen=True)
class StandardAttestation:
    """Software-only evidence: photo hash, capture time, device model."""
    photo_hash: str  # hex sha256 of the photo bytes
    captured_utc: datetime
    device_model: Optional[str] = None

    kind = AttestationKind.STANDARD


@dataclass(frozen=True)
class HardwareAttestation:
    """Evidence signed by a hardware-backed key.

    The leaf certificate's key signs ``photo_hash || capture_ms || nonce``.
    ``certificate_chain`` is PEM, leaf first.
    """
    photo_hash: str
    captured_utc: datetime
    signature: bytes
    certificate_chain: tuple[str, ...]
    nonce: str
    device_model: Optional[str] = None

    kind = AttestationKind.HARDWARE


AttestationPayload = Union[StandardAttestation, HardwareAttestation]


@dataclass(frozen=True)
class AttestationResult:
    verified: bool
    kind: AttestationKind
    confidence: AttestationConfidence
    is_seeker_device: bool = False
    reason: str = ""
