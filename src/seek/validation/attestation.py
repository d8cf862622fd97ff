"""Device attestation — evidence that a photo came from a real camera.

Two providers, one per AttestationKind:

- StandardAttestationProvider: the photo hash in the payload must match
  the uploaded bytes and the capture time must be recent. Low confidence:
  nothing here is signed by the device.
- HardwareAttestationProvider: a hardware-backed key signs
  ``"{photo_hash}|{capture_ms}|{nonce}"`` with ECDSA-SHA256. The signing
  key's certificate chain must lead to a configured trusted root, and the
  nonce must be one this server issued and has not seen used.

The verifier refuses to construct unless every kind has a provider.
Attestation results are recorded on the bounty; they do not change the
adjudicated verdict.
"""

from __future__ import annotations

import hashlib
import hmac
import logging
import secrets
import threading
from datetime import datetime, timedelta, timezone
from typing import Iterable, Optional, Protocol

from cryptography import x509
from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric import ec

from seek.errors import ConfigError
from seek.models.attestation import (
    AttestationConfidence,
    AttestationKind,
    AttestationPayload,
    AttestationResult,
    HardwareAttestation,
    StandardAttestation,
)


logger = logging.getLogger(__name__)

DEFAULT_SEEKER_PATTERNS = ("seeker", "solana", "chapter 2")


class AttestationProvider(Protocol):
    kind: AttestationKind

    def verify(
        self,
        payload: AttestationPayload,
        photo_bytes: bytes,
        now: datetime,
    ) -> AttestationResult:
        ...


# ---------------------------------------------------------------------------
# Standard provider
# ---------------------------------------------------------------------------

class StandardAttestationProvider:
    """Hash integrity + capture recency.

    Parameters (via *config* dict, the ``attestation`` policy section):
        max_capture_age_seconds : int — allowed |now - capture| (default 300)
        seeker_model_patterns   : list[str] — Seeker device model markers
    """

    kind = AttestationKind.STANDARD

    def __init__(self, config: Optional[dict] = None) -> None:
        config = config or {}
        self._max_age = timedelta(seconds=config.get("max_capture_age_seconds", 300))
        self._patterns = tuple(config.get("seeker_model_patterns", DEFAULT_SEEKER_PATTERNS))

    def verify(
        self,
        payload: AttestationPayload,
        photo_bytes: bytes,
        now: datetime,
    ) -> AttestationResult:
        hash_ok = _hash_matches(payload.photo_hash, photo_bytes)
        time_ok = abs(now - payload.captured_utc) < self._max_age
        reason = ""
        if not hash_ok:
            reason = "Photo hash mismatch: image may have been modified"
        elif not time_ok:
            reason = "Capture timestamp outside acceptable range"
        return AttestationResult(
            verified=hash_ok and time_ok,
            kind=self.kind,
            confidence=AttestationConfidence.LOW if hash_ok else AttestationConfidence.NONE,
            is_seeker_device=is_seeker_model(payload.device_model, self._patterns),
            reason=reason,
        )


# ---------------------------------------------------------------------------
# Hardware provider
# ---------------------------------------------------------------------------

class HardwareAttestationProvider:
    """Hardware-key signature over the photo, chained to a trusted root.

    Parameters (via *config* dict, the ``attestation`` policy section):
        max_capture_age_seconds : int — allowed |now - capture| (default 300)
        nonce_ttl_seconds       : int — lifetime of an issued nonce (default 300)
        seeker_model_patterns   : list[str] — Seeker device model markers
    """

    kind = AttestationKind.HARDWARE

    def __init__(
        self,
        trusted_roots: Iterable[x509.Certificate],
        config: Optional[dict] = None,
    ) -> None:
        config = config or {}
        self._roots = list(trusted_roots)
        self._max_age = timedelta(seconds=config.get("max_capture_age_seconds", 300))
        self._nonce_ttl = timedelta(seconds=config.get("nonce_ttl_seconds", 300))
        self._patterns = tuple(config.get("seeker_model_patterns", DEFAULT_SEEKER_PATTERNS))
        self._lock = threading.Lock()
        self._nonces: dict[str, datetime] = {}  # nonce → expiry

    @classmethod
    def from_pem_bundle(cls, pem: bytes, config: Optional[dict] = None) -> HardwareAttestationProvider:
        return cls(x509.load_pem_x509_certificates(pem), config)

    def issue_nonce(self, *, now: Optional[datetime] = None) -> str:
        now_utc = now or datetime.now(timezone.utc)
        nonce = secrets.token_hex(32)
        with self._lock:
            self._nonces[nonce] = now_utc + self._nonce_ttl
        return nonce

    def sweep_expired_nonces(self, *, now: Optional[datetime] = None) -> int:
        now_utc = now or datetime.now(timezone.utc)
        with self._lock:
            stale = [n for n, exp in self._nonces.items() if now_utc >= exp]
            for nonce in stale:
                del self._nonces[nonce]
        return len(stale)

    def verify(
        self,
        payload: AttestationPayload,
        photo_bytes: bytes,
        now: datetime,
    ) -> AttestationResult:
        if not isinstance(payload, HardwareAttestation):
            return self._fail("Hardware provider received a non-hardware payload")
        if not self._consume_nonce(payload.nonce, now):
            return self._fail("Attestation nonce unknown, expired or already used")
        if not _hash_matches(payload.photo_hash, photo_bytes):
            return self._fail("Photo hash mismatch: image may have been modified")
        if abs(now - payload.captured_utc) >= self._max_age:
            return self._fail("Capture timestamp outside acceptable range")

        if not all(isinstance(pem, str) for pem in payload.certificate_chain):
            return self._fail("Certificate chain entries must be PEM strings")
        try:
            chain = [x509.load_pem_x509_certificate(pem.encode("ascii")) for pem in payload.certificate_chain]
        except ValueError as exc:
            return self._fail(f"Unreadable certificate chain: {exc}")
        chain_error = self._check_chain(chain, now)
        if chain_error:
            return self._fail(chain_error)

        leaf_key = chain[0].public_key()
        if not isinstance(leaf_key, ec.EllipticCurvePublicKey):
            return self._fail("Leaf certificate key is not an EC key")
        try:
            leaf_key.verify(
                payload.signature,
                signed_message(payload.photo_hash, payload.captured_utc, payload.nonce),
                ec.ECDSA(hashes.SHA256()),
            )
        except InvalidSignature:
            return self._fail("Hardware signature does not verify")

        return AttestationResult(
            verified=True,
            kind=self.kind,
            confidence=AttestationConfidence.HIGH,
            is_seeker_device=is_seeker_model(payload.device_model, self._patterns),
        )

    def _consume_nonce(self, nonce: str, now: datetime) -> bool:
        with self._lock:
            expiry = self._nonces.pop(nonce, None)
        return expiry is not None and now < expiry

    def _check_chain(self, chain: list[x509.Certificate], now: datetime) -> str:
        """Return an error string, or "" if the chain is valid at *now*."""
        if not chain:
            return "Empty certificate chain"
        for cert in chain:
            if not cert.not_valid_before_utc <= now <= cert.not_valid_after_utc:
                return f"Certificate outside validity period: {cert.subject.rfc4514_string()}"
        for child, parent in zip(chain, chain[1:]):
            try:
                child.verify_directly_issued_by(parent)
            except (ValueError, TypeError, InvalidSignature):
                return f"Broken certificate chain at {child.subject.rfc4514_string()}"
        top = chain[-1]
        for root in self._roots:
            if top == root:
                return ""
            try:
                top.verify_directly_issued_by(root)
                return ""
            except (ValueError, TypeError, InvalidSignature):
                continue
        return "Certificate chain does not lead to a trusted root"

    def _fail(self, reason: str) -> AttestationResult:
        logger.info("Hardware attestation rejected: %s", reason)
        return AttestationResult(
            verified=False,
            kind=self.kind,
            confidence=AttestationConfidence.NONE,
            reason=reason,
        )


# ---------------------------------------------------------------------------
# Verifier
# ---------------------------------------------------------------------------

class DeviceAttestationVerifier:
    """Dispatches a payload to the provider registered for its kind."""

    def __init__(self, providers: Iterable[AttestationProvider]) -> None:
        self._providers: dict[AttestationKind, AttestationProvider] = {}
        for provider in providers:
            if provider.kind in self._providers:
                raise ConfigError(f"Duplicate attestation provider for {provider.kind.value}")
            self._providers[provider.kind] = provider
        missing = [k.value for k in AttestationKind if k not in self._providers]
        if missing:
            raise ConfigError(f"No attestation provider for kind(s): {missing}")

    def provider(self, kind: AttestationKind) -> AttestationProvider:
        return self._providers[kind]

    def verify(
        self,
        payload: Optional[AttestationPayload],
        photo_bytes: bytes,
        *,
        now: Optional[datetime] = None,
    ) -> AttestationResult:
        if payload is None:
            return AttestationResult(
                verified=False,
                kind=AttestationKind.STANDARD,
                confidence=AttestationConfidence.NONE,
                reason="No attestation provided",
            )
        now_utc = now or datetime.now(timezone.utc)
        return self._providers[payload.kind].verify(payload, photo_bytes, now_utc)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def signed_message(photo_hash: str, captured_utc: datetime, nonce: str) -> bytes:
    """The byte string a hardware key signs for one photo."""
    capture_ms = int(captured_utc.timestamp() * 1000)
    return f"{photo_hash.lower()}|{capture_ms}|{nonce}".encode("utf-8")


def is_seeker_model(model: Optional[str], patterns: Iterable[str] = DEFAULT_SEEKER_PATTERNS) -> bool:
    if not model:
        return False
    lower = model.lower()
    return any(p in lower for p in patterns)


def _hash_matches(claimed: str, photo_bytes: bytes) -> bool:
    computed = hashlib.sha256(photo_bytes).hexdigest()
    return hmac.compare_digest(computed.encode(), (claimed or "").lower().encode("utf-8"))
