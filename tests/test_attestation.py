"""Tests for device attestation providers and the dispatching verifier."""

from __future__ import annotations

import hashlib
from datetime import datetime, timedelta, timezone

import pytest
from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.x509.oid import NameOID

from seek.errors import ConfigError
from seek.models.attestation import (
    AttestationConfidence,
    AttestationKind,
    HardwareAttestation,
    StandardAttestation,
)
from seek.validation.attestation import (
    DeviceAttestationVerifier,
    HardwareAttestationProvider,
    StandardAttestationProvider,
    is_seeker_model,
    signed_message,
)


PHOTO = b"photo-bytes" * 1000
PHOTO_HASH = hashlib.sha256(PHOTO).hexdigest()


def _now() -> datetime:
    return datetime.now(timezone.utc).replace(microsecond=0)


def _cert(subject: str, key, issuer_name: x509.Name, signing_key, *, ca: bool, days: int = 30) -> x509.Certificate:
    now = datetime.now(timezone.utc)
    return (
        x509.CertificateBuilder()
        .subject_name(x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, subject)]))
        .issuer_name(issuer_name)
        .public_key(key.public_key())
        .serial_number(x509.random_serial_number())
        .not_valid_before(now - timedelta(days=1))
        .not_valid_after(now + timedelta(days=days))
        .add_extension(x509.BasicConstraints(ca=ca, path_length=None), critical=True)
        .sign(signing_key, hashes.SHA256())
    )


class _Pki:
    """A root CA plus one device leaf certificate."""

    def __init__(self, root_name: str = "Test Attestation Root") -> None:
        self.root_key = ec.generate_private_key(ec.SECP256R1())
        name = x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, root_name)])
        self.root = _cert(root_name, self.root_key, name, self.root_key, ca=True)
        self.leaf_key = ec.generate_private_key(ec.SECP256R1())
        self.leaf = _cert("Device Key", self.leaf_key, self.root.subject, self.root_key, ca=False)

    def chain(self) -> tuple[str, ...]:
        return tuple(
            c.public_bytes(serialization.Encoding.PEM).decode("ascii")
            for c in (self.leaf, self.root)
        )

    def sign(self, captured: datetime, nonce: str, photo_hash: str = PHOTO_HASH) -> bytes:
        return self.leaf_key.sign(
            signed_message(photo_hash, captured, nonce), ec.ECDSA(hashes.SHA256())
        )


@pytest.fixture(scope="module")
def pki() -> _Pki:
    return _Pki()


def _hardware(pki: _Pki, provider: HardwareAttestationProvider, now: datetime, **overrides) -> HardwareAttestation:
    nonce = overrides.pop("nonce", None) or provider.issue_nonce(now=now)
    captured = overrides.pop("captured_utc", now - timedelta(seconds=5))
    fields = {
        "photo_hash": PHOTO_HASH,
        "captured_utc": captured,
        "signature": pki.sign(captured, nonce),
        "certificate_chain": pki.chain(),
        "nonce": nonce,
        "device_model": "Solana Seeker",
    }
    fields.update(overrides)
    return HardwareAttestation(**fields)


class TestStandardProvider:
    def test_matching_hash_and_recent(self) -> None:
        now = _now()
        result = StandardAttestationProvider().verify(
            StandardAttestation(PHOTO_HASH.upper(), now - timedelta(seconds=30), "Pixel 8"), PHOTO, now
        )
        assert result.verified
        assert result.confidence == AttestationConfidence.LOW
        assert not result.is_seeker_device

    def test_hash_mismatch(self) -> None:
        now = _now()
        result = StandardAttestationProvider().verify(
            StandardAttestation("00" * 32, now, None), PHOTO, now
        )
        assert not result.verified
        assert result.confidence == AttestationConfidence.NONE
        assert "hash mismatch" in result.reason

    def test_stale_capture(self) -> None:
        now = _now()
        result = StandardAttestationProvider({"max_capture_age_seconds": 60}).verify(
            StandardAttestation(PHOTO_HASH, now - timedelta(minutes=2), "Seeker"), PHOTO, now
        )
        assert not result.verified
        assert result.confidence == AttestationConfidence.LOW
        assert result.is_seeker_device


class TestHardwareProvider:
    def test_valid_signature_chain_and_nonce(self, pki) -> None:
        now = _now()
        provider = HardwareAttestationProvider([pki.root])
        result = provider.verify(_hardware(pki, provider, now), PHOTO, now)
        assert result.verified, result.reason
        assert result.kind == AttestationKind.HARDWARE
        assert result.confidence == AttestationConfidence.HIGH
        assert result.is_seeker_device

    def test_nonce_is_single_use(self, pki) -> None:
        now = _now()
        provider = HardwareAttestationProvider([pki.root])
        payload = _hardware(pki, provider, now)
        assert provider.verify(payload, PHOTO, now).verified
        replay = provider.verify(payload, PHOTO, now)
        assert not replay.verified
        assert "nonce" in replay.reason

    def test_unknown_nonce(self, pki) -> None:
        now = _now()
        provider = HardwareAttestationProvider([pki.root])
        result = provider.verify(_hardware(pki, provider, now, nonce="ab" * 32), PHOTO, now)
        assert not result.verified

    def test_expired_nonce(self, pki) -> None:
        now = _now()
        provider = HardwareAttestationProvider([pki.root], {"nonce_ttl_seconds": 60})
        nonce = provider.issue_nonce(now=now - timedelta(seconds=61))
        result = provider.verify(_hardware(pki, provider, now, nonce=nonce), PHOTO, now)
        assert not result.verified

    def test_non_string_chain_entry(self, pki) -> None:
        now = _now()
        provider = HardwareAttestationProvider([pki.root])
        result = provider.verify(_hardware(pki, provider, now, certificate_chain=(123,)), PHOTO, now)
        assert not result.verified
        assert "PEM strings" in result.reason

    def test_untrusted_root(self, pki) -> None:
        now = _now()
        other = _Pki("Other Root")
        provider = HardwareAttestationProvider([other.root])
        result = provider.verify(_hardware(pki, provider, now), PHOTO, now)
        assert not result.verified
        assert "trusted root" in result.reason

    def test_signature_over_other_photo(self, pki) -> None:
        now = _now()
        provider = HardwareAttestationProvider([pki.root])
        payload = _hardware(pki, provider, now)
        tampered = HardwareAttestation(
            photo_hash=payload.photo_hash,
            captured_utc=payload.captured_utc,
            signature=pki.sign(payload.captured_utc, payload.nonce, "11" * 32),
            certificate_chain=payload.certificate_chain,
            nonce=payload.nonce,
        )
        result = provider.verify(tampered, PHOTO, now)
        assert not result.verified
        assert "signature" in result.reason

    def test_modified_photo(self, pki) -> None:
        now = _now()
        provider = HardwareAttestationProvider([pki.root])
        result = provider.verify(_hardware(pki, provider, now), PHOTO + b"x", now)
        assert not result.verified
        assert "hash mismatch" in result.reason

    def test_broken_chain_order(self, pki) -> None:
        now = _now()
        provider = HardwareAttestationProvider([pki.root])
        payload = _hardware(pki, provider, now, certificate_chain=tuple(reversed(pki.chain())))
        assert not provider.verify(payload, PHOTO, now).verified

    def test_garbage_chain(self, pki) -> None:
        now = _now()
        provider = HardwareAttestationProvider([pki.root])
        payload = _hardware(pki, provider, now, certificate_chain=("not a pem",))
        result = provider.verify(payload, PHOTO, now)
        assert not result.verified

    def test_sweep_expired_nonces(self) -> None:
        now = _now()
        provider = HardwareAttestationProvider([], {"nonce_ttl_seconds": 10})
        provider.issue_nonce(now=now)
        provider.issue_nonce(now=now + timedelta(seconds=20))
        assert provider.sweep_expired_nonces(now=now + timedelta(seconds=15)) == 1


class TestVerifier:
    def test_requires_every_kind(self) -> None:
        with pytest.raises(ConfigError, match="hardware"):
            DeviceAttestationVerifier([StandardAttestationProvider()])

    def test_rejects_duplicate_kind(self) -> None:
        with pytest.raises(ConfigError, match="Duplicate"):
            DeviceAttestationVerifier([
                StandardAttestationProvider(),
                StandardAttestationProvider(),
                HardwareAttestationProvider([]),
            ])

    def test_dispatches_by_kind(self, pki) -> None:
        now = _now()
        hardware = HardwareAttestationProvider([pki.root])
        verifier = DeviceAttestationVerifier([StandardAttestationProvider(), hardware])
        standard = verifier.verify(StandardAttestation(PHOTO_HASH, now, None), PHOTO, now=now)
        assert standard.kind == AttestationKind.STANDARD
        hw = verifier.verify(_hardware(pki, hardware, now), PHOTO, now=now)
        assert hw.kind == AttestationKind.HARDWARE and hw.verified

    def test_missing_payload(self) -> None:
        verifier = DeviceAttestationVerifier([StandardAttestationProvider(), HardwareAttestationProvider([])])
        result = verifier.verify(None, PHOTO)
        assert not result.verified
        assert result.reason == "No attestation provided"


def test_is_seeker_model() -> None:
    assert is_seeker_model("Solana Seeker")
    assert is_seeker_model("SEEKER")
    assert not is_seeker_model("Pixel 8")
    assert not is_seeker_model(None)
