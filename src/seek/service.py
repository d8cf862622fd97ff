"""Seek service — unified facade for the bounty resolution pipeline.

This is the primary interface for programmatic access to Seek. It wires
and orchestrates every subsystem:
- Bounty lifecycle (start, submit, query) with commit-reveal
- Photo validation (upload checks, metadata, pre-checks, AI verdict)
- Device attestation (recorded alongside the verdict)
- Settlement (reveal + propose now, finalize after the challenge window)
- Identity (wallet challenge, credential ownership, anti-sybil)
- Background sweeps (expiry, purge, finalization poll, nonce sweep)

Expected failures come back as a ServiceResult carrying an error code
for the outer surface. Integrity faults (PreconditionError) propagate.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Iterable, Optional

from cryptography import x509

from seek.crypto.commitment import MissionCommitment
from seek.engine.bounty_store import BountyStateStore
from seek.errors import (
    ConflictError,
    InternalError,
    NotFoundError,
    PreconditionError,
    SeekError,
    SettlementError,
    ValidationError,
)
from seek.identity.challenge import NonceChallengeIssuer
from seek.identity.credential import CredentialOwnershipProvider
from seek.identity.verifier import SybilGuardedIdentityVerifier, normalize_wallet
from seek.missions.catalog import MissionCatalog
from seek.models.attestation import AttestationKind, AttestationPayload
from seek.models.bounty import (
    ACTIVE_STATUSES,
    Bounty,
    BountyStatus,
    FinalizationReceipt,
    PendingFinalization,
    VerificationResult,
)
from seek.models.identity import IdentityFailure
from seek.persistence.event_log import EventKind, EventLog
from seek.policy import PolicyResolver
from seek.scheduler import Scheduler
from seek.settlement.contract import SettlementContract, derive_settlement_ref
from seek.settlement.finalizer import FinalizationQueue, FinalizationWorker
from seek.settlement.sequencer import SettlementSequencer
from seek.validation.adjudicator import Adjudicator
from seek.validation.attestation import (
    DeviceAttestationVerifier,
    HardwareAttestationProvider,
    StandardAttestationProvider,
)
from seek.validation.image import validate_image
from seek.validation.metadata import MetadataExtractor, PillowMetadataExtractor
from seek.validation.precheck import AntiFraudPreChecker, PreCheckPolicy
from seek.validation.vision import VisionProvider


logger = logging.getLogger(__name__)


@dataclass
class ServiceResult:
    """Result of a service operation."""
    success: bool
    errors: list[str] = field(default_factory=list)
    data: dict[str, Any] = field(default_factory=dict)
    code: Optional[str] = None


def _failure(exc: SeekError) -> ServiceResult:
    return ServiceResult(success=False, errors=[str(exc)], code=exc.code)


class SeekService:
    """Bounty resolution facade.

    Usage:
        resolver = PolicyResolver.from_config_dir(config_dir)
        catalog = MissionCatalog.from_config_dir(config_dir)
        service = SeekService(
            resolver, catalog,
            contract=contract, vision=vision, credentials=credentials,
            contract_address=address,
        )

        result = service.start_bounty(wallet, tier=1)
        result = service.submit_photo(bounty_id, wallet, photo, "image/jpeg")

        scheduler = service.build_scheduler()
        scheduler.start()
    """

    def __init__(
        self,
        resolver: PolicyResolver,
        catalog: MissionCatalog,
        *,
        contract: SettlementContract,
        vision: VisionProvider,
        credentials: CredentialOwnershipProvider,
        contract_address: str,
        production: bool = False,
        precheck_policy: Optional[PreCheckPolicy] = None,
        metadata_extractor: Optional[MetadataExtractor] = None,
        attestation_roots: Iterable[x509.Certificate] = (),
        identity_config: Optional[dict] = None,
        finalizer_storage: Optional[Path] = None,
        event_log: Optional[EventLog] = None,
    ) -> None:
        self._resolver = resolver
        self._catalog = catalog
        self._contract_address = contract_address
        self._production = production
        self._event_log = event_log

        # Bounty state
        self._commitments = MissionCommitment()
        self._store = BountyStateStore(resolver, resolver.section("bounty_store"))

        # Validation
        policy = precheck_policy or PreCheckPolicy.from_config(resolver.section("precheck"))
        self._prechecker = AntiFraudPreChecker(policy, production=production)
        self._adjudicator = Adjudicator(
            vision, resolver, self._prechecker, expose_error_detail=not production
        )
        self._metadata = metadata_extractor or PillowMetadataExtractor()
        attestation_config = resolver.section("attestation")
        self._hardware_attestation = HardwareAttestationProvider(
            attestation_roots, attestation_config
        )
        self._attestation = DeviceAttestationVerifier([
            StandardAttestationProvider(attestation_config),
            self._hardware_attestation,
        ])

        # Settlement
        self._queue = FinalizationQueue(finalizer_storage)
        self._sequencer = SettlementSequencer(
            contract,
            self._commitments,
            self._store,
            self._queue,
            resolver.challenge_window_seconds,
        )
        self._worker = FinalizationWorker(
            contract,
            self._queue,
            resolver.section("finalizer"),
            on_finalized=self._on_finalized,
            on_exhausted=self._on_exhausted,
        )

        # Identity
        issuer_config = resolver.section("identity")
        issuer_config.update(identity_config or {})
        self._identity = SybilGuardedIdentityVerifier(
            NonceChallengeIssuer(issuer_config), credentials
        )

    # ------------------------------------------------------------------
    # Bounty lifecycle
    # ------------------------------------------------------------------

    def start_bounty(
        self,
        wallet: str,
        tier: int,
        *,
        start_tx_ref: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> ServiceResult:
        """Commit to a random mission for *tier* and open a PENDING bounty."""
        now_utc = now or datetime.now(timezone.utc)
        try:
            wallet = normalize_wallet(wallet)
            self._resolver.tier_policy(tier)
            active = self._store.active_for(wallet)
            if active is not None:
                raise ConflictError(
                    f"Wallet {wallet} already has an active bounty ({active.bounty_id})"
                )
            mission = self._catalog.pick(tier)
            bounty_id = str(uuid.uuid4())
            record = self._commitments.commit(bounty_id, mission.mission_id)
            try:
                bounty = self._store.create(
                    wallet,
                    tier,
                    mission.mission_id,
                    bounty_id=bounty_id,
                    settlement_ref=derive_settlement_ref(
                        self._contract_address, wallet, bounty_id
                    ),
                    commitment=record.commitment_hex,
                    start_tx_ref=start_tx_ref,
                    credential_verified=self._identity.is_verified(wallet),
                    now=now_utc,
                )
            except SeekError:
                self._commitments.discard(bounty_id)
                raise
        except (ValidationError, ConflictError) as exc:
            return _failure(exc)

        self._log(EventKind.BOUNTY_CREATED, bounty.bounty_id, {
            "wallet": wallet,
            "tier": tier,
            "commitment": bounty.commitment,
            "settlement_ref": bounty.settlement_ref,
        }, now_utc)

        return ServiceResult(success=True, data={
            "bounty": bounty.to_dict(),
            "mission": {
                "description": mission.description,
                "difficulty": mission.difficulty,
            },
        })

    def submit_photo(
        self,
        bounty_id: str,
        wallet: str,
        photo_bytes: bytes,
        mime_type: str,
        *,
        attestation: Optional[AttestationPayload] = None,
        now: Optional[datetime] = None,
    ) -> ServiceResult:
        """Adjudicate a photo and settle the bounty on-chain.

        Once the bounty is VALIDATING, every failure returns it to PENDING:
        a settlement error comes back with code "settlement", anything
        unexpected with code "internal".

        Raises:
            PreconditionError: Mission or mission secret missing for a live
                bounty. Never folded into a result.
        """
        now_utc = now or datetime.now(timezone.utc)
        try:
            bounty = self._store.require(bounty_id)
            if bounty.player_wallet.lower() != str(wallet).lower():
                raise ValidationError("Bounty does not belong to this wallet")
            validate_image(photo_bytes, mime_type, self._resolver.section("image"))
            if not self._store.mark_validating(bounty_id, now=now_utc):
                if bounty.status == BountyStatus.EXPIRED:
                    raise ConflictError(f"Bounty {bounty_id} has expired")
                raise ConflictError(
                    f"Bounty {bounty_id} is not accepting submissions ({bounty.status.value})"
                )
        except (ValidationError, NotFoundError, ConflictError) as exc:
            return _failure(exc)

        try:
            return self._resolve_submission(bounty, photo_bytes, mime_type, attestation, now_utc)
        except PreconditionError:
            self._store.release_to_pending(bounty_id)
            raise
        except SettlementError as exc:
            self._store.release_to_pending(bounty_id)
            logger.error("Settlement failed for bounty %s: %s", bounty_id, exc)
            self._log(EventKind.SETTLEMENT_FAILED, bounty_id, {"error": str(exc)}, now_utc)
            return _failure(exc)
        except Exception as exc:
            self._store.release_to_pending(bounty_id)
            logger.exception("Submission failed for bounty %s", bounty_id)
            self._log(EventKind.BOUNTY_SUBMISSION_FAILED, bounty_id, {
                "error": type(exc).__name__,
            }, now_utc)
            return _failure(InternalError("Submission could not be processed; please retry"))

    def _resolve_submission(
        self,
        bounty: Bounty,
        photo_bytes: bytes,
        mime_type: str,
        attestation: Optional[AttestationPayload],
        now_utc: datetime,
    ) -> ServiceResult:
        bounty_id = bounty.bounty_id
        mission = self._catalog.get(bounty.mission_id)
        if mission is None:
            raise PreconditionError(f"Mission {bounty.mission_id} missing from catalog")

        self._log(EventKind.BOUNTY_SUBMITTED, bounty_id, {"mime_type": mime_type}, now_utc)

        if attestation is not None:
            attested = self._attestation.verify(attestation, photo_bytes, now=now_utc)
            self._store.record_attestation(bounty_id, attested.kind.value, attested.verified)

        if bounty.verdict is not None:
            verdict = VerificationResult(
                is_valid=bounty.verdict,
                confidence=1.0 if bounty.verdict else 0.0,
                reasoning="Verdict recorded on an earlier submission",
            )
        else:
            metadata = self._metadata.extract(photo_bytes)
            verdict = self._adjudicator.adjudicate(
                photo_bytes,
                mime_type,
                mission,
                metadata,
                bounty.tier,
                bounty.created_utc,
                now=now_utc,
            )
            self._store.record_verdict(bounty_id, verdict.is_valid)
            self._log(EventKind.BOUNTY_ADJUDICATED, bounty_id, {
                "is_valid": verdict.is_valid,
                "confidence": verdict.confidence,
                "is_screenshot": verdict.is_screenshot,
            }, now_utc)

        outcome = self._sequencer.settle(bounty, verdict.is_valid, now=now_utc)

        status = BountyStatus.WON if verdict.is_valid else BountyStatus.LOST
        bounty = self._store.set_terminal(
            bounty_id, status, outcome.propose_tx_ref, now=now_utc
        )
        self._log(EventKind.RESOLUTION_PROPOSED, bounty_id, {
            "success": verdict.is_valid,
            "propose_tx": outcome.propose_tx_ref,
            "reveal_tx": outcome.reveal_tx_ref,
            "challenge_ends_utc": outcome.challenge_ends_utc.isoformat(),
        }, now_utc)
        self._log(EventKind.BOUNTY_RESOLVED, bounty_id, {"status": status.value}, now_utc)

        return ServiceResult(success=True, data={
            "bounty": bounty.to_dict(),
            "validation": verdict.to_dict(),
            "challenge_ends_utc": outcome.challenge_ends_utc.isoformat(),
        })

    def get_bounty(self, bounty_id: str) -> ServiceResult:
        bounty = self._store.get(bounty_id)
        if bounty is None:
            return _failure(NotFoundError(f"Bounty not found: {bounty_id}"))
        return ServiceResult(success=True, data=self._bounty_view(bounty))

    def get_player_bounty(self, wallet: str) -> ServiceResult:
        """Latest bounty of *wallet* (empty data if none is held)."""
        try:
            wallet = normalize_wallet(wallet)
        except ValidationError as exc:
            return _failure(exc)
        bounty = self._store.latest_for(wallet)
        if bounty is None:
            return ServiceResult(success=True, data={"bounty": None})
        return ServiceResult(success=True, data=self._bounty_view(bounty))

    def _bounty_view(self, bounty: Bounty) -> dict[str, Any]:
        view: dict[str, Any] = {"bounty": bounty.to_dict()}
        mission = self._catalog.get(bounty.mission_id)
        if mission is not None and bounty.status in ACTIVE_STATUSES:
            view["mission"] = {
                "description": mission.description,
                "difficulty": mission.difficulty,
            }
        return view

    # ------------------------------------------------------------------
    # Identity
    # ------------------------------------------------------------------

    def request_identity_nonce(self, wallet: str, *, now: Optional[datetime] = None) -> ServiceResult:
        try:
            wallet = normalize_wallet(wallet)
        except ValidationError as exc:
            return _failure(exc)
        cached = self._identity.cached(wallet)
        if cached is not None:
            return ServiceResult(success=True, data={
                "already_verified": True,
                "verification": cached.to_dict(),
            })
        challenge = self._identity.issue_challenge(wallet, now=now)
        return ServiceResult(success=True, data={
            "already_verified": False,
            "nonce": challenge.nonce,
            "message": challenge.message,
            "expires_utc": challenge.expires_utc.isoformat(),
        })

    def verify_identity(
        self,
        wallet: str,
        signature: str,
        message: str,
        *,
        now: Optional[datetime] = None,
    ) -> ServiceResult:
        now_utc = now or datetime.now(timezone.utc)
        try:
            result = self._identity.verify(wallet, signature, message, now=now_utc)
        except ValidationError as exc:
            return _failure(exc)

        if result.verified:
            self._log(EventKind.IDENTITY_VERIFIED, result.wallet, {
                "token_id": result.bound_token_id,
            }, now_utc)
            return ServiceResult(success=True, data=result.to_dict())

        if result.failure == IdentityFailure.CREDENTIAL_BOUND_ELSEWHERE:
            code = "sybil"
            kind = EventKind.SYBIL_REJECTED
        else:
            code = "forbidden"
            kind = EventKind.IDENTITY_REJECTED
        self._log(kind, result.wallet, {"failure": result.failure.value}, now_utc)
        return ServiceResult(
            success=False,
            errors=[result.error or "Verification failed"],
            data=result.to_dict(),
            code=code,
        )

    def identity_status(self, wallet: str) -> ServiceResult:
        return ServiceResult(success=True, data=self._identity.status(wallet).to_dict())

    def issue_attestation_nonce(self, *, now: Optional[datetime] = None) -> ServiceResult:
        nonce = self._hardware_attestation.issue_nonce(now=now)
        return ServiceResult(success=True, data={
            "nonce": nonce,
            "kind": AttestationKind.HARDWARE.value,
        })

    # ------------------------------------------------------------------
    # Background jobs
    # ------------------------------------------------------------------

    def expire_overdue(self, now: Optional[datetime] = None) -> list[str]:
        now_utc = now or datetime.now(timezone.utc)
        expired = self._store.expire_overdue(now=now_utc)
        for bounty_id in expired:
            self._log(EventKind.BOUNTY_EXPIRED, bounty_id, {}, now_utc)
        return expired

    def purge_terminal(self, now: Optional[datetime] = None) -> list[str]:
        now_utc = now or datetime.now(timezone.utc)
        purged = self._store.purge_terminal(now=now_utc)
        for bounty_id in purged:
            self._commitments.discard(bounty_id)
            self._log(EventKind.BOUNTY_PURGED, bounty_id, {}, now_utc)
        return purged

    def run_finalizer(self, now: Optional[datetime] = None) -> dict[str, Any]:
        report = self._worker.run_once(now=now)
        return {
            "finalized": list(report.finalized),
            "deferred": list(report.deferred),
            "failed": list(report.failed),
            "exhausted": list(report.exhausted),
        }

    def sweep_nonces(self, now: Optional[datetime] = None) -> int:
        swept = self._identity.sweep_expired_nonces(now=now)
        swept += self._hardware_attestation.sweep_expired_nonces(now=now)
        return swept

    def build_scheduler(self, scheduler: Optional[Scheduler] = None) -> Scheduler:
        """Register every background job on *scheduler* (or a new one)."""
        scheduler = scheduler or Scheduler()
        store_cfg = self._resolver.section("bounty_store")
        identity_cfg = self._resolver.section("identity")
        scheduler.every("expire_overdue", store_cfg.get("expiry_sweep_seconds", 30), self.expire_overdue)
        scheduler.every("purge_terminal", store_cfg.get("purge_interval_seconds", 3600), self.purge_terminal)
        scheduler.every("finalize", self._worker.poll_interval_seconds, self.run_finalizer)
        scheduler.every("sweep_nonces", identity_cfg.get("nonce_sweep_seconds", 300), self.sweep_nonces)
        return scheduler

    # ------------------------------------------------------------------
    # Status
    # ------------------------------------------------------------------

    def finalizer_status(self) -> dict[str, Any]:
        return self._worker.status()

    def clear_exhausted(self, settlement_ref: str) -> bool:
        return self._queue.clear_exhausted(settlement_ref)

    def status(self) -> dict[str, Any]:
        finalizer = self._worker.status()
        return {
            "bounties": self._store.stats(),
            "finalization_queue": finalizer["queue_size"],
            "finalization_exhausted": finalizer["exhausted_count"],
            "missions": len(self._catalog),
            "production": self._production,
            "prechecks_enforced": self._prechecker.policy.enforce,
            "events": self._event_log.count if self._event_log is not None else 0,
        }

    @property
    def store(self) -> BountyStateStore:
        return self._store

    @property
    def commitments(self) -> MissionCommitment:
        return self._commitments

    @property
    def queue(self) -> FinalizationQueue:
        return self._queue

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _on_finalized(self, record: PendingFinalization, receipt: FinalizationReceipt) -> None:
        self._store.record_finalization(record.settlement_ref, receipt.tx_ref, receipt.jackpot_won)
        self._log(EventKind.BOUNTY_FINALIZED, record.bounty_id, {
            "settlement_ref": record.settlement_ref,
            "tx": receipt.tx_ref,
            "jackpot_won": receipt.jackpot_won,
        })

    def _on_exhausted(self, record: PendingFinalization) -> None:
        self._log(EventKind.FINALIZATION_EXHAUSTED, record.bounty_id, {
            "settlement_ref": record.settlement_ref,
            "attempts": record.attempts,
            "last_error": record.last_error,
        })

    def _log(
        self,
        kind: EventKind,
        subject: str,
        payload: dict[str, Any],
        now: Optional[datetime] = None,
    ) -> None:
        if self._event_log is not None:
            self._event_log.record(kind, subject, payload, now=now)
