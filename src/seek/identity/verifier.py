"""Sybil-guarded identity verification.

Proves two things about a wallet:
1. Its holder controls the key: they signed the exact challenge text we
   issued, for a live single-use nonce bound to that wallet.
2. It holds a device-bound credential token, and that token has not
   already been claimed by a different wallet. The first wallet to
   present a token owns it for the lifetime of the process.

Successful results are cached; a cached wallet skips the ownership query
on later verifications and status() never touches the network.
"""

from __future__ import annotations

import logging
import threading
from datetime import datetime, timezone
from typing import Optional

from eth_account import Account
from eth_account.messages import encode_defunct
from web3 import Web3

from seek.errors import ValidationError
from seek.identity.challenge import NonceChallengeIssuer
from seek.identity.credential import CredentialOwnershipProvider
from seek.models.identity import IdentityFailure, IdentityVerification, WalletChallenge


logger = logging.getLogger(__name__)


def normalize_wallet(wallet: str) -> str:
    """Checksum an EVM address.

    Raises:
        ValidationError: If *wallet* is not a valid address.
    """
    if not isinstance(wallet, str) or not Web3.is_address(wallet):
        raise ValidationError(f"Invalid wallet address: {wallet!r}")
    return Web3.to_checksum_address(wallet)


def recover_signer(message: str, signature: str) -> Optional[str]:
    """Address that produced *signature* over *message* (EIP-191), or None."""
    try:
        return Account.recover_message(encode_defunct(text=message), signature=signature)
    except Exception as exc:
        logger.debug("Signature recovery failed: %s", exc)
        return None


class SybilGuardedIdentityVerifier:
    """Wallet-ownership + credential-possession verification with anti-sybil."""

    def __init__(
        self,
        issuer: NonceChallengeIssuer,
        credentials: CredentialOwnershipProvider,
    ) -> None:
        self._issuer = issuer
        self._credentials = credentials
        self._lock = threading.Lock()
        self._verified: dict[str, IdentityVerification] = {}  # wallet (lowercase) → result
        self._token_owner: dict[str, str] = {}  # token id → wallet (lowercase)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def issue_challenge(self, wallet: str, *, now: Optional[datetime] = None) -> WalletChallenge:
        return self._issuer.issue(normalize_wallet(wallet), now=now)

    def verify(
        self,
        wallet: str,
        signature: str,
        message: str,
        *,
        now: Optional[datetime] = None,
    ) -> IdentityVerification:
        """Verify a signed challenge and the wallet's credential.

        Failures are returned as unverified results with a reason code;
        this method only raises for a malformed wallet address.
        """
        now_utc = now or datetime.now(timezone.utc)
        wallet = normalize_wallet(wallet)

        challenge, failure = self._issuer.check(wallet, message, now=now_utc)
        if failure is not None:
            return _failed(wallet, failure, f"Challenge rejected: {failure.value}")

        signer = recover_signer(message, signature)
        if signer is None or signer.lower() != wallet.lower():
            return _failed(wallet, IdentityFailure.INVALID_SIGNATURE, "Invalid signature")

        if not self._issuer.consume(challenge.nonce):
            return _failed(wallet, IdentityFailure.UNKNOWN_NONCE, "Challenge already used")

        cached = self.cached(wallet)
        if cached is not None:
            return cached

        try:
            token_id = self._credentials.find_credential(wallet)
        except Exception as exc:
            logger.warning("Credential ownership check failed for %s: %s", wallet, exc)
            return _failed(
                wallet,
                IdentityFailure.OWNERSHIP_CHECK_FAILED,
                "Credential ownership check failed; try again",
            )
        if token_id is None:
            return _failed(wallet, IdentityFailure.NO_CREDENTIAL, "No device credential found")

        key = wallet.lower()
        with self._lock:
            owner = self._token_owner.setdefault(token_id, key)
            if owner != key:
                logger.warning(
                    "Sybil attempt: credential %s already bound to another wallet (claimed by %s)",
                    token_id, wallet,
                )
                return _failed(
                    wallet,
                    IdentityFailure.CREDENTIAL_BOUND_ELSEWHERE,
                    "Device credential is already registered to another wallet",
                    bound_token_id=token_id,
                )
            result = IdentityVerification(
                wallet=wallet,
                verified=True,
                bound_token_id=token_id,
                verified_utc=now_utc,
            )
            self._verified[key] = result

        logger.info("Identity verified: %s (credential %s)", wallet, token_id)
        return result

    def cached(self, wallet: str) -> Optional[IdentityVerification]:
        with self._lock:
            return self._verified.get(wallet.lower())

    def is_verified(self, wallet: str) -> bool:
        return self.cached(wallet) is not None

    def status(self, wallet: str) -> IdentityVerification:
        """Cache-only lookup. Never queries the network, never raises."""
        cached = self.cached(wallet) if isinstance(wallet, str) else None
        if cached is not None:
            return cached
        return IdentityVerification(wallet=str(wallet), verified=False)

    def bound_wallet(self, token_id: str) -> Optional[str]:
        with self._lock:
            return self._token_owner.get(token_id)

    def sweep_expired_nonces(self, *, now: Optional[datetime] = None) -> int:
        swept = self._issuer.sweep_expired(now=now)
        if swept:
            logger.debug("Swept %d expired identity nonces", swept)
        return swept


def _failed(
    wallet: str,
    failure: IdentityFailure,
    error: str,
    *,
    bound_token_id: Optional[str] = None,
) -> IdentityVerification:
    return IdentityVerification(
        wallet=wallet,
        verified=False,
        bound_token_id=bound_token_id,
        error=error,
        failure=failure,
    )
