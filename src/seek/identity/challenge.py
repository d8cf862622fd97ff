"""Wallet sign-in challenges (EIP-4361 style).

Each challenge binds a fresh random nonce to one wallet and renders the
exact text the wallet must sign. The issuer stores the rendered text,
so verification compares byte-for-byte rather than re-rendering. Nonces
are single-use and expire after a configurable timeout.
"""

from __future__ import annotations

import secrets
import threading
from datetime import datetime, timedelta, timezone
from typing import Optional

from seek.models.identity import IdentityFailure, WalletChallenge


_MESSAGE_TEMPLATE = (
    "{domain} wants you to sign in with your Ethereum account:\n"
    "{address}\n"
    "\n"
    "{statement}\n"
    "\n"
    "URI: {uri}\n"
    "Version: 1\n"
    "Chain ID: {chain_id}\n"
    "Nonce: {nonce}\n"
    "Issued At: {issued_at}\n"
    "Expiration Time: {expires_at}"
)


def _iso(ts: datetime) -> str:
    return ts.strftime("%Y-%m-%dT%H:%M:%SZ")


class NonceChallengeIssuer:
    """Issues and consumes wallet sign-in challenges.

    Parameters (via *config* dict):
        domain            : str — requesting domain (default "seek.app")
        uri               : str — origin URI (default "https://seek.app")
        statement         : str — human-readable purpose line
        chain_id          : int — EVM chain id (default 1)
        nonce_ttl_seconds : int — seconds until a nonce expires (default 300)
    """

    def __init__(self, config: dict) -> None:
        self._domain: str = config.get("domain", "seek.app")
        self._uri: str = config.get("uri", "https://seek.app")
        self._statement: str = config.get(
            "statement", "Sign in to Seek to verify device credential ownership."
        )
        self._chain_id: int = config.get("chain_id", 1)
        self._ttl: int = config.get("nonce_ttl_seconds", 300)

        self._lock = threading.Lock()
        # nonce → challenge (removed on consumption or sweep)
        self._challenges: dict[str, WalletChallenge] = {}

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def issue(self, wallet: str, *, now: Optional[datetime] = None) -> WalletChallenge:
        now_utc = now or datetime.now(timezone.utc)
        nonce = secrets.token_hex(16)
        expires = now_utc + timedelta(seconds=self._ttl)
        message = _MESSAGE_TEMPLATE.format(
            domain=self._domain,
            address=wallet,
            statement=self._statement,
            uri=self._uri,
            chain_id=self._chain_id,
            nonce=nonce,
            issued_at=_iso(now_utc),
            expires_at=_iso(expires),
        )
        challenge = WalletChallenge(
            nonce=nonce,
            wallet=wallet,
            message=message,
            issued_utc=now_utc,
            expires_utc=expires,
        )
        with self._lock:
            self._challenges[nonce] = challenge
        return challenge

    def check(
        self,
        wallet: str,
        message: str,
        *,
        now: Optional[datetime] = None,
    ) -> tuple[Optional[WalletChallenge], Optional[IdentityFailure]]:
        """Find the live challenge that *message* answers, without consuming it.

        Returns (challenge, None) on success or (None, failure reason).
        An expired nonce is dropped as a side effect.
        """
        now_utc = now or datetime.now(timezone.utc)
        nonce = extract_nonce(message)
        with self._lock:
            challenge = self._challenges.get(nonce) if nonce else None
            if challenge is None:
                return None, IdentityFailure.UNKNOWN_NONCE
            if now_utc >= challenge.expires_utc:
                del self._challenges[nonce]
                return None, IdentityFailure.NONCE_EXPIRED
        if challenge.wallet.lower() != wallet.lower():
            return None, IdentityFailure.WALLET_MISMATCH
        if challenge.message != message:
            return None, IdentityFailure.MESSAGE_MISMATCH
        return challenge, None

    def consume(self, nonce: str) -> bool:
        """Delete *nonce*. Returns False if it was already gone."""
        with self._lock:
            return self._challenges.pop(nonce, None) is not None

    def sweep_expired(self, *, now: Optional[datetime] = None) -> int:
        now_utc = now or datetime.now(timezone.utc)
        with self._lock:
            stale = [n for n, c in self._challenges.items() if now_utc >= c.expires_utc]
            for nonce in stale:
                del self._challenges[nonce]
        return len(stale)

    @property
    def outstanding(self) -> int:
        with self._lock:
            return len(self._challenges)


def extract_nonce(message: str) -> Optional[str]:
    """Pull the ``Nonce:`` field out of a sign-in message."""
    for line in (message or "").splitlines():
        if line.startswith("Nonce: "):
            return line[len("Nonce: "):].strip() or None
    return None
