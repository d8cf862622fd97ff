"""Mission commitment — commit-reveal over the chosen mission.

At bounty start the server commits to the mission without disclosing it:

    mission_digest = sha256(mission_id)            (32 bytes)
    salt           = 32 random bytes (secrets)
    commitment     = sha256(mission_digest || salt)

The commitment goes on-chain with the stake. The secret (digest, salt) is
held in memory until the photo is adjudicated, then revealed on-chain so
anyone can check the server did not switch missions after seeing the
photo. Reveal consumes the secret: it is deleted the moment it is handed
out and only restored if the on-chain reveal did not land.
"""

from __future__ import annotations

import hashlib
import hmac
import secrets
import threading
from typing import Optional

from seek.errors import PreconditionError
from seek.models.bounty import CommitmentRecord, MissionSecret


DIGEST_BYTES = 32
SALT_BYTES = 32


def mission_digest(mission_id: str) -> bytes:
    """SHA-256 of the mission id (always 32 bytes)."""
    return hashlib.sha256(mission_id.encode("utf-8")).digest()


def compute_commitment(digest: bytes, salt: bytes) -> bytes:
    """SHA-256 over the 64-byte concatenation digest || salt."""
    if len(digest) != DIGEST_BYTES or len(salt) != SALT_BYTES:
        raise ValueError(
            f"digest and salt must be {DIGEST_BYTES} bytes each, "
            f"got {len(digest)} and {len(salt)}"
        )
    return hashlib.sha256(digest + salt).digest()


class MissionCommitment:
    """Holds commitments and unrevealed mission secrets keyed by bounty id.

    Commitments are kept until the bounty is purged so a revealed pair
    can still be checked. Secrets are single-use.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._commitments: dict[str, bytes] = {}
        self._secrets: dict[str, MissionSecret] = {}

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def commit(self, bounty_id: str, mission_id: str) -> CommitmentRecord:
        """Create and store a commitment for *mission_id* under *bounty_id*.

        Raises:
            PreconditionError: If the bounty already has a commitment.
        """
        digest = mission_digest(mission_id)
        salt = secrets.token_bytes(SALT_BYTES)
        commitment = compute_commitment(digest, salt)
        secret = MissionSecret(mission_digest=digest, salt=salt)

        with self._lock:
            if bounty_id in self._commitments:
                raise PreconditionError(
                    f"Commitment already exists for bounty {bounty_id}"
                )
            self._commitments[bounty_id] = commitment
            self._secrets[bounty_id] = secret

        return CommitmentRecord(bounty_id=bounty_id, commitment=commitment, secret=secret)

    def reveal(self, bounty_id: str) -> MissionSecret:
        """Hand out and delete the secret for *bounty_id*.

        Raises:
            PreconditionError: If no secret is held (never committed, already
                revealed, or purged). Settlement must not proceed.
        """
        with self._lock:
            secret = self._secrets.pop(bounty_id, None)
        if secret is None:
            raise PreconditionError(f"Mission secret not found for bounty {bounty_id}")
        return secret

    def restore(self, bounty_id: str, secret: MissionSecret) -> None:
        """Put back a secret whose on-chain reveal did not go through.

        Raises:
            PreconditionError: If the secret does not open the stored commitment.
        """
        if not self.verify(bounty_id, secret.mission_digest, secret.salt):
            raise PreconditionError(
                f"Restored secret does not match commitment for bounty {bounty_id}"
            )
        with self._lock:
            self._secrets.setdefault(bounty_id, secret)

    def verify(self, bounty_id: str, digest: bytes, salt: bytes) -> bool:
        """True iff sha256(digest || salt) equals the stored commitment."""
        with self._lock:
            stored = self._commitments.get(bounty_id)
        if stored is None:
            return False
        try:
            candidate = compute_commitment(digest, salt)
        except ValueError:
            return False
        return hmac.compare_digest(stored, candidate)

    def commitment_for(self, bounty_id: str) -> Optional[bytes]:
        with self._lock:
            return self._commitments.get(bounty_id)

    def has_secret(self, bounty_id: str) -> bool:
        with self._lock:
            return bounty_id in self._secrets

    def discard(self, bounty_id: str) -> None:
        """Forget everything held for *bounty_id* (purge or aborted start)."""
        with self._lock:
            self._commitments.pop(bounty_id, None)
            self._secrets.pop(bounty_id, None)

    @property
    def secret_count(self) -> int:
        with self._lock:
            return len(self._secrets)
