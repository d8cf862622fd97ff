"""Cryptographic primitives — mission commit-reveal."""

from seek.crypto.commitment import MissionCommitment, compute_commitment, mission_digest

__all__ = ["MissionCommitment", "compute_commitment", "mission_digest"]
