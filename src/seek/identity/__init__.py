"""Wallet identity — sign-in challenges and sybil-guarded verification."""

from seek.identity.challenge import NonceChallengeIssuer
from seek.identity.credential import CredentialOwnershipProvider, Erc721CredentialProvider
from seek.identity.verifier import SybilGuardedIdentityVerifier, normalize_wallet

__all__ = [
    "CredentialOwnershipProvider",
    "Erc721CredentialProvider",
    "NonceChallengeIssuer",
    "SybilGuardedIdentityVerifier",
    "normalize_wallet",
]
