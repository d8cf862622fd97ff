"""Device credential ownership boundary.

A device-bound credential is a non-transferable token minted once per
physical device. The verifier only needs: "which credential token, if
any, does this wallet hold?"
"""

from __future__ import annotations

import logging
from typing import Any, Optional, Protocol

from web3 import Web3


logger = logging.getLogger(__name__)

ERC721_ENUMERABLE_ABI: list[dict[str, Any]] = [
    {
        "type": "function",
        "name": "balanceOf",
        "stateMutability": "view",
        "inputs": [{"name": "owner", "type": "address"}],
        "outputs": [{"name": "", "type": "uint256"}],
    },
    {
        "type": "function",
        "name": "tokenOfOwnerByIndex",
        "stateMutability": "view",
        "inputs": [
            {"name": "owner", "type": "address"},
            {"name": "index", "type": "uint256"},
        ],
        "outputs": [{"name": "", "type": "uint256"}],
    },
]


class CredentialOwnershipProvider(Protocol):
    def find_credential(self, wallet: str) -> Optional[str]:
        """Return the credential token id held by *wallet*, or None.

        Raises on network or RPC failure; the caller decides what that means.
        """
        ...


class Erc721CredentialProvider:
    """Credential lookup against an ERC-721 Enumerable token contract."""

    def __init__(self, rpc_url: str, token_address: str) -> None:
        from web3 import HTTPProvider

        self._w3 = Web3(HTTPProvider(rpc_url))
        self._token = self._w3.eth.contract(
            address=Web3.to_checksum_address(token_address),
            abi=ERC721_ENUMERABLE_ABI,
        )

    def find_credential(self, wallet: str) -> Optional[str]:
        owner = Web3.to_checksum_address(wallet)
        balance = self._token.functions.balanceOf(owner).call()
        if balance == 0:
            return None
        token_id = self._token.functions.tokenOfOwnerByIndex(owner, 0).call()
        logger.debug("Credential %s held by %s", token_id, owner)
        return str(token_id)
