"""Settlement contract boundary.

The protocol contract escrows stakes and executes payout. This server
is its resolution authority and makes three calls per bounty:

    revealMission(bytes32 ref, bytes32 missionDigest, bytes32 salt)
    proposeResolution(bytes32 ref, bool success)   → opens challenge window
    finalizeBounty(bytes32 ref)                    → executes payout

finalizeBounty reverts with ``ChallengePeriodActive`` until the window
has elapsed; that revert is surfaced as ChallengePeriodActive so the
finalization worker can retry later instead of counting a failure.
"""

from __future__ import annotations

import logging
from typing import Any, Optional, Protocol

from web3 import Web3

from seek.errors import ChallengePeriodActive, SettlementError
from seek.models.bounty import FinalizationReceipt


logger = logging.getLogger(__name__)

CHALLENGE_PERIOD_ACTIVE = "ChallengePeriodActive"

SETTLEMENT_ABI: list[dict[str, Any]] = [
    {
        "type": "function",
        "name": "revealMission",
        "stateMutability": "nonpayable",
        "inputs": [
            {"name": "ref", "type": "bytes32"},
            {"name": "missionDigest", "type": "bytes32"},
            {"name": "salt", "type": "bytes32"},
        ],
        "outputs": [],
    },
    {
        "type": "function",
        "name": "proposeResolution",
        "stateMutability": "nonpayable",
        "inputs": [
            {"name": "ref", "type": "bytes32"},
            {"name": "success", "type": "bool"},
        ],
        "outputs": [],
    },
    {
        "type": "function",
        "name": "finalizeBounty",
        "stateMutability": "nonpayable",
        "inputs": [{"name": "ref", "type": "bytes32"}],
        "outputs": [],
    },
    {
        "type": "event",
        "name": "BountyFinalized",
        "anonymous": False,
        "inputs": [
            {"name": "ref", "type": "bytes32", "indexed": True},
            {"name": "success", "type": "bool", "indexed": False},
            {"name": "jackpotWon", "type": "bool", "indexed": False},
        ],
    },
    {"type": "error", "name": CHALLENGE_PERIOD_ACTIVE, "inputs": []},
]


class SettlementContract(Protocol):
    """The three resolution calls. Each returns a transaction reference."""

    def reveal_mission(self, settlement_ref: str, mission_digest: bytes, salt: bytes) -> str:
        ...

    def propose_resolution(self, settlement_ref: str, success: bool) -> str:
        ...

    def finalize_bounty(self, settlement_ref: str) -> FinalizationReceipt:
        """Raises ChallengePeriodActive before the window closes."""
        ...


def derive_settlement_ref(contract_address: str, wallet: str, bounty_id: str) -> str:
    """Deterministic 32-byte on-chain key for one bounty (0x-prefixed hex)."""
    seed = f"{contract_address.lower()}:{wallet.lower()}:{bounty_id}"
    return Web3.to_hex(Web3.keccak(text=seed))


def _challenge_selector() -> str:
    return Web3.to_hex(Web3.keccak(text=f"{CHALLENGE_PERIOD_ACTIVE}()"))[:10]


class Web3SettlementContract:
    """SettlementContract over JSON-RPC, signed by the authority key.

    Parameters (via *config* dict):
        receipt_timeout_seconds : int — wait for mining (default 120)
    """

    def __init__(
        self,
        rpc_url: str,
        contract_address: str,
        authority_private_key: str,
        chain_id: int,
        config: Optional[dict] = None,
    ) -> None:
        from web3 import HTTPProvider
        from eth_account import Account

        config = config or {}
        self._w3 = Web3(HTTPProvider(rpc_url))
        self._account = Account.from_key(authority_private_key)
        self._contract = self._w3.eth.contract(
            address=Web3.to_checksum_address(contract_address),
            abi=SETTLEMENT_ABI,
        )
        self._chain_id = chain_id
        self._receipt_timeout: int = config.get("receipt_timeout_seconds", 120)
        self._selector = _challenge_selector()

    @property
    def address(self) -> str:
        return self._contract.address

    def reveal_mission(self, settlement_ref: str, mission_digest: bytes, salt: bytes) -> str:
        fn = self._contract.functions.revealMission(
            Web3.to_bytes(hexstr=settlement_ref), mission_digest, salt
        )
        receipt = self._transact(fn, "revealMission", settlement_ref)
        return Web3.to_hex(receipt["transactionHash"])

    def propose_resolution(self, settlement_ref: str, success: bool) -> str:
        fn = self._contract.functions.proposeResolution(
            Web3.to_bytes(hexstr=settlement_ref), success
        )
        receipt = self._transact(fn, "proposeResolution", settlement_ref)
        return Web3.to_hex(receipt["transactionHash"])

    def finalize_bounty(self, settlement_ref: str) -> FinalizationReceipt:
        fn = self._contract.functions.finalizeBounty(Web3.to_bytes(hexstr=settlement_ref))
        receipt = self._transact(fn, "finalizeBounty", settlement_ref)
        jackpot_won = False
        for event in self._contract.events.BountyFinalized().process_receipt(receipt):
            jackpot_won = bool(event["args"]["jackpotWon"])
        return FinalizationReceipt(
            tx_ref=Web3.to_hex(receipt["transactionHash"]),
            jackpot_won=jackpot_won,
        )

    def _transact(self, fn: Any, name: str, settlement_ref: str) -> Any:
        """Build, sign, send and wait. Maps reverts to protocol errors."""
        from web3.exceptions import ContractLogicError, Web3Exception

        try:
            tx = fn.build_transaction({
                "from": self._account.address,
                "nonce": self._w3.eth.get_transaction_count(self._account.address, "pending"),
                "chainId": self._chain_id,
            })
            signed = self._account.sign_transaction(tx)
            tx_hash = self._w3.eth.send_raw_transaction(signed.raw_transaction)
            receipt = self._w3.eth.wait_for_transaction_receipt(
                tx_hash, timeout=self._receipt_timeout
            )
        except ContractLogicError as exc:
            detail = f"{exc} {getattr(exc, 'data', '') or ''}"
            if CHALLENGE_PERIOD_ACTIVE in detail or self._selector in detail:
                raise ChallengePeriodActive(
                    f"{name} rejected for {settlement_ref}: challenge period active"
                ) from exc
            raise SettlementError(f"{name} reverted for {settlement_ref}: {exc}") from exc
        except (Web3Exception, ValueError, TimeoutError, OSError) as exc:
            raise SettlementError(f"{name} failed for {settlement_ref}: {exc}") from exc

        if receipt["status"] != 1:
            raise SettlementError(f"{name} transaction failed on-chain for {settlement_ref}")
        logger.info("%s mined for %s in block %s", name, settlement_ref, receipt["blockNumber"])
        return receipt
