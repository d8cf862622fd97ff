"""Settlement — contract boundary, sequencer, deferred finalization."""

from seek.settlement.contract import SettlementContract, Web3SettlementContract, derive_settlement_ref
from seek.settlement.finalizer import FinalizationQueue, FinalizationWorker
from seek.settlement.sequencer import SettlementSequencer

__all__ = [
    "FinalizationQueue",
    "FinalizationWorker",
    "SettlementContract",
    "SettlementSequencer",
    "Web3SettlementContract",
    "derive_settlement_ref",
]
