"""
Ledger access: operation model, clients and the per-signer sequencer.
"""

from zkpoker.ledger.client import HttpLedgerClient, LedgerClient
from zkpoker.ledger.memory import InMemoryLedger
from zkpoker.ledger.operations import LedgerOperation, OperationKind, OperationResult, OperationStatus
from zkpoker.ledger.sequencer import LedgerSequencer

__all__ = [
    "HttpLedgerClient",
    "LedgerClient",
    "InMemoryLedger",
    "LedgerOperation",
    "OperationKind",
    "OperationResult",
    "OperationStatus",
    "LedgerSequencer",
]
