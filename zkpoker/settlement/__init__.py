"""
Settlement of finished hands and the match session that drives it.
"""

from zkpoker.settlement.orchestrator import SettlementOrchestrator, SettlementOutcome, SettlementStatus
from zkpoker.settlement.session import MatchSession, build_session

__all__ = [
    "SettlementOrchestrator",
    "SettlementOutcome",
    "SettlementStatus",
    "MatchSession",
    "build_session",
]
