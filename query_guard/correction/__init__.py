"""Self-healing correction of rejected or unproductive queries."""

from query_guard.correction.policy import ResultPolicy, is_degenerate_row
from query_guard.correction.corrector import (
    HealingResult,
    SelfHealingCorrector,
    apply_proposal,
    check_invariants,
)

__all__ = [
    "ResultPolicy",
    "is_degenerate_row",
    "HealingResult",
    "SelfHealingCorrector",
    "apply_proposal",
    "check_invariants",
]
