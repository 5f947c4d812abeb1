"""
Integrity checking and recovery of the contact dataset.
"""

from contact_vault.recovery.engine import (
    Candidate,
    RecoveryEngine,
    RecoveryError,
    RecoveryExhausted,
    RecoveryOutcome,
    ScoringWeights,
    SourceTier,
    score,
    select,
)
from contact_vault.recovery.integrity import (
    IntegrityChecker,
    IntegrityCheckInProgress,
    IntegrityReport,
    IntegrityState,
    detect_divergence,
)

__all__ = [
    "Candidate",
    "IntegrityChecker",
    "IntegrityCheckInProgress",
    "IntegrityReport",
    "IntegrityState",
    "RecoveryEngine",
    "RecoveryError",
    "RecoveryExhausted",
    "RecoveryOutcome",
    "ScoringWeights",
    "SourceTier",
    "detect_divergence",
    "score",
    "select",
]
