"""
Cross-replica integrity check.

Compares the record counts held by each replica and hands off to the
RecoveryEngine when they diverge by more than the tolerated spread:

    mismatch  <=>  max(counts) - min(counts) > max(ratio * max(counts), floor)

Replicas that are missing or unreadable are left out of the comparison.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional

from contact_vault.backup.manager import BACKUP_KEY, CURRENT_KEY, PRIMARY_KEY
from contact_vault.recovery.engine import (
    RecoveryEngine,
    RecoveryError,
    RecoveryExhausted,
    RecoveryOutcome,
)
from contact_vault.storage import BackendReadError

logger = logging.getLogger(__name__)

DEFAULT_DIVERGENCE_RATIO = 0.10
DEFAULT_DIVERGENCE_FLOOR = 5

SOURCE_PRIMARY = "primary"
SOURCE_BACKUP = "backup"
SOURCE_ASYNC = "async_store"
SOURCE_MEMORY = "memory"


class IntegrityState(str, Enum):
    UNINITIALIZED = "uninitialized"
    CHECKING = "checking"
    CONSISTENT = "consistent"
    RECOVERING = "recovering"


class IntegrityCheckInProgress(RecoveryError):
    """Raised when a check is requested while another one is running."""

    pass


def divergence_threshold(
    counts: Mapping[str, Optional[int]],
    ratio: float = DEFAULT_DIVERGENCE_RATIO,
    floor: int = DEFAULT_DIVERGENCE_FLOOR,
) -> float:
    present = [c for c in counts.values() if c is not None]
    if not present:
        return float(floor)
    return max(ratio * max(present), floor)


def detect_divergence(
    counts: Mapping[str, Optional[int]],
    ratio: float = DEFAULT_DIVERGENCE_RATIO,
    floor: int = DEFAULT_DIVERGENCE_FLOOR,
) -> bool:
    """
    Decide whether replica counts diverge.

    Args:
        counts: Record count per source; None marks an absent source
        ratio: Tolerated spread as a fraction of the largest count
        floor: Minimum tolerated spread

    Returns:
        True if the spread exceeds the threshold. Fewer than two present
        sources never diverge.
    """
    present = [c for c in counts.values() if c is not None]
    if len(present) < 2:
        return False
    return max(present) - min(present) > divergence_threshold(counts, ratio, floor)


@dataclass
class IntegrityReport:
    """
    Result of one integrity check.

    Attributes:
        counts: Record count per source (None = absent)
        mismatch: True if the counts diverged
        threshold: Tolerated spread used for the decision
        recovery: Outcome of the recovery run, if one happened
        recovery_error: Why recovery failed, if it did
    """

    counts: dict[str, Optional[int]]
    mismatch: bool
    threshold: float
    recovery: Optional[RecoveryOutcome] = None
    recovery_error: Optional[str] = None
    state: IntegrityState = IntegrityState.CONSISTENT

    @property
    def spread(self) -> int:
        present = [c for c in self.counts.values() if c is not None]
        return max(present) - min(present) if present else 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "counts": dict(self.counts),
            "mismatch": self.mismatch,
            "threshold": self.threshold,
            "spread": self.spread,
            "state": self.state.value,
            "recovered_from": self.recovery.source_id if self.recovery else None,
            "recovery_error": self.recovery_error,
        }


class IntegrityChecker:
    """
    Reads replica counts, flags divergence and triggers recovery.

    Holds the check/recovery state machine:

        UNINITIALIZED -> CHECKING -> CONSISTENT
                                  -> RECOVERING -> CONSISTENT

    Calling run() while a check is in progress raises
    IntegrityCheckInProgress, so recovery never re-enters itself.
    """

    def __init__(
        self,
        engine: RecoveryEngine,
        ratio: float = DEFAULT_DIVERGENCE_RATIO,
        floor: int = DEFAULT_DIVERGENCE_FLOOR,
    ):
        self.engine = engine
        self.ratio = ratio
        self.floor = floor
        self.state = IntegrityState.UNINITIALIZED
        self.last_report: Optional[IntegrityReport] = None

    @property
    def busy(self) -> bool:
        return self.state in (IntegrityState.CHECKING, IntegrityState.RECOVERING)

    def _kv_count(self, key: str) -> Optional[int]:
        try:
            value = self.engine.writer.kv_store.get(key)
        except BackendReadError as e:
            logger.warning(f"Integrity check: {key} unreadable ({e})")
            return None
        if isinstance(value, list):
            return len(value)
        if isinstance(value, dict) and isinstance(value.get("contacts"), list):
            return len(value["contacts"])
        return None

    async def read_counts(self) -> dict[str, Optional[int]]:
        """Record count of every replica plus the in-memory set."""
        try:
            async_count = await self.engine.writer.structured_store.record_count(CURRENT_KEY)
        except BackendReadError as e:
            logger.warning(f"Integrity check: {CURRENT_KEY} unreadable ({e})")
            async_count = None

        return {
            SOURCE_PRIMARY: self._kv_count(PRIMARY_KEY),
            SOURCE_BACKUP: self._kv_count(BACKUP_KEY),
            SOURCE_ASYNC: async_count,
            SOURCE_MEMORY: len(self.engine.store),
        }

    async def run(self, recover: bool = True) -> IntegrityReport:
        """
        Check replica counts and recover on divergence.

        Args:
            recover: Run the RecoveryEngine when a mismatch is found

        Raises:
            IntegrityCheckInProgress: If a check is already running
        """
        if self.busy:
            raise IntegrityCheckInProgress(
                f"Integrity check already in progress ({self.state.value})"
            )

        previous = self.state
        self.state = IntegrityState.CHECKING
        try:
            counts = await self.read_counts()
            mismatch = detect_divergence(counts, self.ratio, self.floor)
            report = IntegrityReport(
                counts=counts,
                mismatch=mismatch,
                threshold=divergence_threshold(counts, self.ratio, self.floor),
            )
            logger.debug(f"Integrity counts: {counts} (mismatch={mismatch})")

            if mismatch and recover:
                logger.warning(
                    f"Replica counts diverge (spread {report.spread} > "
                    f"{report.threshold:g}), starting recovery"
                )
                self.state = IntegrityState.RECOVERING
                try:
                    report.recovery = await self.engine.recover()
                except RecoveryExhausted as e:
                    report.recovery_error = str(e)
                self.state = IntegrityState.CONSISTENT
            elif mismatch:
                self.state = previous
            else:
                self.state = IntegrityState.CONSISTENT
        except BaseException:
            self.state = previous
            raise

        report.state = self.state
        self.last_report = report
        return report

    async def recover(self) -> RecoveryOutcome:
        """
        Run the RecoveryEngine on demand, without a prior count comparison.

        Raises:
            IntegrityCheckInProgress: If a check is already running
            RecoveryExhausted: If nothing could be recovered
        """
        if self.busy:
            raise IntegrityCheckInProgress(
                f"Integrity check already in progress ({self.state.value})"
            )

        self.state = IntegrityState.RECOVERING
        try:
            return await self.engine.recover()
        finally:
            self.state = IntegrityState.CONSISTENT


__all__ = [
    "IntegrityChecker",
    "IntegrityCheckInProgress",
    "IntegrityReport",
    "IntegrityState",
    "detect_divergence",
    "divergence_threshold",
    "DEFAULT_DIVERGENCE_RATIO",
    "DEFAULT_DIVERGENCE_FLOOR",
]
