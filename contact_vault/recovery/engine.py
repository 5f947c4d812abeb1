"""
Recovery engine: pick the best surviving dataset and restore it.

Candidates are gathered from every mirror and every timestamped snapshot in
both stores, scored, and the winner replaces the in-memory set before being
re-persisted everywhere. Scoring:

    score = record_weight * record_count + recency_bonus + reliability_bonus
    recency_bonus = max(0, recency_window_hours - age_hours)   (0 without timestamp)

Ties go to the more reliable tier (primary > backup > async_store > snapshot),
then the newer timestamp, then the lower source id.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Optional

from contact_vault.backup.manager import (
    BACKUP_KEY,
    CURRENT_KEY,
    GROUPS_BACKUP_KEY,
    GROUPS_CURRENT_KEY,
    GROUPS_PRIMARY_KEY,
    PRIMARY_KEY,
    SNAPSHOT_PREFIXES,
    SnapshotWriter,
)
from contact_vault.backup.snapshot import Snapshot, SnapshotFormatError
from contact_vault.contacts.contact import utc_now
from contact_vault.contacts.store import ContactStore
from contact_vault.storage import BackendReadError, BackendWriteError
from contact_vault.utils.events import EVENT_RECOVERED, EVENT_RECOVERY_ISSUE, EventBus
from contact_vault.utils.logging import get_recovery_audit_logger

logger = logging.getLogger(__name__)


class RecoveryError(Exception):
    """Base exception for recovery errors."""

    pass


class RecoveryExhausted(RecoveryError):
    """Raised when no candidate dataset exists in any location."""

    pass


class SourceTier(str, Enum):
    """Trust ranking of a candidate's location, most reliable first."""

    PRIMARY = "primary"
    BACKUP = "backup"
    ASYNC_STORE = "async_store"
    SNAPSHOT = "snapshot"

    @property
    def rank(self) -> int:
        """0 for the most reliable tier."""
        return list(SourceTier).index(self)


DEFAULT_RELIABILITY = {
    SourceTier.PRIMARY: 100.0,
    SourceTier.BACKUP: 90.0,
    SourceTier.ASYNC_STORE: 85.0,
    SourceTier.SNAPSHOT: 50.0,
}


@dataclass(frozen=True)
class ScoringWeights:
    """
    Heuristic recovery weights.

    Attributes:
        record_weight: Points per contact
        recency_window_hours: Recency bonus at age 0, decaying one point per hour
        reliability: Fixed bonus per source tier
    """

    record_weight: float = 10.0
    recency_window_hours: float = 100.0
    reliability: dict[SourceTier, float] = field(
        default_factory=lambda: dict(DEFAULT_RELIABILITY)
    )

    def reliability_bonus(self, tier: SourceTier) -> float:
        return self.reliability.get(tier, DEFAULT_RELIABILITY[tier])

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ScoringWeights:
        """
        Build weights from a configuration mapping.

        Unknown tiers in ``reliability`` raise ValueError.
        """
        reliability = dict(DEFAULT_RELIABILITY)
        for tier_name, bonus in (data.get("reliability") or {}).items():
            reliability[SourceTier(tier_name)] = float(bonus)
        return cls(
            record_weight=float(data.get("record_weight", cls.record_weight)),
            recency_window_hours=float(
                data.get("recency_window_hours", cls.recency_window_hours)
            ),
            reliability=reliability,
        )


@dataclass(frozen=True)
class Candidate:
    """A dataset found during gathering, with where it came from."""

    source_id: str
    tier: SourceTier
    snapshot: Snapshot

    @property
    def record_count(self) -> int:
        return self.snapshot.record_count


def score(candidate: Candidate, weights: ScoringWeights, now: datetime) -> float:
    """Score a candidate; higher is better."""
    total = weights.record_weight * candidate.record_count
    age = candidate.snapshot.age_hours(now)
    if age is not None:
        total += max(0.0, weights.recency_window_hours - age)
    return total + weights.reliability_bonus(candidate.tier)


def select(
    candidates: list[Candidate], weights: ScoringWeights, now: datetime
) -> Optional[Candidate]:
    """
    Pick the highest-scoring candidate.

    Returns:
        The winner, or None if there are no candidates
    """
    if not candidates:
        return None

    def sort_key(candidate: Candidate) -> tuple[float, int, float, str]:
        timestamp = candidate.snapshot.timestamp
        return (
            -score(candidate, weights, now),
            candidate.tier.rank,
            -timestamp.timestamp() if timestamp else float("inf"),
            candidate.source_id,
        )

    return min(candidates, key=sort_key)


@dataclass
class RecoveryOutcome:
    """
    Result of a successful recovery.

    Attributes:
        source_id: Location the dataset was restored from
        tier: Tier of that location
        record_count: Contacts restored
        group_count: Groups restored
        score: Winning score
        candidates: Number of candidates considered
        persisted: Keys rewritten afterwards
    """

    source_id: str
    tier: SourceTier
    record_count: int
    group_count: int
    score: float
    candidates: int
    persisted: list[str] = field(default_factory=list)


class RecoveryEngine:
    """
    Gathers, scores and restores candidate datasets.

    Usage:
        engine = RecoveryEngine(store, writer, events)
        outcome = await engine.recover()
        print(f"Restored {outcome.record_count} from {outcome.source_id}")
    """

    def __init__(
        self,
        store: ContactStore,
        writer: SnapshotWriter,
        events: EventBus,
        weights: Optional[ScoringWeights] = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.store = store
        self.writer = writer
        self.events = events
        self.weights = weights or ScoringWeights()
        self._clock = clock

    # =========================================================================
    # Gathering
    # =========================================================================

    def _read_kv(self, key: str) -> Any:
        try:
            return self.writer.kv_store.get(key)
        except BackendReadError as e:
            logger.warning(f"Treating {key} as absent: {e}")
            return None

    async def _read_structured(self, key: str) -> Any:
        try:
            return await self.writer.structured_store.get(key)
        except BackendReadError as e:
            logger.warning(f"Treating {key} as absent: {e}")
            return None

    def _mirror_candidate(
        self, source_id: str, tier: SourceTier, contacts: Any, groups: Any
    ) -> Optional[Candidate]:
        if contacts is None:
            return None
        try:
            snapshot = Snapshot.from_mirrors(contacts, groups, source_id)
        except (SnapshotFormatError, TypeError, AttributeError) as e:
            logger.warning(f"Ignoring unusable mirror {source_id}: {e}")
            return None
        return Candidate(source_id=source_id, tier=tier, snapshot=snapshot)

    def _snapshot_candidate(self, source_id: str, value: Any) -> Optional[Candidate]:
        if value is None:
            return None
        try:
            snapshot = Snapshot.from_value(value, source_id)
        except (SnapshotFormatError, TypeError, AttributeError) as e:
            logger.warning(f"Ignoring unusable snapshot {source_id}: {e}")
            return None
        return Candidate(source_id=source_id, tier=SourceTier.SNAPSHOT, snapshot=snapshot)

    async def gather(self) -> list[Candidate]:
        """
        Collect every readable candidate dataset.

        Read failures and unparseable values count as absent.
        """
        candidates: list[Optional[Candidate]] = [
            self._mirror_candidate(
                PRIMARY_KEY,
                SourceTier.PRIMARY,
                self._read_kv(PRIMARY_KEY),
                self._read_kv(GROUPS_PRIMARY_KEY),
            ),
            self._mirror_candidate(
                BACKUP_KEY,
                SourceTier.BACKUP,
                self._read_kv(BACKUP_KEY),
                self._read_kv(GROUPS_BACKUP_KEY),
            ),
            self._mirror_candidate(
                CURRENT_KEY,
                SourceTier.ASYNC_STORE,
                await self._read_structured(CURRENT_KEY),
                await self._read_structured(GROUPS_CURRENT_KEY),
            ),
        ]

        try:
            kv_keys = self.writer.kv_store.list_all("contacts.")
        except BackendReadError as e:
            logger.warning(f"Cannot scan key-value store for snapshots: {e}")
            kv_keys = []
        for key in kv_keys:
            if key.startswith(SNAPSHOT_PREFIXES):
                candidates.append(self._snapshot_candidate(f"kv:{key}", self._read_kv(key)))

        try:
            structured_keys = await self.writer.structured_store.list_all("contacts.")
        except BackendReadError as e:
            logger.warning(f"Cannot scan structured store for snapshots: {e}")
            structured_keys = []
        for key in structured_keys:
            if key.startswith(SNAPSHOT_PREFIXES):
                candidates.append(
                    self._snapshot_candidate(
                        f"structured:{key}", await self._read_structured(key)
                    )
                )

        return [c for c in candidates if c is not None]

    # =========================================================================
    # Recovery
    # =========================================================================

    async def recover(self) -> RecoveryOutcome:
        """
        Restore the best candidate into the store and re-persist it everywhere.

        Emits ``recovered`` on success. Emits ``recovery-issue`` and raises
        when nothing can be recovered.

        Raises:
            RecoveryExhausted: If no candidate exists in any location
        """
        audit = get_recovery_audit_logger()
        now = self._clock()
        candidates = await self.gather()

        for candidate in candidates:
            audit.info(
                f"candidate source={candidate.source_id} tier={candidate.tier.value} "
                f"records={candidate.record_count} "
                f"age_h={candidate.snapshot.age_hours(now)} "
                f"score={score(candidate, self.weights, now):.2f}"
            )

        winner = select(candidates, self.weights, now)
        if winner is None:
            logger.error("Recovery found no candidate dataset in any location")
            audit.error("no candidates")
            self.events.emit(
                EVENT_RECOVERY_ISSUE,
                {"reason": "no-candidates", "record_count": len(self.store)},
            )
            raise RecoveryExhausted("No recoverable contact data found in any location")

        winning_score = score(winner, self.weights, now)
        audit.info(f"selected source={winner.source_id} score={winning_score:.2f}")

        self.store.replace_all(winner.snapshot.contacts, winner.snapshot.groups)
        restored = self.store.snapshot(source_id=winner.source_id, timestamp=now)

        try:
            persisted = await self.writer.persist_all(restored)
        except BackendWriteError as e:
            logger.error(f"Recovered data could not be re-persisted: {e}")
            self.events.emit(
                EVENT_RECOVERY_ISSUE,
                {"reason": "persist-failed", "source": winner.source_id, "error": str(e)},
            )
            persisted = []

        outcome = RecoveryOutcome(
            source_id=winner.source_id,
            tier=winner.tier,
            record_count=restored.record_count,
            group_count=restored.group_count,
            score=winning_score,
            candidates=len(candidates),
            persisted=persisted,
        )
        logger.info(
            f"Recovered {outcome.record_count} contact(s) and {outcome.group_count} "
            f"group(s) from {outcome.source_id}"
        )
        self.events.emit(
            EVENT_RECOVERED,
            {
                "source": outcome.source_id,
                "record_count": outcome.record_count,
                "group_count": outcome.group_count,
            },
        )
        if outcome.record_count == 0:
            self.events.emit(
                EVENT_RECOVERY_ISSUE,
                {"reason": "empty-dataset", "source": outcome.source_id},
            )
        return outcome


__all__ = [
    "Candidate",
    "RecoveryEngine",
    "RecoveryError",
    "RecoveryExhausted",
    "RecoveryOutcome",
    "ScoringWeights",
    "SourceTier",
    "DEFAULT_RELIABILITY",
    "score",
    "select",
]
