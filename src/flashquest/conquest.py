"""Conquest mode: the adaptive review scheduler.

A run starts with every card of a range in the ``ReviewQueue``. After each
answer the ``MasteryTracker`` decides whether the card at the head of the
queue is retired or goes back in at a fixed offset (the spacing modifier).

A card missed ``k`` times in a row climbs a linear confidence ramp on the
following correct answers: 50% after the first, 100% after ``k + 1``. It
retires once the ramp reaches the threshold or the ramp is complete. A card
answered correctly on its very first attempt retires immediately.
"""

import logging
import math
import random
from dataclasses import dataclass
from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal
from enum import Enum
from typing import Dict, Iterable, List, Optional

from .errors import ConquestError
from .models import CardStats, ConquestProgress, ConquestSnapshot, ConquestState

logger = logging.getLogger(__name__)


def round2(value: float) -> float:
    """Round to two decimals, halves away from zero."""
    return float(Decimal(str(value)).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP))


class ActionKind(str, Enum):
    RETIRE = "retire"
    REQUEUE = "requeue"


@dataclass(frozen=True)
class Action:
    kind: ActionKind
    position: Optional[int] = None

    @classmethod
    def retire(cls) -> "Action":
        return cls(ActionKind.RETIRE)

    @classmethod
    def requeue(cls, position: int) -> "Action":
        return cls(ActionKind.REQUEUE, position)

    @property
    def is_retire(self) -> bool:
        return self.kind is ActionKind.RETIRE


# --- Per-card statistics ---
class MasteryTracker:
    def __init__(self, stats: Dict[int, CardStats], threshold: int):
        self.stats = stats
        self.threshold = threshold

    def stats_for(self, card_index: int) -> CardStats:
        if card_index not in self.stats:
            self.stats[card_index] = CardStats()
        return self.stats[card_index]

    def peek(self, card_index: int) -> Optional[CardStats]:
        return self.stats.get(card_index)

    def record_answer(self, card_index: int, is_correct: bool) -> bool:
        """Update the card's statistics. Returns True when the card is mastered."""
        stats = self.stats_for(card_index)
        stats.total += 1
        first_attempt = stats.attempts == 0
        stats.attempts += 1

        if not is_correct:
            stats.consecutive_wrong += 1
            stats.last_wrong_streak = stats.consecutive_wrong
            stats.post_wrong_success = 0
            stats.progress_percent = 0
            return False

        stats.correct += 1
        if first_attempt:
            return True

        if stats.last_wrong_streak == 0:
            # Only a first attempt can be correct without a prior miss.
            logger.warning(
                f"Card {card_index} answered correctly after {stats.attempts - 1} "
                "attempts with no wrong streak; retiring it"
            )
            stats.progress_percent = 100
            return True

        stats.post_wrong_success += 1
        k = stats.last_wrong_streak
        j = stats.post_wrong_success
        stats.progress_percent = round2(min(100, 50 + (j - 1) * (50 / k)))
        stats.consecutive_wrong = 0

        finished_sequence = j >= k + 1
        return stats.progress_percent >= self.threshold or finished_sequence


# --- Queue ---
class ReviewQueue:
    def __init__(self, order: List[int], total_enqueued: Optional[int] = None):
        if len(set(order)) != len(order):
            raise ConquestError("A card can appear only once in the review queue")
        self.order = order
        self.total_enqueued = len(order) if total_enqueued is None else total_enqueued

    def __len__(self) -> int:
        return len(self.order)

    def __contains__(self, card_index: int) -> bool:
        return card_index in self.order

    @property
    def head(self) -> Optional[int]:
        return self.order[0] if self.order else None

    @property
    def is_complete(self) -> bool:
        return not self.order

    @property
    def mastered_count(self) -> int:
        return self.total_enqueued - len(self.order)

    def pop_head(self) -> int:
        if not self.order:
            raise ConquestError("The review queue is empty")
        return self.order.pop(0)

    def reinsert(self, card_index: int, spacing: int) -> int:
        position = min(spacing, len(self.order))
        self.order.insert(position, card_index)
        return position


# --- Run ---
class ConquestRun:
    """One Conquest run, backed by a serializable ``ConquestState``."""

    def __init__(self, state: ConquestState):
        self.state = state
        self.tracker = MasteryTracker(state.stats, state.threshold)
        # Stats are created for every card when the run starts.
        self.queue = ReviewQueue(state.queue, total_enqueued=len(state.stats))

    @classmethod
    def start(
        cls,
        indices: Iterable[int],
        threshold: int,
        spacing: int,
        shuffle: bool = False,
        rng: Optional[random.Random] = None,
    ) -> "ConquestRun":
        queue = list(indices)
        if shuffle:
            (rng or random.Random()).shuffle(queue)
        state = ConquestState(
            queue=queue,
            stats={i: CardStats() for i in queue},
            threshold=threshold,
            spacing=spacing,
            shuffle_snapshot=shuffle,
        )
        logger.info(
            f"Conquest run started with {len(queue)} cards "
            f"[threshold={threshold}, spacing={spacing}, shuffle={shuffle}]"
        )
        return cls(state)

    @property
    def current_card(self) -> Optional[int]:
        return self.queue.head

    @property
    def is_complete(self) -> bool:
        return self.queue.is_complete

    def record_answer(self, card_index: int, is_correct: bool) -> Action:
        if card_index != self.queue.head:
            raise ConquestError(
                f"Card {card_index} is not the current card ({self.queue.head})"
            )
        mastered = self.tracker.record_answer(card_index, is_correct)
        self.queue.pop_head()
        if mastered:
            if self.queue.is_complete:
                logger.info(f"Conquest run complete: {self.queue.total_enqueued} cards")
            return Action.retire()
        return Action.requeue(self.queue.reinsert(card_index, self.state.spacing))

    def progress(self, card_index: Optional[int] = None) -> ConquestProgress:
        if card_index is None:
            card_index = self.current_card
        return report_progress(self.queue, self.tracker, card_index)

    def snapshot(
        self, name: str, deck_indices: List[int], range_index: int
    ) -> ConquestSnapshot:
        return ConquestSnapshot(
            name=name,
            timestamp=datetime.now(),
            queue=list(self.state.queue),
            stats={i: s.model_copy() for i, s in self.state.stats.items()},
            threshold=self.state.threshold,
            spacing=self.state.spacing,
            deck_indices=list(deck_indices),
            range_index=range_index,
            shuffle_snapshot=self.state.shuffle_snapshot,
        )

    @classmethod
    def from_snapshot(cls, snapshot: ConquestSnapshot) -> "ConquestRun":
        state = ConquestState(
            queue=list(snapshot.queue),
            stats={i: s.model_copy() for i, s in snapshot.stats.items()},
            threshold=snapshot.threshold,
            spacing=snapshot.spacing,
            shuffle_snapshot=snapshot.shuffle_snapshot,
        )
        return cls(state)


# --- Progress ---
def report_progress(
    queue: ReviewQueue, tracker: MasteryTracker, card_index: Optional[int]
) -> ConquestProgress:
    total = queue.total_enqueued
    mastered = queue.mastered_count
    progress = ConquestProgress(
        mastered=mastered,
        total=total,
        remaining=len(queue),
        overall_percent=math.floor(mastered / total * 100) if total else 0,
        card_index=card_index,
        threshold=tracker.threshold,
    )

    stats = tracker.peek(card_index) if card_index is not None else None
    if stats is None or stats.attempts == 0:
        return progress

    k = stats.last_wrong_streak
    j = stats.post_wrong_success
    card_percent = math.floor(stats.progress_percent)
    progress.card_attempted = True
    progress.card_correct = stats.correct
    progress.card_total = stats.total
    progress.card_percent = card_percent
    if tracker.threshold:
        progress.confidence_of_threshold = math.floor(
            card_percent / tracker.threshold * 100
        )
    progress.streak = k
    progress.successes = j
    progress.steps_left = max(0, k + 1 - j) if k > 0 else 0
    return progress
