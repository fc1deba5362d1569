import logging
import math
import random
from typing import Optional, Sequence

from pydantic import ValidationError

from . import matcher
from .config import settings
from .conquest import ConquestRun
from .decks import DeckManager
from .errors import (
    ConquestError,
    DeckSelectionError,
    InvalidSessionError,
    InvalidSettingError,
    NothingToReviewError,
)
from .models import (
    AnswerResult,
    ConquestProgress,
    ConquestSnapshot,
    Feedback,
    Outcome,
    QuestionView,
    Range,
    ReviewProgress,
    SessionData,
)
from .quiz import DistractorGenerator, distinct_answer_count, same_deck_indices
from .ranges import compute_ranges

logger = logging.getLogger(__name__)


class ReviewSession:
    """All review operations on one user's ``SessionData``.

    Normal review walks a range once; Conquest mode hands the range to a
    ``ConquestRun``. While a Conquest run is pending or active the deck,
    range and shuffle settings are locked.
    """

    def __init__(
        self,
        data: SessionData,
        rng: Optional[random.Random] = None,
        choice_count: int = settings.CHOICE_COUNT,
    ):
        self.data = data
        self.rng = rng or random.Random()
        self.distractors = DistractorGenerator(choice_count, self.rng)

    # --- State helpers ---
    @property
    def current_range(self) -> Range:
        return self.data.ranges[self.data.range_index]

    @property
    def conquest_active(self) -> bool:
        return self.data.conquest is not None

    def _run(self) -> ConquestRun:
        if self.data.conquest is None:
            raise ConquestError("Conquest mode is not active")
        return ConquestRun(self.data.conquest)

    def _require_unlocked(self):
        if self.data.conquest_locked:
            raise ConquestError("Not allowed during Conquest mode")

    def _reset_progress(self):
        self.data.correct_count = 0
        self.data.skipped_count = 0

    def _reset_ranges(self):
        self.data.ranges = compute_ranges(len(self.data.questions), self.data.block_size)
        self.data.range_index = 0
        self.data.current_index = self.data.ranges[0].start
        self.data.current_choices = []
        self._reset_progress()

    # --- Decks and ranges ---
    def load_decks(self, deck_manager: DeckManager, deck_indices: Sequence[int]):
        self._require_unlocked()
        self._load(deck_manager, deck_indices)
        if self.data.shuffle_enabled:
            self.shuffle_range()

    def next_deck(self, deck_manager: DeckManager):
        self._cycle_deck(deck_manager, 1)

    def prev_deck(self, deck_manager: DeckManager):
        self._cycle_deck(deck_manager, -1)

    def _cycle_deck(self, deck_manager: DeckManager, step: int):
        if len(self.data.deck_indices) > 1:
            raise DeckSelectionError("Multi-deck mode is active. Use the selector.")
        current = self.data.deck_indices[0] if self.data.deck_indices else 0
        self.load_decks(deck_manager, [(current + step) % deck_manager.deck_count])

    def reset_deck_selection(self, deck_manager: DeckManager):
        self.load_decks(deck_manager, [0])

    def _load(self, deck_manager: DeckManager, deck_indices: Sequence[int]):
        questions, metadata = deck_manager.combine(deck_indices)
        self.data.deck_indices = list(deck_indices)
        self.data.questions = questions
        self.data.metadata = metadata
        self._reset_ranges()
        logger.info(
            f"Active deck: {len(questions)} questions from decks {list(deck_indices)}"
        )

    def set_block_size(self, block_size: int):
        self._require_unlocked()
        if block_size not in settings.BLOCK_SIZE_OPTIONS:
            raise InvalidSettingError(
                f"Block size must be one of {settings.BLOCK_SIZE_OPTIONS}"
            )
        self.data.block_size = block_size
        self._reset_ranges()

    def select_range(self, range_index: int):
        self._require_unlocked()
        if not 0 <= range_index < len(self.data.ranges):
            raise IndexError(f"Range {range_index} out of bounds")
        self._go_to_range(range_index)

    def next_range(self):
        self.select_range((self.data.range_index + 1) % len(self.data.ranges))

    def prev_range(self):
        self.select_range((self.data.range_index - 1) % len(self.data.ranges))

    def _go_to_range(self, range_index: int):
        self.data.range_index = range_index
        self.data.current_index = self.current_range.start
        self._reset_progress()

    def restart_range(self):
        self._require_unlocked()
        self.data.current_index = self.current_range.start
        self._reset_progress()

    def review_skipped(self):
        """Replace the active deck with the unanswered or skipped questions of the range."""
        self._require_unlocked()
        r = self.current_range
        indices = [
            i
            for i in range(r.start, r.end + 1)
            if self.data.questions[i].outcome is not Outcome.CORRECT
        ]
        if not indices:
            raise NothingToReviewError("No skipped questions to review")

        self.data.questions = [self.data.questions[i] for i in indices]
        self.data.metadata = [self.data.metadata[i] for i in indices]
        self._reset_ranges()
        if self.data.choice_mode and not self.has_enough_choices():
            logger.info("Too few distinct answers left; switching to text answers")
            self.data.choice_mode = False

    # --- Shuffle ---
    def set_shuffle(self, enabled: bool):
        self._require_unlocked()
        self.data.shuffle_enabled = enabled
        if enabled:
            self.shuffle_range()
        else:
            self.restore_range()

    def shuffle_range(self):
        self._require_unlocked()
        r = self.current_range
        questions = self.data.questions[r.start : r.end + 1]
        metadata = self.data.metadata[r.start : r.end + 1]

        paired = list(zip(questions, metadata))
        self.rng.shuffle(paired)
        for offset, (question, meta) in enumerate(paired):
            self.data.questions[r.start + offset] = question
            self.data.metadata[r.start + offset] = meta

        self.data.current_index = r.start
        self._reset_progress()

    def restore_range(self):
        self._require_unlocked()
        self._restore_file_order()
        self.data.current_index = self.current_range.start
        self._reset_progress()

    def _restore_file_order(self):
        """Put the whole deck back in file order, whatever was shuffled."""
        paired = sorted(
            zip(self.data.questions, self.data.metadata), key=lambda p: p[0].position
        )
        self.data.questions = [question for question, _ in paired]
        self.data.metadata = [meta for _, meta in paired]

    # --- Presentation ---
    def has_enough_choices(self) -> bool:
        return distinct_answer_count(self.data.questions) >= self.distractors.choice_count

    def set_choice_mode(self, enabled: bool):
        self._require_unlocked()
        if enabled and not self.has_enough_choices():
            raise InvalidSettingError(
                f"Multiple choice needs at least {self.distractors.choice_count} "
                "distinct answers in the active deck"
            )
        self.data.choice_mode = enabled
        self.data.current_choices = []

    def _at_end_of_range(self) -> bool:
        r = self.current_range
        index = self.data.current_index
        return index > r.end or index >= len(self.data.questions)

    def present(self) -> QuestionView:
        if self.conquest_active:
            self.data.current_index = self._run().current_card
        elif self._at_end_of_range():
            return QuestionView(end_of_range=True)

        index = self.data.current_index
        question = self.data.questions[index]
        choices = []
        if self.data.choice_mode:
            if not self.has_enough_choices():
                raise InvalidSettingError("Not enough distinct answers for multiple choice")
            choices = self.distractors.generate(
                question.answers,
                self.data.questions,
                same_deck_indices(self.data.metadata, index),
            )
        self.data.current_choices = choices

        return QuestionView(
            index=index,
            text=question.text,
            deck_name=self.data.metadata[index].deck_name,
            choices=choices,
            conquest_active=self.conquest_active,
        )

    # --- Answers ---
    def submit_text(self, raw: str) -> AnswerResult:
        value = raw.strip()
        if self.conquest_active:
            index = self.data.current_index
            question = self.data.questions[index]
            correct = bool(value) and matcher.is_correct(value, question.answers)
            return self._record_conquest(index, correct, value)

        if self._at_end_of_range():
            return AnswerResult(feedback=Feedback.IGNORED, user_answer=value)
        if not value:
            return self._skip()
        question = self.data.questions[self.data.current_index]
        return self._answer(matcher.is_correct(value, question.answers), value)

    def submit_choice(self, raw: str) -> AnswerResult:
        value = raw.strip()
        if not self.conquest_active and self._at_end_of_range():
            return AnswerResult(feedback=Feedback.IGNORED, user_answer=value)

        if not value:
            if self.conquest_active:
                return self._record_conquest(self.data.current_index, False, value)
            return self._skip()

        selected = self._selected_choice(value)
        if selected is None:
            return AnswerResult(feedback=Feedback.IGNORED, user_answer=value)

        question = self.data.questions[self.data.current_index]
        correct = matcher.matches_choice(selected, question.answers)
        if self.conquest_active:
            return self._record_conquest(self.data.current_index, correct, selected)
        return self._answer(correct, selected)

    def _selected_choice(self, value: str) -> Optional[str]:
        try:
            choice_index = int(value) - 1
        except ValueError:
            return None
        if not 0 <= choice_index < len(self.data.current_choices):
            return None
        return self.data.current_choices[choice_index]

    def _skip(self) -> AnswerResult:
        index = self.data.current_index
        self.data.questions[index].outcome = Outcome.SKIPPED
        self.data.skipped_count += 1
        self.data.current_index += 1
        return AnswerResult(
            feedback=Feedback.SKIPPED,
            card_index=index,
            correct_answer=self.data.questions[index].answers,
        )

    def _answer(self, correct: bool, user_answer: str) -> AnswerResult:
        index = self.data.current_index
        question = self.data.questions[index]
        if not correct:
            return AnswerResult(
                feedback=Feedback.INCORRECT, card_index=index, user_answer=user_answer
            )
        question.outcome = Outcome.CORRECT
        self.data.correct_count += 1
        self.data.current_index += 1
        return AnswerResult(
            feedback=Feedback.CORRECT,
            card_index=index,
            user_answer=user_answer,
            correct_answer=question.answers,
        )

    def _record_conquest(self, index: int, correct: bool, user_answer: str) -> AnswerResult:
        run = self._run()
        action = run.record_answer(index, correct)
        if action.is_retire:
            feedback = Feedback.MASTERED
        elif correct:
            feedback = Feedback.REQUEUED
        else:
            feedback = Feedback.INCORRECT

        result = AnswerResult(
            feedback=feedback,
            card_index=index,
            user_answer=user_answer,
            correct_answer=self.data.questions[index].answers,
            requeue_position=action.position,
        )
        self.data.current_choices = []
        if run.is_complete:
            result.conquest_complete = True
            self.stop_conquest()
        else:
            self.data.current_index = run.current_card
        return result

    # --- Progress ---
    def review_progress(self) -> ReviewProgress:
        r = self.current_range
        total = r.size
        answered = min(max(self.data.current_index - r.start, 0), total)
        return ReviewProgress(
            correct=self.data.correct_count,
            skipped=self.data.skipped_count,
            answered=answered,
            total_in_range=total,
            percent=math.floor(answered / total * 100) if total else 0,
        )

    def conquest_progress(self) -> ConquestProgress:
        return self._run().progress()

    # --- Conquest lifecycle ---
    def configure_conquest(
        self, threshold: Optional[int] = None, spacing: Optional[int] = None
    ):
        self._require_unlocked()
        if threshold is not None:
            if not 0 <= threshold <= 100:
                raise InvalidSettingError("Threshold must be between 0 and 100")
            self.data.conquest_threshold = threshold
        if spacing is not None:
            if spacing < 0:
                raise InvalidSettingError("Spacing must not be negative")
            self.data.conquest_spacing = spacing

    def begin_countdown(self):
        """Lock the session while the pre-run countdown ticks."""
        self._require_unlocked()
        self.data.conquest_locked = True

    def start_conquest(self) -> bool:
        """Build the run for the current range. Returns False if it is already complete."""
        if not self.data.conquest_locked or self.conquest_active:
            raise ConquestError("No pending Conquest countdown")

        # Queue indices refer to the unshuffled deck so snapshots stay valid.
        self._restore_file_order()
        r = self.current_range
        run = ConquestRun.start(
            range(r.start, r.end + 1),
            threshold=self.data.conquest_threshold,
            spacing=self.data.conquest_spacing,
            shuffle=self.data.shuffle_enabled,
            rng=self.rng,
        )
        if run.is_complete:
            logger.info("Conquest run complete: range is empty")
            self.stop_conquest()
            return False

        self.data.conquest = run.state
        self.data.current_index = run.current_card
        self.data.current_choices = []
        return True

    def stop_conquest(self):
        self.data.conquest = None
        self.data.conquest_locked = False
        self.data.current_choices = []
        self.data.current_index = self.current_range.start
        self._reset_progress()
        # The run left the deck in file order.
        if self.data.shuffle_enabled:
            self.shuffle_range()

    def export_snapshot(self, name: str) -> ConquestSnapshot:
        """Snapshot the active run and end it."""
        snapshot = self._run().snapshot(
            name, self.data.deck_indices, self.data.range_index
        )
        self.stop_conquest()
        logger.info(f"Conquest session {name!r} exported")
        return snapshot

    def import_snapshot(self, raw: str, deck_manager: DeckManager):
        """Replace the session with an exported run, or change nothing on error."""
        self._require_unlocked()
        try:
            snapshot = ConquestSnapshot.model_validate_json(raw)
        except ValidationError as e:
            raise InvalidSessionError(f"Invalid session file: {e}") from e

        candidate = ReviewSession(
            self.data.model_copy(deep=True), self.rng, self.distractors.choice_count
        )
        candidate.data.conquest = None
        candidate.data.conquest_locked = False
        try:
            candidate._load(deck_manager, snapshot.deck_indices)
        except DeckSelectionError as e:
            raise InvalidSessionError(f"Invalid session file: {e}") from e

        if not 0 <= snapshot.range_index < len(candidate.data.ranges):
            raise InvalidSessionError(f"Unknown range {snapshot.range_index}")
        candidate._go_to_range(snapshot.range_index)

        r = candidate.current_range
        outside = [i for i in set(snapshot.queue) | set(snapshot.stats) if i not in r]
        if outside:
            raise InvalidSessionError(f"Card indices outside the range: {sorted(outside)}")
        if len(set(snapshot.queue)) != len(snapshot.queue):
            raise InvalidSessionError("Duplicate card indices in queue")
        if not set(snapshot.queue) <= set(snapshot.stats):
            raise InvalidSessionError("Queued cards without statistics")
        if not 0 <= snapshot.threshold <= 100 or snapshot.spacing < 0:
            raise InvalidSessionError("Invalid threshold or spacing")

        run = ConquestRun.from_snapshot(snapshot)
        data = candidate.data
        data.conquest_threshold = snapshot.threshold
        data.conquest_spacing = snapshot.spacing
        data.shuffle_enabled = snapshot.shuffle_snapshot
        if not run.is_complete:
            data.conquest = run.state
            data.conquest_locked = True
            data.current_index = run.current_card

        self.data = data
        logger.info(
            f"Conquest session {snapshot.name!r} imported: "
            f"{len(snapshot.queue)} of {len(snapshot.stats)} cards remaining"
        )
