import random
from typing import List, Optional, Sequence

from .config import settings
from .models import DeckMetadata, Question

MAX_POOL_ATTEMPTS = 100


def same_deck_indices(metadata: Sequence[DeckMetadata], index: int) -> List[int]:
    """Indices of every question coming from the same deck as ``index``."""
    deck_index = metadata[index].deck_index
    return [i for i, meta in enumerate(metadata) if meta.deck_index == deck_index]


def distinct_answer_count(deck: Sequence[Question]) -> int:
    return len({q.answers for q in deck if q.answers})


# --- Multiple choice: distractor generation ---
class DistractorGenerator:
    """Builds the multiple-choice set for a card.

    Distractors come from the card's own deck when that deck holds at least
    ``choice_count`` questions, so that choices from a different deck do not
    give the answer away. Callers must make sure the deck contains at least
    ``choice_count`` distinct answers, otherwise ``generate`` never returns.
    """

    def __init__(
        self,
        choice_count: int = settings.CHOICE_COUNT,
        rng: Optional[random.Random] = None,
    ):
        self.choice_count = choice_count
        self.rng = rng or random.Random()

    def generate(
        self,
        correct_answer: str,
        deck: Sequence[Question],
        same_deck: Sequence[int],
    ) -> List[str]:
        choices = [correct_answer]

        pool = same_deck if len(same_deck) >= self.choice_count else range(len(deck))
        attempts = 0
        while len(choices) < self.choice_count and attempts < MAX_POOL_ATTEMPTS:
            self._try_add(choices, deck[self.rng.choice(pool)].answers, correct_answer)
            attempts += 1

        while len(choices) < self.choice_count:
            index = self.rng.randrange(len(deck))
            self._try_add(choices, deck[index].answers, correct_answer)

        self.rng.shuffle(choices)
        return choices

    @staticmethod
    def _try_add(choices: List[str], candidate: str, correct_answer: str) -> None:
        if candidate and candidate != correct_answer and candidate not in choices:
            choices.append(candidate)
