from datetime import datetime
from enum import Enum
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from .config import settings


# --- Deck ---
class Outcome(str, Enum):
    UNSET = "unset"
    CORRECT = "correct"
    SKIPPED = "skipped"


class Question(BaseModel):
    text: str
    answers: str
    outcome: Outcome = Outcome.UNSET
    # Position in the combined deck, in file order.
    position: int = 0

    @property
    def accepted_answers(self) -> List[str]:
        """The answers field split into its individual candidates."""
        return [a.strip() for a in self.answers.replace('"', "").split(",")]


class DeckMetadata(BaseModel):
    deck_index: int
    deck_name: str


class Range(BaseModel):
    label: str
    start: int
    end: int

    @property
    def size(self) -> int:
        return self.end - self.start + 1

    def __contains__(self, index: int) -> bool:
        return self.start <= index <= self.end


# --- Conquest ---
class CardStats(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    attempts: int = Field(default=0, ge=0)
    correct: int = Field(default=0, ge=0)
    total: int = Field(default=0, ge=0)
    consecutive_wrong: int = Field(default=0, ge=0)
    last_wrong_streak: int = Field(default=0, ge=0)
    post_wrong_success: int = Field(default=0, ge=0)
    progress_percent: float = Field(default=0, ge=0, le=100)


class ConquestState(BaseModel):
    queue: List[int] = []
    stats: Dict[int, CardStats] = {}
    threshold: int = settings.CONQUEST_THRESHOLD
    spacing: int = settings.CONQUEST_SPACING
    shuffle_snapshot: bool = False


class ConquestSnapshot(BaseModel):
    """Exported Conquest run, in the JSON shape users save to disk."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    name: str
    timestamp: datetime
    queue: List[int]
    stats: Dict[int, CardStats]
    threshold: int
    spacing: int
    deck_indices: List[int]
    range_index: int
    shuffle_snapshot: bool = False


# --- Session ---
class SessionData(BaseModel):
    deck_indices: List[int] = []
    questions: List[Question] = []
    metadata: List[DeckMetadata] = []
    block_size: int = settings.DEFAULT_BLOCK_SIZE
    ranges: List[Range] = []
    range_index: int = 0
    current_index: int = 0
    choice_mode: bool = False
    shuffle_enabled: bool = True
    correct_count: int = 0
    skipped_count: int = 0
    current_choices: List[str] = []
    conquest_threshold: int = settings.CONQUEST_THRESHOLD
    conquest_spacing: int = settings.CONQUEST_SPACING
    conquest_locked: bool = False
    conquest: Optional[ConquestState] = None
    created_at: datetime = Field(default_factory=datetime.now)


# --- Views ---
class Feedback(str, Enum):
    CORRECT = "correct"
    INCORRECT = "incorrect"
    SKIPPED = "skipped"
    MASTERED = "mastered"
    REQUEUED = "requeued"
    IGNORED = "ignored"


class QuestionView(BaseModel):
    index: Optional[int] = None
    text: Optional[str] = None
    deck_name: Optional[str] = None
    choices: List[str] = []
    end_of_range: bool = False
    conquest_active: bool = False
    conquest_complete: bool = False


class AnswerResult(BaseModel):
    feedback: Feedback
    card_index: Optional[int] = None
    user_answer: str = ""
    correct_answer: Optional[str] = None
    requeue_position: Optional[int] = None
    conquest_complete: bool = False


class ReviewProgress(BaseModel):
    correct: int
    skipped: int
    answered: int
    total_in_range: int
    percent: int


class ConquestProgress(BaseModel):
    mastered: int
    total: int
    remaining: int
    overall_percent: int
    card_index: Optional[int] = None
    card_attempted: bool = False
    card_correct: int = 0
    card_total: int = 0
    card_percent: int = 0
    threshold: int
    confidence_of_threshold: int = 0
    streak: int = 0
    successes: int = 0
    steps_left: int = 0
