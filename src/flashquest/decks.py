import glob
import logging
import os
from typing import Any, Dict, List, Sequence, Tuple

import pandas as pd

from .errors import DeckSelectionError
from .models import DeckMetadata, Question

logger = logging.getLogger(__name__)

QUESTION_COLUMN = "Question"
ANSWERS_COLUMN = "Answers"


# --- Service Layer: Deck Management ---
class DeckManager:
    """Loads CSV decks and combines a selection of them into one question list."""

    def __init__(self, directory: str):
        self.directory = directory
        self.decks: List[Tuple[str, List[Question]]] = []
        self.load_all()

    def load_all(self):
        self.decks = []
        if not os.path.exists(self.directory):
            os.makedirs(self.directory)
            logger.warning(f"Created directory {self.directory}. Please add CSV files.")

        csv_files = sorted(glob.glob(os.path.join(self.directory, "*.csv")))
        for file_path in csv_files:
            file_name = os.path.splitext(os.path.basename(file_path))[0]
            try:
                df = pd.read_csv(
                    file_path, encoding="utf-8", dtype=str, keep_default_na=False
                )
            except Exception as e:
                logger.error(f"Failed to load {file_path}: {e}")
                continue

            if QUESTION_COLUMN not in df.columns or ANSWERS_COLUMN not in df.columns:
                logger.error(f"Skipping {file_name}: Missing columns.")
                continue

            questions = [
                Question(text=row[QUESTION_COLUMN], answers=row[ANSWERS_COLUMN])
                for row in df.to_dict("records")
            ]
            self.decks.append((file_name, questions))
            logger.info(f"Loaded {len(questions)} questions from {file_name}")

        if not self.decks:
            logger.warning("No CSV files found. Loading dummy data.")
            self.decks.append(
                (
                    "default_dummy",
                    [
                        Question(text="犬", answers="inu, dog"),
                        Question(text="猫", answers="neko, cat"),
                        Question(text="木", answers="ki, tree"),
                        Question(text="家", answers="ie, house"),
                        Question(text="水", answers="mizu, water"),
                    ],
                )
            )

    @property
    def deck_count(self) -> int:
        return len(self.decks)

    def get_decks(self) -> List[Dict[str, Any]]:
        return [
            {"id": i, "name": name, "count": len(questions)}
            for i, (name, questions) in enumerate(self.decks)
        ]

    def combine(
        self, deck_indices: Sequence[int]
    ) -> Tuple[List[Question], List[DeckMetadata]]:
        """Concatenate the selected decks, with a parallel provenance list."""
        if not deck_indices:
            raise DeckSelectionError("Select at least one deck")
        unknown = [i for i in deck_indices if not 0 <= i < len(self.decks)]
        if unknown:
            raise DeckSelectionError(f"Unknown deck indices: {unknown}")

        questions: List[Question] = []
        metadata: List[DeckMetadata] = []
        for index in deck_indices:
            name, deck = self.decks[index]
            for question in deck:
                questions.append(question.model_copy(update={"position": len(questions)}))
                metadata.append(DeckMetadata(deck_index=index, deck_name=name))
        return questions, metadata
