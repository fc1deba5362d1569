"""
Shared fixtures: small CSV decks on disk, seeded randomness and an
in-memory stand-in for the Redis client.
"""
import random

import pytest

from flashquest.decks import DeckManager
from flashquest.models import DeckMetadata, Question, SessionData
from flashquest.review import ReviewSession

ANIMALS = [
    ("犬", "inu, dog"),
    ("猫", "neko, cat"),
    ("鳥", "tori, bird"),
    ("魚", "sakana, fish"),
    ("馬", "uma, horse"),
    ("牛", "ushi, cow"),
]

NUMBERS = [
    ("一", "ichi, one"),
    ("二", "ni, two"),
    ("三", "san, three"),
]


def write_deck(path, rows):
    lines = ["Question,Answers"]
    lines += [f'{question},"{answers}"' for question, answers in rows]
    path.write_text("\n".join(lines) + "\n", encoding="utf-8")


class FakeRedis:
    """Dictionary-backed replacement for the few Redis calls the store makes."""

    def __init__(self):
        self.data = {}

    def get(self, key):
        return self.data.get(key)

    def set(self, key, value, ex=None):
        self.data[key] = value

    def delete(self, key):
        self.data.pop(key, None)


@pytest.fixture
def deck_dir(tmp_path):
    write_deck(tmp_path / "animals.csv", ANIMALS)
    write_deck(tmp_path / "numbers.csv", NUMBERS)
    return tmp_path


@pytest.fixture
def deck_manager(deck_dir):
    return DeckManager(str(deck_dir))


@pytest.fixture
def rng():
    return random.Random(1234)


@pytest.fixture
def questions():
    return [Question(text=q, answers=a) for q, a in ANIMALS + NUMBERS]


@pytest.fixture
def metadata():
    return [DeckMetadata(deck_index=0, deck_name="animals") for _ in ANIMALS] + [
        DeckMetadata(deck_index=1, deck_name="numbers") for _ in NUMBERS
    ]


@pytest.fixture
def session(deck_manager, rng):
    """An unshuffled session over the animals deck."""
    review = ReviewSession(SessionData(shuffle_enabled=False), rng=rng)
    review.load_decks(deck_manager, [0])
    review.set_block_size(25)
    return review


@pytest.fixture
def fake_redis():
    return FakeRedis()
