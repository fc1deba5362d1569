class FlashquestError(Exception):
    """Base class for errors surfaced to the API caller."""


class InvalidSessionError(FlashquestError):
    """Raised when a Conquest snapshot cannot be imported."""


class ConquestError(FlashquestError):
    """Raised when an operation is not allowed in the current Conquest state."""


class DeckSelectionError(FlashquestError):
    """Raised when a deck selection is empty or names unknown decks."""


class NothingToReviewError(FlashquestError):
    """Raised when the current range has no skipped questions left."""


class InvalidSettingError(FlashquestError):
    """Raised for a configuration value outside its allowed set."""
