class Settings:
    PROJECT_NAME: str = "flashquest"
    DEBUG: bool = False
    LOG_DIR: str = "log"
    LOG_FILE: str = "flashquest.log"
    REDIS_URL: str = "redis://localhost:6379/0"
    DECK_DIR: str = "decks"
    SESSION_COOKIE_NAME: str = "review_session_id"
    SESSION_TIMEOUT_MINUTES: int = 120

    # Review
    BLOCK_SIZE_OPTIONS: tuple = (25, 50, 100, 250, 500, 1000)
    DEFAULT_BLOCK_SIZE_INDEX: int = 2
    CHOICE_COUNT: int = 4

    # Conquest
    CONQUEST_THRESHOLD: int = 75
    CONQUEST_SPACING: int = 2
    COUNTDOWN_TICKS: int = 3
    COUNTDOWN_INTERVAL: float = 1.0

    @property
    def DEFAULT_BLOCK_SIZE(self) -> int:
        return self.BLOCK_SIZE_OPTIONS[self.DEFAULT_BLOCK_SIZE_INDEX]


settings = Settings()
