from datetime import datetime, timedelta
from typing import Optional

import redis

from .config import settings
from .models import SessionData

redis_client = redis.from_url(settings.REDIS_URL, decode_responses=True)


def get_redis():
    return redis_client


class SessionStore:
    """Keeps ``SessionData`` as JSON in Redis, expiring idle sessions."""

    def __init__(self, client, timeout_minutes: int = settings.SESSION_TIMEOUT_MINUTES):
        self.client = client
        self.timeout = timedelta(minutes=timeout_minutes)

    def load(self, session_id: str) -> Optional[SessionData]:
        raw = self.client.get(session_id)
        if not raw:
            return None
        session = SessionData.model_validate_json(raw)
        if datetime.now() - session.created_at > self.timeout:
            self.client.delete(session_id)
            return None
        return session

    def save(self, session_id: str, session: SessionData):
        self.client.set(session_id, session.model_dump_json(), ex=self.timeout)

    def delete(self, session_id: str):
        self.client.delete(session_id)
