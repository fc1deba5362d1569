import logging
import os
import time
import uuid
from contextlib import asynccontextmanager
from logging.handlers import RotatingFileHandler
from typing import Dict, List, Optional

import uvicorn
from fastapi import Cookie, Depends, FastAPI, Request, Response
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from .config import settings
from .countdown import CountdownTimer
from .decks import DeckManager
from .errors import FlashquestError
from .models import AnswerResult, SessionData
from .redis_session import SessionStore, get_redis
from .review import ReviewSession

# --- Logging Setup ---
logger = logging.getLogger("flashquest")
logger.setLevel(logging.INFO)

if not os.path.exists(settings.LOG_DIR):
    os.makedirs(settings.LOG_DIR)
log_path = os.path.join(settings.LOG_DIR, settings.LOG_FILE)
file_handler = RotatingFileHandler(log_path, maxBytes=5_000_000, backupCount=3)
file_handler.setFormatter(
    logging.Formatter("%(asctime)s - %(levelname)s - %(message)s")
)
logger.addHandler(file_handler)


# --- Lifecycle ---
@asynccontextmanager
async def lifespan(app: FastAPI):
    deck_manager.load_all()
    yield
    for timer in countdowns.values():
        timer.cancel()


app = FastAPI(
    title=settings.PROJECT_NAME,
    debug=settings.DEBUG,
    lifespan=lifespan,
)

deck_manager = DeckManager(settings.DECK_DIR)

# Pending Conquest countdowns, by session id.
countdowns: Dict[str, CountdownTimer] = {}


@app.exception_handler(FlashquestError)
async def flashquest_error_handler(request: Request, exc: FlashquestError):
    return JSONResponse({"error": str(exc)}, status_code=400)


# --- Request bodies ---
class DeckSelection(BaseModel):
    deck_indices: List[int] = [0]


class AnswerSubmission(BaseModel):
    answer: str = ""


class SettingsUpdate(BaseModel):
    block_size: Optional[int] = None
    choice_mode: Optional[bool] = None
    shuffle: Optional[bool] = None
    threshold: Optional[int] = None
    spacing: Optional[int] = None


class ExportRequest(BaseModel):
    name: str


# --- Dependencies ---
def get_session_id(
    session_id: Optional[str] = Cookie(None, alias=settings.SESSION_COOKIE_NAME),
) -> Optional[str]:
    return session_id


def get_store() -> SessionStore:
    return SessionStore(get_redis())


def get_deck_manager() -> DeckManager:
    return deck_manager


def get_active_session(
    session_id: str = Depends(get_session_id),
    store: SessionStore = Depends(get_store),
) -> Optional[ReviewSession]:
    if not session_id:
        return None
    session_data = store.load(session_id)
    if not session_data:
        return None
    return ReviewSession(session_data)


def session_invalid() -> JSONResponse:
    return JSONResponse({"error": "Session invalid"}, status_code=401)


def progress_payload(session: ReviewSession) -> dict:
    return {
        "review": session.review_progress().model_dump(),
        "conquest": (
            session.conquest_progress().model_dump()
            if session.conquest_active
            else None
        ),
    }


# --- Routes ---
@app.get("/api/decks")
def get_decks(decks: DeckManager = Depends(get_deck_manager)):
    return decks.get_decks()


@app.post("/api/session")
def start_review_session(
    selection: DeckSelection,
    response: Response,
    store: SessionStore = Depends(get_store),
    decks: DeckManager = Depends(get_deck_manager),
):
    session = ReviewSession(SessionData())
    session.load_decks(decks, selection.deck_indices)

    new_id = str(uuid.uuid4())
    view = session.present()
    store.save(new_id, session.data)
    logger.info(f"New session: {new_id} [Decks: {selection.deck_indices}]")

    response.set_cookie(
        key=settings.SESSION_COOKIE_NAME,
        value=new_id,
        httponly=True,
        samesite="Lax",
    )
    return {"question": view.model_dump(), "ranges": session.data.ranges}


@app.get("/api/question")
def get_question(
    session_id: str = Depends(get_session_id),
    session: ReviewSession = Depends(get_active_session),
    store: SessionStore = Depends(get_store),
):
    if not session:
        return session_invalid()
    view = session.present()
    store.save(session_id, session.data)
    return view


@app.post("/api/answer", response_model=AnswerResult)
def submit_answer(
    submission: AnswerSubmission,
    session_id: str = Depends(get_session_id),
    session: ReviewSession = Depends(get_active_session),
    store: SessionStore = Depends(get_store),
):
    if not session:
        return session_invalid()
    if session.data.choice_mode:
        result = session.submit_choice(submission.answer)
    else:
        result = session.submit_text(submission.answer)
    store.save(session_id, session.data)
    return result


@app.get("/api/progress")
def get_progress(session: ReviewSession = Depends(get_active_session)):
    if not session:
        return session_invalid()
    return progress_payload(session)


@app.post("/api/range/{action}")
def change_range(
    action: str,
    session_id: str = Depends(get_session_id),
    session: ReviewSession = Depends(get_active_session),
    store: SessionStore = Depends(get_store),
):
    if not session:
        return session_invalid()
    handlers = {
        "next": session.next_range,
        "prev": session.prev_range,
        "restart": session.restart_range,
        "review-skipped": session.review_skipped,
    }
    if action not in handlers:
        return JSONResponse({"error": f"Unknown action {action}"}, status_code=404)
    handlers[action]()
    view = session.present()
    store.save(session_id, session.data)
    return {
        "range": session.current_range,
        "ranges": session.data.ranges,
        "question": view.model_dump(),
    }


@app.post("/api/deck/{action}")
def change_deck(
    action: str,
    session_id: str = Depends(get_session_id),
    session: ReviewSession = Depends(get_active_session),
    store: SessionStore = Depends(get_store),
    decks: DeckManager = Depends(get_deck_manager),
):
    if not session:
        return session_invalid()
    handlers = {
        "next": session.next_deck,
        "prev": session.prev_deck,
        "reset": session.reset_deck_selection,
    }
    if action not in handlers:
        return JSONResponse({"error": f"Unknown action {action}"}, status_code=404)
    handlers[action](decks)
    view = session.present()
    store.save(session_id, session.data)
    return {
        "deck_indices": session.data.deck_indices,
        "ranges": session.data.ranges,
        "question": view.model_dump(),
    }


@app.post("/api/settings")
def update_settings(
    update: SettingsUpdate,
    session_id: str = Depends(get_session_id),
    session: ReviewSession = Depends(get_active_session),
    store: SessionStore = Depends(get_store),
):
    if not session:
        return session_invalid()
    if update.block_size is not None:
        session.set_block_size(update.block_size)
    if update.shuffle is not None:
        session.set_shuffle(update.shuffle)
    if update.choice_mode is not None:
        session.set_choice_mode(update.choice_mode)
    if update.threshold is not None or update.spacing is not None:
        session.configure_conquest(update.threshold, update.spacing)
    store.save(session_id, session.data)
    return {
        "block_size": session.data.block_size,
        "choice_mode": session.data.choice_mode,
        "shuffle": session.data.shuffle_enabled,
        "threshold": session.data.conquest_threshold,
        "spacing": session.data.conquest_spacing,
    }


@app.post("/api/conquest")
async def start_conquest(
    session_id: str = Depends(get_session_id),
    session: ReviewSession = Depends(get_active_session),
    store: SessionStore = Depends(get_store),
):
    if not session:
        return session_invalid()
    session.begin_countdown()
    store.save(session_id, session.data)

    timer = CountdownTimer(settings.COUNTDOWN_TICKS, settings.COUNTDOWN_INTERVAL)
    countdowns[session_id] = timer
    try:
        fired = await timer.run()
    finally:
        countdowns.pop(session_id, None)
    if not fired:
        return {"status": "cancelled"}

    # Reload: the countdown may have been observed or cancelled meanwhile.
    data = store.load(session_id)
    if not data or not data.conquest_locked:
        return {"status": "cancelled"}
    session = ReviewSession(data)
    started = session.start_conquest()
    view = session.present() if started else None
    store.save(session_id, session.data)
    return {
        "status": "started" if started else "complete",
        "question": view.model_dump() if view else None,
        "progress": progress_payload(session),
    }


@app.get("/api/conquest")
def get_conquest(
    session_id: str = Depends(get_session_id),
    session: ReviewSession = Depends(get_active_session),
):
    if not session:
        return session_invalid()
    timer = countdowns.get(session_id)
    return {
        "countdown": (
            {"state": timer.state.value, "remaining": timer.remaining}
            if timer
            else None
        ),
        "active": session.conquest_active,
        "progress": (
            session.conquest_progress().model_dump()
            if session.conquest_active
            else None
        ),
    }


@app.delete("/api/conquest")
def stop_conquest(
    session_id: str = Depends(get_session_id),
    session: ReviewSession = Depends(get_active_session),
    store: SessionStore = Depends(get_store),
):
    if not session:
        return session_invalid()
    timer = countdowns.get(session_id)
    if timer:
        timer.cancel()
    session.stop_conquest()
    store.save(session_id, session.data)
    logger.info(f"Conquest mode disabled for session {session_id}")
    return {"status": "stopped"}


@app.post("/api/conquest/export")
def export_conquest(
    request_body: ExportRequest,
    session_id: str = Depends(get_session_id),
    session: ReviewSession = Depends(get_active_session),
    store: SessionStore = Depends(get_store),
):
    if not session:
        return session_invalid()
    snapshot = session.export_snapshot(request_body.name)
    store.save(session_id, session.data)
    filename = f"conquest_{request_body.name}_{int(time.time() * 1000)}.json"
    return JSONResponse(
        snapshot.model_dump(mode="json", by_alias=True),
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


@app.post("/api/conquest/import")
async def import_conquest(
    request: Request,
    session_id: str = Depends(get_session_id),
    session: ReviewSession = Depends(get_active_session),
    store: SessionStore = Depends(get_store),
    decks: DeckManager = Depends(get_deck_manager),
):
    if not session:
        return session_invalid()
    raw = await request.body()
    session.import_snapshot(raw, decks)
    store.save(session_id, session.data)
    view = session.present() if session.conquest_active else None
    return {
        "question": view.model_dump() if view else None,
        "progress": progress_payload(session),
    }


@app.post("/api/reset")
def reset_session(
    response: Response,
    session_id: str = Depends(get_session_id),
    store: SessionStore = Depends(get_store),
):
    if session_id:
        timer = countdowns.pop(session_id, None)
        if timer:
            timer.cancel()
        store.delete(session_id)
    response.delete_cookie(settings.SESSION_COOKIE_NAME)
    return {"status": "success"}


if __name__ == "__main__":
    uvicorn.run("flashquest.main:app", host="0.0.0.0", port=8000, reload=settings.DEBUG)
