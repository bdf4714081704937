import os
import threading
from typing import Dict, List, Optional
from fastapi import BackgroundTasks, Depends, FastAPI, Header, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pymongo.errors import PyMongoError

from catalog import LESSONS, public_lesson
from database import db, UserRecordStore
from errors import (
    AccountCreationError,
    InvalidCredentials,
    InvalidSelection,
    InvalidTransition,
    QuizError,
)
from identity import MongoIdentityProvider
from logging_config import setup_logging
from progression import (
    PersistenceTask,
    advance_label,
    advance_session,
    completed_count,
    compute_progress_fraction,
    current_lesson,
    describe_result,
    load_stats,
    select_option,
    submit_selection,
)
from schemas import (
    AuthOut,
    Credentials,
    FeedbackOut,
    Identity,
    LessonOut,
    ProgressOut,
    SelectIn,
    SessionOut,
    SessionState,
    StatsOut,
    UserStats,
)

logger = setup_logging()

app = FastAPI(title="LinguaQuest API", version="1.0.0")

app.add_middleware(
    CORSMiddleware,
    allow_origins=os.getenv("CORS_ORIGINS", "*").split(","),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# In-memory, per-user view state. STATS is updated before the store write
# finishes, so it can run ahead of the stored document.
SESSIONS: Dict[str, SessionState] = {}
STATS: Dict[str, UserStats] = {}
PENDING_WRITES: Dict[str, PersistenceTask] = {}

_store: Optional[UserRecordStore] = None
_identity: Optional[MongoIdentityProvider] = None
# sync routes run in a threadpool
_init_lock = threading.Lock()

ERROR_STATUS = {
    InvalidCredentials: 401,
    AccountCreationError: 400,
    InvalidSelection: 400,
    InvalidTransition: 409,
}


@app.exception_handler(QuizError)
async def quiz_error_handler(request: Request, exc: QuizError):
    return JSONResponse(status_code=ERROR_STATUS.get(type(exc), 500), content={"detail": exc.message})


def get_store() -> UserRecordStore:
    global _store
    if db is None:
        raise HTTPException(500, "Database not configured")
    with _init_lock:
        if _store is None:
            _store = UserRecordStore(db)
    return _store


def get_identity() -> MongoIdentityProvider:
    global _identity
    if db is None:
        raise HTTPException(500, "Database not configured")
    with _init_lock:
        if _identity is None:
            _identity = MongoIdentityProvider(db)
            _identity.subscribe(on_auth_change)
    return _identity


def on_auth_change(user_id: str, identity: Optional[Identity]):
    if identity is None:
        SESSIONS.pop(user_id, None)
        STATS.pop(user_id, None)
        PENDING_WRITES.pop(user_id, None)
        return
    STATS[user_id] = load_stats(get_store(), user_id)
    SESSIONS[user_id] = SessionState()


def current_player(
    x_session_token: Optional[str] = Header(None),
    identity: MongoIdentityProvider = Depends(get_identity),
    store: UserRecordStore = Depends(get_store),
) -> Identity:
    user = identity.current_user(x_session_token)
    if user is None:
        raise HTTPException(401, "Not signed in")
    # Sessions do not survive a restart; rebuild them from the store.
    if user.user_id not in STATS:
        STATS[user.user_id] = load_stats(store, user.user_id)
    SESSIONS.setdefault(user.user_id, SessionState())
    return user


def progress_of(stats: UserStats) -> ProgressOut:
    return ProgressOut(
        completed=completed_count(stats),
        total=len(LESSONS),
        fraction=compute_progress_fraction(stats),
    )


def session_view(session: SessionState, stats: UserStats) -> SessionOut:
    feedback = None
    if session.result is not None:
        headline, detail = describe_result(session.result)
        feedback = FeedbackOut(headline=headline, detail=detail)
    return SessionOut(
        phase=session.phase,
        level_index=session.level_index,
        level_number=session.level_index + 1,
        lesson=public_lesson(session.level_index, current_lesson(session)),
        selected_index=session.selected_index,
        result=session.result,
        feedback=feedback,
        advance_label=advance_label(session.level_index),
        stats=stats,
        progress=progress_of(stats),
    )


@app.get("/")
def read_root():
    return {"message": "LinguaQuest Backend Running"}


@app.get("/test")
def test_database():
    """Report whether Mongo is reachable and which quiz collections exist."""
    if db is None:
        return {"database": "not configured", "collections": []}
    try:
        names = set(db.list_collection_names())
    except PyMongoError as e:
        logger.error(f"Database check failed: {e}")
        return {"database": "unreachable", "collections": []}
    wanted = [UserRecordStore.collection_name, MongoIdentityProvider.collection_name]
    return {"database": "connected", "collections": [name for name in wanted if name in names]}


# Auth
@app.post("/auth/signup", response_model=AuthOut)
def sign_up(payload: Credentials, identity: MongoIdentityProvider = Depends(get_identity)):
    user, token = identity.sign_up(payload.email, payload.password)
    return AuthOut(token=token, user=user)


@app.post("/auth/signin", response_model=AuthOut)
def sign_in(payload: Credentials, identity: MongoIdentityProvider = Depends(get_identity)):
    user, token = identity.sign_in(payload.email, payload.password)
    return AuthOut(token=token, user=user)


@app.post("/auth/signout")
def sign_out(x_session_token: Optional[str] = Header(None),
             identity: MongoIdentityProvider = Depends(get_identity)):
    if x_session_token:
        identity.sign_out(x_session_token)
    return {"status": "ok"}


@app.get("/auth/me", response_model=Identity)
def me(player: Identity = Depends(current_player)):
    return player


# Content
@app.get("/lessons", response_model=List[LessonOut])
def list_lessons():
    return [public_lesson(i, lesson) for i, lesson in enumerate(LESSONS)]


# Stats
@app.get("/stats", response_model=StatsOut)
def get_stats(player: Identity = Depends(current_player)):
    stats = STATS[player.user_id]
    return StatsOut(stats=stats, progress=progress_of(stats))


@app.post("/stats/sync")
def sync_stats(player: Identity = Depends(current_player), store: UserRecordStore = Depends(get_store)):
    task = PENDING_WRITES.get(player.user_id)
    if task is None or task.status == "done":
        return {"status": "up_to_date"}
    task.run(store)
    return {"status": task.status, "attempts": task.attempts, "error": task.error}


# Lesson loop
@app.get("/session", response_model=SessionOut)
def get_session(player: Identity = Depends(current_player)):
    return session_view(SESSIONS[player.user_id], STATS[player.user_id])


@app.post("/session/select", response_model=SessionOut)
def select(payload: SelectIn, player: Identity = Depends(current_player)):
    session = select_option(SESSIONS[player.user_id], payload.option_index)
    SESSIONS[player.user_id] = session
    return session_view(session, STATS[player.user_id])


@app.post("/session/submit", response_model=SessionOut)
def submit_answer(background_tasks: BackgroundTasks,
                  player: Identity = Depends(current_player),
                  store: UserRecordStore = Depends(get_store)):
    uid = player.user_id
    if SESSIONS[uid].phase == "showing_result":
        raise InvalidTransition("Answer already checked; move to the next level")
    session, submission = submit_selection(SESSIONS[uid], STATS[uid], user_id=uid)
    SESSIONS[uid] = session
    STATS[uid] = submission.stats
    PENDING_WRITES[uid] = submission.persistence
    background_tasks.add_task(submission.persistence.run, store)
    return session_view(session, submission.stats)


@app.post("/session/advance", response_model=SessionOut)
def next_level(player: Identity = Depends(current_player)):
    session = advance_session(SESSIONS[player.user_id])
    SESSIONS[player.user_id] = session
    return session_view(session, STATS[player.user_id])


if __name__ == "__main__":
    import uvicorn
    port = int(os.getenv("PORT", 8000))
    uvicorn.run(app, host="0.0.0.0", port=port)
