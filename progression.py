"""
Lesson progression and scoring.

Everything here is a pure function of its arguments except
PersistenceTask.run, which talks to the store, and load_stats.

A session moves answering -> selected -> showing_result, then advance()
puts it back to answering on the next level (wrapping to level 0 after the
last one). Wrong answers still advance and lives may go below zero; nothing
ends the game.
"""
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import NamedTuple, Optional, Sequence, Tuple

from catalog import LESSONS
from errors import InvalidSelection, InvalidTransition, PersistenceReadFailure, PersistenceWriteFailure
from schemas import LessonItem, LevelRecord, SessionState, SubmissionResult, UserStats, utcnow

logger = logging.getLogger(__name__)

STARTING_LIVES = 5


def new_stats(now: Optional[datetime] = None) -> UserStats:
    return UserStats(
        star_count=0,
        lives_remaining=STARTING_LIVES,
        level_progress={},
        last_activity_at=now or utcnow(),
    )


def lesson_at(level_index: int, catalog: Sequence[LessonItem] = LESSONS) -> LessonItem:
    if not 0 <= level_index < len(catalog):
        raise InvalidSelection(f"No level at index {level_index}")
    return catalog[level_index]


def current_lesson(session: SessionState, catalog: Sequence[LessonItem] = LESSONS) -> LessonItem:
    return lesson_at(session.level_index, catalog)


def select_option(session: SessionState, option_index: int,
                  catalog: Sequence[LessonItem] = LESSONS) -> SessionState:
    """Record the player's pending choice, replacing any earlier one."""
    if session.phase == "showing_result":
        raise InvalidTransition("Cannot change the answer after it was checked")
    lesson = current_lesson(session, catalog)
    if not 0 <= option_index < len(lesson.options):
        raise InvalidSelection(f"Option {option_index} does not exist for {lesson.id}")
    return session.model_copy(update={"selected_index": option_index})


@dataclass
class PersistenceTask:
    """A pending full-document write of one user's stats.

    run() never raises on store failures; it records them so the caller can
    look at `status` and call run() again.
    """

    user_id: str
    stats: UserStats
    status: str = "pending"
    attempts: int = 0
    error: Optional[str] = field(default=None, repr=False)

    def run(self, store) -> bool:
        self.attempts += 1
        try:
            store.write(self.user_id, self.stats)
        except PersistenceWriteFailure as e:
            self.status = "failed"
            self.error = str(e)
            logger.error(f"Error updating user data for {self.user_id}: {e}")
            return False
        self.status = "done"
        self.error = None
        return True


class Submission(NamedTuple):
    result: SubmissionResult
    stats: UserStats
    persistence: Optional[PersistenceTask] = None


def submit(level_index: int, option_index: Optional[int], stats: UserStats,
           user_id: Optional[str] = None, now: Optional[datetime] = None,
           catalog: Sequence[LessonItem] = LESSONS) -> Submission:
    """Grade one answer and compute the stats that follow from it.

    The lesson's entry in level_progress is overwritten, so replaying a level
    can leave star_count above the sum of per-level stars.
    """
    if option_index is None:
        raise InvalidSelection("Select an option before checking the answer")
    lesson = lesson_at(level_index, catalog)
    if not 0 <= option_index < len(lesson.options):
        raise InvalidSelection(f"Option {option_index} does not exist for {lesson.id}")

    is_correct = option_index == lesson.correct_index
    lives_after = stats.lives_remaining if is_correct else stats.lives_remaining - 1
    stars_after = stats.star_count + 1 if is_correct else stats.star_count

    level_progress = dict(stats.level_progress)
    level_progress[lesson.id] = LevelRecord(completed=True, stars_awarded=1 if is_correct else 0)

    next_stats = UserStats(
        star_count=stars_after,
        lives_remaining=lives_after,
        level_progress=level_progress,
        last_activity_at=now or utcnow(),
    )
    result = SubmissionResult(
        level_id=lesson.id,
        selected_index=option_index,
        correct_index=lesson.correct_index,
        is_correct=is_correct,
        lives_after=lives_after,
        stars_after=stars_after,
    )
    task = PersistenceTask(user_id=user_id, stats=next_stats) if user_id else None
    return Submission(result, next_stats, task)


def submit_selection(session: SessionState, stats: UserStats, user_id: Optional[str] = None,
                     now: Optional[datetime] = None,
                     catalog: Sequence[LessonItem] = LESSONS) -> Tuple[SessionState, Submission]:
    submission = submit(session.level_index, session.selected_index, stats,
                        user_id=user_id, now=now, catalog=catalog)
    return session.model_copy(update={"result": submission.result}), submission


def advance(level_index: int, catalog_length: int = len(LESSONS)) -> int:
    return (level_index + 1) % catalog_length


def advance_session(session: SessionState, catalog: Sequence[LessonItem] = LESSONS) -> SessionState:
    if session.phase != "showing_result":
        raise InvalidTransition("Check your answer before moving on")
    return SessionState(level_index=advance(session.level_index, len(catalog)))


def advance_label(level_index: int, catalog: Sequence[LessonItem] = LESSONS) -> str:
    return "Next Level" if level_index < len(catalog) - 1 else "Play Again"


def completed_count(stats: UserStats, catalog: Sequence[LessonItem] = LESSONS) -> int:
    ids = {lesson.id for lesson in catalog}
    return sum(1 for level_id, record in stats.level_progress.items()
               if record.completed and level_id in ids)


def compute_progress_fraction(stats: UserStats, catalog: Sequence[LessonItem] = LESSONS) -> float:
    return completed_count(stats, catalog) / len(catalog)


def describe_result(result: SubmissionResult, catalog: Sequence[LessonItem] = LESSONS) -> Tuple[str, str]:
    if result.is_correct:
        return "Correct!", "You earned 1 star!"
    lesson = next(item for item in catalog if item.id == result.level_id)
    return "Try again!", f"The correct answer was: {lesson.correct_option}"


def load_stats(store, user_id: str) -> UserStats:
    """Stats for a freshly authenticated user.

    Unknown users get default stats, which are written back. A failed read
    falls back to defaults so play is never blocked.
    """
    try:
        stats = store.read(user_id)
    except PersistenceReadFailure as e:
        logger.warning(f"Error fetching user data for {user_id}, using defaults: {e}")
        return new_stats()
    if stats is not None:
        return stats

    stats = new_stats()
    PersistenceTask(user_id=user_id, stats=stats).run(store)
    logger.info(f"Created stats for {user_id}")
    return stats
