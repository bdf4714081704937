from datetime import datetime, timezone

import pytest

from catalog import LESSONS
from errors import InvalidSelection, InvalidTransition
from progression import (
    STARTING_LIVES,
    advance,
    advance_label,
    advance_session,
    completed_count,
    compute_progress_fraction,
    describe_result,
    new_stats,
    select_option,
    submit,
    submit_selection,
)
from schemas import LevelRecord, SessionState, UserStats


def wrong_option(lesson):
    return next(i for i in range(len(lesson.options)) if i != lesson.correct_index)


@pytest.mark.parametrize("level_index", range(len(LESSONS)))
@pytest.mark.parametrize("stars,lives", [(0, 5), (7, 2), (3, 0)])
def test_correct_answer_adds_star_and_keeps_lives(level_index, stars, lives):
    stats = UserStats(star_count=stars, lives_remaining=lives)
    lesson = LESSONS[level_index]

    result, next_stats, _ = submit(level_index, lesson.correct_index, stats)

    assert result.is_correct is True
    assert result.stars_after == stars + 1
    assert result.lives_after == lives
    assert next_stats.star_count == stars + 1
    assert next_stats.lives_remaining == lives
    assert next_stats.level_progress[lesson.id] == LevelRecord(completed=True, stars_awarded=1)


@pytest.mark.parametrize("level_index", range(len(LESSONS)))
def test_every_wrong_answer_costs_a_life(level_index):
    lesson = LESSONS[level_index]
    stats = UserStats(star_count=4, lives_remaining=3)
    for option in range(len(lesson.options)):
        if option == lesson.correct_index:
            continue
        result, next_stats, _ = submit(level_index, option, stats)
        assert result.is_correct is False
        assert result.stars_after == 4
        assert result.lives_after == 2
        assert result.correct_index == lesson.correct_index
        assert next_stats.level_progress[lesson.id] == LevelRecord(completed=True, stars_awarded=0)


def test_lives_can_go_negative():
    stats = UserStats(lives_remaining=0)
    result, next_stats, _ = submit(0, wrong_option(LESSONS[0]), stats)
    assert result.lives_after == -1
    assert next_stats.lives_remaining == -1


def test_submit_does_not_mutate_input_stats():
    stats = new_stats()
    submit(0, LESSONS[0].correct_index, stats)
    assert stats.star_count == 0
    assert stats.level_progress == {}


def test_submit_stamps_activity_time():
    now = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)
    _, next_stats, _ = submit(0, 0, new_stats(), now=now)
    assert next_stats.last_activity_at == now


def test_submit_requires_a_selection():
    with pytest.raises(InvalidSelection):
        submit(0, None, new_stats())


@pytest.mark.parametrize("option_index", [-1, 4, 99])
def test_submit_rejects_out_of_range_option(option_index):
    with pytest.raises(InvalidSelection):
        submit(0, option_index, new_stats())


def test_submit_rejects_unknown_level():
    with pytest.raises(InvalidSelection):
        submit(len(LESSONS), 0, new_stats())


def test_submit_without_user_has_no_persistence_task():
    submission = submit(0, 0, new_stats())
    assert submission.persistence is None


def test_submit_with_user_returns_pending_task():
    submission = submit(0, 0, new_stats(), user_id="u1")
    task = submission.persistence
    assert task.user_id == "u1"
    assert task.stats == submission.stats
    assert task.status == "pending"
    assert task.attempts == 0


def test_replay_overwrites_level_stars_without_taking_back_stars():
    lesson = LESSONS[0]
    stats = new_stats()
    _, stats, _ = submit(0, wrong_option(lesson), stats)
    assert stats.level_progress[lesson.id].stars_awarded == 0

    _, stats, _ = submit(0, lesson.correct_index, stats)
    assert stats.level_progress[lesson.id].stars_awarded == 1
    assert stats.star_count == 1

    # a correct replay adds a star on top of the level's single star
    _, stats, _ = submit(0, lesson.correct_index, stats)
    assert stats.star_count == 2
    assert sum(r.stars_awarded for r in stats.level_progress.values()) == 1

    _, stats, _ = submit(0, wrong_option(lesson), stats)
    assert stats.level_progress[lesson.id] == LevelRecord(completed=True, stars_awarded=0)
    assert stats.star_count == 2


def test_advance_steps_and_wraps():
    n = len(LESSONS)
    for i in range(n - 1):
        assert advance(i, n) == i + 1
    assert advance(n - 1, n) == 0


def test_advance_session_clears_selection_and_result():
    session = select_option(SessionState(), wrong_option(LESSONS[0]))
    session, _ = submit_selection(session, new_stats())
    assert session.phase == "showing_result"

    session = advance_session(session)
    assert session == SessionState(level_index=1)
    assert session.phase == "answering"


def test_advance_label():
    assert advance_label(0) == "Next Level"
    assert advance_label(len(LESSONS) - 1) == "Play Again"


def test_progress_fraction():
    stats = new_stats()
    assert compute_progress_fraction(stats) == 0
    for i in range(len(LESSONS)):
        _, stats, _ = submit(i, 0, stats)
    assert completed_count(stats) == len(LESSONS)
    assert compute_progress_fraction(stats) == 1.0


def test_progress_ignores_incomplete_records():
    stats = UserStats(level_progress={"level-1": LevelRecord(completed=False)})
    assert completed_count(stats) == 0


def test_three_level_run():
    stats = new_stats()
    session = SessionState()
    picks = [LESSONS[0].correct_index, LESSONS[1].correct_index, wrong_option(LESSONS[2])]
    for pick in picks:
        session = select_option(session, pick)
        session, submission = submit_selection(session, stats)
        stats = submission.stats
        session = advance_session(session)

    assert stats.star_count == 2
    assert stats.lives_remaining == STARTING_LIVES - 1
    assert stats.level_progress == {
        "level-1": LevelRecord(completed=True, stars_awarded=1),
        "level-2": LevelRecord(completed=True, stars_awarded=1),
        "level-3": LevelRecord(completed=True, stars_awarded=0),
    }
    assert compute_progress_fraction(stats) == 1.0
    assert session.level_index == 0


def test_latest_selection_wins():
    lesson = LESSONS[0]
    session = select_option(SessionState(), lesson.correct_index)
    session = select_option(session, wrong_option(lesson))
    assert session.phase == "selected"
    assert session.pending_selection == wrong_option(lesson)

    session, submission = submit_selection(session, new_stats())
    assert submission.result.selected_index == wrong_option(lesson)
    assert submission.result.is_correct is False
    assert session.last_result == submission.result


def test_select_is_pure():
    session = SessionState()
    selected = select_option(session, 2)
    assert session.selected_index is None
    assert selected.selected_index == 2


@pytest.mark.parametrize("option_index", [-1, 4])
def test_select_rejects_out_of_range(option_index):
    with pytest.raises(InvalidSelection):
        select_option(SessionState(), option_index)


def test_select_after_submit_is_rejected():
    session, _ = submit_selection(select_option(SessionState(), 0), new_stats())
    with pytest.raises(InvalidTransition):
        select_option(session, 1)


def test_submit_selection_without_choice():
    with pytest.raises(InvalidSelection):
        submit_selection(SessionState(), new_stats())


def test_describe_result():
    lesson = LESSONS[0]
    right = submit(0, lesson.correct_index, new_stats()).result
    wrong = submit(0, wrong_option(lesson), new_stats()).result
    assert describe_result(right) == ("Correct!", "You earned 1 star!")
    assert describe_result(wrong) == ("Try again!", "The correct answer was: Cat")


def test_new_stats_defaults():
    stats = new_stats()
    assert stats.star_count == 0
    assert stats.lives_remaining == 5
    assert stats.level_progress == {}


@pytest.mark.parametrize("session", [SessionState(), SessionState(selected_index=1)])
def test_advance_before_checking_is_rejected(session):
    with pytest.raises(InvalidTransition):
        advance_session(session)


def test_progress_counts_only_catalog_levels():
    levels = {lesson.id: LevelRecord(completed=True, stars_awarded=1) for lesson in LESSONS}
    levels["level-old"] = LevelRecord(completed=True, stars_awarded=1)
    stats = UserStats(level_progress=levels)
    assert completed_count(stats) == len(LESSONS)
    assert compute_progress_fraction(stats) == 1.0
