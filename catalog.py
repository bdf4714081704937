"""
Fixed lesson catalog. Order here is the level order players walk through.
"""
from typing import Tuple

from schemas import LessonItem, LessonOut

LESSONS: Tuple[LessonItem, ...] = (
    LessonItem(
        id="level-1",
        prompt="What animal is this?",
        options=["Dog", "Cat", "Bird", "Fish"],
        correct_index=1,
        media="https://images.unsplash.com/photo-1495360010541-f48722b34f7d?q=80&w=2672&auto=format&fit=crop",
        caption="This is a cat.",
        category="animals",
    ),
    LessonItem(
        id="level-2",
        prompt="What food is this?",
        options=["Apple", "Pizza", "Burger", "Sushi"],
        correct_index=0,
        media="https://images.unsplash.com/photo-1560806887-1e4cd0b6cbd6?q=80&w=2574&auto=format&fit=crop",
        caption="This is an apple.",
        category="food",
    ),
    LessonItem(
        id="level-3",
        prompt="What place is this?",
        options=["Beach", "City", "Mountain", "Forest"],
        correct_index=2,
        media="https://images.unsplash.com/photo-1480497490787-505ec076689f?q=80&w=2500&auto=format&fit=crop",
        caption="This is a mountain.",
        category="travel",
    ),
)


def check_catalog(lessons) -> None:
    if not lessons:
        raise ValueError("Catalog must contain at least one lesson")
    seen = set()
    for lesson in lessons:
        if lesson.id in seen:
            raise ValueError(f"Duplicate lesson id {lesson.id!r}")
        seen.add(lesson.id)


check_catalog(LESSONS)

LESSON_IDS = frozenset(lesson.id for lesson in LESSONS)


def public_lesson(index: int, lesson: LessonItem) -> LessonOut:
    return LessonOut(
        index=index,
        id=lesson.id,
        prompt=lesson.prompt,
        options=list(lesson.options),
        media=lesson.media,
        caption=lesson.caption,
        category=lesson.category,
    )
