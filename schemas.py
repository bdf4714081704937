"""
Data schemas for the LinguaQuest quiz

Stored documents use the same keys the web client always wrote
(stars, lives, levels, lastLogin), so each Pydantic model below exposes
snake_case attributes with aliases for the stored keys. Collection names are
the lowercased class name (e.g., UserStats -> "userstats").
"""
from typing import Dict, List, Literal, Optional
from datetime import datetime, timezone
from pydantic import BaseModel, ConfigDict, Field, model_validator


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


# Static content
class LessonItem(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str = Field(..., description="Stable level identifier, e.g. level-1")
    prompt: str = Field(..., description="Question text")
    options: List[str] = Field(..., min_length=2, description="Multiple choice options")
    correct_index: int = Field(..., ge=0, description="Index of the correct option")
    media: str = Field(..., description="Image URL shown with the question")
    caption: str = Field(..., description="Phrase shown once the level is done")
    category: Literal["animals", "food", "travel"]

    @model_validator(mode="after")
    def check_correct_index(self):
        if self.correct_index >= len(self.options):
            raise ValueError(
                f"correct_index {self.correct_index} out of range for {len(self.options)} options"
            )
        return self

    @property
    def correct_option(self) -> str:
        return self.options[self.correct_index]


class LessonOut(BaseModel):
    """Public view of a lesson; never leaks the answer."""
    index: int
    id: str
    prompt: str
    options: List[str]
    media: str
    caption: str
    category: str


# Per-user stats -> collection: "userstats"
class LevelRecord(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    completed: bool = False
    stars_awarded: int = Field(0, ge=0, le=1, alias="stars")


class UserStats(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    star_count: int = Field(0, ge=0, alias="stars")
    lives_remaining: int = Field(5, alias="lives")
    level_progress: Dict[str, LevelRecord] = Field(default_factory=dict, alias="levels")
    last_activity_at: datetime = Field(default_factory=utcnow, alias="lastLogin")

    def to_document(self) -> dict:
        return self.model_dump(by_alias=True)


class SubmissionResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    level_id: str
    selected_index: int
    correct_index: int
    is_correct: bool
    lives_after: int
    stars_after: int


class SessionState(BaseModel):
    """Where one player is in the lesson loop.

    Transitions return a new instance; nothing mutates a session in place.
    """
    model_config = ConfigDict(frozen=True)

    level_index: int = Field(0, ge=0)
    selected_index: Optional[int] = None
    result: Optional[SubmissionResult] = None

    @property
    def phase(self) -> Literal["answering", "selected", "showing_result"]:
        if self.result is not None:
            return "showing_result"
        if self.selected_index is not None:
            return "selected"
        return "answering"

    @property
    def current_level(self) -> int:
        return self.level_index

    @property
    def pending_selection(self) -> Optional[int]:
        return self.selected_index

    @property
    def last_result(self) -> Optional[SubmissionResult]:
        return self.result


# Auth
class Identity(BaseModel):
    model_config = ConfigDict(frozen=True)

    user_id: str
    email: str


class Account(BaseModel):
    """Accounts collection schema -> collection: "account" """
    email: str = Field(..., description="Login email (unique)")
    password_hash: str = Field(..., description="werkzeug password hash")
    token: Optional[str] = Field(None, description="Current session token")


# API payloads
class Credentials(BaseModel):
    email: str
    password: str


class AuthOut(BaseModel):
    token: str
    user: Identity


class SelectIn(BaseModel):
    option_index: int


class ProgressOut(BaseModel):
    completed: int
    total: int
    fraction: float


class StatsOut(BaseModel):
    stats: UserStats
    progress: ProgressOut


class FeedbackOut(BaseModel):
    headline: str
    detail: str


class SessionOut(BaseModel):
    phase: str
    level_index: int
    level_number: int
    lesson: LessonOut
    selected_index: Optional[int] = None
    result: Optional[SubmissionResult] = None
    feedback: Optional[FeedbackOut] = None
    advance_label: str
    stats: UserStats
    progress: ProgressOut
