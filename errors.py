"""
Error taxonomy for the quiz backend.

Identity errors carry the exact message shown to the user. Persistence errors
wrap the underlying pymongo exception.
"""


class QuizError(Exception):
    """Base class for every error raised by this package."""

    message = "Something went wrong"

    def __init__(self, message=None):
        super().__init__(message or self.message)
        self.message = message or self.message


class InvalidCredentials(QuizError):
    message = "Invalid email or password"


class AccountCreationError(QuizError):
    message = "Error creating account"


class PersistenceReadFailure(QuizError):
    message = "Could not read user stats"


class PersistenceWriteFailure(QuizError):
    message = "Could not write user stats"


class InvalidSelection(QuizError):
    message = "Invalid selection"


class InvalidTransition(QuizError):
    message = "Action not allowed right now"
