"""
Domain errors for the draft and wager core.

Four families, each mapped to one HTTP status in main.py:
    ValidationError  malformed input, never retried
    ConflictError    someone else already did this (normal under concurrency)
    StateError       operation outside the valid lifecycle window
    NotFoundError    referenced entity does not exist
"""


class CoreError(Exception):
    status_code = 400

    def __init__(self, message: str, **context):
        super().__init__(message)
        self.message = message
        self.context = context

    def to_dict(self) -> dict:
        return {"error": type(self).__name__, "detail": self.message, **self.context}


# --- Families ---

class ValidationError(CoreError):
    status_code = 400


class ConflictError(CoreError):
    status_code = 409


class StateError(CoreError):
    status_code = 409

    def __init__(self, message: str, current_status: str | None = None, **context):
        super().__init__(message, current_status=current_status, **context)
        self.current_status = current_status


class NotFoundError(CoreError):
    status_code = 404


# --- Validation ---

class InvalidWager(ValidationError):
    pass


class InvalidOption(ValidationError):
    pass


class InvalidQuestion(ValidationError):
    pass


class InsufficientTeams(ValidationError):
    pass


class TemplateBatchError(ValidationError):
    """Bulk instantiation failed; `failures` maps template id -> reason."""

    def __init__(self, failures: dict[int, str]):
        listing = "; ".join(f"template {tid}: {reason}" for tid, reason in failures.items())
        super().__init__(f"{len(failures)} template(s) failed validation: {listing}",
                         failures={str(k): v for k, v in failures.items()})
        self.failures = failures


# --- Conflicts ---

class AlreadyAssigned(ConflictError):
    def __init__(self, message: str, castaway_id: int, held_by: int | None = None):
        super().__init__(message, castaway_id=castaway_id, held_by=held_by)
        self.castaway_id = castaway_id
        self.held_by = held_by


class CastawayUnavailable(AlreadyAssigned):
    """Draft-level view of AlreadyAssigned: pick rejected, turn not advanced."""


class RosterFull(ConflictError):
    pass


class NotYourTurn(ConflictError):
    pass


class StaleDraft(ConflictError):
    pass


class DuplicateSubmission(ConflictError):
    pass


class AlreadyGraded(ConflictError):
    pass


# --- State ---

class DraftClosed(StateError):
    pass


class DraftNotActive(StateError):
    pass


class DraftAlreadyStarted(StateError):
    pass


class WindowClosed(StateError):
    pass


class QuestionLocked(StateError):
    pass


# --- Not found ---

class UnknownQuestion(NotFoundError):
    pass


class UnknownDraft(NotFoundError):
    pass


class UnknownTeam(NotFoundError):
    pass


class UnknownCastaway(NotFoundError):
    pass


class UnknownTemplate(NotFoundError):
    pass


class UnknownLeagueSeason(NotFoundError):
    pass
