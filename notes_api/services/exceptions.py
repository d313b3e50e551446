"""Exceptions raised by the note service layer."""


class NoteServiceError(Exception):
    """Base class for failures the service reports to its callers."""

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)


class ValidationError(NoteServiceError):
    """Raised when an operation receives malformed input (e.g. an empty title)."""


class NotFoundError(NoteServiceError):
    """Raised when a note id does not exist."""

    def __init__(self, note_id: str) -> None:
        self.note_id = note_id
        super().__init__(f"Note with id {note_id} not found")


class ForbiddenError(NoteServiceError):
    """Raised when a note exists but belongs to another user."""

    def __init__(self, note_id: str) -> None:
        self.note_id = note_id
        super().__init__(f"Access to note {note_id} denied")
