"""Exception hierarchy for the notes pipeline."""
from __future__ import annotations

from collections.abc import Sequence


class NotesError(Exception):
    """Base class for every error raised by the notes pipeline."""

    kind = "NotesError"


class RequestValidationError(NotesError):
    """The request was rejected before a job was created."""

    kind = "ValidationError"

    def __init__(self, violations: Sequence[str]) -> None:
        self.violations = list(violations)
        super().__init__("; ".join(self.violations))


class SyllabusUnavailable(NotesError):
    """No table of contents exists for the board/class/subject triple."""

    kind = "SyllabusUnavailable"

    def __init__(self, board: str, class_level: int, subject: str) -> None:
        self.board = board
        self.class_level = class_level
        self.subject = subject
        super().__init__(f"No syllabus available for {board} class {class_level} {subject}")


class ChapterResolutionError(NotesError):
    """Resolution-phase failure carrying candidate chapter names."""

    def __init__(self, message: str, suggestions: Sequence[str] = ()) -> None:
        self.suggestions = list(suggestions)
        super().__init__(message)


class ChapterNotFound(ChapterResolutionError):
    kind = "ChapterNotFound"


class AmbiguousChapter(ChapterResolutionError):
    kind = "AmbiguousChapter"


class SourceFetchDegraded(NotesError):
    """Every source feed failed; recovered with a synthetic document."""

    kind = "SourceFetchDegraded"


class GenerationExhausted(NotesError):
    """All generation attempts for a topic failed the quality gate."""

    kind = "GenerationExhausted"

    def __init__(self, topic_title: str, attempts: int, issues: Sequence[str] = ()) -> None:
        self.topic_title = topic_title
        self.attempts = attempts
        self.issues = list(issues)
        detail = f": {'; '.join(self.issues)}" if self.issues else ""
        super().__init__(f"Generation for '{topic_title}' exhausted after {attempts} attempts{detail}")


class PipelineFailure(NotesError):
    kind = "PipelineFailure"
