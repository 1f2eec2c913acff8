"""
Classification of tool log text.

The Creation Kit and xEdit report success or failure only through phrases
in their logs. All of the phrase matching lives here so a change in tool
wording touches one module.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Sequence


class LogOutcome(Enum):
    """What a tool log says about the run that produced it."""
    CLEAN = "clean"
    COMPLETED_WITH_ERRORS = "completed_with_errors"
    INCOMPLETE = "incomplete"
    FAILED = "failed"

    @property
    def is_success(self) -> bool:
        return self in (LogOutcome.CLEAN, LogOutcome.COMPLETED_WITH_ERRORS)


@dataclass(frozen=True)
class LogVerdict:
    """Outcome plus the marker that decided it."""
    outcome: LogOutcome
    marker: Optional[str] = None


class LogClassifier(ABC):
    """Maps raw log text to a LogVerdict."""

    @abstractmethod
    def classify(self, text: str) -> LogVerdict:
        pass


class MarkerClassifier(LogClassifier):
    """
    Substring based classifier.

    Checks run in this order: any failure marker means FAILED; a missing
    completion marker means INCOMPLETE; a missing clean marker means
    COMPLETED_WITH_ERRORS; otherwise CLEAN. Markers left as None are not
    required.
    """

    def __init__(
        self,
        completion_marker: Optional[str] = None,
        clean_marker: Optional[str] = None,
        failure_markers: Sequence[str] = (),
    ):
        self.completion_marker = completion_marker
        self.clean_marker = clean_marker
        self.failure_markers = tuple(failure_markers)

    def classify(self, text: str) -> LogVerdict:
        text = text or ""

        for marker in self.failure_markers:
            if marker in text:
                return LogVerdict(LogOutcome.FAILED, marker)

        if self.completion_marker is not None and self.completion_marker not in text:
            return LogVerdict(LogOutcome.INCOMPLETE, self.completion_marker)

        if self.clean_marker is not None and self.clean_marker not in text:
            return LogVerdict(LogOutcome.COMPLETED_WITH_ERRORS, self.clean_marker)

        return LogVerdict(LogOutcome.CLEAN)


# xEdit batch scripts finish with "Completed: No Errors." or "Completed: <n> Errors"
XEDIT_SCRIPT_LOG = MarkerClassifier(
    completion_marker="Completed: ",
    clean_marker="Completed: No Errors.",
)

CK_PRECOMBINE_LOG = MarkerClassifier(
    failure_markers=("DEFAULT: OUT OF HANDLE ARRAY ENTRIES",),
)

CK_PREVIS_LOG = MarkerClassifier(
    failure_markers=("ERROR: visibility task did not complete.",),
)
