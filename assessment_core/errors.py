"""Typed failures raised by the assessment engine.

Every error propagates to the caller; the HTTP layer maps them to status codes.
"""
from __future__ import annotations

from typing import Dict, Iterable, List


class AssessmentError(Exception):
    """Base class for engine failures."""


class ValidationError(AssessmentError):
    """Section threshold not met. Recoverable by answering the listed questions."""

    def __init__(self, section: str, unanswered_ids: Iterable[str], fraction: float = 0.0, threshold: float = 0.0):
        self.section = section
        self.unanswered_ids: List[str] = list(unanswered_ids)
        self.fraction = float(fraction)
        self.threshold = float(threshold)
        super().__init__(
            f"section {section!r} answered {self.fraction:.0%} (<{self.threshold:.0%}); "
            f"{len(self.unanswered_ids)} unanswered"
        )


class InvalidQuestion(AssessmentError):
    """One or more submitted keys were rejected. Valid keys in the same call may have been applied."""

    def __init__(
        self,
        rejected: Dict[str, str],
        applied: Iterable[str] = (),
        unanswered_ids: Iterable[str] = (),
        skipped_ids: Iterable[str] = (),
    ):
        self.rejected: Dict[str, str] = dict(rejected)
        self.applied: List[str] = list(applied)
        # section progress after the valid keys landed; filled in by autosave
        self.unanswered_ids: List[str] = list(unanswered_ids)
        self.skipped_ids: List[str] = list(skipped_ids)
        super().__init__("rejected: " + ", ".join(f"{k} ({v})" for k, v in sorted(self.rejected.items())))


class NotFound(AssessmentError):
    def __init__(self, assessment_id: str):
        self.assessment_id = assessment_id
        super().__init__(f"assessment {assessment_id!r} not found")


class IncompleteAssessment(AssessmentError):
    def __init__(self, assessment_id: str, incomplete_sections: Iterable[str]):
        self.assessment_id = assessment_id
        self.incomplete_sections: List[str] = list(incomplete_sections)
        super().__init__(
            f"assessment {assessment_id!r} has incomplete scored sections: "
            + ", ".join(self.incomplete_sections or ["<none computed>"])
        )


class PersistenceError(AssessmentError):
    """The row store failed or timed out. Not retried here."""


class UnknownSection(KeyError):
    """Programming error: a section id that the catalog does not declare."""


__all__ = [
    "AssessmentError",
    "ValidationError",
    "InvalidQuestion",
    "NotFound",
    "IncompleteAssessment",
    "PersistenceError",
    "UnknownSection",
]
