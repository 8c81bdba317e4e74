from __future__ import annotations
from fractions import Fraction
from typing import AbstractSet, List, Mapping

from .answer_store import AnswerStore, is_answered
from .catalog import Catalog
from .skip_engine import skipped_ids
from .types import AnswerValue, SectionProgress, SectionSpec


def compute_progress(
    section: SectionSpec, answers: Mapping[str, AnswerValue], skipped: AbstractSet[str]
) -> SectionProgress:
    """Skipped questions leave both the numerator and the denominator."""
    live = [q.id for q in section.questions if q.id not in skipped]
    answered = [qid for qid in live if is_answered(answers.get(qid))]
    done = set(answered)
    unanswered = tuple(qid for qid in live if qid not in done)
    fraction = Fraction(len(answered), len(live)) if live else Fraction(1)
    return SectionProgress(
        section=section.id,
        answered=len(answered),
        live=len(live),
        total=len(section.questions),
        fraction=fraction,
        threshold=section.threshold,
        complete=fraction >= section.threshold,
        skipped_ids=tuple(q.id for q in section.questions if q.id in skipped),
        unanswered_ids=unanswered,
    )


def progress_for(catalog: Catalog, answers: Mapping[str, AnswerValue], section: str) -> SectionProgress:
    return compute_progress(catalog.section(section), answers, skipped_ids(catalog, answers))


class ProgressValidator:
    def __init__(self, catalog: Catalog, store: AnswerStore):
        self.catalog = catalog
        self.store = store

    def section_progress(self, assessment_id: str, section: str) -> SectionProgress:
        return progress_for(self.catalog, self.store.answers(assessment_id), section)

    def answered_fraction(self, assessment_id: str, section: str) -> Fraction:
        return self.section_progress(assessment_id, section).fraction

    def is_section_complete(self, assessment_id: str, section: str) -> bool:
        return self.section_progress(assessment_id, section).complete

    def unanswered_ids(self, assessment_id: str, section: str) -> List[str]:
        return list(self.section_progress(assessment_id, section).unanswered_ids)

    def overall(self, assessment_id: str) -> List[SectionProgress]:
        answers = self.store.answers(assessment_id)
        return [progress_for(self.catalog, answers, sid) for sid in self.catalog.order]
