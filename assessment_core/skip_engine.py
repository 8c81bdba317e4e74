# assessment_core/skip_engine.py
from __future__ import annotations
from typing import Dict, FrozenSet, Iterable, List, Mapping, Optional, Set, Tuple

from .answer_store import AnswerStore, is_answered
from .catalog import Catalog
from .types import AnswerValue, SkipRule


def _rules(catalog: Catalog, section: Optional[str]) -> List[SkipRule]:
    if section is None:
        return catalog.all_skip_rules()
    return list(catalog.skip_rules_for(section))


def fired_rules(
    catalog: Catalog, answers: Mapping[str, AnswerValue], section: Optional[str] = None
) -> List[SkipRule]:
    """Rules whose trigger is answered and whose predicate holds.

    Evaluated against recorded answers only: one rule firing never makes another
    rule fire or stop firing, so the result does not depend on rule order.
    """
    out = []
    for rule in _rules(catalog, section):
        value = answers.get(rule.trigger)
        if not is_answered(value):
            continue
        if rule.predicate(value):
            out.append(rule)
    return out


def skipped_ids(
    catalog: Catalog, answers: Mapping[str, AnswerValue], section: Optional[str] = None
) -> FrozenSet[str]:
    out: Set[str] = set()
    for rule in fired_rules(catalog, answers, section):
        out |= rule.targets
    return frozenset(out)


def skip_state(
    catalog: Catalog, answers: Mapping[str, AnswerValue], section: Optional[str] = None
) -> Dict[str, bool]:
    skipped = skipped_ids(catalog, answers, section)
    ids = catalog.section(section).question_ids if section is not None else catalog.question_ids
    return {qid: qid in skipped for qid in ids}


def rules_triggered_by(catalog: Catalog, question_ids: Iterable[str]) -> List[SkipRule]:
    wanted = set(question_ids)
    return [r for r in catalog.all_skip_rules() if r.trigger in wanted]


def skip_changes(before: FrozenSet[str], after: FrozenSet[str]) -> Tuple[List[str], List[str]]:
    """(newly skipped, newly restored)"""
    return sorted(after - before), sorted(before - after)


class SkipEngine:
    def __init__(self, catalog: Catalog, store: AnswerStore):
        self.catalog = catalog
        self.store = store

    def skip_state(self, assessment_id: str, section: Optional[str] = None) -> Dict[str, bool]:
        return skip_state(self.catalog, self.store.answers(assessment_id), section)

    def skipped_ids(self, assessment_id: str, section: Optional[str] = None) -> FrozenSet[str]:
        return skipped_ids(self.catalog, self.store.answers(assessment_id), section)

    def is_skipped(self, assessment_id: str, question_id: str) -> bool:
        return question_id in self.skipped_ids(assessment_id)
