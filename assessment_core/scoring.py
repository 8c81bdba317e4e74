from __future__ import annotations
import logging
from statistics import mean
from typing import AbstractSet, Dict, List, Mapping, Optional, Tuple

from . import config
from .answer_store import AnswerStore, is_answered, utcnow_iso
from .catalog import Catalog, as_number
from .errors import IncompleteAssessment
from .labels import LabelPolicy, get_label_policy
from .progress import compute_progress
from .skip_engine import skipped_ids
from .types import AnswerValue, QuestionSpec, TraitProfile

log = logging.getLogger(__name__)


def reverse_score(value: float, maximum: float = config.LIKERT_MAX, minimum: float = config.LIKERT_MIN) -> float:
    """Mirror a value on [minimum, maximum]; on a 1..N Likert scale this is N+1-v."""
    return minimum + maximum - value


def _bounds(spec: QuestionSpec) -> Tuple[float, float]:
    dom = spec.domain
    if dom.numeric:
        return float(dom.minimum), float(dom.maximum)  # type: ignore[arg-type]
    return float(config.LIKERT_MIN), float(config.LIKERT_MAX)


def scored_value(spec: QuestionSpec, value: AnswerValue) -> Optional[float]:
    if isinstance(value, frozenset):
        return None
    num = as_number(value)
    if num is None:
        return None
    if spec.reverse_scored:
        lo, hi = _bounds(spec)
        return reverse_score(num, hi, lo)
    return float(num)


def score_traits(
    catalog: Catalog, answers: Mapping[str, AnswerValue], skipped: AbstractSet[str]
) -> Tuple[Dict[str, float], Dict[str, int]]:
    """Arithmetic mean per trait over live, answered questions of scored sections."""
    per_trait: Dict[str, float] = {}
    counts: Dict[str, int] = {}
    for trait in catalog.traits:
        specs = catalog.questions_for_trait(trait)
        vals: List[float] = []
        for spec in specs:
            if spec.id in skipped:
                continue
            raw = answers.get(spec.id)
            if not is_answered(raw):
                continue
            v = scored_value(spec, raw)  # type: ignore[arg-type]
            if v is not None:
                vals.append(v)
        counts[trait] = len(vals)
        if vals:
            per_trait[trait] = round(float(mean(vals)), 3)
        else:
            lo, hi = _bounds(specs[0])
            per_trait[trait] = round((lo + hi) / 2.0, 3)
    return per_trait, counts


class ScoringEngine:
    def __init__(self, catalog: Catalog, store: AnswerStore, label_policy: Optional[LabelPolicy] = None):
        self.catalog = catalog
        self.store = store
        self.label_policy = label_policy or get_label_policy()

    def incomplete_sections(self, answers: Mapping[str, AnswerValue]) -> List[str]:
        skipped = skipped_ids(self.catalog, answers)
        return [
            sid
            for sid in self.catalog.scored_sections
            if not compute_progress(self.catalog.section(sid), answers, skipped).complete
        ]

    def build_profile(
        self, assessment_id: str, answers: Mapping[str, AnswerValue], revision: int = 1
    ) -> TraitProfile:
        incomplete = self.incomplete_sections(answers)
        if incomplete:
            raise IncompleteAssessment(assessment_id, incomplete)
        per_trait, counts = score_traits(self.catalog, answers, skipped_ids(self.catalog, answers))
        label = self.label_policy(per_trait)
        log.info("assessment %s profile r%d: %s %s", assessment_id, revision, label, per_trait)
        return TraitProfile(
            assessment_id=assessment_id,
            per_trait=per_trait,
            derived_label=label,
            computed_at=utcnow_iso(),
            catalog_version=self.catalog.version,
            label_policy=getattr(self.label_policy, "name", type(self.label_policy).__name__),
            item_counts=counts,
            revision=revision,
        )

    def compute_profile(self, assessment_id: str) -> TraitProfile:
        """Score the stored answers. Does not persist; the flow controller records profiles."""
        answers = self.store.answers(assessment_id)
        revision = len(self.store.profiles(assessment_id)) + 1
        return self.build_profile(assessment_id, answers, revision)
