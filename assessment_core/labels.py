# assessment_core/labels.py
"""Replaceable mappings from a trait-score vector to a readable descriptor.

Both policies are deterministic: ties are broken by trait or label name.
"""
from __future__ import annotations
import math
from typing import Callable, Dict, Mapping, Optional, Protocol, Tuple

from . import config

# trait -> ((high adjective, high noun), (low adjective, low noun))
DESCRIPTORS: Dict[str, Tuple[Tuple[str, str], Tuple[str, str]]] = {
    "openness": (("Adventurous", "Explorer"), ("Grounded", "Traditionalist")),
    "conscientiousness": (("Reliable", "Organizer"), ("Spontaneous", "Free Spirit")),
    "extraversion": (("Outgoing", "Extrovert"), ("Quiet", "Introvert")),
    "agreeableness": (("Easygoing", "Peacemaker"), ("Direct", "Straight Shooter")),
    "neuroticism": (("Sensitive", "Feeler"), ("Calm", "Steady Hand")),
}

DEFAULT_CENTROIDS: Dict[str, Dict[str, float]] = {
    "Reliable Explorer": {"openness": 4.2, "conscientiousness": 4.2, "extraversion": 3.0, "agreeableness": 3.5, "neuroticism": 2.5},
    "Adventurous Introvert": {"openness": 4.3, "conscientiousness": 3.0, "extraversion": 2.0, "agreeableness": 3.2, "neuroticism": 3.0},
    "Organized Extrovert": {"openness": 3.0, "conscientiousness": 4.3, "extraversion": 4.3, "agreeableness": 3.5, "neuroticism": 2.5},
    "Easygoing Homebody": {"openness": 2.8, "conscientiousness": 3.0, "extraversion": 2.5, "agreeableness": 4.3, "neuroticism": 2.5},
    "Lively Free Spirit": {"openness": 4.0, "conscientiousness": 2.2, "extraversion": 4.2, "agreeableness": 3.5, "neuroticism": 3.0},
    "Quiet Planner": {"openness": 2.8, "conscientiousness": 4.2, "extraversion": 2.2, "agreeableness": 3.3, "neuroticism": 3.2},
}


class LabelPolicy(Protocol):
    name: str
    def __call__(self, per_trait: Mapping[str, float]) -> str: ...


def _descriptor(trait: str, high: bool) -> Tuple[str, str]:
    pair = DESCRIPTORS.get(trait)
    if pair is None:
        word = trait.replace("_", " ").title()
        return (f"High-{word}", f"{word} Type") if high else (f"Low-{word}", f"{word} Skeptic")
    return pair[0] if high else pair[1]


class ThresholdLabelPolicy:
    """Noun from the most pronounced trait, adjective from the runner-up."""

    name = "threshold"

    def __init__(self, high_cut: Optional[float] = None, low_cut: Optional[float] = None):
        self.high_cut = config.LABEL_HIGH_CUT if high_cut is None else float(high_cut)
        self.low_cut = config.LABEL_LOW_CUT if low_cut is None else float(low_cut)
        self.midpoint = (config.LIKERT_MIN + config.LIKERT_MAX) / 2.0

    def __call__(self, per_trait: Mapping[str, float]) -> str:
        notable = []
        for trait, score in per_trait.items():
            if score >= self.high_cut:
                notable.append((trait, True, abs(score - self.midpoint)))
            elif score <= self.low_cut:
                notable.append((trait, False, abs(score - self.midpoint)))
        notable.sort(key=lambda t: (-t[2], t[0]))
        if not notable:
            return "Balanced Roommate"
        noun = _descriptor(notable[0][0], notable[0][1])[1]
        if len(notable) == 1:
            return f"Balanced {noun}"
        adj = _descriptor(notable[1][0], notable[1][1])[0]
        return f"{adj} {noun}"


class NearestCentroidLabelPolicy:
    name = "centroid"

    def __init__(self, centroids: Optional[Mapping[str, Mapping[str, float]]] = None):
        self.centroids = {k: dict(v) for k, v in (centroids or DEFAULT_CENTROIDS).items()}
        if not self.centroids:
            raise ValueError("at least one centroid is required")
        self.midpoint = (config.LIKERT_MIN + config.LIKERT_MAX) / 2.0

    def __call__(self, per_trait: Mapping[str, float]) -> str:
        def dist(label: str) -> float:
            c = self.centroids[label]
            return math.sqrt(sum((float(v) - c.get(t, self.midpoint)) ** 2 for t, v in per_trait.items()))
        return min(sorted(self.centroids), key=lambda label: (round(dist(label), 9), label))


_POLICIES: Dict[str, Callable[[], LabelPolicy]] = {
    "threshold": ThresholdLabelPolicy,
    "centroid": NearestCentroidLabelPolicy,
}


def get_label_policy(name: Optional[str] = None) -> LabelPolicy:
    key = (name or config.LABEL_POLICY or "threshold").strip().lower()
    try:
        return _POLICIES[key]()
    except KeyError:
        raise ValueError(f"unknown label policy {key!r}; expected one of {', '.join(sorted(_POLICIES))}") from None
