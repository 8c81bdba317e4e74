from __future__ import annotations
from dataclasses import dataclass, field
from fractions import Fraction
from types import MappingProxyType
from typing import Callable, Dict, FrozenSet, List, Literal, Mapping, Optional, Tuple, Union

QuestionKind = Literal["single-choice", "multi-choice", "scalar-slider", "free-text"]
KINDS: Tuple[str, ...] = ("single-choice", "multi-choice", "scalar-slider", "free-text")

AnswerValue = Union[int, float, str, FrozenSet[str]]

COMPLETE = "complete"


@dataclass(frozen=True)
class ValueDomain:
    minimum: Optional[float] = None
    maximum: Optional[float] = None
    step: Optional[float] = None
    options: Optional[Tuple[str, ...]] = None
    max_selections: Optional[int] = None
    max_length: Optional[int] = None

    @property
    def numeric(self) -> bool:
        return self.minimum is not None and self.maximum is not None


@dataclass(frozen=True)
class QuestionSpec:
    id: str; section: str; kind: QuestionKind
    domain: ValueDomain = field(default_factory=ValueDomain)
    reverse_scored: bool = False
    text: str = ""
    trait: Optional[str] = None


@dataclass(frozen=True)
class SkipRule:
    trigger: str
    predicate: Callable[[AnswerValue], bool] = field(compare=False)
    targets: FrozenSet[str] = frozenset()
    description: str = ""


@dataclass(frozen=True)
class SectionSpec:
    id: str
    questions: Tuple[QuestionSpec, ...]
    threshold: Fraction = Fraction(4, 5)
    successor: Optional[str] = None
    scored: bool = False
    title: str = ""
    skip_rules: FrozenSet[SkipRule] = frozenset()

    @property
    def question_ids(self) -> List[str]:
        return [q.id for q in self.questions]


@dataclass(frozen=True)
class AnswerRecord:
    assessment_id: str
    question_id: str
    raw_value: AnswerValue
    recorded_at: str
    client_ts: Optional[float] = None


@dataclass(frozen=True)
class SectionProgress:
    section: str
    answered: int
    live: int
    total: int
    fraction: Fraction
    threshold: Fraction
    complete: bool
    skipped_ids: Tuple[str, ...] = ()
    unanswered_ids: Tuple[str, ...] = ()

    def to_dict(self) -> Dict[str, object]:
        return {
            "section": self.section,
            "answered": self.answered,
            "live": self.live,
            "total": self.total,
            "fraction": float(self.fraction),
            "threshold": float(self.threshold),
            "complete": self.complete,
            "skippedIds": list(self.skipped_ids),
            "unansweredIds": list(self.unanswered_ids),
        }


@dataclass(frozen=True)
class TraitProfile:
    assessment_id: str
    per_trait: Mapping[str, float]
    derived_label: str
    computed_at: str
    catalog_version: str = ""
    label_policy: str = ""
    item_counts: Mapping[str, int] = field(default_factory=dict)
    revision: int = 1

    def __post_init__(self) -> None:
        # read-only views over private copies
        object.__setattr__(self, "per_trait", MappingProxyType(dict(self.per_trait)))
        object.__setattr__(self, "item_counts", MappingProxyType(dict(self.item_counts)))

    def to_dict(self) -> Dict[str, object]:
        return {
            "assessmentId": self.assessment_id,
            "perTrait": dict(self.per_trait),
            "derivedLabel": self.derived_label,
            "computedAt": self.computed_at,
            "catalogVersion": self.catalog_version,
            "labelPolicy": self.label_policy,
            "itemCounts": dict(self.item_counts),
            "revision": self.revision,
        }

    @classmethod
    def from_dict(cls, raw: Dict[str, object]) -> "TraitProfile":
        return cls(
            assessment_id=str(raw["assessmentId"]),
            per_trait={str(k): float(v) for k, v in dict(raw.get("perTrait") or {}).items()},
            derived_label=str(raw.get("derivedLabel", "")),
            computed_at=str(raw.get("computedAt", "")),
            catalog_version=str(raw.get("catalogVersion", "")),
            label_policy=str(raw.get("labelPolicy", "")),
            item_counts={str(k): int(v) for k, v in dict(raw.get("itemCounts") or {}).items()},
            revision=int(raw.get("revision", 1)),
        )


@dataclass
class MergeResult:
    applied: List[str] = field(default_factory=list)
    stale: List[str] = field(default_factory=list)


@dataclass
class SubmitResult:
    applied: bool
    unanswered_ids: List[str]
    skipped_ids: List[str] = field(default_factory=list)
    stale_ids: List[str] = field(default_factory=list)


@dataclass
class AdvanceResult:
    new_section: str
    profile: Optional[TraitProfile] = None

    @property
    def complete(self) -> bool:
        return self.new_section == COMPLETE
