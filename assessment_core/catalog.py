from __future__ import annotations
import json, math, importlib.resources as ir
from fractions import Fraction
from pathlib import Path
from typing import Any, Callable, Dict, FrozenSet, Iterable, List, Optional, Tuple

from . import config
from .errors import UnknownSection
from .types import KINDS, AnswerValue, QuestionSpec, SectionSpec, SkipRule, ValueDomain


def as_number(value: Any) -> Optional[float]:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return None if isinstance(value, float) and not math.isfinite(value) else value
    if isinstance(value, str):
        raw = value.strip()
        try: return int(raw)
        except ValueError: pass
        try:
            f = float(raw)
        except ValueError:
            return None
        return None if not math.isfinite(f) else f
    return None


def _cmp(fn: Callable[[float, float], bool]) -> Callable[[AnswerValue, Any], bool]:
    def check(value: AnswerValue, operand: Any) -> bool:
        a, b = as_number(value), as_number(operand)
        if a is None or b is None:
            return False
        return fn(a, b)
    return check


def _eq(value: AnswerValue, operand: Any) -> bool:
    a, b = as_number(value), as_number(operand)
    if a is not None and b is not None:
        return a == b
    return value == operand


_OPS: Dict[str, Callable[[AnswerValue, Any], bool]] = {
    "gt": _cmp(lambda a, b: a > b),
    "ge": _cmp(lambda a, b: a >= b),
    "lt": _cmp(lambda a, b: a < b),
    "le": _cmp(lambda a, b: a <= b),
    "eq": _eq,
    "ne": lambda v, x: not _eq(v, x),
    "in": lambda v, x: any(_eq(v, o) for o in x),
    "not_in": lambda v, x: not any(_eq(v, o) for o in x),
    "contains": lambda v, x: isinstance(v, frozenset) and str(x) in v,
}


def compile_predicate(op: str, operand: Any) -> Callable[[AnswerValue], bool]:
    """Turn a catalog predicate ``{"op": ..., "value": ...}`` into a callable."""
    try:
        fn = _OPS[op]
    except KeyError:
        raise ValueError(f"unknown skip predicate op {op!r}") from None
    if op in ("in", "not_in"):
        operand = tuple(operand)
    return lambda value: fn(value, operand)


def normalize_value(spec: QuestionSpec, value: Any) -> AnswerValue:
    """Coerce a submitted value to its stored shape, or raise ValueError with a reason."""
    if value is None:
        raise ValueError("null value")
    dom = spec.domain
    if spec.kind == "multi-choice":
        if isinstance(value, str):
            value = [value]
        if not isinstance(value, (list, tuple, set, frozenset)):
            raise ValueError("expected a list of options")
        picked = frozenset(str(v) for v in value)
        if dom.options is not None:
            unknown = sorted(picked - set(dom.options))
            if unknown:
                raise ValueError("unknown option(s) " + ", ".join(unknown))
        if dom.max_selections is not None and len(picked) > dom.max_selections:
            raise ValueError(f"at most {dom.max_selections} selections")
        return picked
    if spec.kind == "free-text":
        if not isinstance(value, str):
            raise ValueError("expected text")
        if dom.max_length is not None and len(value) > dom.max_length:
            raise ValueError(f"longer than {dom.max_length} characters")
        return value
    if dom.options is not None:
        choice = str(value) if not isinstance(value, bool) else None
        if choice not in dom.options:
            raise ValueError(f"not one of {', '.join(dom.options)}")
        return choice
    num = as_number(value)
    if num is None:
        raise ValueError("expected a number")
    if dom.minimum is not None and num < dom.minimum:
        raise ValueError(f"below minimum {dom.minimum:g}")
    if dom.maximum is not None and num > dom.maximum:
        raise ValueError(f"above maximum {dom.maximum:g}")
    step = dom.step if dom.step is not None else (1 if spec.kind == "single-choice" else None)
    if step:
        base = dom.minimum or 0
        try:
            ratio = (num - base) / step
            off_step = abs(ratio - round(ratio)) > 1e-9
        except OverflowError:
            raise ValueError("number out of range") from None
        if off_step:
            raise ValueError(f"not on a step of {step:g}")
    if isinstance(num, float) and num.is_integer():
        num = int(num)
    return num


def _threshold(raw: Any) -> Fraction:
    # str() keeps 0.8 as exactly 4/5
    return Fraction(str(raw if raw is not None else config.DEFAULT_THRESHOLD))


def _domain_from(raw: Dict[str, Any], likert: bool) -> ValueDomain:
    if likert and not raw:
        return ValueDomain(minimum=config.LIKERT_MIN, maximum=config.LIKERT_MAX, step=1)
    opts = raw.get("options")
    return ValueDomain(
        minimum=raw.get("min"),
        maximum=raw.get("max"),
        step=raw.get("step"),
        options=tuple(str(o) for o in opts) if opts is not None else None,
        max_selections=raw.get("max_selections"),
        max_length=raw.get("max_length"),
    )


class Catalog:
    """Read-only, versioned question catalog."""

    def __init__(self, version: str, sections: Iterable[SectionSpec], first: Optional[str] = None):
        self.version = version
        self._sections: Dict[str, SectionSpec] = {}
        for sec in sections:
            if sec.id in self._sections:
                raise ValueError(f"duplicate section {sec.id!r}")
            self._sections[sec.id] = sec
        if not self._sections:
            raise ValueError("catalog has no sections")
        self._questions: Dict[str, QuestionSpec] = {}
        for sec in self._sections.values():
            for q in sec.questions:
                if q.id in self._questions:
                    raise ValueError(f"duplicate question {q.id!r}")
                self._questions[q.id] = q
        self.first_section = first or next(iter(self._sections))
        self.order: Tuple[str, ...] = self._walk()
        self._predecessor = {b: a for a, b in zip(self.order, self.order[1:])}

    def _walk(self) -> Tuple[str, ...]:
        seen: List[str] = []
        cur: Optional[str] = self.first_section
        while cur is not None:
            if cur in seen:
                raise ValueError(f"section cycle at {cur!r}")
            seen.append(self.section(cur).id)
            cur = self._sections[cur].successor
        missing = set(self._sections) - set(seen)
        if missing:
            raise ValueError("unreachable sections: " + ", ".join(sorted(missing)))
        return tuple(seen)

    @classmethod
    def from_dict(cls, raw: Dict[str, Any]) -> "Catalog":
        entries = list(raw.get("sections", []))
        ids = [str(s["id"]) for s in entries]
        sections: List[SectionSpec] = []
        for idx, s in enumerate(entries):
            sid = str(s["id"])
            questions = []
            for q in s.get("questions", []):
                kind = q.get("kind", "single-choice")
                if kind not in KINDS:
                    raise ValueError(f"question {q.get('id')!r}: unknown kind {kind!r}")
                questions.append(
                    QuestionSpec(
                        id=str(q["id"]),
                        section=sid,
                        kind=kind,
                        domain=_domain_from(q.get("domain") or {}, bool(q.get("likert", False))),
                        reverse_scored=bool(q.get("reverse", False)),
                        text=str(q.get("text", "")),
                        trait=q.get("trait"),
                    )
                )
            rules = frozenset(
                SkipRule(
                    trigger=str(r["trigger"]),
                    predicate=compile_predicate(r.get("op", "eq"), r.get("value")),
                    targets=frozenset(str(t) for t in r.get("targets", [])),
                    description=str(r.get("description") or f"{r['trigger']} {r.get('op', 'eq')} {r.get('value')!r}"),
                )
                for r in s.get("skip_rules", [])
            )
            successor = s["successor"] if "successor" in s else (ids[idx + 1] if idx + 1 < len(ids) else None)
            sections.append(
                SectionSpec(
                    id=sid,
                    questions=tuple(questions),
                    threshold=_threshold(s.get("threshold")),
                    successor=successor,
                    scored=bool(s.get("scored", False)),
                    title=str(s.get("title", sid)),
                    skip_rules=rules,
                )
            )
        return cls(str(raw.get("version", "0")), sections, first=raw.get("first"))

    # ---- lookups ----
    def section(self, section: str) -> SectionSpec:
        try:
            return self._sections[section]
        except KeyError:
            raise UnknownSection(section) from None

    def questions_in_section(self, section: str) -> Tuple[QuestionSpec, ...]:
        return self.section(section).questions

    def skip_rules_for(self, section: str) -> FrozenSet[SkipRule]:
        return self.section(section).skip_rules

    def all_skip_rules(self) -> List[SkipRule]:
        return [r for sid in self.order for r in self._sections[sid].skip_rules]

    def question(self, qid: str) -> Optional[QuestionSpec]:
        return self._questions.get(qid)

    def has_question(self, qid: str) -> bool:
        return qid in self._questions

    @property
    def sections(self) -> List[SectionSpec]:
        return [self._sections[sid] for sid in self.order]

    @property
    def question_ids(self) -> List[str]:
        return [q.id for sec in self.sections for q in sec.questions]

    def successor(self, section: str) -> Optional[str]:
        return self.section(section).successor

    def predecessor(self, section: str) -> Optional[str]:
        self.section(section)
        return self._predecessor.get(section)

    @property
    def last_section(self) -> str:
        return self.order[-1]

    @property
    def scored_sections(self) -> List[str]:
        return [sid for sid in self.order if self._sections[sid].scored]

    @property
    def traits(self) -> List[str]:
        out: List[str] = []
        for sid in self.scored_sections:
            for q in self._sections[sid].questions:
                if q.trait and q.trait not in out:
                    out.append(q.trait)
        return out

    def questions_for_trait(self, trait: str) -> List[QuestionSpec]:
        return [
            q
            for sid in self.scored_sections
            for q in self._sections[sid].questions
            if q.trait == trait
        ]

    def to_dict(self) -> Dict[str, Any]:
        """Public view used by the catalog endpoint; predicates are not exposed."""
        out = []
        for sec in self.sections:
            out.append({
                "id": sec.id,
                "title": sec.title,
                "threshold": float(sec.threshold),
                "successor": sec.successor,
                "scored": sec.scored,
                "questions": [
                    {
                        "id": q.id,
                        "kind": q.kind,
                        "text": q.text,
                        "options": list(q.domain.options) if q.domain.options is not None else None,
                        "min": q.domain.minimum,
                        "max": q.domain.maximum,
                        "maxSelections": q.domain.max_selections,
                    }
                    for q in sec.questions
                ],
                "skipRules": [
                    {"trigger": r.trigger, "targets": sorted(r.targets), "description": r.description}
                    for r in sorted(sec.skip_rules, key=lambda r: (r.trigger, sorted(r.targets)))
                ],
            })
        return {"version": self.version, "sections": out}


def load_catalog(path: str | None = None) -> Catalog:
    path = path or config.CATALOG_PATH
    if path:
        data = Path(path).read_text(encoding="utf-8")
    else:
        data = ir.files(__package__).joinpath("data/catalog.json").read_text(encoding="utf-8")
    return Catalog.from_dict(json.loads(data))
