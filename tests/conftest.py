from __future__ import annotations

import pytest

from assessment_core.answer_store import AnswerStore, MemoryRowStore
from assessment_core.catalog import Catalog
from assessment_core.engine import AssessmentEngine
from assessment_core.labels import ThresholdLabelPolicy


def synthetic_catalog_dict(
    *,
    personality_size: int = 5,
    threshold: float = 0.8,
    include_skip_rules: bool = True,
    include_environment: bool = True,
) -> dict:
    """Deterministic two-section catalog: a scored Likert section and a mixed-kind section."""

    traits = ["openness", "openness", "conscientiousness", "extraversion", "agreeableness"]
    personality = {
        "id": "personality",
        "title": "Personality",
        "threshold": threshold,
        "scored": True,
        "questions": [
            {
                "id": f"q{i}",
                "likert": True,
                "trait": traits[(i - 1) % len(traits)],
                "reverse": i == 2,
                "text": f"Statement {i}",
            }
            for i in range(1, personality_size + 1)
        ],
        "skip_rules": (
            [{"trigger": "q1", "op": "gt", "value": 4, "targets": ["q2"]}]
            if include_skip_rules
            else []
        ),
    }
    sections = [personality]
    if include_environment:
        sections.append(
            {
                "id": "environment",
                "title": "Environment",
                "threshold": threshold,
                "questions": [
                    {"id": "e1", "kind": "single-choice", "domain": {"options": ["yes", "no"]}},
                    {"id": "e2", "kind": "multi-choice", "domain": {"options": ["dog", "cat", "bird"], "max_selections": 2}},
                    {"id": "e3", "kind": "scalar-slider", "domain": {"min": 0, "max": 10, "step": 1}},
                    {"id": "e4", "kind": "free-text", "domain": {"max_length": 40}},
                ],
                "skip_rules": (
                    [{"trigger": "e1", "op": "eq", "value": "no", "targets": ["e2"]}]
                    if include_skip_rules
                    else []
                ),
            }
        )
    return {"version": "test-1", "sections": sections}


def build_synthetic_catalog(**kwargs) -> Catalog:
    return Catalog.from_dict(synthetic_catalog_dict(**kwargs))


ENVIRONMENT_DONE = {"e1": "yes", "e2": ["dog"], "e3": 7, "e4": "no smoking"}


@pytest.fixture
def catalog() -> Catalog:
    return build_synthetic_catalog()


@pytest.fixture
def store(catalog) -> AnswerStore:
    return AnswerStore(catalog, MemoryRowStore())


@pytest.fixture
def engine(catalog) -> AssessmentEngine:
    return AssessmentEngine(catalog=catalog, rows=MemoryRowStore(), label_policy=ThresholdLabelPolicy())
