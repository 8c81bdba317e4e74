from __future__ import annotations

import pytest

from assessment_core import config
from assessment_core.answer_store import AnswerStore, MemoryRowStore
from assessment_core.catalog import Catalog, compile_predicate, load_catalog, normalize_value
from assessment_core.errors import InvalidQuestion, UnknownSection

from tests.conftest import build_synthetic_catalog, synthetic_catalog_dict


def test_shipped_catalog_layout():
    cat = load_catalog()
    assert cat.order == ("personality", "environment", "building")
    assert cat.first_section == "personality"
    assert cat.successor("building") is None
    assert cat.predecessor("environment") == "personality"
    assert cat.predecessor("personality") is None
    assert cat.scored_sections == ["personality"]
    assert tuple(cat.traits) == config.TRAITS

    personality = cat.questions_in_section("personality")
    assert len(personality) == 35
    reverse = {q.id for q in personality if q.reverse_scored}
    assert reverse == {"q2", "q8", "q11", "q19", "q20", "q24", "q31", "q33", "q35"}
    assert all(len(cat.questions_for_trait(t)) == 7 for t in cat.traits)

    triggers = {r.trigger: sorted(r.targets) for r in cat.skip_rules_for("personality")}
    assert triggers == {"q1": ["q2"], "q6": ["q7"]}


def test_unknown_section_is_a_programming_error(catalog):
    with pytest.raises(UnknownSection):
        catalog.questions_in_section("nope")
    with pytest.raises(KeyError):
        catalog.skip_rules_for("nope")


def test_threshold_is_exact(catalog):
    sec = catalog.section("personality")
    assert sec.threshold.numerator == 4 and sec.threshold.denominator == 5


def test_normalize_likert_and_slider(catalog):
    likert = catalog.question("q1")
    assert normalize_value(likert, "4") == 4
    assert normalize_value(likert, 5.0) == 5
    for bad in (6, 0, 2.5, "x", True, None):
        with pytest.raises(ValueError):
            normalize_value(likert, bad)

    slider = catalog.question("e3")
    assert normalize_value(slider, "10") == 10
    with pytest.raises(ValueError):
        normalize_value(slider, 11)


def test_normalize_choices_and_text(catalog):
    multi = catalog.question("e2")
    assert normalize_value(multi, ["dog", "dog", "cat"]) == frozenset({"dog", "cat"})
    assert normalize_value(multi, []) == frozenset()
    assert normalize_value(multi, "bird") == frozenset({"bird"})
    with pytest.raises(ValueError, match="at most 2"):
        normalize_value(multi, ["dog", "cat", "bird"])
    with pytest.raises(ValueError, match="unknown option"):
        normalize_value(multi, ["lizard"])

    single = catalog.question("e1")
    assert normalize_value(single, "no") == "no"
    with pytest.raises(ValueError):
        normalize_value(single, "maybe")

    text = catalog.question("e4")
    assert normalize_value(text, "") == ""
    with pytest.raises(ValueError, match="longer than"):
        normalize_value(text, "x" * 41)


def test_predicates():
    assert compile_predicate("gt", 4)(5)
    assert not compile_predicate("gt", 4)(4)
    assert compile_predicate("gt", 4)("5")
    assert not compile_predicate("gt", 4)("abc")
    assert compile_predicate("eq", "no")("no")
    assert compile_predicate("in", ["a", "b"])("b")
    assert compile_predicate("contains", "dog")(frozenset({"dog", "cat"}))
    assert not compile_predicate("contains", "dog")("dog")
    with pytest.raises(ValueError):
        compile_predicate("matches", ".*")


def test_successor_defaults_to_listing_order_and_cycles_fail():
    cat = build_synthetic_catalog()
    assert cat.order == ("personality", "environment")

    raw = synthetic_catalog_dict()
    raw["sections"][1]["successor"] = "personality"
    with pytest.raises(ValueError, match="cycle"):
        Catalog.from_dict(raw)


def test_duplicate_question_ids_rejected():
    raw = synthetic_catalog_dict()
    raw["sections"][1]["questions"].append({"id": "q1", "kind": "free-text"})
    with pytest.raises(ValueError, match="duplicate question"):
        Catalog.from_dict(raw)


def test_public_view_hides_predicates(catalog):
    view = catalog.to_dict()
    assert view["version"] == "test-1"
    personality = view["sections"][0]
    assert personality["threshold"] == pytest.approx(0.8)
    assert personality["skipRules"] == [
        {"trigger": "q1", "targets": ["q2"], "description": "q1 gt 4"}
    ]


def test_non_finite_numbers_are_rejected():
    cat = Catalog.from_dict({
        "version": "open",
        "sections": [{
            "id": "s",
            "questions": [
                {"id": "a", "kind": "single-choice"},
                {"id": "b", "kind": "scalar-slider"},
            ],
        }],
    })
    for qid in ("a", "b"):
        spec = cat.question(qid)
        for bad in ("inf", "-inf", "1e309", float("inf"), float("nan")):
            with pytest.raises(ValueError, match="expected a number"):
                normalize_value(spec, bad)
    with pytest.raises(ValueError, match="out of range"):
        normalize_value(cat.question("a"), "9" * 400)

    store = AnswerStore(cat, MemoryRowStore())
    aid = store.create()
    with pytest.raises(InvalidQuestion) as exc:
        store.merge(aid, {"a": "inf", "b": 3})
    assert exc.value.rejected == {"a": "expected a number"}
    assert store.answers(aid) == {"b": 3}
