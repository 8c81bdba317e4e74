from __future__ import annotations

import pytest

from assessment_core.answer_store import MemoryRowStore
from assessment_core.engine import AssessmentEngine
from assessment_core.errors import IncompleteAssessment, InvalidQuestion, NotFound, ValidationError
from assessment_core.labels import ThresholdLabelPolicy
from assessment_core.types import COMPLETE

from tests.conftest import ENVIRONMENT_DONE, build_synthetic_catalog


def test_threshold_gates_advance(engine):
    aid = engine.start()
    res = engine.submit_partial(aid, "personality", {"q1": 3, "q2": 4, "q3": 2})
    assert res.applied is True
    assert res.unanswered_ids == ["q4", "q5"]

    with pytest.raises(ValidationError) as exc:
        engine.advance_section(aid)
    assert exc.value.unanswered_ids == ["q4", "q5"]
    assert exc.value.section == "personality"
    assert engine.current_section(aid) == "personality"

    engine.submit_partial(aid, "personality", {"q4": 5})
    res = engine.advance_section(aid)
    assert res.new_section == "environment"
    assert res.profile is None
    assert engine.current_section(aid) == "environment"


def test_skip_changes_reported_by_submit(engine):
    aid = engine.start()
    res = engine.submit_partial(aid, "personality", {"q1": 5})
    assert res.skipped_ids == ["q2"]
    assert res.unanswered_ids == ["q3", "q4", "q5"]

    res = engine.submit_partial(aid, "personality", {"q1": 2})
    assert res.skipped_ids == []
    assert res.unanswered_ids == ["q2", "q3", "q4", "q5"]


def test_empty_submit_is_a_no_op(engine):
    aid = engine.start()
    engine.submit_partial(aid, "personality", {"q1": 5, "q3": 1})
    before = engine.store.answers(aid)
    before_skips = engine.skips.skip_state(aid)

    res = engine.submit_partial(aid, "personality", {})

    assert res.applied is True
    assert engine.store.answers(aid) == before
    assert engine.skips.skip_state(aid) == before_skips


def test_stale_submit_reports_not_applied(engine):
    aid = engine.start()
    engine.submit_partial(aid, "personality", {"q1": 4}, client_ts=10.0)
    res = engine.submit_partial(aid, "personality", {"q1": 1}, client_ts=5.0)
    assert res.applied is False
    assert res.stale_ids == ["q1"]
    assert engine.store.get(aid, "q1") == 4


def test_advance_with_payload_validates_before_writing(engine):
    aid = engine.start()
    engine.submit_partial(aid, "personality", {"q1": 3, "q2": 3})

    with pytest.raises(InvalidQuestion):
        engine.advance_section(aid, {"q3": 3, "q4": 3, "bogus": 1})
    assert engine.store.get(aid, "q3") is None

    with pytest.raises(ValidationError):
        engine.advance_section(aid, {"q3": 3})
    assert engine.store.get(aid, "q3") is None, "nothing is written when the gate fails"

    res = engine.advance_section(aid, {"q3": 3, "q4": 3})
    assert res.new_section == "environment"
    assert engine.store.get(aid, "q4") == 3


def test_full_run_creates_profile_once(engine):
    aid = engine.start()
    engine.submit_partial(aid, "personality", {"q1": 4, "q2": 2, "q3": 5, "q4": 1, "q5": 3})
    engine.advance_section(aid)

    with pytest.raises(IncompleteAssessment):
        engine.get_profile(aid)

    engine.submit_partial(aid, "environment", ENVIRONMENT_DONE)
    res = engine.advance_section(aid)
    assert res.complete
    assert res.profile is not None
    assert res.profile.per_trait == {
        "openness": 4.0,
        "conscientiousness": 5.0,
        "extraversion": 1.0,
        "agreeableness": 3.0,
    }
    assert res.profile.derived_label == "Quiet Organizer"

    again = engine.advance_section(aid)
    assert again.new_section == COMPLETE
    assert again.profile == res.profile
    assert engine.get_profile(aid) == res.profile
    assert len(engine.profile_history(aid)) == 1


def test_resubmission_supersedes_without_mutating(engine):
    aid = engine.start()
    engine.advance_section(aid, {"q1": 4, "q2": 2, "q3": 5, "q4": 1, "q5": 3})
    first = engine.advance_section(aid, ENVIRONMENT_DONE).profile

    assert engine.retreat_section(aid) == "environment"
    assert engine.retreat_section(aid) == "personality"
    engine.submit_partial(aid, "personality", {"q4": 5})
    engine.advance_section(aid)
    second = engine.advance_section(aid).profile

    assert second.revision == 2
    assert second.per_trait["extraversion"] == 5.0
    history = engine.profile_history(aid)
    assert [p.revision for p in history] == [1, 2]
    assert history[0] == first
    assert history[0].per_trait["extraversion"] == 1.0
    assert engine.get_profile(aid) == second


def test_retreat_needs_no_validation(engine):
    aid = engine.start()
    assert engine.retreat_section(aid) == "personality"
    engine.advance_section(aid, {"q1": 1, "q2": 1, "q3": 1, "q4": 1})
    assert engine.current_section(aid) == "environment"
    assert engine.retreat_section(aid) == "personality"


def test_complete_requires_scored_sections_still_complete():
    cat = build_synthetic_catalog(threshold=1.0)
    engine = AssessmentEngine(catalog=cat, rows=MemoryRowStore(), label_policy=ThresholdLabelPolicy())
    aid = engine.start()
    engine.advance_section(aid, {"q1": 5, "q3": 3, "q4": 3, "q5": 3})
    # q1 drops below the skip cut, so q2 is live again and unanswered
    engine.submit_partial(aid, "personality", {"q1": 2})
    engine.submit_partial(aid, "environment", ENVIRONMENT_DONE)

    with pytest.raises(IncompleteAssessment) as exc:
        engine.advance_section(aid)
    assert exc.value.incomplete_sections == ["personality"]
    assert engine.current_section(aid) == "environment"


def test_assessments_are_independent(engine):
    a = engine.start()
    b = engine.start()
    engine.advance_section(a, {"q1": 3, "q2": 3, "q3": 3, "q4": 3})
    assert engine.current_section(a) == "environment"
    assert engine.current_section(b) == "personality"
    assert engine.store.answers(b) == {}


def test_unknown_assessment(engine):
    with pytest.raises(NotFound):
        engine.advance_section("nope")
    with pytest.raises(NotFound):
        engine.submit_partial("nope", "personality", {"q1": 1})


def test_delayed_autosave_cannot_undo_an_advance_payload(engine):
    aid = engine.start()
    engine.submit_partial(aid, "personality", {"q1": 4}, client_ts=200.0)
    engine.advance_section(aid, {"q1": 1, "q2": 3, "q3": 3, "q4": 3})

    late = engine.submit_partial(aid, "personality", {"q1": 3}, client_ts=100.0)
    assert late.applied is False
    assert late.stale_ids == ["q1"]
    assert engine.store.get(aid, "q1") == 1


def test_advance_carries_client_clock(engine):
    aid = engine.start()
    engine.advance_section(aid, {"q1": 2, "q2": 3, "q3": 3, "q4": 3}, client_ts=300.0)
    late = engine.submit_partial(aid, "personality", {"q1": 5}, client_ts=250.0)
    assert late.stale_ids == ["q1"]
    assert engine.store.get(aid, "q1") == 2


def test_rejected_autosave_still_reports_progress(engine):
    aid = engine.start()
    with pytest.raises(InvalidQuestion) as exc:
        engine.submit_partial(aid, "personality", {"q1": 5, "q3": 2, "q9": 1})
    err = exc.value
    assert err.rejected == {"q9": "unknown question"}
    assert err.applied == ["q1", "q3"]
    assert err.unanswered_ids == ["q4", "q5"]
    assert err.skipped_ids == ["q2"]
