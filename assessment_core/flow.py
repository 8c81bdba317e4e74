from __future__ import annotations
import logging
from typing import Any, Mapping, Optional

from .answer_store import AnswerStore
from .catalog import Catalog
from .errors import InvalidQuestion, ValidationError
from .progress import progress_for
from .scoring import ScoringEngine
from .types import COMPLETE, AdvanceResult

log = logging.getLogger(__name__)


class SectionFlowController:
    """Per-assessment state machine over the catalog's sections plus ``complete``.

    The current section lives in the assessment row, never in process state.
    """

    def __init__(self, catalog: Catalog, store: AnswerStore, scoring: ScoringEngine):
        self.catalog = catalog
        self.store = store
        self.scoring = scoring

    def _current(self, flow: Mapping[str, Any]) -> str:
        return str(flow.get("current") or self.catalog.first_section)

    def current(self, assessment_id: str) -> str:
        return self._current(self.store.flow_state(assessment_id))

    def advance(
        self,
        assessment_id: str,
        answers: Optional[Mapping[str, Any]] = None,
        client_ts: Optional[float] = None,
    ) -> AdvanceResult:
        """Validate the current section (with ``answers`` overlaid) and move on.

        Nothing is written unless the move succeeds. Entering ``complete``
        appends a new profile; in ``complete`` this returns the latest one.
        """
        with self.store.transaction(assessment_id) as tx:
            cur = self._current(tx.flow)
            if cur == COMPLETE:
                if answers:
                    log.debug("assessment %s complete; ignoring %d key(s) on advance", assessment_id, len(answers))
                found = tx.profiles()
                return AdvanceResult(COMPLETE, found[-1] if found else None)

            staged, rejected = self.store.validate_partial(answers or {}, cur)
            if rejected:
                raise InvalidQuestion(rejected, applied=())
            merged = tx.answers()
            merged.update(staged)

            prog = progress_for(self.catalog, merged, cur)
            if not prog.complete:
                log.info(
                    "assessment %s blocked at %s: %d/%d answered",
                    assessment_id, cur, prog.answered, prog.live,
                )
                raise ValidationError(cur, prog.unanswered_ids, float(prog.fraction), float(prog.threshold))

            nxt = self.catalog.successor(cur) or COMPLETE
            profile = None
            if nxt == COMPLETE:
                profile = self.scoring.build_profile(assessment_id, merged, revision=len(tx.profiles()) + 1)
                tx.append_profile(profile)
            tx.stage_answers(staged, client_ts)
            tx.set_flow({"current": nxt, "previous": cur})
        log.info("assessment %s advanced %s -> %s", assessment_id, cur, nxt)
        return AdvanceResult(nxt, profile)

    def retreat(self, assessment_id: str) -> str:
        """Step back without validation. From ``complete`` this returns to the last section."""
        with self.store.transaction(assessment_id) as tx:
            cur = self._current(tx.flow)
            prev = self.catalog.last_section if cur == COMPLETE else self.catalog.predecessor(cur)
            if prev is None:
                return cur
            tx.set_flow({"current": prev, "previous": cur})
        log.info("assessment %s retreated %s -> %s", assessment_id, cur, prev)
        return prev
