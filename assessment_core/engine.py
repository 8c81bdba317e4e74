# assessment_core/engine.py
from __future__ import annotations
import logging
from typing import Any, Dict, List, Mapping, Optional

from . import config
from .answer_store import AnswerStore, RowStore
from .catalog import Catalog, load_catalog
from .errors import IncompleteAssessment, InvalidQuestion
from .flow import SectionFlowController
from .labels import LabelPolicy, get_label_policy
from .progress import ProgressValidator
from .scoring import ScoringEngine
from .skip_engine import SkipEngine, skip_changes
from .types import AdvanceResult, AnswerValue, SectionProgress, SubmitResult, TraitProfile

log = logging.getLogger(__name__)


class AssessmentEngine:
    """Entry point used by the funnel: autosave, advance, retreat, profile."""

    def __init__(
        self,
        catalog: Optional[Catalog] = None,
        rows: Optional[RowStore] = None,
        label_policy: Optional[LabelPolicy] = None,
    ):
        self.cfg = config.load_config()
        self.catalog = catalog or load_catalog(self.cfg.get("CATALOG_PATH"))
        self.store = AnswerStore(self.catalog, rows)
        self.skips = SkipEngine(self.catalog, self.store)
        self.validator = ProgressValidator(self.catalog, self.store)
        self.scoring = ScoringEngine(
            self.catalog, self.store, label_policy or get_label_policy(self.cfg.get("LABEL_POLICY"))
        )
        self.flow = SectionFlowController(self.catalog, self.store, self.scoring)

    def start(self, assessment_id: Optional[str] = None) -> str:
        return self.store.create(assessment_id)

    def current_section(self, assessment_id: str) -> str:
        return self.flow.current(assessment_id)

    def submit_partial(
        self,
        assessment_id: str,
        section: str,
        answers: Mapping[str, Any],
        client_ts: Optional[float] = None,
    ) -> SubmitResult:
        """Autosave between steps. Raises InvalidQuestion after applying the valid keys."""
        self.catalog.section(section)
        before = self.skips.skipped_ids(assessment_id)
        try:
            merged = self.store.merge(
                assessment_id,
                answers,
                section=section if config.STRICT_SECTION_KEYS else None,
                client_ts=client_ts,
            )
        except InvalidQuestion as e:
            prog = self.validator.section_progress(assessment_id, section)
            e.unanswered_ids = list(prog.unanswered_ids)
            e.skipped_ids = list(prog.skipped_ids)
            raise
        prog = self.validator.section_progress(assessment_id, section)
        if merged.applied:
            added, restored = skip_changes(before, self.skips.skipped_ids(assessment_id))
            if added or restored:
                log.debug("assessment %s skip change: +%s -%s", assessment_id, added, restored)
        return SubmitResult(
            applied=not (merged.stale and not merged.applied),
            unanswered_ids=list(prog.unanswered_ids),
            skipped_ids=list(prog.skipped_ids),
            stale_ids=list(merged.stale),
        )

    def section_answers(self, assessment_id: str, section: str) -> Dict[str, AnswerValue]:
        return self.store.snapshot(assessment_id, section)

    def advance_section(
        self,
        assessment_id: str,
        answers: Optional[Mapping[str, Any]] = None,
        client_ts: Optional[float] = None,
    ) -> AdvanceResult:
        return self.flow.advance(assessment_id, answers, client_ts)

    def retreat_section(self, assessment_id: str) -> str:
        return self.flow.retreat(assessment_id)

    def get_profile(self, assessment_id: str) -> TraitProfile:
        profile = self.store.latest_profile(assessment_id)
        if profile is None:
            incomplete = self.scoring.incomplete_sections(self.store.answers(assessment_id))
            raise IncompleteAssessment(assessment_id, incomplete)
        return profile

    def profile_history(self, assessment_id: str) -> List[TraitProfile]:
        return self.store.profiles(assessment_id)

    def progress(self, assessment_id: str) -> List[SectionProgress]:
        return self.validator.overall(assessment_id)
