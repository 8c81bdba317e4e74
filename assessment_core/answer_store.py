"""Per-assessment answer storage with shallow last-write-wins merge.

The store owns every AnswerRecord. A row holds the answers, the flow state and
the profile history of one assessment; it is written back whole, so a reader
sees either the row before a merge or the row after it.
"""
from __future__ import annotations

import copy
import logging
import threading
import uuid
import weakref
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Any, Dict, Iterator, List, Mapping, Optional, Protocol, Tuple

from . import config
from .catalog import Catalog, normalize_value
from .errors import InvalidQuestion, NotFound, PersistenceError
from .types import AnswerRecord, AnswerValue, MergeResult, TraitProfile

log = logging.getLogger(__name__)


def utcnow_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def is_answered(value: Optional[AnswerValue]) -> bool:
    """Present and, for sets and text, non-empty. An empty selection counts as unanswered."""
    if value is None:
        return False
    if isinstance(value, (frozenset, set, str)):
        return len(value) > 0
    return True


class RowStore(Protocol):
    def load_row(self, assessment_id: str) -> Optional[Dict[str, Any]]: ...
    def save_row(self, assessment_id: str, row: Dict[str, Any]) -> None: ...


class MemoryRowStore:
    """Process-local row store for tests and the terminal runner."""

    def __init__(self) -> None:
        self._rows: Dict[str, Dict[str, Any]] = {}

    def load_row(self, assessment_id: str) -> Optional[Dict[str, Any]]:
        row = self._rows.get(assessment_id)
        return copy.deepcopy(row) if row is not None else None

    def save_row(self, assessment_id: str, row: Dict[str, Any]) -> None:
        self._rows[assessment_id] = copy.deepcopy(row)


def _encode(value: AnswerValue) -> Any:
    if isinstance(value, frozenset):
        return sorted(value)
    return value


class RowTransaction:
    """Working copy of one row. Changes are saved only if the block exits cleanly."""

    def __init__(self, catalog: Catalog, assessment_id: str, row: Dict[str, Any]):
        self.catalog = catalog
        self.assessment_id = assessment_id
        self.row = copy.deepcopy(row)
        self.dirty = False

    def _decode(self, qid: str, raw: Any) -> Optional[AnswerValue]:
        spec = self.catalog.question(qid)
        if spec is None:
            return None
        if spec.kind == "multi-choice":
            return frozenset(raw or ())
        return raw

    def answers(self) -> Dict[str, AnswerValue]:
        out: Dict[str, AnswerValue] = {}
        for qid, rec in (self.row.get("answers") or {}).items():
            val = self._decode(qid, rec.get("value"))
            if val is not None:
                out[qid] = val
        return out

    def records(self) -> List[AnswerRecord]:
        out: List[AnswerRecord] = []
        for qid, rec in (self.row.get("answers") or {}).items():
            val = self._decode(qid, rec.get("value"))
            if val is None:
                continue
            out.append(AnswerRecord(
                assessment_id=self.assessment_id,
                question_id=qid,
                raw_value=val,
                recorded_at=str(rec.get("recordedAt", "")),
                client_ts=rec.get("clientTs"),
            ))
        return out

    def stage_answers(self, staged: Mapping[str, AnswerValue], client_ts: Optional[float] = None) -> MergeResult:
        result = MergeResult()
        if not staged:
            return result
        answers = self.row.setdefault("answers", {})
        now = utcnow_iso()
        for qid, value in staged.items():
            prev = answers.get(qid)
            prev_ts = prev.get("clientTs") if prev else None
            if client_ts is not None and prev_ts is not None and float(prev_ts) > client_ts:
                result.stale.append(qid)
                continue
            # an untimed write keeps the stored clock so older autosaves stay stale
            ts = client_ts if client_ts is not None else prev_ts
            answers[qid] = {"value": _encode(value), "recordedAt": now, "clientTs": ts}
            result.applied.append(qid)
        if result.applied:
            self.row["updatedAt"] = now
            self.dirty = True
        return result

    @property
    def flow(self) -> Dict[str, Any]:
        return dict(self.row.get("flow") or {})

    def set_flow(self, state: Dict[str, Any]) -> None:
        self.row["flow"] = dict(state)
        self.row["updatedAt"] = utcnow_iso()
        self.dirty = True

    def profiles(self) -> List[TraitProfile]:
        return [TraitProfile.from_dict(p) for p in (self.row.get("profiles") or [])]

    def append_profile(self, profile: TraitProfile) -> None:
        self.row.setdefault("profiles", []).append(profile.to_dict())
        self.dirty = True


class _RowLock:
    """Per-assessment lock. A plain object so the registry can hold it weakly."""

    def __init__(self) -> None:
        self._lock = threading.Lock()

    def acquire(self, timeout: float = -1) -> bool:
        return self._lock.acquire(timeout=timeout)

    def release(self) -> None:
        self._lock.release()


class AnswerStore:
    def __init__(self, catalog: Catalog, rows: Optional[RowStore] = None, *, timeout: Optional[float] = None):
        self.catalog = catalog
        self.rows: RowStore = rows if rows is not None else MemoryRowStore()
        self.timeout = config.PERSIST_TIMEOUT_SEC if timeout is None else float(timeout)
        # entries vanish once no caller holds the lock
        self._locks: weakref.WeakValueDictionary[str, _RowLock] = weakref.WeakValueDictionary()
        self._registry = threading.Lock()

    # ---- locking / IO ----
    def _lock_for(self, assessment_id: str) -> _RowLock:
        with self._registry:
            lock = self._locks.get(assessment_id)
            if lock is None:
                lock = _RowLock()
                self._locks[assessment_id] = lock
            return lock

    @contextmanager
    def _locked(self, assessment_id: str) -> Iterator[None]:
        lock = self._lock_for(assessment_id)
        if not lock.acquire(timeout=self.timeout):
            raise PersistenceError(f"timed out after {self.timeout:g}s waiting for assessment {assessment_id!r}")
        try:
            yield
        finally:
            lock.release()

    def _load(self, assessment_id: str) -> Dict[str, Any]:
        try:
            row = self.rows.load_row(assessment_id)
        except OSError as e:
            raise PersistenceError(f"load failed for {assessment_id!r}: {e}") from e
        if row is None:
            raise NotFound(assessment_id)
        return row

    def _save(self, assessment_id: str, row: Dict[str, Any]) -> None:
        try:
            self.rows.save_row(assessment_id, row)
        except OSError as e:
            raise PersistenceError(f"save failed for {assessment_id!r}: {e}") from e

    @contextmanager
    def transaction(self, assessment_id: str) -> Iterator[RowTransaction]:
        with self._locked(assessment_id):
            tx = RowTransaction(self.catalog, assessment_id, self._load(assessment_id))
            yield tx
            if tx.dirty:
                self._save(assessment_id, tx.row)

    # ---- lifecycle ----
    def create(self, assessment_id: Optional[str] = None) -> str:
        aid = assessment_id or str(uuid.uuid4())
        with self._locked(aid):
            try:
                existing = self.rows.load_row(aid)
            except OSError as e:
                raise PersistenceError(f"load failed for {aid!r}: {e}") from e
            if existing is not None:
                return aid
            now = utcnow_iso()
            self._save(aid, {
                "assessmentId": aid,
                "catalogVersion": self.catalog.version,
                "createdAt": now,
                "updatedAt": now,
                "answers": {},
                "flow": {"current": self.catalog.first_section},
                "profiles": [],
            })
        log.info("assessment %s created at section %s", aid, self.catalog.first_section)
        return aid

    def exists(self, assessment_id: str) -> bool:
        try:
            return self.rows.load_row(assessment_id) is not None
        except OSError as e:
            raise PersistenceError(f"load failed for {assessment_id!r}: {e}") from e

    # ---- writes ----
    def validate_partial(
        self, partial: Mapping[str, Any], section: Optional[str] = None
    ) -> Tuple[Dict[str, AnswerValue], Dict[str, str]]:
        """Split a payload into normalized values and rejected keys (id -> reason)."""
        allowed = set(self.catalog.section(section).question_ids) if section else None
        staged: Dict[str, AnswerValue] = {}
        rejected: Dict[str, str] = {}
        for qid, value in (partial or {}).items():
            spec = self.catalog.question(qid)
            if spec is None:
                rejected[qid] = "unknown question"
                continue
            if allowed is not None and qid not in allowed:
                rejected[qid] = f"not in section {section}"
                continue
            try:
                staged[qid] = normalize_value(spec, value)
            except ValueError as e:
                rejected[qid] = str(e)
        return staged, rejected

    def merge(
        self,
        assessment_id: str,
        partial: Mapping[str, Any],
        *,
        section: Optional[str] = None,
        client_ts: Optional[float] = None,
    ) -> MergeResult:
        """Each key replaces its record; absent keys are untouched.

        Rejected keys do not block valid ones: valid keys are written first, then
        InvalidQuestion is raised naming the rejected keys and the applied ones.
        """
        staged, rejected = self.validate_partial(partial, section)
        with self.transaction(assessment_id) as tx:
            result = tx.stage_answers(staged, client_ts)
        if result.stale:
            log.debug("assessment %s: ignored stale keys %s", assessment_id, result.stale)
        if rejected:
            log.warning("assessment %s: rejected keys %s", assessment_id, sorted(rejected))
            raise InvalidQuestion(rejected, applied=result.applied)
        log.debug("assessment %s: merged %d key(s)", assessment_id, len(result.applied))
        return result

    # ---- reads ----
    def get(self, assessment_id: str, question_id: str) -> Optional[AnswerValue]:
        return self.answers(assessment_id).get(question_id)

    def answers(self, assessment_id: str) -> Dict[str, AnswerValue]:
        with self.transaction(assessment_id) as tx:
            return tx.answers()

    def snapshot(self, assessment_id: str, section: str) -> Dict[str, AnswerValue]:
        ids = self.catalog.section(section).question_ids
        current = self.answers(assessment_id)
        return {qid: current[qid] for qid in ids if qid in current}

    def records(self, assessment_id: str) -> List[AnswerRecord]:
        with self.transaction(assessment_id) as tx:
            return tx.records()

    def flow_state(self, assessment_id: str) -> Dict[str, Any]:
        with self.transaction(assessment_id) as tx:
            return tx.flow

    def set_flow_state(self, assessment_id: str, state: Dict[str, Any]) -> None:
        with self.transaction(assessment_id) as tx:
            tx.set_flow(state)

    def profiles(self, assessment_id: str) -> List[TraitProfile]:
        with self.transaction(assessment_id) as tx:
            return tx.profiles()

    def latest_profile(self, assessment_id: str) -> Optional[TraitProfile]:
        found = self.profiles(assessment_id)
        return found[-1] if found else None

    def append_profile(self, assessment_id: str, profile: TraitProfile) -> None:
        with self.transaction(assessment_id) as tx:
            tx.append_profile(profile)
