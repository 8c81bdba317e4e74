from __future__ import annotations
from fastapi import FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel
import os, typing as t

# ---- Engine imports ----
from assessment_core.engine import AssessmentEngine
from assessment_core.errors import (
    IncompleteAssessment,
    InvalidQuestion,
    NotFound,
    PersistenceError,
    UnknownSection,
    ValidationError,
)
from assessment_core.types import TraitProfile
from .storage import FileRowStore, valid_assessment_id

ROWS = FileRowStore()
ENGINE = AssessmentEngine(rows=ROWS)

app = FastAPI(title="Roommate Assessment API")


@app.get("/")
def root():
    return {"status": "ok", "service": "roommate-assessment-api"}


ALLOWED_ORIGINS = [
    o.strip()
    for o in os.getenv("ALLOWED_ORIGINS", "http://localhost:3000").split(",")
    if o.strip()
]

app.add_middleware(
    CORSMiddleware,
    allow_origins=ALLOWED_ORIGINS,
    allow_methods=["*"],
    allow_headers=["*"],
    allow_credentials=False,
)

# ---- Schemas ----
class StartReq(BaseModel):
    assessment_id: str | None = None  # derived from the funnel's session when present

class AnswersReq(BaseModel):
    answers: dict[str, t.Any] = {}
    client_ts: float | None = None  # client clock; older autosaves never overwrite newer ones

class AdvanceReq(BaseModel):
    answers: dict[str, t.Any] | None = None
    client_ts: float | None = None

# ---- Helpers ----
def _jsonable(value: t.Any) -> t.Any:
    if isinstance(value, (set, frozenset)):
        return sorted(value)
    return value


def _profile(p: TraitProfile | None) -> dict[str, t.Any] | None:
    return p.to_dict() if p is not None else None

# ---- Error mapping ----
@app.exception_handler(ValidationError)
def _on_validation(request: Request, exc: ValidationError):
    return JSONResponse(status_code=422, content={
        "error": "validation",
        "section": exc.section,
        "unansweredIds": exc.unanswered_ids,
        "fraction": exc.fraction,
        "threshold": exc.threshold,
    })

@app.exception_handler(InvalidQuestion)
def _on_invalid(request: Request, exc: InvalidQuestion):
    return JSONResponse(status_code=422, content={
        "error": "invalid_question",
        "rejected": exc.rejected,
        "applied": exc.applied,
        "unansweredIds": exc.unanswered_ids,
        "skippedIds": exc.skipped_ids,
    })

@app.exception_handler(NotFound)
def _on_not_found(request: Request, exc: NotFound):
    return JSONResponse(status_code=404, content={"error": "not_found", "assessmentId": exc.assessment_id})

@app.exception_handler(UnknownSection)
def _on_unknown_section(request: Request, exc: UnknownSection):
    return JSONResponse(status_code=404, content={"error": "unknown_section", "section": exc.args[0] if exc.args else None})

@app.exception_handler(IncompleteAssessment)
def _on_incomplete(request: Request, exc: IncompleteAssessment):
    return JSONResponse(status_code=409, content={
        "error": "incomplete_assessment",
        "incompleteSections": exc.incomplete_sections,
    })

@app.exception_handler(PersistenceError)
def _on_persistence(request: Request, exc: PersistenceError):
    return JSONResponse(status_code=503, content={"error": "persistence", "detail": str(exc)})

# ---- Health / catalog ----
@app.get("/health")
def health():
    return {
        "catalog_version": ENGINE.catalog.version,
        "sections": list(ENGINE.catalog.order),
        "label_policy": getattr(ENGINE.scoring.label_policy, "name", "custom"),
        "assessments": len(ROWS.list_ids()),
    }

@app.get("/catalog")
def catalog():
    return ENGINE.catalog.to_dict()

# ---- Assessment lifecycle ----
@app.post("/assessments")
def start(req: StartReq | None = None):
    req = req or StartReq()
    if req.assessment_id is not None and not valid_assessment_id(req.assessment_id):
        raise HTTPException(400, "assessment_id must be 1-64 characters of letters, digits, '-' or '_'")
    aid = ENGINE.start(req.assessment_id)
    return {"assessment_id": aid, "section": ENGINE.current_section(aid)}

@app.get("/assessments/{aid}")
def status(aid: str):
    section = ENGINE.current_section(aid)
    return {
        "assessment_id": aid,
        "section": section,
        "progress": [p.to_dict() for p in ENGINE.progress(aid)],
    }

@app.get("/assessments/{aid}/sections/{section}/answers")
def section_answers(aid: str, section: str):
    snap = ENGINE.section_answers(aid, section)
    return {"section": section, "answers": {k: _jsonable(v) for k, v in snap.items()}}

@app.post("/assessments/{aid}/sections/{section}/answers")
def submit(aid: str, section: str, req: AnswersReq):
    res = ENGINE.submit_partial(aid, section, req.answers, client_ts=req.client_ts)
    return {
        "applied": res.applied,
        "unansweredIds": res.unanswered_ids,
        "skippedIds": res.skipped_ids,
        "staleIds": res.stale_ids,
    }

@app.post("/assessments/{aid}/advance")
def advance(aid: str, req: AdvanceReq | None = None):
    req = req or AdvanceReq()
    res = ENGINE.advance_section(aid, req.answers, client_ts=req.client_ts)
    return {"newSection": res.new_section, "profile": _profile(res.profile)}

@app.post("/assessments/{aid}/retreat")
def retreat(aid: str):
    return {"section": ENGINE.retreat_section(aid)}

@app.get("/assessments/{aid}/progress")
def progress(aid: str):
    return {"assessment_id": aid, "sections": [p.to_dict() for p in ENGINE.progress(aid)]}

@app.get("/assessments/{aid}/profile")
def profile(aid: str):
    return _profile(ENGINE.get_profile(aid))

@app.get("/assessments/{aid}/profiles")
def profile_history(aid: str):
    return {"assessment_id": aid, "profiles": [p.to_dict() for p in ENGINE.profile_history(aid)]}
