"""Durable JSON-file rows for assessments.

One file per assessment under ``DATA_DIR/assessments``. The row holds the
answers, the flow state and the profile history; the engine treats it as the
single source of truth. A database-backed store only needs ``load_row`` and
``save_row``.
"""

from __future__ import annotations

import json
import os
import re
import threading
from pathlib import Path
from typing import Any, Dict, List, Optional

from assessment_core.errors import PersistenceError


DATA_ROOT = Path(os.getenv("DATA_DIR", "data")).resolve()
ASSESSMENTS_DIR = DATA_ROOT / "assessments"

_LOCK = threading.Lock()
_ID_RX = re.compile(r"^[A-Za-z0-9_-]{1,64}$")


def _ensure_dirs(root: Path) -> None:
    root.mkdir(parents=True, exist_ok=True)


def _read_json(path: Path, default: Any) -> Any:
    if not path.exists():
        return default
    try:
        return json.loads(path.read_text(encoding="utf-8"))
    except ValueError as e:
        raise PersistenceError(f"corrupt row {path.name}: {e}") from e


def _write_json(path: Path, payload: Any) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp = path.with_suffix(path.suffix + ".tmp")
    tmp.write_text(json.dumps(payload, indent=2, sort_keys=True), encoding="utf-8")
    tmp.replace(path)


def valid_assessment_id(assessment_id: str) -> bool:
    return bool(_ID_RX.match(assessment_id or ""))


class FileRowStore:
    def __init__(self, root: Optional[Path] = None):
        self.root = Path(root) if root is not None else ASSESSMENTS_DIR

    def _path(self, assessment_id: str) -> Path:
        return self.root / f"{assessment_id}.json"

    def load_row(self, assessment_id: str) -> Optional[Dict[str, Any]]:
        if not valid_assessment_id(assessment_id):
            return None
        return _read_json(self._path(assessment_id), None)

    def save_row(self, assessment_id: str, row: Dict[str, Any]) -> None:
        if not valid_assessment_id(assessment_id):
            raise ValueError(f"invalid assessment id {assessment_id!r}")
        _ensure_dirs(self.root)
        with _LOCK:
            _write_json(self._path(assessment_id), row)

    def list_ids(self) -> List[str]:
        if not self.root.exists():
            return []
        return sorted(p.stem for p in self.root.glob("*.json"))
