from __future__ import annotations
import os, json, pathlib


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw.strip())
    except ValueError:
        return default


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return float(raw.strip())
    except ValueError:
        return default


DEFAULT_THRESHOLD: float = 0.8

LIKERT_MIN: int = 1
LIKERT_MAX: int = 5

PERSIST_TIMEOUT_SEC: float = 5.0

LABEL_POLICY: str = "threshold"
LABEL_HIGH_CUT: float = 3.5
LABEL_LOW_CUT: float = 2.5

CATALOG_PATH: str | None = None

AUDIT_MIN_ITEMS_PER_TRAIT: int = 3
AUDIT_EXPORT_PATH: str = "/tmp/catalog_audit.json"

TRAITS: tuple[str, ...] = (
    "openness",
    "conscientiousness",
    "extraversion",
    "agreeableness",
    "neuroticism",
)
# // env overrides for staging/ops; defaults follow the shipped catalog.
DEFAULT_THRESHOLD = _env_float("DEFAULT_THRESHOLD", DEFAULT_THRESHOLD)
PERSIST_TIMEOUT_SEC = _env_float("PERSIST_TIMEOUT_SEC", PERSIST_TIMEOUT_SEC)
LABEL_POLICY = os.getenv("LABEL_POLICY", LABEL_POLICY).strip().lower() or "threshold"
LABEL_HIGH_CUT = _env_float("LABEL_HIGH_CUT", LABEL_HIGH_CUT)
LABEL_LOW_CUT = _env_float("LABEL_LOW_CUT", LABEL_LOW_CUT)
CATALOG_PATH = os.getenv("CATALOG_PATH") or None
AUDIT_MIN_ITEMS_PER_TRAIT = _env_int("AUDIT_MIN_ITEMS_PER_TRAIT", AUDIT_MIN_ITEMS_PER_TRAIT)
STRICT_SECTION_KEYS: bool = _env_bool("STRICT_SECTION_KEYS", True)


def load_config() -> dict:
    cfg = {}
    p = pathlib.Path("config.json")
    if p.exists():
        try: cfg = json.loads(p.read_text(encoding="utf-8"))
        except json.JSONDecodeError: cfg = {}
    e = os.environ
    if e.get("LABEL_POLICY"): cfg["LABEL_POLICY"] = e.get("LABEL_POLICY", "").strip().lower()
    if e.get("CATALOG_PATH"): cfg["CATALOG_PATH"] = e.get("CATALOG_PATH")
    if e.get("DATA_DIR"): cfg["DATA_DIR"] = e.get("DATA_DIR")
    cfg.setdefault("LABEL_POLICY", LABEL_POLICY)
    cfg.setdefault("CATALOG_PATH", CATALOG_PATH)
    return cfg
