from __future__ import annotations
import json, os, datetime
from assessment_core.engine import AssessmentEngine
from assessment_core.errors import InvalidQuestion, ValidationError
from assessment_core.types import COMPLETE
def ask(q) -> object | None:
    hint = ""
    if q.domain.options is not None:
        print(q.text)
        for i,opt in enumerate(q.domain.options): print(f"  [{i}] {opt}")
        hint = "comma-separated indexes" if q.kind == "multi-choice" else "index"
    elif q.domain.numeric:
        hint = f"{q.domain.minimum:g}-{q.domain.maximum:g}"
        print(q.text)
    else:
        print(q.text)
    raw = input(f"Answer ({hint or 'text'}, blank to skip): ").strip()
    if not raw: return None
    if q.domain.options is not None:
        idx = [int(x) for x in raw.split(",") if x.strip().isdigit() and int(x) < len(q.domain.options)]
        picked = [q.domain.options[i] for i in idx]
        return picked if q.kind == "multi-choice" else (picked[0] if picked else raw)
    return raw
def main():
    print("Roommate assessment")
    engine = AssessmentEngine()
    aid = engine.start()
    section = engine.current_section(aid)
    while section != COMPLETE:
        print(f"\n== {engine.catalog.section(section).title} ==")
        for q in engine.catalog.questions_in_section(section):
            if engine.skips.is_skipped(aid, q.id):
                print(f"({q.id} skipped based on a previous answer)")
                continue
            v = ask(q)
            if v is None: continue
            try:
                engine.submit_partial(aid, section, {q.id: v})
            except InvalidQuestion as e:
                print(f"  ! {e}")
        try:
            res = engine.advance_section(aid)
        except ValidationError as e:
            print(f"Please answer more questions first: {', '.join(e.unanswered_ids)}")
            continue
        section = res.new_section
    profile = engine.get_profile(aid); os.makedirs("reports", exist_ok=True)
    ts = datetime.datetime.now().strftime("%Y%m%d_%H%M%S")
    path = os.path.join("reports", f"profile_{ts}.json")
    with open(path, "w", encoding="utf-8") as f: json.dump(profile.to_dict(), f, indent=2)
    print(f"\nYou are a {profile.derived_label}.")
    for trait, score in profile.per_trait.items(): print(f"  {trait:<18} {score:.2f}")
    print(f"Done. Profile saved to: {path}")
if __name__ == "__main__": main()
