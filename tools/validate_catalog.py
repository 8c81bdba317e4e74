from __future__ import annotations
import sys
from math import ceil

from assessment_core.audit_catalog import main as audit_main
from assessment_core.catalog import load_catalog


def main(argv: list[str]) -> int:
    catalog = load_catalog(argv[0] if argv else None)
    print(f"Section flow: {' -> '.join(catalog.order)} -> complete\n")
    for sec in catalog.sections:
        n = len(sec.questions)
        # minimum answers to pass with nothing skipped
        need = ceil(n * sec.threshold) if n else 0
        print(f"{sec.id}: {n} questions, pass with {need} answered")
        for rule in sorted(sec.skip_rules, key=lambda r: r.trigger):
            print(f"  {rule.trigger} -> skip {', '.join(sorted(rule.targets))}: {rule.description}")
    print()
    return audit_main(argv)


if __name__ == "__main__":
    raise SystemExit(main(sys.argv[1:]))
