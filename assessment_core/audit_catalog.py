from __future__ import annotations

import json
from pathlib import Path
from typing import Iterable

from . import config
from .catalog import Catalog, load_catalog


def _blank_section() -> dict[str, object]:
    return {
        "questions": 0,
        "kinds": {},
        "reverse_scored": 0,
        "skip_rules": 0,
        "threshold": 0.0,
        "scored": False,
    }


def audit_catalog(catalog: Catalog) -> dict[str, object]:
    coverage: dict[str, dict[str, object]] = {}
    warnings: list[str] = []

    for sec in catalog.sections:
        data = coverage.setdefault(sec.id, _blank_section())
        data["questions"] = len(sec.questions)
        data["threshold"] = float(sec.threshold)
        data["scored"] = sec.scored
        data["skip_rules"] = len(sec.skip_rules)
        kinds: dict[str, int] = data["kinds"]  # type: ignore[assignment]
        for q in sec.questions:
            kinds[q.kind] = kinds.get(q.kind, 0) + 1
            if q.reverse_scored:
                data["reverse_scored"] += 1  # type: ignore[operator]
                if not q.domain.numeric or q.domain.options is not None:
                    warnings.append(f"{sec.id} {q.id} is reverse-scored without a numeric range")
            if sec.scored and not q.trait and q.kind != "free-text":
                warnings.append(f"{sec.id} {q.id} sits in a scored section without a trait")

        if not (0 < sec.threshold <= 1):
            warnings.append(f"{sec.id} threshold {float(sec.threshold):g} is outside (0, 1]")

        for rule in sorted(sec.skip_rules, key=lambda r: r.trigger):
            trig = catalog.question(rule.trigger)
            if trig is None:
                warnings.append(f"{sec.id} skip rule trigger {rule.trigger} is not in the catalog")
            elif trig.section != sec.id:
                warnings.append(f"{sec.id} skip rule trigger {rule.trigger} belongs to {trig.section}")
            if rule.trigger in rule.targets:
                warnings.append(f"{sec.id} skip rule on {rule.trigger} targets its own trigger")
            for target in sorted(rule.targets):
                spec = catalog.question(target)
                if spec is None:
                    warnings.append(f"{sec.id} skip rule on {rule.trigger} targets unknown {target}")
                elif spec.section != sec.id:
                    warnings.append(f"{sec.id} skip rule on {rule.trigger} targets {target} in {spec.section}")

    triggers = {r.trigger for r in catalog.all_skip_rules()}
    for rule in catalog.all_skip_rules():
        for target in sorted(rule.targets & triggers):
            if target == rule.trigger:
                continue
            warnings.append(f"skip rule on {rule.trigger} targets trigger {target}; chained rules do not propagate")

    traits: dict[str, int] = {}
    for trait in catalog.traits:
        traits[trait] = len(catalog.questions_for_trait(trait))
        if traits[trait] < config.AUDIT_MIN_ITEMS_PER_TRAIT:
            warnings.append(f"trait {trait} has {traits[trait]} item(s) (<{config.AUDIT_MIN_ITEMS_PER_TRAIT})")

    if not catalog.scored_sections:
        warnings.append("catalog has no scored section")

    return {
        "version": catalog.version,
        "coverage": coverage,
        "traits": traits,
        "warnings": warnings,
    }


def write_summary(summary: dict[str, object], *, path: Path | str | None = None) -> str:
    text = json.dumps(summary, indent=2, sort_keys=True)
    target = Path(path or config.AUDIT_EXPORT_PATH)
    target.parent.mkdir(parents=True, exist_ok=True)
    target.write_text(text + "\n", encoding="utf-8")
    return text


def _print_summary(summary: dict[str, object]) -> None:
    print(f"Catalog {summary['version']}")
    coverage = summary["coverage"]  # type: ignore[assignment]
    for sid, data in coverage.items():  # type: ignore[union-attr]
        kinds = ", ".join(f"{k}={v}" for k, v in sorted(data["kinds"].items()))
        flag = " scored" if data["scored"] else ""
        print(
            f"  {sid}: {data['questions']} questions ({kinds}), "
            f"{data['reverse_scored']} reverse, {data['skip_rules']} skip rules, "
            f"threshold {data['threshold']:.0%}{flag}"
        )
    for trait, n in summary["traits"].items():  # type: ignore[union-attr]
        print(f"  trait {trait}: {n} items")
    warnings = summary["warnings"]
    if warnings:
        print("\nWarnings:")
        for w in warnings:  # type: ignore[union-attr]
            print(f"  - {w}")
    else:
        print("\n  ✓ No warnings")


def main(argv: Iterable[str] | None = None) -> int:
    args = list(argv or [])
    catalog = load_catalog(args[0] if args else None)
    summary = audit_catalog(catalog)
    _print_summary(summary)
    write_summary(summary)
    return 2 if summary["warnings"] else 0


if __name__ == "__main__":
    raise SystemExit(main())
