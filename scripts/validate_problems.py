#!/usr/bin/env python3
"""
Validate problem JSON files.

Usage:
    python scripts/validate_problems.py --check             # report issues, exit 1 if any
    python scripts/validate_problems.py --check foo.json    # check a single file
"""

import json
import sys
from pathlib import Path

from pydantic import ValidationError

from codesage.analyzer import COMPLEXITY_LABELS
from codesage.problems import PROBLEMS_DIR, CodingProblem


def _issue(fname, field, kind, detail):
    return {"file": fname, "field": field, "kind": kind, "detail": detail}


def validate_problem(data, filepath=None):
    """Validate a single problem dict. Returns list of issue dicts."""
    fname = Path(filepath).name if filepath else "<unknown>"

    try:
        problem = CodingProblem.model_validate(data)
    except ValidationError as exc:
        return [
            _issue(fname, ".".join(str(p) for p in err["loc"]), "schema", err["msg"])
            for err in exc.errors()
        ]

    issues = []
    if filepath and Path(filepath).stem != problem.id:
        issues.append(_issue(fname, "id", "name_mismatch",
                             f"id '{problem.id}' does not match file name"))
    if not problem.hints:
        issues.append(_issue(fname, "hints", "empty", "Problem has no hints"))
    if not problem.test_cases:
        issues.append(_issue(fname, "test_cases", "empty", "Problem has no example test cases"))
    if "def " not in problem.initial_code:
        issues.append(_issue(fname, "initial_code", "no_function",
                             "initial_code does not define a function"))
    for key in ("time", "space"):
        label = getattr(problem.expected_complexity, key)
        if label not in COMPLEXITY_LABELS:
            issues.append(_issue(fname, f"expected_complexity.{key}", "unknown_label",
                                 f"'{label}' is not a label the analyzer produces"))
    return issues


def validate_file(filepath):
    """Load and validate a single problem file. Returns (problem dict or None, issues)."""
    try:
        with open(filepath, encoding="utf-8") as f:
            data = json.load(f)
    except json.JSONDecodeError as exc:
        return None, [_issue(Path(filepath).name, "-", "invalid_json", str(exc))]
    return data, validate_problem(data, filepath)


def validate_catalog(loaded):
    """Cross-file checks over (filename, data) pairs: unique ids and unique order."""
    issues = []
    seen_ids = {}
    seen_orders = {}
    for fname, data in loaded:
        pid, order = data.get("id"), data.get("order")
        if pid in seen_ids:
            issues.append(_issue(fname, "id", "duplicate", f"id '{pid}' also used by {seen_ids[pid]}"))
        seen_ids.setdefault(pid, fname)
        if order in seen_orders:
            issues.append(_issue(fname, "order", "duplicate",
                                 f"order {order} also used by {seen_orders[order]}"))
        seen_orders.setdefault(order, fname)
    return issues


def main():
    import argparse
    parser = argparse.ArgumentParser(description="Validate problem JSON files")
    parser.add_argument("--check", action="store_true", help="Report issues (exit 1 if any)")
    parser.add_argument("path", nargs="?", default=None,
                        help="Single file or directory (default: codesage/problems/)")
    args = parser.parse_args()

    if not args.check:
        parser.error("Specify --check")

    target = Path(args.path) if args.path else PROBLEMS_DIR
    if target.is_file():
        files = [target]
    elif target.is_dir():
        files = sorted(target.glob("*.json"))
    else:
        print(f"Error: {target} not found", file=sys.stderr)
        sys.exit(1)

    all_issues = []
    loaded = []
    for fpath in files:
        data, issues = validate_file(fpath)
        if data is not None:
            loaded.append((fpath.name, data))
        all_issues.extend(issues)
    all_issues.extend(validate_catalog(loaded))

    by_file = {}
    for iss in all_issues:
        by_file.setdefault(iss["file"], []).append(iss)
    for fname, issues in by_file.items():
        print(f"{fname}: {len(issues)} issues")
        for iss in issues:
            print(f"  [{iss['kind']}] {iss['field']}: {iss['detail']}")

    print(f"\n{'='*50}")
    print(f"Files scanned: {len(files)}")
    print(f"Files with issues: {len(by_file)}")
    print(f"Total issues: {len(all_issues)}")

    if all_issues:
        sys.exit(1)


if __name__ == "__main__":
    main()
