"""Validate a rule corpus file without starting the service.

Loads every record through the same schema the RuleStore uses, then checks
cross-record properties the schema cannot see on its own:
  - duplicate rule_ids in the file
  - categories with no rule for the violation their evaluator reports
  - challan rules without a penalty schedule

Exit code 1 if any record is rejected or a check fails.
"""
from __future__ import annotations

import argparse
import json
import os
import sys
from collections import Counter
from typing import Any, Dict, List

import yaml

PROJECT_ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), os.pardir))
SRC_DIR = os.path.join(PROJECT_ROOT, 'src')
if SRC_DIR not in sys.path:
    sys.path.insert(0, SRC_DIR)

from fair_charge import config  # noqa: E402
from fair_charge.evaluation.evaluators import (  # noqa: E402
    CHALLAN_EXCESS_FINE, MANDATORY_SERVICE_CHARGE, MRP_OVERCHARGE,
)
from fair_charge.rules.store import RuleStore  # noqa: E402
from fair_charge.schemas import ChargeType  # noqa: E402

EXPECTED_VIOLATIONS = {
    ChargeType.MRP: MRP_OVERCHARGE,
    ChargeType.SERVICE_CHARGE: MANDATORY_SERVICE_CHARGE,
}


def corpus_report(path: str) -> Dict[str, Any]:
    with open(path, 'r', encoding='utf-8') as f:
        data = yaml.safe_load(f) or {}
    records = data.get('rules', []) if isinstance(data, dict) else data
    ids = Counter(r.get('rule_id') for r in records if isinstance(r, dict))

    store = RuleStore.from_yaml(path)
    problems: List[str] = []
    for rule_id, n in sorted(ids.items(), key=lambda kv: str(kv[0])):
        if n > 1:
            problems.append(f"duplicate rule_id {rule_id} ({n} records)")
    rules = list(store.all())
    for category, violation in EXPECTED_VIOLATIONS.items():
        if not any(r.category == category and r.violation_type == violation for r in rules):
            problems.append(f"no {category.value} rule reports {violation}")
    for r in rules:
        if r.category == ChargeType.CHALLAN:
            if not r.penalty_schedule:
                problems.append(f"{r.rule_id}: challan rule without penalty_schedule")
            if r.violation_type != CHALLAN_EXCESS_FINE:
                problems.append(f"{r.rule_id}: challan rule should report {CHALLAN_EXCESS_FINE}")

    return {
        'path': path,
        'records': sum(ids.values()),
        'loaded': len(store),
        'rejected': [{'rule_id': sv.rule_id, 'error': sv.message} for sv in store.rejected],
        'problems': problems,
        'by_category': store.metadata()['by_category'],
    }


def main():
    parser = argparse.ArgumentParser(description='Validate a consumer rule corpus.')
    parser.add_argument('--rules', default=config.RULES_PATH, help='Rule corpus YAML')
    args = parser.parse_args()
    report = corpus_report(args.rules)
    print(json.dumps(report, indent=2, ensure_ascii=False))
    if report['rejected'] or report['problems']:
        sys.exit(1)


if __name__ == '__main__':
    main()
