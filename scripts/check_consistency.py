"""
Consistency Check Script - Verifies asset locks against pending workflows
Run: python -m scripts.check_consistency
Exit code is 1 when violations are found.
"""
import sys
import os
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from assetflow.engine.consistency import check_store
from assetflow.repositories import get_store


def main() -> int:
    report = check_store(get_store())

    print(f"Assets checked: {report.assets_checked}")
    print(f"Pending workflows checked: {report.workflows_checked}")

    for violation in report.violations:
        print(f"  VIOLATION: {violation}")
    for asset_id in report.duplicate_pending:
        print(f"  DUPLICATE PENDING: {asset_id}")

    if report.ok:
        print("Store is consistent.")
        return 0
    return 1


if __name__ == "__main__":
    sys.exit(main())
