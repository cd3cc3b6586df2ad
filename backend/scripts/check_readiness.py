#!/usr/bin/env python3
"""Run readiness checks before a deploy.

Usage:
    python scripts/check_readiness.py          # table, exit 1 if not ready
    python scripts/check_readiness.py --json   # machine-readable summary
"""
import argparse
import json
import sys
from pathlib import Path

# Add parent directory to path to import app modules
sys.path.insert(0, str(Path(__file__).parent.parent))

from app.readiness import REQUIRED_CHECKS, is_ready, run_all_checks


def main() -> int:
    parser = argparse.ArgumentParser(description=__doc__, formatter_class=argparse.RawDescriptionHelpFormatter)
    parser.add_argument("--json", action="store_true", help="print a JSON summary instead of a table")
    args = parser.parse_args()

    checks = run_all_checks()
    ready, summary = is_ready(checks)

    if args.json:
        print(json.dumps({"ready": ready, "checks": {n: {"ok": checks[n][0], "message": m} for n, m in summary.items()}}))
        return 0 if ready else 1

    for name, msg in summary.items():
        icon = "✅" if checks[name][0] else ("❌" if name in REQUIRED_CHECKS else "⚠️ ")
        print(f"{icon} {name:<13} {msg}")
    print("\nREADY" if ready else "\nNOT READY (a required check failed)")
    return 0 if ready else 1


if __name__ == "__main__":
    sys.exit(main())
