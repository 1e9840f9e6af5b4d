#!/usr/bin/env python3
"""Run the reposync test modules one by one and print a pass/fail summary."""

import subprocess
import sys
from pathlib import Path

SUITES = [
    ("test_status_interpreter.py", "Status interpretation"),
    ("test_reconciliation_engine.py", "Reconciliation against real repositories"),
    ("test_sync_planner.py", "Target enumeration and de-duplication"),
    ("test_transport.py", "SSH sessions and clone transports"),
    ("test_forge_catalog.py", "GitHub listings"),
    ("test_config.py", "Configuration"),
    ("test_reporter.py", "Outcome rendering"),
    ("test_errors.py", "Error descriptions"),
    ("test_cli.py", "Command line"),
]


def run_suite(test_file: str, description: str) -> bool:
    print(f"\n{'=' * 60}")
    print(f"Running: {description} ({test_file})")
    print('=' * 60)

    result = subprocess.run([sys.executable, "-m", "pytest", "-q", test_file])
    success = result.returncode == 0
    print(f"\n{'✅ PASSED' if success else '❌ FAILED'}: {description}")
    return success


def main() -> bool:
    root = Path(__file__).parent
    results = []
    for test_file, description in SUITES:
        if not (root / test_file).exists():
            print(f"⚠️  Test file not found: {test_file}")
            results.append((description, False))
            continue
        results.append((description, run_suite(str(root / test_file), description)))

    print(f"\n{'=' * 60}")
    print("TEST SUITE SUMMARY")
    print('=' * 60)
    for description, success in results:
        print(f"{'✅ PASS' if success else '❌ FAIL'} {description}")

    passed = sum(1 for _, success in results if success)
    print(f"\nResults: {passed}/{len(results)} suites passed")
    return passed == len(results)


if __name__ == "__main__":
    try:
        sys.exit(0 if main() else 1)
    except KeyboardInterrupt:
        print("\n\nTest suite interrupted by user")
        sys.exit(130)
