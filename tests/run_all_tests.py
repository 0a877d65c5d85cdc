#!/usr/bin/env python3
"""
Test runner for the timed quiz bot.
Runs unit and integration tests, optionally a single category.
"""
import sys
import time
import unittest
from pathlib import Path

# Make the timed_quiz and tests packages importable when run as a script
sys.path.insert(0, str(Path(__file__).parent.parent))

CATEGORIES = {
    'unit': [
        'tests.test_quiz_engine',
        'tests.test_quiz_controller',
        'tests.test_history_store',
        'tests.test_data_manager',
        'tests.test_config_manager',
        'tests.test_timer_lifecycle',
    ],
    'integration': ['tests.test_integration_comprehensive'],
    'discord': ['tests.test_bot_discord_integration'],
    'engine': ['tests.test_quiz_engine'],
    'controller': ['tests.test_quiz_controller'],
    'history': ['tests.test_history_store'],
    'data': ['tests.test_data_manager'],
    'config': ['tests.test_config_manager'],
    'timer': ['tests.test_timer_lifecycle'],
}


def _load(module_names):
    loader = unittest.TestLoader()
    suite = unittest.TestSuite()
    for module_name in module_names:
        try:
            suite.addTest(loader.loadTestsFromName(module_name))
            print(f"✓ Loaded tests from {module_name}")
        except (ImportError, AttributeError) as e:
            print(f"✗ Failed to load {module_name}: {e}")
            return None
    return suite


def run_test_suite(module_names):
    """Run the given test modules and print a summary report."""
    print("=" * 70)
    print("Timed Quiz Bot - Test Suite")
    print("=" * 70)

    suite = _load(module_names)
    if suite is None:
        return False

    runner = unittest.TextTestRunner(verbosity=2, stream=sys.stdout, buffer=True)

    start_time = time.time()
    result = runner.run(suite)
    elapsed = time.time() - start_time

    total_tests = result.testsRun
    failures = len(result.failures)
    errors = len(result.errors)
    skipped = len(result.skipped)
    passed = total_tests - failures - errors - skipped

    print("\n" + "=" * 70)
    print("Test Summary Report")
    print("=" * 70)
    print(f"Total Tests Run: {total_tests}")
    print(f"Passed: {passed}")
    print(f"Failed: {failures}")
    print(f"Errors: {errors}")
    print(f"Skipped: {skipped}")
    print(f"Success Rate: {(passed / total_tests) * 100:.1f}%" if total_tests > 0 else "N/A")
    print(f"Execution Time: {elapsed:.2f} seconds")

    return failures == 0 and errors == 0


def all_modules():
    modules = []
    for category in ('unit', 'integration', 'discord'):
        modules.extend(CATEGORIES[category])
    return modules


if __name__ == '__main__':
    if len(sys.argv) > 1:
        category = sys.argv[1]
        if category not in CATEGORIES:
            print(f"Unknown category: {category}")
            print(f"Available categories: {', '.join(CATEGORIES)}")
            sys.exit(1)
        success = run_test_suite(CATEGORIES[category])
    else:
        success = run_test_suite(all_modules())

    sys.exit(0 if success else 1)
