"""
Test runner script for the Clinical Analysis Engine.

Puts src on PYTHONPATH and runs pytest (or unittest if pytest is not installed).
Run from project root:
  python tests/run_tests.py
  python tests/run_tests.py --unittest        # force unittest instead of pytest
  python tests/run_tests.py workflow          # only tests whose module name contains "workflow"
Debug records from the engine can be captured during a run with
  CLINICAL_ENGINE_DEBUG_LOG=1 python tests/run_tests.py
"""

import os
import sys
import subprocess


def _unittest_command(pattern: str):
    return [sys.executable, "-m", "unittest", "discover", "-s", "tests", "-p", pattern, "-v"]


def main():
    project_root = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
    src_dir = os.path.join(project_root, "src")

    env = os.environ.copy()
    env["PYTHONPATH"] = src_dir + os.pathsep + env.get("PYTHONPATH", "")

    args = sys.argv[1:]
    use_unittest = "--unittest" in args
    args = [a for a in args if a != "--unittest"]
    selection = [a for a in args if not a.startswith("-")]
    pytest_options = [a for a in args if a.startswith("-")]
    pattern = f"test_*{selection[0]}*.py" if selection else "test_*.py"

    if not use_unittest:
        try:
            import pytest  # noqa: F401
        except ImportError:
            print("pytest not installed; falling back to unittest. Install with: pip install -e .[test]")
            use_unittest = True

    if use_unittest:
        return subprocess.call(_unittest_command(pattern), env=env, cwd=project_root)

    command = [sys.executable, "-m", "pytest", "tests", "-v", "--tb=short"] + pytest_options
    if selection:
        command += ["-k", selection[0]]
    return subprocess.call(command, env=env, cwd=project_root)


if __name__ == "__main__":
    sys.exit(main())
