#!/usr/bin/env python3
import os
import sys
import subprocess
import glob

def run_tests():
    """
    Finds and runs all pytest test files under backend/tests.

    Extra command line arguments are passed through to pytest, e.g.
    ``./run_tests.py -k provisioning``.
    """
    project_root = os.path.dirname(os.path.abspath(__file__))
    tests_dir = os.path.join(project_root, "backend", "tests")

    if not os.path.isdir(tests_dir):
        print(f"Error: Tests directory not found at {tests_dir}")
        return 1

    test_files = glob.glob(os.path.join(tests_dir, "**", "test_*.py"), recursive=True)
    if not test_files:
        print("No test files found in the tests directory")
        return 0

    print(f"Found {len(test_files)} test files")

    # backend/ is a namespace package; the project root must be importable
    env = os.environ.copy()
    env["PYTHONPATH"] = project_root + os.pathsep + env.get("PYTHONPATH", "")
    # Tests build their own throwaway SQLite engines
    env.setdefault("DATABASE_URL", "sqlite://")

    print(f"\n{'='*50}")
    print(f"Running pytest on {tests_dir}...")
    print(f"{'='*50}")

    cmd = [sys.executable, "-m", "pytest", tests_dir, "-v", *sys.argv[1:]]
    print(f"Command: {' '.join(cmd)}")
    result = subprocess.run(cmd, env=env, cwd=project_root)

    return result.returncode

if __name__ == "__main__":
    sys.exit(run_tests())
