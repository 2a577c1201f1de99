import os
import sys
import subprocess
import glob
from dotenv import load_dotenv


def main():

    load_dotenv()

    tests_dir = os.path.join(os.path.dirname(os.path.abspath(__file__)), 'tests')

    test_files = sorted(glob.glob(os.path.join(tests_dir, 'test_*.py')))

    if not test_files:
        print("No test files found matching 'test_*.py' in the 'tests' directory.")
        sys.exit(1)

    passed_tests = 0
    failed_test_files = []

    for test_file in test_files:
        # one process per file so settings and env overrides don't leak between files
        print("---------------------------------------------------------------------- \n")
        print(f"Running test: {test_file}")
        result = subprocess.run(
            [sys.executable, "-W", "ignore", "-m", "unittest", "-v", test_file],
            stdout=sys.stdout,
            stderr=sys.stderr
        )
        if result.returncode != 0:
            failed_test_files.append(test_file)
        else:
            passed_tests += 1

    print("\n" + "="*50)
    print("TEST RUN SUMMARY")
    print("="*50)
    print(f"Total test files run: {len(test_files)}")
    print(f"Passed: {passed_tests}")
    print(f"Failed: {len(failed_test_files)}")

    if failed_test_files:
        print("\nFailed Test Files:")
        for failed_file in failed_test_files:
            print(f" - {failed_file}")

    print("="*50 + "\n")

    sys.exit(1 if failed_test_files else 0)


if __name__ == '__main__':
    main()
