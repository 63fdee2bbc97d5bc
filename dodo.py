# -*- coding: utf-8 -*-
# pydoit task file
# see https://pydoit.org/
# run from this dir with `doit`, or `doit list`, `doit help` etc. (pip install doit 1st)

from doit.action import CmdAction


def _build_pytest_command(
    test_dir,
    keyword="",
    speed="",
    retry=False,
    print_logs=False,
    full_trace=False,
    show_time=False,
):
    """Helper function to build pytest commands for test tasks."""
    cmd = ["pytest"]

    # Add options
    if print_logs:
        cmd.append("--capture=no")
    if full_trace:
        cmd.append("--full-trace")
    if show_time:
        cmd.append("--durations=0")

    # Add common flags
    cmd.extend(["--color=yes", "-vv", "-x"])

    # Add filters
    if retry:
        cmd.append("--lf")
    if keyword:
        cmd.extend(["-k", keyword])
    if speed:
        if speed == "slow":
            cmd.extend(["-m", "slow"])
        elif speed in ["not slow", "fast"]:
            cmd.extend(["-m", '"not slow"'])
        elif speed == "all":
            pass
        else:
            raise ValueError(
                f"Invalid speed filter: {speed}. Use 'slow', 'not slow', 'fast', or 'all'"
            )

    # Add test directory
    cmd.append(test_dir)

    return " ".join(cmd)


_TEST_PARAMS = [
    {"name": "help", "long": "help", "default": False, "type": bool},
    {"name": "keyword", "short": "k", "default": ""},
    {"name": "speed", "short": "s", "default": ""},
    {"name": "retry", "short": "r", "default": False, "type": bool},
    {"name": "print_logs", "short": "p", "default": False, "type": bool},
    {"name": "full_trace", "short": "f", "default": False, "type": bool},
    {"name": "show_time", "short": "t", "default": False, "type": bool},
]

_TEST_HELP = """echo '
Test Runner Help
================

Filter Options:
  -k, --keyword TEXT    Only run test matching the keyword expression
                        Example: -k "stream and not slow"
  -s, --speed TEXT      Filter test by speed:
                        - "slow": Run only slow test (real mock host process)
                        - "not slow" or "fast": Skip slow test
                        - "all": Run all test regardless of speed
  -r, --retry           Only run previously failed test

Output Options:
  -p, --print-logs      Print test logs to console instead of capturing
  -f, --full-trace      Show full traceback on errors
  -t, --show-time       Display duration of all test

Examples:
  doit test                      # Run all test
  doit test -k stream            # Run test containing "stream"
  doit test_fast -p              # Run fast test with logs
  doit test --retry --show-time  # Rerun failed test with timing
  '"""


def _test_task(default_speed):
    def router(keyword, speed, retry, print_logs, full_trace, show_time, help=False):
        if help:
            return _TEST_HELP
        try:
            return _build_pytest_command(
                "test/logic/",
                keyword=keyword,
                speed=speed or default_speed,
                retry=retry,
                print_logs=print_logs,
                full_trace=full_trace,
                show_time=show_time,
            )
        except ValueError as e:
            return f"echo 'Error: {str(e)}' && exit 1"

    return {
        "actions": [CmdAction(router)],
        "params": _TEST_PARAMS,
        "verbosity": 2,
    }


def task_make_env():
    """Create a conda environment"""
    return {
        "actions": ["conda create --prefix ./conda_env python=3.11"],
        "targets": ["./conda_env"],
        "uptodate": [True],  # Only run if target doesn't exist
        "verbosity": 2,
    }


def task_install():
    """Install hallscope (with test extras) in editable mode"""
    return {
        "actions": ["pip install -e .[test]"],
        "task_dep": ["make_env"],
        "verbosity": 2,
    }


def task_test():
    """Run the full logic test suite (test in test/logic/)."""
    return _test_task("all")


def task_test_fast():
    """Run the logic test suite without the slow (mock host process) test."""
    return _test_task("fast")


def task_format():
    """Format code using ruff."""
    return {
        "actions": [
            "ruff check --select I --fix src/hallscope",
            "ruff format src/hallscope",
            "ruff check --select I --fix test/",
            "ruff format test/",
            "ruff check --select I --fix dodo.py",
            "ruff format dodo.py",
        ],
        "verbosity": 2,
    }
