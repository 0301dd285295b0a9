# -*- coding: utf-8 -*-
# pydoit task file
# see https://pydoit.org/
# run from this dir with `doit`, or `doit list`, `doit help` etc. (pip install doit 1st)

from doit.action import CmdAction

TEST_HELP = """echo '
Test {title} Runner Help
====================

Filter Options:
  -k, --keyword TEXT    Only run test matching the keyword expression
                        Example: -k "discovery and not slow"
  -s, --speed TEXT      Filter test by speed:
                        - "slow": Run only slow test
                        - "not slow" or "fast": Skip slow test
                        - "all": Run all test regardless of speed
  -r, --retry           Only run previously failed test

Output Options:
  -p, --print-logs      Print test logs to console instead of capturing
  -f, --full-trace      Show full traceback on errors
  -t, --show-time       Display duration of all test

Examples:
  doit test_{name}                     # Run all test
  doit test_{name} -k session          # Run test containing "session"
  doit test_{name} -s fast -p          # Run fast test with logs
  doit test_{name} --retry --show-time # Rerun failed test with timing
  '"""

HELP_PARAM = {
    "name": "help",
    "long": "help",
    "default": False,
    "type": bool,
}


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
        elif speed:
            raise ValueError(
                f"Invalid speed filter: {speed}. Use 'slow', 'not slow', 'fast', or 'all'"
            )

    # Add test directory
    cmd.append(test_dir)

    return " ".join(cmd)


def _test_task(name, test_dir):
    def router(keyword, speed, retry, print_logs, full_trace, show_time, help=False):
        if help:
            return TEST_HELP.format(title=name.capitalize(), name=name)
        try:
            return _build_pytest_command(
                test_dir,
                keyword=keyword,
                speed=speed,
                retry=retry,
                print_logs=print_logs,
                full_trace=full_trace,
                show_time=show_time,
            )
        except ValueError as e:
            return f"echo 'Error: {str(e)}' && exit 1"

    return {
        "actions": [CmdAction(router)],
        "params": [
            HELP_PARAM,
            {"name": "keyword", "short": "k", "default": ""},
            {"name": "speed", "short": "s", "default": ""},
            {"name": "retry", "short": "r", "default": False, "type": bool},
            {"name": "print_logs", "short": "p", "default": False, "type": bool},
            {"name": "full_trace", "short": "f", "default": False, "type": bool},
            {"name": "show_time", "short": "t", "default": False, "type": bool},
        ],
        "verbosity": 2,
    }


def task_install():
    """Install picolog_udp in editable mode, with test dependencies"""
    return {
        "actions": ["pip install -e .[test]"],
        "verbosity": 2,
    }


def task_test_logic():
    """Run the logic test suite (test in test/logic/)."""
    return _test_task("logic", "test/logic/")


def task_test_hardware():
    """Run the hardware test suite (test in test/hardware/), needs a logger."""
    return _test_task("hardware", "test/hardware/")


def task_format():
    """Format code using ruff."""

    def router(help=False):
        if help:
            return """echo '
Code Formatter Help
=================

This task runs the ruff formatter on src/picolog_udp/, test/ and dodo.py:
- Sorts imports (ruff check --select I --fix)
- Formats code (ruff format)

No options required - simply run:
  doit format
  '"""
        return " && ".join(
            f"ruff check --select I --fix {target} && ruff format {target}"
            for target in ("src/picolog_udp", "test/", "dodo.py")
        )

    return {
        "actions": [CmdAction(router)],
        "params": [HELP_PARAM],
        "verbosity": 2,
    }


def task_docs():
    """Generate documentation using pdoc3."""

    def router(help=False):
        if help:
            return """echo '
Documentation Generator Help
==========================

This task runs pdoc3 to generate HTML documentation for picolog_udp into
docs/, forcing regeneration and skipping errors.

No options required - simply run:
  doit docs
  '"""
        return "pdoc3 --output-dir docs/ --html --force --skip-errors ./src/picolog_udp/"

    return {
        "actions": [CmdAction(router)],
        "params": [HELP_PARAM],
        "verbosity": 2,
    }
