#!/usr/bin/env python3

import sys
import argparse
import json
from typing import TypeVar, List, Optional, Union

from yamf.exceptions import MarkingError
from yamf.log import setup_logging
from yamf.marks import load_marking_scheme, marking_scheme_schema
from yamf.reporting import JsonReporter
from yamf.checks.junit import install as junit_install
from yamf.checks.junit.actions import run_checks
from yamf.checks.junit.runner import CheckFramework, RunRequest

ExtraArgType = TypeVar("ExtraArgType", str, int, float)


def run(
    check_class: str,
    marking_scheme: str,
    runner: Optional[str] = None,
    classpath: Optional[Union[str, List[str]]] = None,
    framework: str = "junit5",
    output: Optional[str] = None,
) -> None:
    """
    Run the checks in check_class, mark them with the marks in the marking_scheme
    file and report the results as json (see reporting.JsonReporter).
    """
    request = RunRequest(
        runner=runner or junit_install.default_runner_path(),
        check_class=check_class,
        classpath=classpath,
        framework=CheckFramework.from_name(framework),
    )
    registry = load_marking_scheme(marking_scheme)
    marking_run = run_checks(request, registry=registry, reporter=JsonReporter(output))
    if output is not None:
        print(json.dumps({"marks_earned": marking_run.summary.marks, "marks_total": marking_run.summary.max_marks}))


def install(destination: Optional[str] = None, force: bool = False) -> None:
    """
    Download the JUnit console runner and print the path it was installed to.
    """
    print(junit_install.install(destination, force=force))


def get_schema(**_kw: ExtraArgType) -> None:
    """
    Print a json schema describing marking scheme files.
    """
    print(json.dumps(marking_scheme_schema()))


COMMANDS = {
    "run": run,
    "install": install,
    "schema": get_schema,
}


def cli() -> None:
    """
    Entrypoint for the command line interface of the yamf package.

    This function is invoked when the yamf command is called
    from the command line.
    """
    parser = argparse.ArgumentParser()

    parser.add_argument("command", choices=COMMANDS)
    parser.add_argument("-j", "--arg_json", type=json.loads, default={})

    args = parser.parse_args()

    setup_logging()
    try:
        COMMANDS[args.command](**args.arg_json)
    except MarkingError as e:
        print(str(e))
        sys.exit(1)


if __name__ == "__main__":
    cli()
