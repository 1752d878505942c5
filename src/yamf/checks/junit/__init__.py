from yamf.checks.junit.runner import CheckFramework, RunRequest, RunnerInvoker
from yamf.checks.junit.reports import RunResult
from yamf.checks.junit.actions import MarkingRun, run_checks

__all__ = [
    "CheckFramework",
    "MarkingRun",
    "RunRequest",
    "RunResult",
    "RunnerInvoker",
    "run_checks",
]
