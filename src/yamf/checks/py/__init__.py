from yamf.checks.py.plugin import MarkingPlugin, run_pytest_checks

__all__ = ["MarkingPlugin", "run_pytest_checks"]
