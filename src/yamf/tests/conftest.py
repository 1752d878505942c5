import os
import pytest
import structlog
from typing import Callable, Dict, List, Optional
from unittest.mock import patch
from yamf.attachments import AttachmentRegistry
from yamf.listener import MarkingListener
from yamf.marks import MarkMetadata, MarkRegistry

JUPITER_REPORT = "TEST-junit-jupiter.xml"
VINTAGE_REPORT = "TEST-junit-vintage.xml"


def pytest_configure(config):
    """
    Send log events through the logging module while testing. Unconfigured
    structlog prints to stdout, which is where reporters and the cli write.
    """
    structlog.configure(
        processors=[structlog.processors.KeyValueRenderer(key_order=["event"])],
        logger_factory=structlog.stdlib.LoggerFactory(),
    )


def junit_report(
    tests: int = 0,
    failures: int = 0,
    skipped: int = 0,
    errors: int = 0,
    testcases: Optional[List[str]] = None,
    suite: str = "JUnit Jupiter",
) -> str:
    """ Return the content of a junit xml report """
    body = "\n".join(testcases or [])
    return (
        '<?xml version="1.0" encoding="UTF-8"?>\n'
        f'<testsuite name="{suite}" tests="{tests}" skipped="{skipped}" failures="{failures}" errors="{errors}">\n'
        f"{body}\n"
        "</testsuite>\n"
    )


def junit_testcase(classname: str, name: str, inner: str = "") -> str:
    """ Return a junit xml testcase element """
    return f'<testcase name="{name}" classname="{classname}" time="0.01">{inner}</testcase>'


@pytest.fixture
def attachment_registry():
    yield AttachmentRegistry()


@pytest.fixture
def mark_registry():
    registry = MarkRegistry()
    registry.register("checks.CalculatorTests::testAdd", MarkMetadata(marks=2, name="addition"))
    registry.register("checks.CalculatorTests::testSubtract", MarkMetadata(marks=3, name="subtraction"))
    registry.register(
        "checks.CalculatorTests::testStyle",
        MarkMetadata(
            marks=1, name="style", manual_marking_required=True, manual_marking_instructions="check indentation"
        ),
    )
    yield registry


@pytest.fixture
def listener(mark_registry, attachment_registry):
    yield MarkingListener(registry=mark_registry, attachment_registry=attachment_registry)


@pytest.fixture
def reports_dir(tmp_path):
    d = tmp_path / "reports"
    d.mkdir()
    yield str(d)


@pytest.fixture
def write_report(reports_dir) -> Callable[..., str]:
    """ Writes a junit xml report to the reports directory and returns its path """

    def _write(name: str = JUPITER_REPORT, **kwargs) -> str:
        path = os.path.join(reports_dir, name)
        with open(path, "w") as f:
            f.write(junit_report(**kwargs))
        return path

    yield _write


@pytest.fixture
def runner_jar(tmp_path):
    jar = tmp_path / "junit-platform-console-standalone.jar"
    jar.write_bytes(b"PK")
    yield str(jar)


@pytest.fixture
def config_settings() -> Callable[[Dict], None]:
    """ Patches settings of the loaded configuration """
    with patch.dict("yamf.config.config._settings") as settings:

        def _update(values: Dict) -> None:
            for key, val in values.items():
                settings[key] = val

        yield _update
