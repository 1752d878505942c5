import enum
import functools
import os
import platform
import subprocess
from dataclasses import dataclass
from datetime import datetime
from typing import List, Optional, Sequence, Tuple

import structlog

from yamf.config import config
from yamf.exceptions import RunnerConfigurationError, RunnerInvocationError

log = structlog.get_logger("yamf.runner")

REPORTS_DIR_TIMESTAMP_FORMAT = "%Y-%m-%d--%H-%M-%S--{millis:03d}"


class CheckFramework(enum.Enum):
    """ The JUnit engine checks are written for, and the report it produces """

    JUNIT5 = "TEST-junit-jupiter.xml"
    JUNIT4 = "TEST-junit-vintage.xml"

    @property
    def report_name(self) -> str:
        return self.value

    @classmethod
    def from_name(cls, name: str) -> "CheckFramework":
        try:
            return cls[name.upper()]
        except KeyError:
            raise RunnerConfigurationError(f"unknown check framework {name}, use one of junit5, junit4") from None


class PlatformFamily(enum.Enum):
    WINDOWS = "windows"
    POSIX = "posix"


@functools.lru_cache(maxsize=None)
def platform_family() -> PlatformFamily:
    """ Return the platform family of this host, detected once per process """
    if platform.system().lower().startswith("win"):
        return PlatformFamily.WINDOWS
    return PlatformFamily.POSIX


@dataclass(frozen=True)
class RunRequest:
    """
    What to run: the standalone console runner jar, the check class to run with
    it, the classpath of the checks and the system under test (None to let the
    runner resolve it) and the framework the checks are written for.

    A classpath given as a single string is split on the path separator.
    """

    runner: str
    check_class: str
    classpath: Optional[Tuple[str, ...]] = None
    framework: CheckFramework = CheckFramework.JUNIT5

    def __post_init__(self) -> None:
        if isinstance(self.classpath, str):
            entries = tuple(entry for entry in self.classpath.split(os.pathsep) if entry)
            object.__setattr__(self, "classpath", entries)
        elif self.classpath is not None and not isinstance(self.classpath, tuple):
            object.__setattr__(self, "classpath", tuple(self.classpath))

    def validate(self) -> None:
        """ Raise a RunnerConfigurationError if this request cannot be run """
        if not self.runner:
            raise RunnerConfigurationError(
                "JUnit runner library must be provided (junit-platform-console-standalone.jar or similar)"
            )
        if not os.path.isfile(self.runner):
            raise RunnerConfigurationError(
                f"JUnit runner not found (junit-platform-console-standalone.jar or similar): "
                f"{os.path.abspath(self.runner)}"
            )
        if not self.check_class:
            raise RunnerConfigurationError("the check class to run must be provided")
        if self.classpath is not None and not self.classpath:
            raise RunnerConfigurationError("the classpath must contain at least one entry")


@dataclass(frozen=True)
class Invocation:
    console_output: str
    reports_dir: str
    returncode: int


def create_reports_dir(root: str) -> str:
    """
    Create and return a new directory in root named after the current time
    (down to the millisecond), so repeated runs never share a report directory.
    """
    while True:
        now = datetime.now()
        name = now.strftime(REPORTS_DIR_TIMESTAMP_FORMAT).format(millis=now.microsecond // 1000)
        reports_dir = os.path.abspath(os.path.join(root, name))
        try:
            os.makedirs(reports_dir)
            return reports_dir
        except FileExistsError:
            continue
        except OSError as e:
            raise RunnerInvocationError(f"cannot create report directory {reports_dir}: {e}") from e


def adjust_classpath_for_windows(
    classpath: Sequence[str],
    runner: str,
    isolated_dependency: str,
    separator: str = ";",
    reproduce_separator_artifact: bool = False,
) -> str:
    """
    Return the classpath to launch the runner from on Windows: the runner jar first,
    then the entries of classpath, with entries containing isolated_dependency
    moved to the end.

    With reproduce_separator_artifact the isolated entries are appended after an
    empty entry, as earlier versions of this adjustment did:

    >>> adjust_classpath_for_windows(["a.jar", "mock-lib.jar", "b.jar"], "r.jar", "mock", ":", True)
    'r.jar:a.jar:b.jar::mock-lib.jar'
    >>> adjust_classpath_for_windows(["a.jar", "mock-lib.jar", "b.jar"], "r.jar", "mock", ":")
    'r.jar:a.jar:b.jar:mock-lib.jar'
    """
    entries = [runner, *classpath]
    kept = [entry for entry in entries if isolated_dependency not in entry]
    isolated = [entry for entry in entries if isolated_dependency in entry]
    if reproduce_separator_artifact:
        # the old adjustment kept only the last isolated entry
        return separator.join(kept) + separator + separator + (isolated[-1] if isolated else "")
    return separator.join(kept + isolated)


def _java_executable() -> str:
    java_home = config.get("java_home")
    if java_home:
        return os.path.join(java_home, "bin", "java")
    return "java"


class RunnerInvoker:
    """
    Launches the JUnit console runner for a RunRequest and waits for it to exit.

    The platform family is detected once and can be injected for testing; on
    Windows the runner is launched from the classpath through its console
    launcher class instead of with java -jar.
    """

    def __init__(
        self,
        platform: Optional[PlatformFamily] = None,
        java: Optional[str] = None,
        reports_root: Optional[str] = None,
    ) -> None:
        self.platform = platform_family() if platform is None else platform
        self.java = java or _java_executable()
        self.reports_root = reports_root or config["reports", "root"]

    def build_command(self, request: RunRequest, reports_dir: str) -> List[str]:
        """ Return the command running the checks of request, writing reports to reports_dir """
        runner = os.path.abspath(request.runner)
        if request.classpath is None:
            return [self.java, "-jar", runner, "-reports-dir", reports_dir, "-c", request.check_class]
        if self.platform == PlatformFamily.WINDOWS:
            classpath = adjust_classpath_for_windows(
                request.classpath,
                runner,
                config["runner", "windows", "isolated_dependency"],
                separator=";",
                reproduce_separator_artifact=config["runner", "windows", "reproduce_separator_artifact"],
            )
            return [
                self.java,
                "-cp",
                classpath,
                config["runner", "console_launcher_class"],
                "-reports-dir",
                reports_dir,
                "-c",
                request.check_class,
            ]
        classpath = os.pathsep.join(request.classpath)
        return [
            self.java,
            "-jar",
            runner,
            "-reports-dir",
            reports_dir,
            "-cp",
            classpath,
            "-c",
            request.check_class,
        ]

    def invoke(self, request: RunRequest) -> Invocation:
        """
        Run the checks of request and return the console output of the runner
        together with the directory its reports were written to.

        The exit code of the runner is not interpreted: whether the run can be
        verified is decided by the reports it left behind.
        """
        request.validate()
        reports_dir = create_reports_dir(self.reports_root)
        command = self.build_command(request, reports_dir)
        runner_log = log.bind(check_class=request.check_class, reports_dir=reports_dir)
        runner_log.info("starting junit runner", command=" ".join(command), platform=self.platform.value)
        try:
            proc = subprocess.run(
                command,
                stdout=subprocess.PIPE,
                stderr=subprocess.STDOUT,
                encoding="utf-8",
                errors="replace",
                check=False,
            )
        except OSError as e:
            raise RunnerInvocationError(f"cannot start junit runner {command[0]}: {e}") from e
        runner_log.info("junit runner finished", returncode=proc.returncode)
        runner_log.debug("junit runner output", output=proc.stdout)
        return Invocation(console_output=proc.stdout or "", reports_dir=reports_dir, returncode=proc.returncode)
