import os
import re
import subprocess
import pytest
from hypothesis import given
from hypothesis import strategies as st
from unittest.mock import patch, Mock
from yamf.checks.junit import runner
from yamf.checks.junit.runner import (
    CheckFramework,
    PlatformFamily,
    RunRequest,
    RunnerInvoker,
    adjust_classpath_for_windows,
    create_reports_dir,
    platform_family,
)
from yamf.exceptions import RunnerConfigurationError, RunnerInvocationError

WINDOWS_SETTINGS = {
    "runner": {
        "jar": "lib/junit-platform-console-standalone.jar",
        "download_url": "https://example.org/runner.jar",
        "console_launcher_class": "org.junit.platform.console.ConsoleLauncher",
        "windows": {"isolated_dependency": "mock", "reproduce_separator_artifact": False},
    }
}

# writes an empty report and prints latin-1 output like a runner on a legacy windows console
FAKE_JAVA = r"""#!/bin/sh
while [ "$#" -gt 0 ]; do
    if [ "$1" = "-reports-dir" ]; then reports_dir="$2"; fi
    shift
done
printf '<testsuite tests="0" skipped="0" failures="0" errors="0"/>\n' > "$reports_dir/TEST-junit-jupiter.xml"
printf 'Pr\374fung abgeschlossen\n'
"""


@pytest.fixture
def mock_run():
    """ Patches the call starting the runner process """
    with patch("yamf.checks.junit.runner.subprocess.run") as run:
        run.return_value = Mock(stdout="Test run finished", returncode=1)
        yield run


@pytest.fixture
def invoker(tmp_path):
    yield RunnerInvoker(platform=PlatformFamily.POSIX, java="java", reports_root=str(tmp_path / "reports"))


class TestCheckFramework:
    def test_report_names(self):
        """ Should name the report of each engine """
        assert CheckFramework.JUNIT5.report_name == "TEST-junit-jupiter.xml"
        assert CheckFramework.JUNIT4.report_name == "TEST-junit-vintage.xml"

    def test_from_name(self):
        """ Should look frameworks up case insensitively """
        assert CheckFramework.from_name("JUnit4") == CheckFramework.JUNIT4

    def test_from_unknown_name(self):
        """ Should fail for unknown frameworks """
        with pytest.raises(RunnerConfigurationError):
            CheckFramework.from_name("testng")


class TestPlatformFamily:
    def setup_method(self):
        platform_family.cache_clear()

    def teardown_method(self):
        platform_family.cache_clear()

    @pytest.mark.parametrize(
        "system, family",
        [("Windows", PlatformFamily.WINDOWS), ("Linux", PlatformFamily.POSIX), ("Darwin", PlatformFamily.POSIX)],
    )
    def test_detect(self, system, family):
        """ Should detect the platform family from the system name """
        with patch("yamf.checks.junit.runner.platform.system", return_value=system):
            assert platform_family() == family

    def test_detected_once(self):
        """ Should only detect the platform family once """
        with patch("yamf.checks.junit.runner.platform.system", return_value="Linux") as system:
            platform_family()
            platform_family()
        system.assert_called_once()


class TestRunRequest:
    def test_classpath_tuple(self, runner_jar):
        """ Should store the classpath as a tuple """
        request = RunRequest(runner_jar, "checks.CalculatorTests", ["a.jar", "b.jar"])
        assert request.classpath == ("a.jar", "b.jar")

    def test_classpath_string(self, runner_jar):
        """ Should keep a single classpath string as one entry """
        request = RunRequest(runner_jar, "checks.CalculatorTests", "lib/checks.jar")
        assert request.classpath == ("lib/checks.jar",)
        request.validate()

    def test_classpath_string_separated(self, runner_jar):
        """ Should split a classpath string on the path separator """
        request = RunRequest(runner_jar, "checks.CalculatorTests", os.pathsep.join(["a.jar", "", "b.jar"]))
        assert request.classpath == ("a.jar", "b.jar")

    def test_empty_classpath_string(self, runner_jar):
        """ Should fail if the classpath string has no entries """
        with pytest.raises(RunnerConfigurationError):
            RunRequest(runner_jar, "checks.CalculatorTests", "").validate()

    def test_missing_runner(self):
        """ Should fail if no runner is given """
        with pytest.raises(RunnerConfigurationError):
            RunRequest("", "checks.CalculatorTests").validate()

    def test_runner_not_found(self, tmp_path):
        """ Should report the absolute path of a runner that does not exist """
        with pytest.raises(RunnerConfigurationError) as e:
            RunRequest(str(tmp_path / "missing.jar"), "checks.CalculatorTests").validate()
        assert str(tmp_path / "missing.jar") in str(e.value)

    def test_missing_check_class(self, runner_jar):
        """ Should fail if no check class is given """
        with pytest.raises(RunnerConfigurationError):
            RunRequest(runner_jar, "").validate()

    def test_empty_classpath(self, runner_jar):
        """ Should fail if the classpath is empty """
        with pytest.raises(RunnerConfigurationError):
            RunRequest(runner_jar, "checks.CalculatorTests", []).validate()

    def test_valid(self, runner_jar):
        """ Should accept a request without a classpath """
        RunRequest(runner_jar, "checks.CalculatorTests").validate()


class TestCreateReportsDir:
    def test_named_after_time(self, tmp_path):
        """ Should name the directory after the current time down to the millisecond """
        reports_dir = create_reports_dir(str(tmp_path))
        assert os.path.isdir(reports_dir)
        assert os.path.isabs(reports_dir)
        assert re.fullmatch(r"\d{4}-\d{2}-\d{2}--\d{2}-\d{2}-\d{2}--\d{3}", os.path.basename(reports_dir))

    def test_unique(self, tmp_path):
        """ Should never return the same directory twice """
        dirs = {create_reports_dir(str(tmp_path)) for _ in range(5)}
        assert len(dirs) == 5

    def test_cannot_create(self, tmp_path):
        """ Should fail if the directory cannot be created """
        root = tmp_path / "file"
        root.write_text("")
        with pytest.raises(RunnerInvocationError):
            create_reports_dir(str(root))


class TestAdjustClasspathForWindows:
    def test_isolated_last(self):
        """ Should move the isolated dependency behind the other entries """
        classpath = adjust_classpath_for_windows(["a.jar", "mock-lib.jar", "b.jar"], "r.jar", "mock", ":")
        assert classpath == "r.jar:a.jar:b.jar:mock-lib.jar"

    def test_separator_artifact(self):
        """ Should reproduce the empty entry of earlier versions when asked to """
        classpath = adjust_classpath_for_windows(["a.jar", "mock-lib.jar", "b.jar"], "r.jar", "mock", ":", True)
        assert classpath == "r.jar:a.jar:b.jar::mock-lib.jar"

    def test_no_isolated_dependency(self):
        """ Should keep the order of the entries if none is isolated """
        assert adjust_classpath_for_windows(["a.jar", "b.jar"], "r.jar", "mock") == "r.jar;a.jar;b.jar"

    def test_several_isolated(self):
        """ Should keep all isolated entries in order """
        classpath = adjust_classpath_for_windows(["mock-a.jar", "b.jar", "mock-c.jar"], "r.jar", "mock")
        assert classpath == "r.jar;b.jar;mock-a.jar;mock-c.jar"

    @given(st.lists(st.from_regex(r"[a-z]{1,8}(-mock)?\.jar", fullmatch=True), max_size=8))
    def test_entries_kept(self, classpath):
        """ Should keep every entry with the runner first and the isolated entries last """
        entries = adjust_classpath_for_windows(classpath, "r.jar", "mock").split(";")
        isolated = [entry for entry in classpath if "mock" in entry]
        assert entries[0] == "r.jar"
        assert sorted(entries[1:]) == sorted(classpath)
        assert entries[len(entries) - len(isolated):] == isolated


class TestBuildCommand:
    def test_without_classpath(self, invoker, runner_jar):
        """ Should launch the runner jar and let it resolve the checks """
        command = invoker.build_command(RunRequest(runner_jar, "checks.CalculatorTests"), "/reports")
        assert command == ["java", "-jar", runner_jar, "-reports-dir", "/reports", "-c", "checks.CalculatorTests"]

    def test_posix_classpath_string(self, invoker, runner_jar):
        """ Should pass a classpath string to the runner unchanged """
        request = RunRequest(runner_jar, "checks.CalculatorTests", "lib/checks.jar")
        command = invoker.build_command(request, "/reports")
        assert command[command.index("-cp") + 1] == "lib/checks.jar"

    def test_posix(self, invoker, runner_jar):
        """ Should pass the classpath to the runner joined with the path separator """
        request = RunRequest(runner_jar, "checks.CalculatorTests", ["a.jar", "b.jar"])
        command = invoker.build_command(request, "/reports")
        assert command == [
            "java",
            "-jar",
            runner_jar,
            "-reports-dir",
            "/reports",
            "-cp",
            os.pathsep.join(["a.jar", "b.jar"]),
            "-c",
            "checks.CalculatorTests",
        ]

    def test_windows(self, runner_jar, config_settings):
        """ Should launch the console launcher from the adjusted classpath """
        config_settings(WINDOWS_SETTINGS)
        invoker = RunnerInvoker(platform=PlatformFamily.WINDOWS, java="java", reports_root="reports")
        request = RunRequest(runner_jar, "checks.CalculatorTests", ["a.jar", "mock-lib.jar", "b.jar"])
        command = invoker.build_command(request, "C:\\reports")
        assert command == [
            "java",
            "-cp",
            f"{runner_jar};a.jar;b.jar;mock-lib.jar",
            "org.junit.platform.console.ConsoleLauncher",
            "-reports-dir",
            "C:\\reports",
            "-c",
            "checks.CalculatorTests",
        ]

    def test_windows_artifact(self, runner_jar, config_settings):
        """ Should reproduce the separator artifact if configured to """
        settings = {"runner": {**WINDOWS_SETTINGS["runner"]}}
        settings["runner"]["windows"] = {"isolated_dependency": "mock", "reproduce_separator_artifact": True}
        config_settings(settings)
        invoker = RunnerInvoker(platform=PlatformFamily.WINDOWS, java="java", reports_root="reports")
        request = RunRequest(runner_jar, "checks.CalculatorTests", ["a.jar", "mock-lib.jar", "b.jar"])
        assert invoker.build_command(request, "C:\\reports")[2] == f"{runner_jar};a.jar;b.jar;;mock-lib.jar"

    def test_java_home(self, config_settings):
        """ Should run java from java_home if it is set """
        config_settings({"java_home": "/opt/jdk"})
        assert RunnerInvoker(platform=PlatformFamily.POSIX).java == os.path.join("/opt/jdk", "bin", "java")

    def test_java_from_path(self, config_settings):
        """ Should run java from the path if java_home is not set """
        config_settings({"java_home": ""})
        assert RunnerInvoker(platform=PlatformFamily.POSIX).java == "java"


class TestInvoke:
    def test_invalid_request(self, invoker, mock_run):
        """ Should not start the runner for an invalid request """
        with pytest.raises(RunnerConfigurationError):
            invoker.invoke(RunRequest("", "checks.CalculatorTests"))
        mock_run.assert_not_called()

    def test_missing_runner(self, invoker, mock_run, tmp_path):
        """ Should not start the runner if the runner jar does not exist """
        with pytest.raises(RunnerConfigurationError):
            invoker.invoke(RunRequest(str(tmp_path / "missing.jar"), "checks.CalculatorTests"))
        mock_run.assert_not_called()

    def test_invoke(self, invoker, mock_run, runner_jar):
        """ Should run the runner and return its output and report directory """
        invocation = invoker.invoke(RunRequest(runner_jar, "checks.CalculatorTests"))
        command = mock_run.call_args[0][0]
        assert command[command.index("-reports-dir") + 1] == invocation.reports_dir
        assert os.path.isdir(invocation.reports_dir)
        assert invocation.console_output == "Test run finished"
        assert invocation.returncode == 1
        assert mock_run.call_args[1]["stderr"] == subprocess.STDOUT
        assert (mock_run.call_args[1]["encoding"], mock_run.call_args[1]["errors"]) == ("utf-8", "replace")

    @pytest.mark.skipif(os.name == "nt", reason="fake java is a shell script")
    def test_undecodable_output(self, runner_jar, tmp_path):
        """ Should replace console output that is not valid utf-8 instead of failing """
        java = tmp_path / "java"
        java.write_text(FAKE_JAVA)
        os.chmod(str(java), 0o755)
        invoker = RunnerInvoker(platform=PlatformFamily.POSIX, java=str(java), reports_root=str(tmp_path / "reports"))
        invocation = invoker.invoke(RunRequest(runner_jar, "checks.CalculatorTests"))
        assert invocation.console_output.startswith("Pr\ufffdfung")
        assert invocation.returncode == 0
        assert os.path.isfile(os.path.join(invocation.reports_dir, "TEST-junit-jupiter.xml"))

    def test_cannot_start(self, invoker, mock_run, runner_jar):
        """ Should fail if the runner process cannot be started """
        mock_run.side_effect = FileNotFoundError("java")
        with pytest.raises(RunnerInvocationError):
            invoker.invoke(RunRequest(runner_jar, "checks.CalculatorTests"))

    def test_default_platform(self):
        """ Should use the detected platform family by default """
        with patch.object(runner, "platform_family", return_value=PlatformFamily.WINDOWS):
            assert RunnerInvoker().platform == PlatformFamily.WINDOWS
