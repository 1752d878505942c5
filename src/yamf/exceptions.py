"""
Custom Exception Types
"""


class MarkingError(Exception):
    """ Generic marking error """


class RunnerConfigurationError(MarkingError):
    """ Error raised when a run request is invalid, before any runner process is started """


class RunnerInvocationError(MarkingError):
    """ Error raised when the runner process or its report directory cannot be created """


class ReportError(MarkingError):
    """ Error raised when a runner report cannot be used to verify a run """

    def __init__(self, message: str, path: str) -> None:
        super().__init__(f"{message}: {path}")
        self.path = path


class ReportMissingError(ReportError):
    """ Error raised when the report expected for a check framework was not generated """


class ReportParseError(ReportError):
    """ Error raised when a report is malformed or lacks an expected field """


class MarkExtractionError(MarkingError):
    """ Error raised when the mark metadata of a single check cannot be resolved """


class MarkingSchemeError(MarkingError):
    """ Error raised when a marking scheme file is invalid """


class InstallError(MarkingError):
    """ Error raised when the runner cannot be installed """
