"""
Pipeline Errors

Every failure the pipeline surfaces carries the name of the failing step,
the underlying cause and the process exit code the CLI should return.
"""

from typing import Optional

# Exit codes per failing step
EXIT_OK = 0
EXIT_CONFIG = 1
EXIT_ACQUIRE = 2
EXIT_EXECUTE = 3
EXIT_REPORT = 4
EXIT_UPLOAD = 5

STEP_EXIT_CODES = {
    "config": EXIT_CONFIG,
    "acquire": EXIT_ACQUIRE,
    "execute": EXIT_EXECUTE,
    "report": EXIT_REPORT,
    "upload": EXIT_UPLOAD,
}


class PipelineError(Exception):
    """Base class for terminal pipeline failures"""

    step = "pipeline"

    def __init__(
        self,
        message: str,
        cause: Optional[BaseException] = None,
        step: Optional[str] = None,
    ):
        super().__init__(message)
        self.message = message
        self.cause = cause
        if step is not None:
            self.step = step

    @property
    def exit_code(self) -> int:
        return STEP_EXIT_CODES.get(self.step, EXIT_CONFIG)

    def __str__(self) -> str:
        text = f"[{self.step}] {self.message}"
        if self.cause is not None:
            text += f" (cause: {self.cause})"
        return text


class ConfigError(PipelineError):
    """Invalid settings; raised before any step runs"""

    step = "config"


class AcquisitionError(PipelineError):
    """The coverage tool could not be fetched, verified or installed"""

    step = "acquire"


class ExecutionError(PipelineError):
    """The coverage tool failed, either running tests or writing the report"""

    step = "execute"

    def __init__(
        self,
        message: str,
        cause: Optional[BaseException] = None,
        step: Optional[str] = None,
        returncode: Optional[int] = None,
    ):
        super().__init__(message, cause=cause, step=step)
        self.returncode = returncode


class UploadError(PipelineError):
    """The aggregation backend could not be reached or rejected the report"""

    step = "upload"

    def __init__(
        self,
        message: str,
        cause: Optional[BaseException] = None,
        status_code: Optional[int] = None,
    ):
        super().__init__(message, cause=cause)
        self.status_code = status_code
