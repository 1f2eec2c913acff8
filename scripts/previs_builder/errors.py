"""
Exception hierarchy for the previsbine builder.

Every failure aborts the run. The stage that was executing when the error
surfaced is attached by the sequencer so the CLI can tell the operator where
to resume from.
"""

from typing import Optional


class BuilderError(Exception):
    """Base exception for builder errors."""

    def __init__(self, message: str, stage=None):
        super().__init__(message)
        self.message = message
        self.stage = stage

    def with_stage(self, stage) -> "BuilderError":
        """Attach the failing stage unless one is already recorded."""
        if self.stage is None:
            self.stage = stage
        return self


class ConfigurationMissingError(BuilderError):
    """A required tool, file or setting is missing from the environment."""


class InvalidStageError(BuilderError):
    """Raised when a stage number does not name a known stage."""

    def __init__(self, value):
        super().__init__(f"Invalid stage number: {value}")
        self.value = value


class PrerequisiteError(BuilderError):
    """The on-disk state required to enter a stage is not present."""


class ExternalProcessError(BuilderError):
    """An external tool failed."""

    def __init__(self, message: str, tool: str, exit_code: Optional[int] = None, stage=None):
        super().__init__(message, stage)
        self.tool = tool
        self.exit_code = exit_code


class ProcessLaunchError(ExternalProcessError):
    """The external tool could not be started at all."""


class OutputArtifactMissingError(BuilderError):
    """An expected output file was never produced."""

    def __init__(self, message: str, artifact: str, stage=None):
        super().__init__(message, stage)
        self.artifact = artifact


class LogParseError(BuilderError):
    """A tool log did not contain what was expected."""


class LogMissingError(LogParseError):
    """The tool never produced its log file."""


class LogIndicatesFailureError(LogParseError):
    """The tool log reports (or fails to rule out) a failure."""

    def __init__(self, message: str, marker: Optional[str] = None, stage=None):
        super().__init__(message, stage)
        self.marker = marker


class UserAbortedError(BuilderError):
    """The operator declined a prompted action."""
