"""
Creation Kit invocation.

The Creation Kit is run headless with a single action per call. ENB and
ReShade proxy DLLs in the game root break it, so they are renamed out of
the way for the duration of every call and always put back afterwards.
"""

import logging
import subprocess
from pathlib import Path
from typing import List, Sequence

from ..errors import BuilderError, OutputArtifactMissingError, ProcessLaunchError
from ..models import RunContext
from .base import InvocationResult, RunLog, settle

logger = logging.getLogger(__name__)

DISABLED_SUFFIX = "-PJMdisabled"

INTERFERING_COMPONENTS = (
    "d3d11.dll",
    "d3d10.dll",
    "d3d9.dll",
    "dxgi.dll",
    "enbimgui.dll",
    "d3dcompiler_46e.dll",
)


class DisabledComponents:
    """
    Scoped guard that disables interfering DLLs.

    Entering renames every present component to ``<name>-PJMdisabled``;
    leaving restores every component carrying the suffix, whether the body
    succeeded or raised. ``restore`` is idempotent and can also be called on
    its own to undo a guard left behind by an interrupted run.
    """

    def __init__(self, directory: Path, names: Sequence[str] = INTERFERING_COMPONENTS,
                 suffix: str = DISABLED_SUFFIX):
        self.directory = Path(directory)
        self.names = tuple(names)
        self.suffix = suffix
        self.disabled: List[str] = []

    def _disabled_path(self, name: str) -> Path:
        return self.directory / f"{name}{self.suffix}"

    def disable(self) -> List[str]:
        """Rename present components out of the way, returning their names."""
        for name in self.names:
            path = self.directory / name
            if not path.exists():
                continue
            try:
                path.replace(self._disabled_path(name))
            except OSError as e:
                self.restore()
                raise BuilderError(f"Error disabling {name}: {e}")
            self.disabled.append(name)
            logger.debug(f"Disabled {name}")
        return list(self.disabled)

    def restore(self) -> List[str]:
        """
        Put every disabled component back.

        Returns:
            Error messages for components that could not be restored
        """
        failures = []
        for name in self.names:
            disabled_path = self._disabled_path(name)
            if not disabled_path.exists():
                continue
            try:
                disabled_path.replace(self.directory / name)
                logger.debug(f"Re-enabled {name}")
            except OSError as e:
                message = f"Error re-enabling {name}: {e}"
                logger.error(message)
                failures.append(message)
        self.disabled.clear()
        return failures

    def __enter__(self) -> "DisabledComponents":
        self.disable()
        return self

    def __exit__(self, exc_type, exc_value, traceback) -> bool:
        self.restore()
        return False


class CreationKitRunner:
    """Runs one Creation Kit action and checks that it produced its output."""

    TOOL_NAME = "CreationKit"

    def __init__(self, context: RunContext, run_log: RunLog):
        self.context = context
        self.run_log = run_log

    def build_command(self, action: str, args: str = "") -> List[str]:
        tools = self.context.tools
        return [str(tools.creation_kit), f"-{action}:{self.context.plugin.file_name}", *args.split()]

    def run(self, action: str, output_file: str, args: str = "") -> InvocationResult:
        """
        Execute a Creation Kit action.

        Args:
            action: CK command line action, e.g. "GeneratePrecombined"
            output_file: File the action must create in the Data directory
            args: Extra whitespace separated arguments

        Returns:
            InvocationResult carrying the CK log text for classification

        Raises:
            ProcessLaunchError: If the Creation Kit cannot be started
            OutputArtifactMissingError: If output_file was not created, whatever the exit code
        """
        logger.info(f"Running CK option {action}")
        tools = self.context.tools
        output_path = self.context.data_dir / output_file

        with DisabledComponents(tools.game_root):
            self._remove_stale_log()

            self.run_log.section(f"Running CK option {action}:")
            command = self.build_command(action, args)
            logger.debug(f"Executing: {' '.join(command)}")

            try:
                completed = subprocess.run(
                    command,
                    cwd=tools.game_root,
                    capture_output=True,
                    text=True,
                    errors='replace',
                )
            except OSError as e:
                raise ProcessLaunchError(f"Error executing Creation Kit: {e}", self.TOOL_NAME)

            exit_code = completed.returncode
            if completed.stdout:
                logger.debug(completed.stdout)

            settle(self.context.timing.settle_delay)

            log_text = None
            if tools.log_file is not None:
                log_text = self.run_log.append_file(tools.log_file)

            if not output_path.exists():
                raise OutputArtifactMissingError(
                    f"{action} failed to create file {output_file} with exit status {exit_code}",
                    output_file,
                )

            result = InvocationResult(
                tool=self.TOOL_NAME,
                exit_code=exit_code,
                output_path=output_path,
                log_text=log_text,
            )

            if exit_code != 0:
                message = f"{action} ended with error {exit_code} but seemed to finish so error ignored."
                logger.warning(message)
                result.warnings.append(message)

        return result

    def _remove_stale_log(self) -> None:
        log_file = self.context.tools.log_file
        if log_file is not None and log_file.exists():
            try:
                log_file.unlink()
            except OSError as e:
                raise BuilderError(f"Error removing log file {log_file}: {e}")
