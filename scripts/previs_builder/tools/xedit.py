"""
xEdit (FO4Edit) batch script invocation.

xEdit is started in automation mode against a plugin list; it writes the
unattended script log when the script finishes but keeps running, so the
process is terminated once the log shows up.
"""

import logging
import subprocess
from pathlib import Path
from typing import List

from ..errors import BuilderError, LogIndicatesFailureError, LogMissingError, ProcessLaunchError
from ..models import RunContext
from .base import InvocationResult, RunLog, settle, terminate_process, wait_for_file
from .log_classifier import XEDIT_SCRIPT_LOG, LogClassifier, LogOutcome

logger = logging.getLogger(__name__)

PLUGIN_LIST_NAME = "Plugins.txt"
# xEdit treats entries starting with "*" as active plugins
ACTIVE_PLUGIN_MARKER = "*"


class XEditRunner:
    """Runs an xEdit batch script against a plugin and its companion plugin."""

    TOOL_NAME = "FO4Edit"

    def __init__(self, context: RunContext, run_log: RunLog,
                 classifier: LogClassifier = XEDIT_SCRIPT_LOG):
        self.context = context
        self.run_log = run_log
        self.classifier = classifier

    @property
    def plugin_list_path(self) -> Path:
        return self.context.log_dir / PLUGIN_LIST_NAME

    def write_plugin_list(self, plugin: str, companion: str) -> Path:
        """Write the temporary plugin list xEdit loads with -P."""
        path = self.plugin_list_path
        path.parent.mkdir(parents=True, exist_ok=True)
        try:
            path.write_text(
                f"{ACTIVE_PLUGIN_MARKER}{plugin}\n{ACTIVE_PLUGIN_MARKER}{companion}\n",
                encoding='utf-8',
            )
        except OSError as e:
            raise BuilderError(f"Error creating plugins file: {e}")
        return path

    def build_command(self, script: str, plugin: str) -> List[str]:
        return [
            str(self.context.tools.xedit),
            "-fo4",
            "-autoexit",
            f"-P:{self.plugin_list_path}",
            f"-Script:{script}",
            f"-Mod:{plugin}",
            f"-log:{self.context.unattended_log}",
        ]

    def run_script(self, script: str, plugin: str, companion: str,
                   require_clean: bool = False) -> InvocationResult:
        """
        Run a batch script and check its log.

        Args:
            script: Script file name inside xEdit's "Edit Scripts" directory
            plugin: Plugin the script modifies
            companion: Second plugin loaded alongside it
            require_clean: Fail, rather than warn, when the log reports errors

        Raises:
            ProcessLaunchError: If xEdit cannot be started
            LogMissingError: If the unattended log never appears
            LogIndicatesFailureError: If the log shows the script did not complete
        """
        logger.info(f"Running xEdit script {script} against {plugin}")
        timing = self.context.timing
        unattended_log = self.context.unattended_log

        self.run_log.section(f"Running xEdit script {script} against {plugin}")
        self.write_plugin_list(plugin, companion)

        if unattended_log.exists():
            try:
                unattended_log.unlink()
            except OSError as e:
                raise BuilderError(f"Error removing unattended log file: {e}")

        command = self.build_command(script, plugin)
        logger.debug(f"Executing: {' '.join(command)}")
        try:
            process = subprocess.Popen(command, cwd=self.context.tools.xedit.parent)
        except OSError as e:
            raise ProcessLaunchError(f"Error starting xEdit: {e}", self.TOOL_NAME)

        try:
            settle(timing.xedit_startup_delay)
            appeared = wait_for_file(unattended_log, timing.log_poll_interval, timing.log_wait_timeout)
            if appeared:
                # The script may still be flushing the log
                settle(timing.xedit_post_log_delay)
        finally:
            exit_code = terminate_process(process, timing.terminate_timeout)

        if not appeared:
            raise LogMissingError(
                f"FO4Edit script {script} did not produce a log file within {timing.log_wait_timeout}s"
            )

        settle(timing.settle_delay)

        log_text = self.run_log.append_file(unattended_log)
        if log_text is None:
            raise LogMissingError(f"FO4Edit script {script} did not produce a log file")

        result = InvocationResult(tool=self.TOOL_NAME, exit_code=exit_code, log_text=log_text)
        verdict = self.classifier.classify(log_text)

        if not verdict.outcome.is_success:
            raise LogIndicatesFailureError(f"FO4Edit script {script} failed", verdict.marker)

        if verdict.outcome is LogOutcome.COMPLETED_WITH_ERRORS:
            if require_clean:
                raise LogIndicatesFailureError(
                    f"FO4Edit script {script} did not complete successfully", verdict.marker
                )
            message = f"FO4Edit script {script} reported errors"
            logger.warning(message)
            result.warnings.append(message)

        return result
