"""
Stage sequencer for the previsbine build.
Decides where a run starts, executes the fixed stage order with prerequisite
checks, and cleans up working files once the patch is packaged.
"""

import shutil
import time
import logging
from pathlib import Path
from typing import Callable, Dict, List, Optional
from dataclasses import dataclass, field

from .environment import MERGE_COMBINED_OBJECTS_SCRIPT, MERGE_PREVIS_SCRIPT, MIN_SCRIPT_VERSION, EnvironmentVerifier
from .errors import (
    BuilderError,
    LogIndicatesFailureError,
    OutputArtifactMissingError,
    PrerequisiteError,
    UserAbortedError,
)
from .models import (
    COMBINED_OBJECTS_PLUGIN,
    PRECOMBINED_EXTENSION,
    PRECOMBINED_FOLDER,
    PREVIS_PLUGIN,
    VIS_EXTENSION,
    VIS_FOLDER,
    BuildStage,
    PluginIdentity,
    RunContext,
)
from .plugin import prepare_plugin
from .tools.archive import ArchiveManager, archive_qualifiers, create_backend
from .tools.base import RunLog
from .tools.creation_kit import CreationKitRunner, DisabledComponents
from .tools.log_classifier import CK_PRECOMBINE_LOG, CK_PREVIS_LOG, LogOutcome
from .tools.xedit import XEditRunner
from .ui import Prompter
from .validation import PrerequisiteValidator, directory_has_files

INSTALL_INSTRUCTION = "Move ALL these files into a zip/7z archive and install it"


@dataclass
class StageResult:
    """Result of a stage execution."""
    stage: BuildStage
    success: bool
    duration: float
    message: str
    warnings: List[str] = field(default_factory=list)


@dataclass
class BuildState:
    """Current state of the build."""
    start_stage: Optional[BuildStage] = None
    current_stage: Optional[BuildStage] = None
    completed_stages: List[BuildStage] = field(default_factory=list)
    failed_stage: Optional[BuildStage] = None
    stage_results: Dict[BuildStage, StageResult] = field(default_factory=dict)
    # Warnings raised outside any stage, e.g. by cleanup
    warnings: List[str] = field(default_factory=list)
    artifacts: List[str] = field(default_factory=list)
    start_time: Optional[float] = None
    success: bool = False

    @property
    def all_warnings(self) -> List[str]:
        warnings = []
        for result in self.stage_results.values():
            warnings.extend(result.warnings)
        warnings.extend(self.warnings)
        return warnings


def format_manifest(plugin: PluginIdentity, artifacts: List[str]) -> List[str]:
    """Lines reported to the operator once the patch is built."""
    return [f"Build of Patch {plugin.file_name} Complete.", *artifacts, INSTALL_INSTRUCTION]


class StageSequencer:
    """
    Runs the build stages in order for one plugin.

    Environment verification happens exactly once per run, before the first
    stage. Every stage is gated by its prerequisites; the first failure ends
    the run with the failing stage attached to the raised error. Working
    files are left in place on failure so the run can be resumed.
    """

    def __init__(
        self,
        context: RunContext,
        prompter: Optional[Prompter] = None,
        validator: Optional[PrerequisiteValidator] = None,
        verifier: Optional[EnvironmentVerifier] = None,
        creation_kit: Optional[CreationKitRunner] = None,
        xedit: Optional[XEditRunner] = None,
        archive: Optional[ArchiveManager] = None,
        min_script_version: int = MIN_SCRIPT_VERSION,
    ):
        self.context = context
        self.prompter = prompter or Prompter(no_prompt=context.no_prompt)
        self.validator = validator or PrerequisiteValidator()
        self.verifier = verifier or EnvironmentVerifier(
            context.tools, context.use_bsarch, min_script_version
        )
        self.state = BuildState()
        self.logger = self._setup_logging()

        self.run_log: Optional[RunLog] = None
        self._creation_kit = creation_kit
        self._xedit = xedit
        self._archive = archive
        self._environment_warnings: Optional[List[str]] = None

        self._stage_handlers: Dict[BuildStage, Callable[[], List[str]]] = {
            BuildStage.VERIFY_ENVIRONMENT: self._verify_environment,
            BuildStage.GENERATE_PRECOMBINES: self._generate_precombines,
            BuildStage.MERGE_PRECOMBINES: self._merge_precombines,
            BuildStage.ARCHIVE_PRECOMBINES: self._archive_precombines,
            BuildStage.COMPRESS_PSG: self._compress_psg,
            BuildStage.BUILD_CDX: self._build_cdx,
            BuildStage.GENERATE_PREVIS: self._generate_previs,
            BuildStage.MERGE_PREVIS: self._merge_previs,
            BuildStage.ARCHIVE_VIS: self._archive_vis,
        }

    def _setup_logging(self) -> logging.Logger:
        """Set up logging for the builder."""
        logger = logging.getLogger("previs_builder")
        if logger.level == logging.NOTSET:
            logger.setLevel(logging.INFO)

        if not logger.handlers:
            handler = logging.StreamHandler()
            formatter = logging.Formatter(
                '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
            )
            handler.setFormatter(formatter)
            logger.addHandler(handler)

        return logger

    def run(self) -> BuildState:
        """
        Run the build from the determined start stage to the end.

        Returns:
            Final build state

        Raises:
            BuilderError: The first failure, with its stage attached
        """
        context = self.context
        self.state.start_time = time.time()

        try:
            start_stage = self.determine_start_stage()
            self.state.start_stage = start_stage

            self.run_log = RunLog(context.run_log)
            self.run_log.start(f"Starting Previsbine Builder for plugin {context.plugin.file_name}")
            self.logger.info(
                f"Building {context.plugin.file_name} in {context.mode.value} mode "
                f"from stage {int(start_stage)} ({start_stage.description})"
            )

            try:
                self._ensure_environment(start_stage)
            except BuilderError as e:
                self.state.failed_stage = BuildStage.VERIFY_ENVIRONMENT
                raise e.with_stage(BuildStage.VERIFY_ENVIRONMENT)

            for stage in BuildStage:
                if stage < start_stage:
                    continue
                if not stage.applies_to(context.mode):
                    self.logger.info(f"Skipping {stage.description} (only used in Clean mode)")
                    continue
                self._execute_stage(stage)

            self._cleanup_working_files()

            self.state.artifacts = context.plugin.artifacts(context.mode)
            self.state.success = True

            for line in format_manifest(context.plugin, self.state.artifacts):
                self.run_log.append(line)

        except BuilderError as e:
            self.logger.error(f"Build failed: {e}")
            if self.run_log is not None:
                self.run_log.append(f"ERROR - {e}")
            raise

        finally:
            self._restore_components()
            self._generate_execution_summary()

        return self.state

    def determine_start_stage(self) -> BuildStage:
        """
        Work out where the run starts.

        An explicit stage must exist and have its prerequisites met. Otherwise
        a plugin that already exists offers a resume menu and a new plugin
        starts from the beginning.
        """
        context = self.context

        if context.plugin is None:
            try:
                context.plugin = PluginIdentity.from_input(self.prompter.ask_plugin_name())
            except ValueError as e:
                raise UserAbortedError(str(e))

        if context.start_stage is not None:
            return self.validator.check_int(context.start_stage, context)

        if context.plugin_path.exists() and not context.no_prompt:
            return self.prompter.ask_stage(context.mode)

        return BuildStage.VERIFY_ENVIRONMENT

    def _ensure_environment(self, start_stage: BuildStage) -> List[str]:
        """Verify the environment and the plugin once per run."""
        if self._environment_warnings is None:
            warnings = list(self.verifier.verify())
            prepare_plugin(self.context, start_stage, self.prompter)
            self._environment_warnings = warnings
        return self._environment_warnings

    def _execute_stage(self, stage: BuildStage):
        """
        Execute a single stage with prerequisite check and timing.

        Args:
            stage: Stage to execute
        """
        self.state.current_stage = stage
        self.logger.info(f"Stage: {stage.description}")

        start_time = time.time()

        try:
            self.validator.check(stage, self.context)

            handler = self._stage_handlers[stage]
            warnings = handler() or []

            duration = time.time() - start_time
            self.state.stage_results[stage] = StageResult(
                stage=stage,
                success=True,
                duration=duration,
                message=f"{stage.description} completed successfully",
                warnings=list(warnings),
            )
            self.state.completed_stages.append(stage)

            self.logger.info(f"{stage.description} completed in {duration:.2f}s")

        except Exception as e:
            duration = time.time() - start_time
            self.state.stage_results[stage] = StageResult(
                stage=stage,
                success=False,
                duration=duration,
                message=f"{stage.description} failed: {e}",
            )
            self.state.failed_stage = stage

            self.logger.error(f"{stage.description} failed after {duration:.2f}s: {e}")

            if isinstance(e, BuilderError):
                e.with_stage(stage)
            raise

    # Components are created on first use because the run log name depends on the plugin

    @property
    def creation_kit(self) -> CreationKitRunner:
        if self._creation_kit is None:
            self._creation_kit = CreationKitRunner(self.context, self.run_log)
        return self._creation_kit

    @property
    def xedit(self) -> XEditRunner:
        if self._xedit is None:
            self._xedit = XEditRunner(self.context, self.run_log)
        return self._xedit

    @property
    def archive(self) -> ArchiveManager:
        if self._archive is None:
            context = self.context
            self._archive = ArchiveManager(
                create_backend(context.tools, context.use_bsarch),
                context.data_dir,
                context.plugin.archive_name,
                extract_delay=context.timing.extract_delay,
            )
        return self._archive

    def _verify_environment(self) -> List[str]:
        return list(self._ensure_environment(BuildStage.VERIFY_ENVIRONMENT))

    def _generate_precombines(self) -> List[str]:
        context = self.context
        geometry_path = context.data_path(context.plugin.geometry_file)

        if directory_has_files(context.precombined_dir, PRECOMBINED_EXTENSION):
            raise PrerequisiteError("Precombine directory (Data\\meshes\\precombined) not empty")
        if directory_has_files(context.vis_dir, VIS_EXTENSION):
            raise PrerequisiteError("Previs directory (Data\\vis) not empty")

        self._remove_file(context.data_path(COMBINED_OBJECTS_PLUGIN))
        self._remove_file(geometry_path)

        result = self.creation_kit.run(
            "GeneratePrecombined", COMBINED_OBJECTS_PLUGIN, context.mode.creation_kit_args
        )

        if not directory_has_files(context.precombined_dir, PRECOMBINED_EXTENSION):
            raise OutputArtifactMissingError(
                "GeneratePrecombined failed to create any Precombines", PRECOMBINED_FOLDER
            )

        verdict = CK_PRECOMBINE_LOG.classify(result.log_text or "")
        if verdict.outcome is LogOutcome.FAILED:
            raise LogIndicatesFailureError("GeneratePrecombined ran out of Reference Handles", verdict.marker)

        if context.mode.is_clean and not geometry_path.exists():
            raise OutputArtifactMissingError(
                "GeneratePrecombined failed to create psg file", context.plugin.geometry_file
            )

        return result.warnings

    def _merge_precombines(self) -> List[str]:
        result = self.xedit.run_script(
            MERGE_COMBINED_OBJECTS_SCRIPT,
            self.context.plugin.file_name,
            COMBINED_OBJECTS_PLUGIN,
            require_clean=False,
        )
        return result.warnings

    def _archive_precombines(self) -> List[str]:
        self.archive.pack([PRECOMBINED_FOLDER], archive_qualifiers(self.context.mode))
        self._remove_dir(self.context.precombined_dir)
        return []

    def _compress_psg(self) -> List[str]:
        context = self.context
        result = self.creation_kit.run("CompressPSG", context.plugin.compressed_geometry_file)
        self._remove_file(context.data_path(context.plugin.geometry_file))
        return result.warnings

    def _build_cdx(self) -> List[str]:
        result = self.creation_kit.run("BuildCDX", self.context.plugin.cdx_file)
        return result.warnings

    def _generate_previs(self) -> List[str]:
        context = self.context

        if directory_has_files(context.vis_dir, VIS_EXTENSION):
            raise PrerequisiteError("Previs directory (Data\\vis) not empty")

        self._remove_file(context.data_path(PREVIS_PLUGIN))

        result = self.creation_kit.run("GeneratePreVisData", PREVIS_PLUGIN, "clean all")

        if not directory_has_files(context.vis_dir, VIS_EXTENSION):
            raise OutputArtifactMissingError("GeneratePreVisData failed to create visibility files", VIS_FOLDER)

        verdict = CK_PREVIS_LOG.classify(result.log_text or "")
        if verdict.outcome is LogOutcome.FAILED:
            raise LogIndicatesFailureError("GeneratePreVisData visibility task did not complete", verdict.marker)

        return result.warnings

    def _merge_previs(self) -> List[str]:
        result = self.xedit.run_script(
            MERGE_PREVIS_SCRIPT,
            self.context.plugin.file_name,
            PREVIS_PLUGIN,
            require_clean=True,
        )
        return result.warnings

    def _archive_vis(self) -> List[str]:
        self.archive.add_folder(VIS_FOLDER, archive_qualifiers(self.context.mode))
        self._remove_dir(self.context.vis_dir)
        return []

    def _remove_file(self, path: Path) -> None:
        if path.exists():
            try:
                path.unlink()
            except OSError as e:
                raise BuilderError(f"Error removing {path.name}: {e}")

    def _remove_dir(self, path: Path) -> None:
        if path.exists():
            try:
                shutil.rmtree(path)
            except OSError as e:
                raise BuilderError(f"Error removing {path} directory: {e}")

    def _cleanup_working_files(self) -> None:
        """Remove the intermediate plugins and vis directory after a successful build."""
        context = self.context

        if context.keep_files:
            self.logger.info("Keeping working files")
            return

        if not self.prompter.confirm("Remove working files (CombinedObjects.esp, Previs.esp, vis)?", default=True):
            self.logger.info("Working files kept at operator request")
            return

        self.logger.info("Performing cleanup")
        targets = [
            context.data_path(COMBINED_OBJECTS_PLUGIN),
            context.data_path(PREVIS_PLUGIN),
            context.vis_dir,
        ]
        for target in targets:
            try:
                if target.is_dir():
                    shutil.rmtree(target)
                elif target.exists():
                    target.unlink()
            except OSError as e:
                message = f"Error removing {target.name} during cleanup: {e}"
                self.logger.warning(message)
                self.state.warnings.append(message)

    def _restore_components(self) -> None:
        """Re-enable any component a Creation Kit call left disabled."""
        failures = DisabledComponents(self.context.tools.game_root).restore()
        for message in failures:
            self.logger.warning(message)
            self.state.warnings.append(message)

    def _generate_execution_summary(self):
        """Log execution summary."""
        total_duration = time.time() - (self.state.start_time or time.time())

        self.logger.info("=" * 60)
        self.logger.info("BUILD EXECUTION SUMMARY")
        self.logger.info("=" * 60)
        self.logger.info(f"Total execution time: {total_duration:.2f}s")
        self.logger.info(f"Stages completed: {len(self.state.completed_stages)}")

        if self.state.failed_stage is not None:
            result = self.state.stage_results.get(self.state.failed_stage)
            if result:
                self.logger.info(f"Failed stage: {result.message}")

        for stage, result in self.state.stage_results.items():
            status = "✓" if result.success else "✗"
            self.logger.info(f"  {status} {stage.description}: {result.duration:.2f}s")

        self.logger.info("=" * 60)
