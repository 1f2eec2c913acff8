"""
Prerequisite validation for entering a build stage.

Every check is a pure function of what is on disk, so a run can be resumed
at any stage whose inputs a previous run left behind.
"""

from pathlib import Path
from typing import Any, Optional

from .errors import PrerequisiteError
from .models import PREVIS_PLUGIN, PRECOMBINED_EXTENSION, VIS_EXTENSION, BuildStage, RunContext

NO_PRECOMBINES = "No precombined meshes found. Run GeneratePrecombines first."
NO_VISIBILITY = "No visibility files found. Run GeneratePrevis first."
NO_GEOMETRY = "No Geometry file found. Run GeneratePrecombines first."
NO_PREVIS_PLUGIN = f"{PREVIS_PLUGIN} not found. Run GeneratePrevis first."


def directory_has_files(directory: Path, extension: Optional[str] = None) -> bool:
    """
    Check whether a directory tree contains any file.

    Args:
        directory: Directory to search recursively
        extension: Only count files with this extension (case-insensitive)
    """
    directory = Path(directory)
    if not directory.is_dir():
        return False

    wanted = extension.lower() if extension else None
    for path in directory.rglob("*"):
        if not path.is_file():
            continue
        if wanted is None or path.suffix.lower() == wanted:
            return True
    return False


class PrerequisiteValidator:
    """Checks that the inputs a stage consumes are present."""

    def check(self, stage: BuildStage, context: RunContext) -> None:
        """
        Validate the prerequisites of a stage.

        Raises:
            PrerequisiteError: With the stage attached, if a requirement is unmet
        """
        message = self._unmet_requirement(stage, context)
        if message is not None:
            raise PrerequisiteError(message, stage)

    def check_int(self, value: Any, context: RunContext) -> BuildStage:
        """
        Resolve a stage number and validate its prerequisites.

        Raises:
            InvalidStageError: If the number does not name a stage
            PrerequisiteError: If a requirement is unmet
        """
        stage = BuildStage.from_int(value)
        self.check(stage, context)
        return stage

    def _unmet_requirement(self, stage: BuildStage, context: RunContext) -> Optional[str]:
        if stage is BuildStage.VERIFY_ENVIRONMENT:
            return None

        if context.plugin is None:
            return "No plugin specified"

        data_dir = context.data_dir
        precombines_present = directory_has_files(context.precombined_dir, PRECOMBINED_EXTENSION)
        visibility_present = directory_has_files(context.vis_dir, VIS_EXTENSION)

        if stage in (BuildStage.GENERATE_PRECOMBINES, BuildStage.GENERATE_PREVIS):
            if not context.plugin_path.exists():
                return f"Plugin {context.plugin.file_name} does not exist"

        elif stage in (BuildStage.MERGE_PRECOMBINES, BuildStage.ARCHIVE_PRECOMBINES):
            if not precombines_present:
                return NO_PRECOMBINES

        elif stage is BuildStage.COMPRESS_PSG:
            if not context.mode.is_clean:
                return "CompressPSG is only available in Clean mode"
            if not (data_dir / context.plugin.geometry_file).exists():
                return NO_GEOMETRY

        elif stage is BuildStage.BUILD_CDX:
            if not context.mode.is_clean:
                return "BuildCDX is only available in Clean mode"

        elif stage is BuildStage.MERGE_PREVIS:
            if not visibility_present:
                return NO_VISIBILITY
            if not (data_dir / PREVIS_PLUGIN).exists():
                return NO_PREVIS_PLUGIN

        elif stage is BuildStage.ARCHIVE_VIS:
            if not visibility_present:
                return NO_VISIBILITY

        return None
