"""
Core data model for the previsbine builder: build modes, the ordered stage
list, plugin naming and the per-run context shared by every component.
"""

from dataclasses import dataclass, field
from enum import Enum, IntEnum
from pathlib import Path
from typing import Any, List, Optional

from .config import TimingConfig
from .errors import InvalidStageError

PLUGIN_EXTENSIONS = (".esp", ".esm", ".esl")
DEFAULT_PLUGIN_EXTENSION = ".esp"

# Working files and directories, relative to the game's Data directory
COMBINED_OBJECTS_PLUGIN = "CombinedObjects.esp"
PREVIS_PLUGIN = "Previs.esp"
SEED_PLUGIN = "xPrevisPatch.esp"
PRECOMBINED_FOLDER = "meshes/precombined"
VIS_FOLDER = "vis"
PRECOMBINED_EXTENSION = ".nif"
VIS_EXTENSION = ".uvd"


class BuildMode(str, Enum):
    """How precombines are generated and how the archive is compressed."""
    CLEAN = "clean"
    FILTERED = "filtered"
    XBOX = "xbox"

    @property
    def is_clean(self) -> bool:
        return self is BuildMode.CLEAN

    @property
    def creation_kit_args(self) -> str:
        """Argument string passed to GeneratePrecombined."""
        return "clean all" if self is BuildMode.CLEAN else "filtered all"


class BuildStage(IntEnum):
    """Pipeline stages in execution order."""
    VERIFY_ENVIRONMENT = 0
    GENERATE_PRECOMBINES = 1
    MERGE_PRECOMBINES = 2
    ARCHIVE_PRECOMBINES = 3
    COMPRESS_PSG = 4
    BUILD_CDX = 5
    GENERATE_PREVIS = 6
    MERGE_PREVIS = 7
    ARCHIVE_VIS = 8

    @classmethod
    def from_int(cls, value: Any) -> "BuildStage":
        """
        Resolve a stage number.

        Accepts integers and strings of digits only.

        Raises:
            InvalidStageError: If the value is not one of 0..8
        """
        number = value
        if isinstance(number, str) and number.strip().isdigit():
            number = int(number.strip())
        # bool is an int subclass
        if isinstance(number, bool) or not isinstance(number, int):
            raise InvalidStageError(value)
        try:
            return cls(number)
        except ValueError:
            raise InvalidStageError(value)

    @classmethod
    def available(cls, mode: BuildMode) -> List["BuildStage"]:
        """Stages that take part in a run for the given mode."""
        return [stage for stage in cls if stage.applies_to(mode)]

    @property
    def clean_only(self) -> bool:
        return self in (BuildStage.COMPRESS_PSG, BuildStage.BUILD_CDX)

    def applies_to(self, mode: BuildMode) -> bool:
        return mode.is_clean or not self.clean_only

    @property
    def description(self) -> str:
        return _STAGE_DESCRIPTIONS[self][0]

    @property
    def label(self) -> str:
        """Menu label shown when the operator picks a stage."""
        return _STAGE_DESCRIPTIONS[self][1]


_STAGE_DESCRIPTIONS = {
    BuildStage.VERIFY_ENVIRONMENT: ("Verify Environment", "Verify Environment"),
    BuildStage.GENERATE_PRECOMBINES: ("Generate Precombines", "Generate Precombines Via CK"),
    BuildStage.MERGE_PRECOMBINES: ("Merge Precombines", "Merge PrecombineObjects.esp Via FO4Edit"),
    BuildStage.ARCHIVE_PRECOMBINES: ("Archive Precombines", "Create BA2 Archive from Precombines"),
    BuildStage.COMPRESS_PSG: ("Compress PSG", "Compress PSG Via CK"),
    BuildStage.BUILD_CDX: ("Build CDX", "Build CDX Via CK"),
    BuildStage.GENERATE_PREVIS: ("Generate Previs", "Generate Previs Via CK"),
    BuildStage.MERGE_PREVIS: ("Merge Previs", "Merge Previs.esp Via FO4Edit"),
    BuildStage.ARCHIVE_VIS: ("Archive Vis", "Add vis files to BA2 Archive"),
}


@dataclass(frozen=True)
class PluginIdentity:
    """Names derived from the plugin the operator asked for."""
    base_name: str
    file_name: str
    archive_name: str

    @classmethod
    def from_input(cls, text: str) -> "PluginIdentity":
        """
        Derive plugin names from user input.

        A recognised extension (.esp/.esm/.esl, any case) is kept verbatim;
        otherwise .esp is appended.

        Raises:
            ValueError: If the input is empty
        """
        name = (text or "").strip()
        if not name:
            raise ValueError("Plugin name must not be empty")

        if name.lower().endswith(PLUGIN_EXTENSIONS):
            base_name = name[:name.rfind(".")]
            file_name = name
        else:
            base_name = name
            file_name = f"{name}{DEFAULT_PLUGIN_EXTENSION}"

        if not base_name:
            raise ValueError(f"Plugin name has no base name: {text}")

        return cls(
            base_name=base_name,
            file_name=file_name,
            archive_name=f"{base_name} - Main.ba2",
        )

    @property
    def geometry_file(self) -> str:
        return f"{self.base_name} - Geometry.psg"

    @property
    def compressed_geometry_file(self) -> str:
        return f"{self.base_name} - Geometry.csg"

    @property
    def cdx_file(self) -> str:
        return f"{self.base_name}.cdx"

    def artifacts(self, mode: BuildMode) -> List[str]:
        """Files that make up a finished patch."""
        files = [self.file_name]
        if mode.is_clean:
            files.append(self.compressed_geometry_file)
            files.append(self.cdx_file)
        files.append(self.archive_name)
        return files


@dataclass
class ToolConfiguration:
    """Resolved locations of the external tools and the CK settings in use."""
    xedit: Path
    game_root: Path
    creation_kit: Path
    archive2: Path
    bsarch: Optional[Path] = None
    # Detected during environment verification
    config_reader: Any = None
    log_file: Optional[Path] = None

    @property
    def data_dir(self) -> Path:
        return self.game_root / "Data"

    @property
    def game_executable(self) -> Path:
        return self.game_root / "Fallout4.exe"

    @property
    def xedit_scripts_dir(self) -> Path:
        return self.xedit.parent / "Edit Scripts"


@dataclass
class RunContext:
    """Everything a single build run needs, owned by the stage sequencer."""
    mode: BuildMode
    tools: ToolConfiguration
    log_dir: Path
    plugin: Optional[PluginIdentity] = None
    start_stage: Optional[int] = None
    keep_files: bool = False
    no_prompt: bool = False
    use_bsarch: bool = False
    timing: TimingConfig = field(default_factory=TimingConfig)

    @property
    def data_dir(self) -> Path:
        return self.tools.data_dir

    @property
    def run_log(self) -> Path:
        name = self.plugin.base_name if self.plugin else "previs_builder"
        return self.log_dir / f"{name}.log"

    @property
    def unattended_log(self) -> Path:
        return self.log_dir / "UnattendedScript.log"

    def data_path(self, relative: str) -> Path:
        return self.data_dir / relative

    @property
    def plugin_path(self) -> Path:
        return self.data_dir / self.plugin.file_name

    @property
    def archive_path(self) -> Path:
        return self.data_dir / self.plugin.archive_name

    @property
    def precombined_dir(self) -> Path:
        return self.data_dir / PRECOMBINED_FOLDER

    @property
    def vis_dir(self) -> Path:
        return self.data_dir / VIS_FOLDER
