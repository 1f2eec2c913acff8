"""
Environment verification: tool presence, Creation Kit Platform Extended
(CKPE) settings and xEdit script versions.

CKPE ships its settings in one of two files depending on its version. Each
variant gets a reader that maps the file onto CkpeSettings, and verification
picks the first reader whose file exists.
"""

import logging
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, Sequence

from .errors import ConfigurationMissingError
from .models import ToolConfiguration

logger = logging.getLogger(__name__)

CKPE_LOADER = "winhttp.dll"

MERGE_COMBINED_OBJECTS_SCRIPT = "Batch_FO4MergeCombinedObjectsAndCheck.pas"
MERGE_PREVIS_SCRIPT = "Batch_FO4MergePreVisAndAutoUpdateRefr.pas"
REQUIRED_SCRIPTS = (MERGE_COMBINED_OBJECTS_SCRIPT, MERGE_PREVIS_SCRIPT)
MIN_SCRIPT_VERSION = 10

_SCRIPT_VERSION = re.compile(r"BatchVersion\s*=\s*(\d+)")

_TRUE_VALUES = ("1", "true", "yes", "on")
_FALSE_VALUES = ("0", "false", "no", "off")


@dataclass
class CkpeSettings:
    """The CKPE settings the builder depends on."""
    # Value of the log redirection setting, relative to the game root
    log_path: Optional[str] = None
    # None when the setting is absent
    handle_limit_enabled: Optional[bool] = None


def _setting_value(text: str, key: str) -> Optional[str]:
    """Return the value of the first ``key = value`` line, stripped of comments."""
    pattern = re.compile(rf"^\s*{re.escape(key)}\s*=(.*)$", re.IGNORECASE | re.MULTILINE)
    match = pattern.search(text)
    if match is None:
        return None
    return match.group(1).split(";", 1)[0].strip()


def _parse_flag(value: Optional[str]) -> Optional[bool]:
    if value is None:
        return None
    value = value.lower()
    if value in _TRUE_VALUES:
        return True
    if value in _FALSE_VALUES:
        return False
    try:
        return int(value) != 0
    except ValueError:
        return None


class CkpeConfigReader(ABC):
    """Reads one CKPE settings file variant."""

    file_name: str = ""
    log_setting: str = ""
    handle_setting: str = ""

    def path(self, game_root: Path) -> Path:
        return Path(game_root) / self.file_name

    def exists(self, game_root: Path) -> bool:
        return self.path(game_root).exists()

    def read(self, game_root: Path) -> CkpeSettings:
        text = self.path(game_root).read_text(encoding='utf-8', errors='replace')
        return self.parse(text)

    @abstractmethod
    def parse(self, text: str) -> CkpeSettings:
        pass


class PlatformExtendedReader(CkpeConfigReader):
    """CreationKitPlatformExtended.ini written by current CKPE releases."""

    file_name = "CreationKitPlatformExtended.ini"
    log_setting = "sOutputFile"
    handle_setting = "bBSPointerHandleExtremly"

    def parse(self, text: str) -> CkpeSettings:
        return CkpeSettings(
            log_path=_setting_value(text, self.log_setting),
            handle_limit_enabled=_parse_flag(_setting_value(text, self.handle_setting)),
        )


class LegacyTestIniReader(CkpeConfigReader):
    """fallout4_test.ini used by older CKPE releases."""

    file_name = "fallout4_test.ini"
    log_setting = "OutputFile"
    handle_setting = "BSHandleRefObjectPatch"

    def parse(self, text: str) -> CkpeSettings:
        return CkpeSettings(
            log_path=_setting_value(text, self.log_setting),
            handle_limit_enabled=_parse_flag(_setting_value(text, self.handle_setting)),
        )


# Checked in order; the first file found wins
CONFIG_READERS: Sequence[CkpeConfigReader] = (PlatformExtendedReader(), LegacyTestIniReader())


def detect_config_reader(game_root: Path,
                         readers: Sequence[CkpeConfigReader] = CONFIG_READERS) -> CkpeConfigReader:
    """
    Pick the CKPE settings file present in the game root.

    Raises:
        ConfigurationMissingError: If no known settings file exists
    """
    for reader in readers:
        if reader.exists(game_root):
            logger.debug(f"Using CKPE settings from {reader.file_name}")
            return reader
    raise ConfigurationMissingError("CKPE not installed properly. No settings file found")


def read_script_version(script_path: Path) -> Optional[int]:
    """Return the BatchVersion declared by an xEdit script, if any."""
    text = Path(script_path).read_text(encoding='utf-8', errors='replace')
    match = _SCRIPT_VERSION.search(text)
    return int(match.group(1)) if match else None


class EnvironmentVerifier:
    """
    Fail-fast checks that every tool and setting a build needs is in place.

    Verification back-fills the detected settings reader and the Creation
    Kit log path into the tool configuration.
    """

    def __init__(self, tools: ToolConfiguration, use_bsarch: bool = False,
                 min_script_version: int = MIN_SCRIPT_VERSION):
        self.tools = tools
        self.use_bsarch = use_bsarch
        self.min_script_version = min_script_version

    def verify(self) -> List[str]:
        """
        Run every check in order.

        Returns:
            Warnings that do not stop the build

        Raises:
            ConfigurationMissingError: On the first failed check
        """
        tools = self.tools
        warnings = []

        self._require(tools.xedit, f"{tools.xedit} not found")
        self._require(tools.game_executable, f"Fallout4.exe not found at {tools.game_executable}")
        self._require(tools.creation_kit, "CreationKit.exe not found. Creation Kit must be installed")
        self._require(tools.game_root / CKPE_LOADER,
                      "CKPE not installed. You may not get a successful Patch without it")
        self._require(tools.archive2, "Archive2.exe not found. Creation Kit not properly installed")

        reader = detect_config_reader(tools.game_root)
        tools.config_reader = reader

        for script in REQUIRED_SCRIPTS:
            self._verify_script(tools.xedit_scripts_dir / script)

        settings = reader.read(tools.game_root)

        if settings.log_path is None:
            raise ConfigurationMissingError(
                f"CK not set for logging redirection. {reader.log_setting} not found in {reader.file_name}"
            )
        if not settings.log_path:
            raise ConfigurationMissingError(
                f"CK not set for logging redirection. {reader.log_setting} is empty in {reader.file_name}"
            )
        tools.log_file = tools.game_root / settings.log_path

        if settings.handle_limit_enabled is None:
            warnings.append(f"{reader.handle_setting} not found. You may run out of Reference Handles.")
        elif not settings.handle_limit_enabled:
            warnings.append(f"{reader.handle_setting} is not enabled. You may run out of Reference Handles.")

        if self.use_bsarch:
            if tools.bsarch is None:
                raise ConfigurationMissingError("BSArch enabled but path not specified")
            self._require(tools.bsarch, f"BSArch enabled but not found at {tools.bsarch}")

        for warning in warnings:
            logger.warning(warning)

        logger.info("Environment verification complete")
        return warnings

    def _require(self, path: Path, message: str) -> None:
        if not Path(path).exists():
            raise ConfigurationMissingError(message)

    def _verify_script(self, script_path: Path) -> None:
        self._require(script_path, f"FO4Edit Script {script_path} not found")

        version = read_script_version(script_path)
        if version is None:
            raise ConfigurationMissingError(
                f"Could not determine version of FO4Edit Script {script_path.name}"
            )
        if version < self.min_script_version:
            raise ConfigurationMissingError(
                f"FO4Edit Script {script_path.name} is outdated (version {version}). Please update."
            )
