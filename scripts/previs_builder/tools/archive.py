"""
BA2 archive creation through Archive2 or BSArch.

Neither tool can append to an existing archive, so adding a folder means
extracting the archive, deleting it and packing everything again in one go.
"""

import logging
import shutil
import subprocess
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Dict, List, Sequence

from ..errors import (
    BuilderError,
    ConfigurationMissingError,
    ExternalProcessError,
    OutputArtifactMissingError,
    PrerequisiteError,
    ProcessLaunchError,
)
from ..models import PRECOMBINED_FOLDER, VIS_FOLDER, BuildMode, ToolConfiguration
from ..validation import directory_has_files
from .base import settle

logger = logging.getLogger(__name__)

XBOX_QUALIFIER = "-compression=XBox"
# Existing archive is kept under this suffix until a repack succeeds
BACKUP_SUFFIX = ".bak"


def archive_qualifiers(mode: BuildMode) -> List[str]:
    """Compression qualifiers for the build mode."""
    if mode is BuildMode.XBOX:
        return [XBOX_QUALIFIER]
    return []


def _windows_folder(folder: str) -> str:
    return folder.replace("/", "\\")


class ArchiveBackend(ABC):
    """Abstract base class for archiver command line tools."""

    name = "archiver"

    def __init__(self, executable: Path):
        self.executable = Path(executable)

    @abstractmethod
    def pack_command(self, data_dir: Path, archive_name: str, folders: Sequence[str],
                     qualifiers: Sequence[str]) -> List[str]:
        """Command that packs folders (relative to data_dir) into archive_name."""
        pass

    @abstractmethod
    def unpack_command(self, data_dir: Path, archive_name: str) -> List[str]:
        """Command that extracts archive_name into data_dir."""
        pass

    def pack(self, data_dir: Path, archive_name: str, folders: Sequence[str],
             qualifiers: Sequence[str] = ()) -> None:
        self._execute(self.pack_command(data_dir, archive_name, folders, qualifiers), data_dir, "pack")

    def unpack(self, data_dir: Path, archive_name: str) -> None:
        self._execute(self.unpack_command(data_dir, archive_name), data_dir, "extraction")

    def _execute(self, command: List[str], cwd: Path, action: str) -> None:
        logger.debug(f"Executing: {' '.join(command)}")
        try:
            result = subprocess.run(command, cwd=cwd, capture_output=True, text=True, errors='replace')
        except OSError as e:
            raise ProcessLaunchError(f"Failed to execute {self.name}: {e}. Path: {self.executable}", self.name)

        if result.returncode != 0:
            detail = (result.stderr or result.stdout or "").strip()
            raise ExternalProcessError(
                f"{self.name} {action} failed with exit code {result.returncode}: {detail}",
                self.name,
                result.returncode,
            )


class Archive2Backend(ArchiveBackend):
    """Bethesda's Archive2; takes the folders as one comma separated argument."""

    name = "Archive2"

    def pack_command(self, data_dir, archive_name, folders, qualifiers):
        folder_list = ",".join(_windows_folder(folder) for folder in folders)
        return [
            str(self.executable),
            folder_list,
            f"-c={archive_name}",
            *qualifiers,
            "-f=General",
            "-q",
        ]

    def unpack_command(self, data_dir, archive_name):
        return [str(self.executable), archive_name, "-e=.", "-q"]


class BSArchBackend(ArchiveBackend):
    """BSArch; accepts every folder to include as its own argument."""

    name = "BSArch"

    def pack_command(self, data_dir, archive_name, folders, qualifiers):
        archive_format = "Xbox" if XBOX_QUALIFIER in qualifiers else "General"
        return [
            str(self.executable),
            "pack",
            str(data_dir),
            str(Path(data_dir) / archive_name),
            archive_format,
            "--include",
            *(_windows_folder(folder) for folder in folders),
        ]

    def unpack_command(self, data_dir, archive_name):
        return [str(self.executable), "unpack", str(Path(data_dir) / archive_name), str(data_dir)]


ARCHIVE_BACKENDS: Dict[str, type] = {
    "archive2": Archive2Backend,
    "bsarch": BSArchBackend,
}


def create_backend(tools: ToolConfiguration, use_bsarch: bool = False) -> ArchiveBackend:
    """
    Create the configured archiver back-end.

    Raises:
        ConfigurationMissingError: If BSArch is requested but has no path
    """
    if use_bsarch:
        if tools.bsarch is None:
            raise ConfigurationMissingError("BSArch path not configured")
        return ARCHIVE_BACKENDS["bsarch"](tools.bsarch)
    return ARCHIVE_BACKENDS["archive2"](tools.archive2)


class ArchiveManager:
    """Creates, extracts and extends the plugin's archive."""

    def __init__(
        self,
        backend: ArchiveBackend,
        data_dir: Path,
        archive_name: str,
        content_folders: Sequence[str] = (PRECOMBINED_FOLDER, VIS_FOLDER),
        extract_delay: float = 5.0,
    ):
        self.backend = backend
        self.data_dir = Path(data_dir)
        self.archive_name = archive_name
        self.content_folders = tuple(content_folders)
        self.extract_delay = extract_delay

    @property
    def archive_path(self) -> Path:
        return self.data_dir / self.archive_name

    def pack(self, folders: Sequence[str], qualifiers: Sequence[str] = ()) -> None:
        """
        Pack folders into a new archive.

        Raises:
            ExternalProcessError: If the archiver fails
            OutputArtifactMissingError: If no archive was written
        """
        logger.info(f"Creating archive: {self.archive_name} with folders: {', '.join(folders)}")
        self.backend.pack(self.data_dir, self.archive_name, list(folders), list(qualifiers))

        if not self.archive_path.exists():
            raise OutputArtifactMissingError(f"Archive was not created: {self.archive_name}", self.archive_name)

    def unpack(self) -> None:
        """Extract the archive into the Data directory."""
        if not self.archive_path.exists():
            raise PrerequisiteError(f"Archive does not exist: {self.archive_name}")

        logger.info(f"Extracting archive: {self.archive_name}")
        self.backend.unpack(self.data_dir, self.archive_name)

    def add_folder(self, folder: str, qualifiers: Sequence[str] = ()) -> List[str]:
        """
        Add a folder to the archive, creating the archive if needed.

        Previously packed content folders are extracted and repacked
        together with the new folder in a single call, then removed again.
        The existing archive is moved aside rather than deleted and is put
        back if the repack fails, so a failed call can simply be retried.

        Returns:
            The folders packed into the resulting archive
        """
        self.restore_backup()

        if not self.archive_path.exists():
            self.pack([folder], qualifiers)
            return [folder]

        self.unpack()
        settle(self.extract_delay)

        try:
            self.archive_path.replace(self.backup_path)
        except OSError as e:
            raise BuilderError(f"Failed to move existing archive aside: {e}")

        companions = [
            name for name in self.content_folders
            if name != folder and directory_has_files(self.data_dir / name)
        ]
        folders = companions + [folder]

        try:
            self.pack(folders, qualifiers)
        except Exception:
            logger.error(f"Repacking {self.archive_name} failed, restoring the previous archive")
            self.restore_backup()
            for message in self._remove_extracted(companions):
                logger.warning(message)
            raise

        # The backup must go before anything else can fail, or a retry would restore it
        try:
            self.backup_path.unlink()
        except OSError as e:
            raise BuilderError(f"Error removing archive backup {self.backup_path.name}: {e}")

        failures = self._remove_extracted(companions)
        if failures:
            raise BuilderError("; ".join(failures))

        return folders

    @property
    def backup_path(self) -> Path:
        return self.data_dir / f"{self.archive_name}{BACKUP_SUFFIX}"

    def restore_backup(self) -> bool:
        """
        Put a backup left by a failed repack back in place.

        A partial archive written by the failed call is discarded.

        Returns:
            True if a backup was restored
        """
        if not self.backup_path.exists():
            return False

        try:
            self.backup_path.replace(self.archive_path)
        except OSError as e:
            raise BuilderError(f"Error restoring archive backup {self.backup_path.name}: {e}")
        logger.info(f"Restored {self.archive_name} from backup")
        return True

    def _remove_extracted(self, folders: Sequence[str]) -> List[str]:
        failures = []
        for name in folders:
            try:
                shutil.rmtree(self.data_dir / name)
            except OSError as e:
                failures.append(f"Error removing extracted {name} directory: {e}")
        return failures
