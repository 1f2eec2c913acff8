"""
Tool discovery.

Explicit paths always win. Otherwise xEdit is looked for in the working
directory and then through its file association in the Windows registry,
and the game through Bethesda's install key.
"""

import logging
import platform
from pathlib import Path
from typing import Optional, Sequence

from .errors import ConfigurationMissingError
from .models import ToolConfiguration

logger = logging.getLogger(__name__)

XEDIT_CANDIDATES = ("FO4Edit64.exe", "xEdit64.exe", "FO4Edit.exe", "xEdit.exe")
BSARCH_CANDIDATES = (
    Path("tools") / "BSArch" / "bsarch.exe",
    Path("BSArch") / "bsarch.exe",
    Path("bsarch.exe"),
)

XEDIT_REGISTRY_KEY = r"FO4Script\DefaultIcon"
FALLOUT4_REGISTRY_KEY = r"SOFTWARE\Wow6432Node\Bethesda Softworks\Fallout4"
FALLOUT4_REGISTRY_VALUE = "installed path"


def _read_registry(hive_name: str, key: str, value: str = "") -> Optional[str]:
    """Read a registry string, returning None off Windows or when absent."""
    if platform.system() != "Windows":
        return None

    import winreg

    try:
        with winreg.OpenKey(getattr(winreg, hive_name), key) as handle:
            data, _ = winreg.QueryValueEx(handle, value)
    except OSError:
        return None
    return str(data) if data else None


class ToolLocator:
    """Resolves the external tools into a ToolConfiguration."""

    def __init__(self, search_dir: Optional[Path] = None):
        self.search_dir = Path(search_dir) if search_dir else Path.cwd()

    def locate(
        self,
        fo4edit_path: Optional[str] = None,
        fallout4_path: Optional[str] = None,
        use_bsarch: bool = False,
        bsarch_path: Optional[str] = None,
    ) -> ToolConfiguration:
        """
        Build the tool configuration.

        Raises:
            ConfigurationMissingError: If xEdit or the game cannot be found
        """
        xedit = Path(fo4edit_path) if fo4edit_path else self.find_xedit()
        game_root = Path(fallout4_path) if fallout4_path else self.find_fallout4()

        bsarch = None
        if use_bsarch:
            bsarch = Path(bsarch_path) if bsarch_path else self.find_bsarch()
            if bsarch is None:
                logger.warning(
                    "BSArch enabled but path not specified and not found in common locations. "
                    "Will check during environment verification."
                )

        return ToolConfiguration(
            xedit=xedit,
            game_root=game_root,
            creation_kit=game_root / "CreationKit.exe",
            archive2=game_root / "tools" / "archive2" / "archive2.exe",
            bsarch=bsarch,
        )

    def find_xedit(self) -> Path:
        found = self._first_existing(self.search_dir / name for name in XEDIT_CANDIDATES)
        if found is not None:
            return found

        value = _read_registry("HKEY_CLASSES_ROOT", XEDIT_REGISTRY_KEY)
        if value:
            # The association stores the path quoted
            return Path(value.replace('"', ''))

        raise ConfigurationMissingError("FO4Edit/xEdit not found. Please specify path with --fo4edit-path")

    def find_fallout4(self) -> Path:
        value = _read_registry("HKEY_LOCAL_MACHINE", FALLOUT4_REGISTRY_KEY, FALLOUT4_REGISTRY_VALUE)
        if value:
            return Path(value)

        raise ConfigurationMissingError(
            "Fallout 4 installation not found. Please specify path with --fallout4-path"
        )

    def find_bsarch(self) -> Optional[Path]:
        return self._first_existing(self.search_dir / candidate for candidate in BSARCH_CANDIDATES)

    @staticmethod
    def _first_existing(candidates: Sequence[Path]) -> Optional[Path]:
        for candidate in candidates:
            if candidate.exists():
                return candidate
        return None
