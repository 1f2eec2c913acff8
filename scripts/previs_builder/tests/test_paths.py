"""
Unit tests for tool discovery.
"""

from pathlib import Path
from unittest.mock import patch

import pytest

from previs_builder.errors import ConfigurationMissingError
from previs_builder.paths import ToolLocator

from conftest import touch


class TestToolLocator:
    """Test explicit paths, working directory candidates and registry lookups."""

    def test_explicit_paths(self, temp_root):
        tools = ToolLocator(temp_root).locate(
            fo4edit_path="C:/xEdit/FO4Edit64.exe",
            fallout4_path="C:/Games/Fallout 4",
        )

        assert tools.xedit == Path("C:/xEdit/FO4Edit64.exe")
        assert tools.game_root == Path("C:/Games/Fallout 4")
        assert tools.creation_kit == Path("C:/Games/Fallout 4") / "CreationKit.exe"
        assert tools.archive2 == Path("C:/Games/Fallout 4") / "tools" / "archive2" / "archive2.exe"
        assert tools.bsarch is None

    def test_xedit_found_in_search_dir(self, temp_root):
        touch(temp_root / "xEdit64.exe")
        assert ToolLocator(temp_root).find_xedit() == temp_root / "xEdit64.exe"

    def test_xedit_from_registry(self, temp_root):
        with patch("previs_builder.paths._read_registry", return_value='"D:\\xEdit\\FO4Edit.exe"'):
            assert ToolLocator(temp_root).find_xedit() == Path("D:\\xEdit\\FO4Edit.exe")

    def test_xedit_missing(self, temp_root):
        with patch("previs_builder.paths._read_registry", return_value=None):
            with pytest.raises(ConfigurationMissingError, match="--fo4edit-path"):
                ToolLocator(temp_root).find_xedit()

    def test_fallout4_missing(self, temp_root):
        with patch("previs_builder.paths._read_registry", return_value=None):
            with pytest.raises(ConfigurationMissingError, match="--fallout4-path"):
                ToolLocator(temp_root).locate(fo4edit_path="FO4Edit64.exe")

    def test_registry_ignored_off_windows(self, temp_root):
        with patch("previs_builder.paths.platform.system", return_value="Linux"):
            with pytest.raises(ConfigurationMissingError):
                ToolLocator(temp_root).find_fallout4()

    def test_bsarch_candidates(self, temp_root):
        touch(temp_root / "BSArch" / "bsarch.exe")

        tools = ToolLocator(temp_root).locate("FO4Edit64.exe", "Fallout 4", use_bsarch=True)

        assert tools.bsarch == temp_root / "BSArch" / "bsarch.exe"

    def test_bsarch_not_found_is_left_for_verification(self, temp_root):
        tools = ToolLocator(temp_root).locate("FO4Edit64.exe", "Fallout 4", use_bsarch=True)
        assert tools.bsarch is None

    def test_explicit_bsarch_path(self, temp_root):
        tools = ToolLocator(temp_root).locate(
            "FO4Edit64.exe", "Fallout 4", use_bsarch=True, bsarch_path="tools/bsarch.exe"
        )
        assert tools.bsarch == Path("tools/bsarch.exe")
