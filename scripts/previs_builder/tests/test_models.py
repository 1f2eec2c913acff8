"""
Unit tests for build modes, stages and plugin naming.
"""

import unittest
from pathlib import Path

import pytest

from previs_builder.errors import InvalidStageError
from previs_builder.models import BuildMode, BuildStage, PluginIdentity

from conftest import make_context


class TestPluginIdentity(unittest.TestCase):
    """Test cases for PluginIdentity.from_input."""

    def test_name_without_extension_gets_esp(self):
        identity = PluginIdentity.from_input("Foo")
        self.assertEqual(identity.base_name, "Foo")
        self.assertEqual(identity.file_name, "Foo.esp")
        self.assertEqual(identity.archive_name, "Foo - Main.ba2")

    def test_recognised_extension_is_kept(self):
        identity = PluginIdentity.from_input("Foo.esm")
        self.assertEqual(identity.base_name, "Foo")
        self.assertEqual(identity.file_name, "Foo.esm")
        self.assertEqual(identity.archive_name, "Foo - Main.ba2")

    def test_extension_match_ignores_case(self):
        identity = PluginIdentity.from_input("Foo.ESP")
        self.assertEqual(identity.base_name, "Foo")
        self.assertEqual(identity.file_name, "Foo.ESP")

    def test_esl_extension(self):
        identity = PluginIdentity.from_input("Small.esl")
        self.assertEqual(identity.base_name, "Small")
        self.assertEqual(identity.file_name, "Small.esl")

    def test_unknown_extension_is_part_of_base_name(self):
        identity = PluginIdentity.from_input("Foo.bar")
        self.assertEqual(identity.base_name, "Foo.bar")
        self.assertEqual(identity.file_name, "Foo.bar.esp")

    def test_base_name_uses_last_dot(self):
        identity = PluginIdentity.from_input("My.Patch.esp")
        self.assertEqual(identity.base_name, "My.Patch")
        self.assertEqual(identity.archive_name, "My.Patch - Main.ba2")

    def test_empty_input_rejected(self):
        with self.assertRaises(ValueError):
            PluginIdentity.from_input("")
        with self.assertRaises(ValueError):
            PluginIdentity.from_input("   ")

    def test_derived_file_names(self):
        identity = PluginIdentity.from_input("Foo")
        self.assertEqual(identity.geometry_file, "Foo - Geometry.psg")
        self.assertEqual(identity.compressed_geometry_file, "Foo - Geometry.csg")
        self.assertEqual(identity.cdx_file, "Foo.cdx")

    def test_artifacts_in_clean_mode(self):
        identity = PluginIdentity.from_input("Foo")
        self.assertEqual(
            identity.artifacts(BuildMode.CLEAN),
            ["Foo.esp", "Foo - Geometry.csg", "Foo.cdx", "Foo - Main.ba2"],
        )

    def test_artifacts_in_other_modes(self):
        identity = PluginIdentity.from_input("Foo")
        for mode in (BuildMode.FILTERED, BuildMode.XBOX):
            self.assertEqual(identity.artifacts(mode), ["Foo.esp", "Foo - Main.ba2"])


class TestBuildStage:
    """Test stage numbering and mode filtering."""

    @pytest.mark.parametrize("value", range(9))
    def test_from_int_accepts_known_stages(self, value):
        assert int(BuildStage.from_int(value)) == value

    @pytest.mark.parametrize("value", ["3", " 6 "])
    def test_from_int_accepts_digit_strings(self, value):
        assert int(BuildStage.from_int(value)) == int(value)

    @pytest.mark.parametrize("value", [-1, 9, 12, "x", None, 3.7, 2.0, True, False, "3.7", "-1"])
    def test_from_int_rejects_unknown_values(self, value):
        with pytest.raises(InvalidStageError) as exc_info:
            BuildStage.from_int(value)
        assert f"Invalid stage number: {value}" in str(exc_info.value)

    def test_stage_order(self):
        assert list(BuildStage) == sorted(BuildStage)
        assert BuildStage.VERIFY_ENVIRONMENT < BuildStage.GENERATE_PRECOMBINES < BuildStage.ARCHIVE_VIS

    def test_clean_mode_offers_every_stage(self):
        assert BuildStage.available(BuildMode.CLEAN) == list(BuildStage)

    @pytest.mark.parametrize("mode", [BuildMode.FILTERED, BuildMode.XBOX])
    def test_other_modes_skip_clean_only_stages(self, mode):
        available = BuildStage.available(mode)
        assert BuildStage.COMPRESS_PSG not in available
        assert BuildStage.BUILD_CDX not in available
        assert len(available) == 7

    def test_labels(self):
        assert BuildStage.GENERATE_PRECOMBINES.label == "Generate Precombines Via CK"
        assert BuildStage.ARCHIVE_VIS.description == "Archive Vis"


class TestBuildMode:
    """Test mode-dependent settings."""

    def test_creation_kit_args(self):
        assert BuildMode.CLEAN.creation_kit_args == "clean all"
        assert BuildMode.FILTERED.creation_kit_args == "filtered all"
        assert BuildMode.XBOX.creation_kit_args == "filtered all"

    def test_mode_from_string(self):
        assert BuildMode("xbox") is BuildMode.XBOX


class TestRunContext:
    """Test paths derived from the run context."""

    def test_paths(self, temp_root):
        context = make_context(temp_root, plugin="Foo")
        data_dir = temp_root / "Fallout 4" / "Data"

        assert context.data_dir == data_dir
        assert context.plugin_path == data_dir / "Foo.esp"
        assert context.archive_path == data_dir / "Foo - Main.ba2"
        assert context.precombined_dir == data_dir / "meshes" / "precombined"
        assert context.vis_dir == data_dir / "vis"
        assert context.run_log == temp_root / "logs" / "Foo.log"
        assert context.unattended_log == temp_root / "logs" / "UnattendedScript.log"

    def test_tool_paths(self, temp_root):
        context = make_context(temp_root)
        assert context.tools.game_executable == temp_root / "Fallout 4" / "Fallout4.exe"
        assert context.tools.xedit_scripts_dir == temp_root / "xEdit" / "Edit Scripts"
