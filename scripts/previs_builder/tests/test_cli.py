"""
Integration tests for the previsbine builder CLI.
Tests command-line interface functionality and argument parsing.
"""

import os
import shutil
import tempfile
from pathlib import Path
from unittest.mock import patch

from typer.testing import CliRunner

from previs_builder.cli import app
from previs_builder.errors import PrerequisiteError
from previs_builder.models import BuildStage
from previs_builder.pipeline import BuildState, StageResult


class TestCLIIntegration:
    """Test CLI integration and command functionality."""

    def setup_method(self):
        """Set up test environment before each test."""
        self.runner = CliRunner()
        self.temp_dir = tempfile.mkdtemp()
        self.original_cwd = os.getcwd()
        os.chdir(self.temp_dir)

    def teardown_method(self):
        """Clean up test environment after each test."""
        os.chdir(self.original_cwd)
        shutil.rmtree(self.temp_dir, ignore_errors=True)

    def test_help(self):
        result = self.runner.invoke(app, ["--help"])
        assert result.exit_code == 0
        assert "build" in result.stdout
        assert "verify" in result.stdout

    def test_stages_lists_clean_stages(self):
        result = self.runner.invoke(app, ["stages"])
        assert result.exit_code == 0
        assert "Generate Precombines" in result.stdout
        assert "Compress PSG" in result.stdout

    def test_stages_filtered_mode(self):
        result = self.runner.invoke(app, ["stages", "--mode", "filtered"])
        assert result.exit_code == 0
        assert "Archive Vis" in result.stdout
        assert "Compress PSG" not in result.stdout
        assert "Build CDX" not in result.stdout

    def test_start_stage_without_plugin_lists_stages(self):
        with patch("previs_builder.pipeline.StageSequencer") as mock_sequencer:
            result = self.runner.invoke(app, ["build", "--start-stage", "3"])

        assert result.exit_code == 0
        assert "Merge Previs" in result.stdout
        mock_sequencer.assert_not_called()

    def test_build_success_prints_manifest(self):
        state = BuildState(
            start_time=None,
            artifacts=["MyPatch.esp", "MyPatch - Main.ba2"],
            success=True,
        )
        state.stage_results[BuildStage.GENERATE_PREVIS] = StageResult(
            stage=BuildStage.GENERATE_PREVIS, success=True, duration=1.0, message="ok",
            warnings=["GeneratePreVisData ended with error 1"],
        )

        with patch("previs_builder.pipeline.StageSequencer") as mock_sequencer:
            mock_sequencer.return_value.run.return_value = state
            result = self.runner.invoke(app, [
                "build", "MyPatch",
                "--mode", "filtered",
                "--fo4edit-path", "FO4Edit64.exe",
                "--fallout4-path", "Fallout 4",
                "--no-prompt",
            ])

        assert result.exit_code == 0, result.stdout
        assert "Build of Patch MyPatch.esp Complete." in result.stdout
        assert "MyPatch - Main.ba2" in result.stdout
        assert "Move ALL these files into a zip/7z archive and install it" in result.stdout
        assert "Warning:" in result.stdout

        context = mock_sequencer.call_args.args[0]
        assert context.plugin.file_name == "MyPatch.esp"
        assert context.mode.value == "filtered"
        assert context.no_prompt is True
        assert context.tools.game_root == Path("Fallout 4")

    def test_build_failure_reports_stage(self):
        error = PrerequisiteError("No visibility files found. Run GeneratePrevis first.", BuildStage.MERGE_PREVIS)

        with patch("previs_builder.pipeline.StageSequencer") as mock_sequencer:
            mock_sequencer.return_value.run.side_effect = error
            result = self.runner.invoke(app, [
                "build", "MyPatch.esp",
                "--fo4edit-path", "FO4Edit64.exe",
                "--fallout4-path", "Fallout 4",
                "--start-stage", "7",
                "--no-prompt",
            ])

        assert result.exit_code == 1
        assert "Build failed" in result.stdout
        assert "Merge Previs" in result.stdout
        assert "--start-stage 7" in result.stdout

    def test_build_rejects_invalid_config(self):
        Path("previs_builder.toml").write_text('[build]\nmode = "turbo"\n')

        result = self.runner.invoke(app, ["build", "MyPatch.esp", "--no-prompt"])

        assert result.exit_code == 1
        assert "mode must be clean, filtered, or xbox" in result.stdout

    def test_build_reports_malformed_config(self):
        Path("previs_builder.toml").write_text('[build\nmode = "clean"\n')

        with patch("previs_builder.pipeline.StageSequencer") as mock_sequencer:
            result = self.runner.invoke(app, ["build", "MyPatch.esp", "--no-prompt"])

        assert result.exit_code == 1
        assert "Error loading configuration" in result.stdout
        assert not isinstance(result.exception, ValueError)
        mock_sequencer.assert_not_called()

    def test_build_reports_unsupported_config_format(self):
        Path("settings.yaml").write_text("mode: clean\n")

        result = self.runner.invoke(app, ["build", "MyPatch.esp", "--config", "settings.yaml"])

        assert result.exit_code == 1
        assert "Unsupported configuration format" in result.stdout

    def test_verify_reports_malformed_config(self):
        Path("bad.json").write_text("{not json")

        result = self.runner.invoke(app, ["verify", "--config", "bad.json"])

        assert result.exit_code == 1
        assert "Error loading configuration" in result.stdout

    def test_verify_reports_missing_tools(self):
        result = self.runner.invoke(app, [
            "verify",
            "--fo4edit-path", "missing/FO4Edit64.exe",
            "--fallout4-path", "missing",
        ])

        assert result.exit_code == 1
        assert "not found" in result.stdout

    def test_config_env_vars(self):
        result = self.runner.invoke(app, ["config", "--env-vars"])
        assert result.exit_code == 0
        assert "PREVIS_BUILDER_MODE" in result.stdout

    def test_config_show_and_validate(self):
        config_path = Path("custom.toml")
        config_path.write_text('[build]\nmode = "xbox"\n\n[timing]\nsettle_delay = 1\n')

        result = self.runner.invoke(app, ["config", "--show", "--validate", "--config", str(config_path)])

        assert result.exit_code == 0
        assert "xbox" in result.stdout
        assert "Configuration is valid" in result.stdout

    def test_config_validate_reports_errors(self):
        config_path = Path("bad.json")
        config_path.write_text('{"timing": {"log_poll_interval": 0}}')

        result = self.runner.invoke(app, ["config", "--validate", "--config", str(config_path)])

        assert result.exit_code == 1
        assert "log_poll_interval must be positive" in result.stdout

    def test_config_missing_file(self):
        result = self.runner.invoke(app, ["config", "--show", "--config", "nope.toml"])
        assert result.exit_code == 1

    def test_version(self):
        result = self.runner.invoke(app, ["version"])
        assert result.exit_code == 0
        assert "Version:" in result.stdout
