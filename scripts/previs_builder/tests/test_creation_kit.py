"""
Unit tests for Creation Kit invocation and the component guard.
"""

import subprocess
from unittest.mock import patch

import pytest

from previs_builder.errors import BuilderError, OutputArtifactMissingError, ProcessLaunchError
from previs_builder.tools.base import RunLog
from previs_builder.tools.creation_kit import CreationKitRunner, DisabledComponents

from conftest import touch


def completed(returncode=0):
    return subprocess.CompletedProcess(args=[], returncode=returncode, stdout="", stderr="")


class TestDisabledComponents:
    """Test renaming interfering DLLs out of the way."""

    def test_disable_and_restore(self, temp_root):
        touch(temp_root / "d3d11.dll", "enb")
        touch(temp_root / "dxgi.dll", "reshade")

        guard = DisabledComponents(temp_root)
        assert sorted(guard.disable()) == ["d3d11.dll", "dxgi.dll"]
        assert not (temp_root / "d3d11.dll").exists()
        assert (temp_root / "d3d11.dll-PJMdisabled").read_text() == "enb"

        assert guard.restore() == []
        assert (temp_root / "d3d11.dll").read_text() == "enb"
        assert (temp_root / "dxgi.dll").read_text() == "reshade"
        assert not (temp_root / "dxgi.dll-PJMdisabled").exists()

    def test_restore_is_idempotent(self, temp_root):
        touch(temp_root / "d3d9.dll")
        guard = DisabledComponents(temp_root)
        guard.disable()
        guard.restore()
        assert guard.restore() == []
        assert (temp_root / "d3d9.dll").exists()

    def test_restore_after_exception(self, temp_root):
        touch(temp_root / "enbimgui.dll")

        with pytest.raises(RuntimeError):
            with DisabledComponents(temp_root):
                assert (temp_root / "enbimgui.dll-PJMdisabled").exists()
                raise RuntimeError("boom")

        assert (temp_root / "enbimgui.dll").exists()
        assert not (temp_root / "enbimgui.dll-PJMdisabled").exists()

    def test_restore_recovers_leftovers(self, temp_root):
        touch(temp_root / "d3d10.dll-PJMdisabled")
        assert DisabledComponents(temp_root).restore() == []
        assert (temp_root / "d3d10.dll").exists()


class TestCreationKitRunner:
    """Test the content tool invocation contract."""

    def _runner(self, context):
        return CreationKitRunner(context, RunLog(context.run_log))

    def test_build_command(self, context):
        runner = self._runner(context)
        command = runner.build_command("GeneratePrecombined", "clean all")
        assert command == [
            str(context.tools.creation_kit),
            "-GeneratePrecombined:MyPatch.esp",
            "clean",
            "all",
        ]
        assert runner.build_command("BuildCDX") == [str(context.tools.creation_kit), "-BuildCDX:MyPatch.esp"]

    def test_successful_run(self, context):
        game_root = context.tools.game_root
        touch(game_root / "d3d11.dll")
        touch(context.tools.log_file, "stale")

        def fake_run(command, **kwargs):
            assert kwargs["cwd"] == game_root
            # Interfering components are disabled and the stale log is gone while the CK runs
            assert not (game_root / "d3d11.dll").exists()
            assert (game_root / "d3d11.dll-PJMdisabled").exists()
            assert not context.tools.log_file.exists()
            touch(context.data_path("CombinedObjects.esp"))
            touch(context.tools.log_file, "CK log line")
            return completed(0)

        with patch("previs_builder.tools.creation_kit.subprocess.run", side_effect=fake_run):
            result = self._runner(context).run("GeneratePrecombined", "CombinedObjects.esp", "clean all")

        assert result.exit_code == 0
        assert result.warnings == []
        assert result.output_path == context.data_path("CombinedObjects.esp")
        assert result.log_text == "CK log line"
        assert (game_root / "d3d11.dll").exists()

        run_log = context.run_log.read_text()
        assert "Running CK option GeneratePrecombined:" in run_log
        assert "CK log line" in run_log

    def test_nonzero_exit_with_output_is_a_warning(self, context):
        def fake_run(command, **kwargs):
            touch(context.data_path("MyPatch.cdx"))
            return completed(3)

        with patch("previs_builder.tools.creation_kit.subprocess.run", side_effect=fake_run):
            result = self._runner(context).run("BuildCDX", "MyPatch.cdx")

        assert result.exit_code == 3
        assert len(result.warnings) == 1
        assert "error 3" in result.warnings[0]

    def test_missing_output_fails_even_on_success_exit(self, context):
        touch(context.tools.game_root / "dxgi.dll")

        with patch("previs_builder.tools.creation_kit.subprocess.run", return_value=completed(0)):
            with pytest.raises(OutputArtifactMissingError) as exc_info:
                self._runner(context).run("CompressPSG", "MyPatch - Geometry.csg")

        assert exc_info.value.artifact == "MyPatch - Geometry.csg"
        assert (context.tools.game_root / "dxgi.dll").exists()
        assert not (context.tools.game_root / "dxgi.dll-PJMdisabled").exists()

    def test_launch_failure(self, context):
        touch(context.tools.game_root / "d3d9.dll")

        with patch("previs_builder.tools.creation_kit.subprocess.run", side_effect=FileNotFoundError("nope")):
            with pytest.raises(ProcessLaunchError) as exc_info:
                self._runner(context).run("BuildCDX", "MyPatch.cdx")

        assert exc_info.value.tool == "CreationKit"
        assert isinstance(exc_info.value, BuilderError)
        assert (context.tools.game_root / "d3d9.dll").exists()

    def test_missing_ck_log_is_tolerated(self, context):
        def fake_run(command, **kwargs):
            touch(context.data_path("MyPatch.cdx"))
            return completed(0)

        with patch("previs_builder.tools.creation_kit.subprocess.run", side_effect=fake_run):
            result = self._runner(context).run("BuildCDX", "MyPatch.cdx")

        assert result.log_text is None
