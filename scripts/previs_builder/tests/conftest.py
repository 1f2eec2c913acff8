"""
Shared fixtures: a throwaway game install and run contexts with no delays.
"""

import shutil
import tempfile
from pathlib import Path

import pytest

from previs_builder.config import TimingConfig
from previs_builder.models import BuildMode, PluginIdentity, RunContext, ToolConfiguration


def fast_timing(**overrides) -> TimingConfig:
    """Timing with every delay disabled."""
    values = dict(
        settle_delay=0,
        xedit_startup_delay=0,
        xedit_post_log_delay=0,
        log_poll_interval=0.01,
        log_wait_timeout=5,
        extract_delay=0,
        terminate_timeout=1,
    )
    values.update(overrides)
    return TimingConfig(**values)


def make_tools(root: Path) -> ToolConfiguration:
    """Tool configuration pointing into root, with the Data directory created."""
    game_root = root / "Fallout 4"
    (game_root / "Data").mkdir(parents=True, exist_ok=True)
    xedit_dir = root / "xEdit"
    xedit_dir.mkdir(parents=True, exist_ok=True)
    return ToolConfiguration(
        xedit=xedit_dir / "FO4Edit64.exe",
        game_root=game_root,
        creation_kit=game_root / "CreationKit.exe",
        archive2=game_root / "tools" / "archive2" / "archive2.exe",
        log_file=game_root / "CK.log",
    )


def make_context(root: Path, plugin: str = "MyPatch.esp", mode: BuildMode = BuildMode.CLEAN,
                 **kwargs) -> RunContext:
    log_dir = root / "logs"
    log_dir.mkdir(parents=True, exist_ok=True)
    kwargs.setdefault("timing", fast_timing())
    kwargs.setdefault("no_prompt", True)
    return RunContext(
        mode=mode,
        tools=make_tools(root),
        log_dir=log_dir,
        plugin=PluginIdentity.from_input(plugin) if plugin else None,
        **kwargs,
    )


def touch(path: Path, content: str = "") -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content)
    return path


@pytest.fixture
def temp_root():
    root = Path(tempfile.mkdtemp())
    yield root
    shutil.rmtree(root, ignore_errors=True)


@pytest.fixture
def context(temp_root):
    return make_context(temp_root)
