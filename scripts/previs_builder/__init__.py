"""
Automatic Previsbine Builder for Fallout 4

Drives the Creation Kit, xEdit and Archive2/BSArch through the precombine and
previs generation workflow for a single plugin, checking the inputs and
outputs of every stage so an interrupted build can be resumed.
"""

__version__ = "2.6.0"
__author__ = "Previsbine Builder Developers"

from .config import BuilderConfig, TimingConfig
from .errors import BuilderError
from .models import BuildMode, BuildStage, PluginIdentity, RunContext, ToolConfiguration
from .pipeline import StageSequencer, BuildState, StageResult

__all__ = [
    "BuilderConfig",
    "TimingConfig",
    "BuilderError",
    "BuildMode",
    "BuildStage",
    "PluginIdentity",
    "RunContext",
    "ToolConfiguration",
    "StageSequencer",
    "BuildState",
    "StageResult",
]
