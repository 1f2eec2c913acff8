"""
Checks and seeding of the plugin being patched.
"""

import logging
import shutil

from .errors import BuilderError, PrerequisiteError, UserAbortedError
from .models import SEED_PLUGIN, BuildStage, RunContext
from .tools.base import settle

logger = logging.getLogger(__name__)


def prepare_plugin(context: RunContext, start_stage: BuildStage, prompter) -> bool:
    """
    Make sure the plugin exists before precombines are generated.

    A missing plugin is created by copying the seed plugin shipped with the
    xPrevisPatch scripts, after the operator agrees.

    Args:
        context: Run context with the plugin identity filled in
        start_stage: Stage the run starts at
        prompter: Used to confirm seeding the plugin

    Returns:
        True if the plugin was created from the seed

    Raises:
        PrerequisiteError: If an archive exists for a fresh build or no plugin can be provided
        UserAbortedError: If the operator declines seeding the plugin
    """
    plugin = context.plugin

    # An existing archive only blocks runs that would rebuild it from scratch
    if start_stage <= BuildStage.GENERATE_PRECOMBINES and context.archive_path.exists():
        raise PrerequisiteError(f"This Plugin already has an Archive: {plugin.archive_name}")

    if context.plugin_path.exists():
        return False

    seed_path = context.data_path(SEED_PLUGIN)
    if not seed_path.exists():
        raise PrerequisiteError(f"Specified Plugin or {SEED_PLUGIN} does not exist")

    if context.no_prompt:
        raise PrerequisiteError(f"Plugin {plugin.file_name} does not exist")

    if not prompter.confirm(f"Plugin does not exist, copy {SEED_PLUGIN} to {plugin.file_name}?"):
        raise UserAbortedError(f"Plugin {plugin.file_name} does not exist")

    try:
        shutil.copy2(seed_path, context.plugin_path)
    except OSError as e:
        raise BuilderError(f"Error copying {SEED_PLUGIN}: {e}")

    settle(context.timing.settle_delay)

    if not context.plugin_path.exists():
        raise BuilderError(f"Plugin {plugin.file_name} was not created from {SEED_PLUGIN}")

    logger.info(f"Copied {SEED_PLUGIN} to {plugin.file_name}")
    return True
