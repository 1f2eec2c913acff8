"""
Operator prompts.
"""

from typing import Optional

from rich.console import Console
from rich.prompt import Confirm, IntPrompt, Prompt
from rich.table import Table

from .errors import InvalidStageError, UserAbortedError
from .models import BuildMode, BuildStage


def stage_table(mode: BuildMode, title: str = "Build Stages") -> Table:
    """Table of the stages available in a mode."""
    table = Table(title=title)
    table.add_column("#", style="cyan", justify="right")
    table.add_column("Stage", style="green")
    table.add_column("Description")

    for stage in BuildStage.available(mode):
        table.add_row(str(int(stage)), stage.description, stage.label)

    return table


class Prompter:
    """
    Interactive questions asked during a build.

    With ``no_prompt`` set nothing is ever asked: questions that have a safe
    answer return it and the rest raise UserAbortedError.
    """

    def __init__(self, console: Optional[Console] = None, no_prompt: bool = False):
        self.console = console or Console()
        self.no_prompt = no_prompt

    def confirm(self, question: str, default: bool = False) -> bool:
        if self.no_prompt:
            return default
        return Confirm.ask(question, console=self.console, default=default)

    def ask_plugin_name(self) -> str:
        if self.no_prompt:
            raise UserAbortedError("No plugin specified and prompting is disabled")

        name = Prompt.ask("Enter Plugin Name", console=self.console).strip()
        if not name:
            raise UserAbortedError("No plugin name entered")
        return name

    def ask_stage(self, mode: BuildMode) -> BuildStage:
        """Show the stage menu and return the chosen stage."""
        if self.no_prompt:
            return BuildStage.VERIFY_ENVIRONMENT

        self.console.print(stage_table(mode, title="Plugin already exists, choose a stage to resume from"))
        choices = [str(int(stage)) for stage in BuildStage.available(mode)]
        value = IntPrompt.ask("Stage", console=self.console, choices=choices,
                              default=int(BuildStage.VERIFY_ENVIRONMENT))
        stage = BuildStage.from_int(value)
        if not stage.applies_to(mode):
            raise InvalidStageError(value)
        return stage
