"""
Command-line interface for the previsbine builder.
Provides commands to build a patch, inspect stages and check the environment.
"""

import sys
import os
import time
import logging
import tempfile
from pathlib import Path
from typing import Optional
import typer
from rich.console import Console
from rich.table import Table

from . import __version__
from .config import BuilderConfig, ENV_PREFIX, find_default_config
from .environment import EnvironmentVerifier
from .errors import BuilderError
from .models import BuildMode, PluginIdentity, RunContext
from .paths import ToolLocator
from .ui import Prompter, stage_table

# Initialize typer app and rich console
app = typer.Typer(
    name="previs-builder",
    help="Automatic Previsbine Builder for Fallout 4 - Generate precombines and previs data for a plugin",
    add_completion=False,
    rich_markup_mode="rich",
    epilog="""
[bold]Examples:[/bold]
  [cyan]previs-builder build MyPatch.esp[/cyan]                       Build a patch in clean mode
  [cyan]previs-builder build MyPatch --mode filtered[/cyan]           Build without CompressPSG/BuildCDX
  [cyan]previs-builder build MyPatch.esp --start-stage 6[/cyan]       Resume at Generate Previs
  [cyan]previs-builder verify[/cyan]                                  Check tools and CKPE settings

[bold]Environment Variables:[/bold]
  Use [cyan]previs-builder config --env-vars[/cyan] to see all available variables.

[bold]Mod Organizer 2:[/bold]
  If you use MO2 then this must be run from within MO2.
    """
)
console = Console()


@app.command()
def build(
    plugin: Optional[str] = typer.Argument(None, help="Plugin to build (.esp appended when no extension given)"),
    mode: Optional[BuildMode] = typer.Option(None, "--mode", "-m", case_sensitive=False, help="Build mode"),
    start_stage: Optional[int] = typer.Option(None, "--start-stage", "-s", help="Stage number to resume from"),
    fo4edit_path: Optional[str] = typer.Option(None, "--fo4edit-path", help="Path to FO4Edit/xEdit executable"),
    fallout4_path: Optional[str] = typer.Option(None, "--fallout4-path", help="Fallout 4 install directory"),
    bsarch_path: Optional[str] = typer.Option(None, "--bsarch-path", help="Path to BSArch executable"),
    use_bsarch: bool = typer.Option(False, "--use-bsarch", "-b", help="Create archives with BSArch instead of Archive2"),
    keep_files: bool = typer.Option(False, "--keep-files", "-k", help="Keep CombinedObjects.esp, Previs.esp and vis"),
    no_prompt: bool = typer.Option(False, "--no-prompt", "-n", help="Never ask questions"),
    log_dir: Optional[Path] = typer.Option(None, "--log-dir", help="Directory for the run log"),
    config_file: Optional[Path] = typer.Option(None, "--config", "-c", help="Configuration file path"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging")
):
    """Build precombines and previs data for a plugin."""
    _configure_verbosity(verbose)

    if start_stage is not None and plugin is None:
        console.print(stage_table(mode or BuildMode.CLEAN, title="Available stages to resume from"))
        console.print("Pass a plugin together with --start-stage to resume from that stage.")
        return

    try:
        config = _load_config(config_file)
    except (OSError, ValueError) as e:
        console.print(f"[red]Error loading configuration:[/red] {e}")
        raise typer.Exit(1)

    _apply_cli_overrides(
        config,
        mode=mode,
        fo4edit_path=fo4edit_path,
        fallout4_path=fallout4_path,
        bsarch_path=bsarch_path,
        use_bsarch=use_bsarch,
        keep_files=keep_files,
        no_prompt=no_prompt,
        log_dir=log_dir,
    )

    errors = config.validate()
    if errors:
        console.print("[red]Configuration validation errors:[/red]")
        for error in errors:
            console.print(f"  • {error}")
        raise typer.Exit(1)

    console.print("[bold blue]Automatic Previsbine Builder[/bold blue]")
    console.print("[dim]If you use MO2 then this must be run from within MO2[/dim]")

    from .pipeline import StageSequencer, format_manifest

    try:
        tools = ToolLocator().locate(
            config.fo4edit_path, config.fallout4_path, config.use_bsarch, config.bsarch_path
        )
        identity = PluginIdentity.from_input(plugin) if plugin else None

        context = RunContext(
            mode=BuildMode(config.mode.lower()),
            tools=tools,
            log_dir=Path(config.log_dir) if config.log_dir else Path(tempfile.gettempdir()),
            plugin=identity,
            start_stage=start_stage,
            keep_files=config.keep_files,
            no_prompt=config.no_prompt,
            use_bsarch=config.use_bsarch,
            timing=config.timing,
        )

        sequencer = StageSequencer(
            context,
            prompter=Prompter(console=console, no_prompt=config.no_prompt),
            min_script_version=config.min_script_version,
        )
        final_state = sequencer.run()

    except BuilderError as e:
        console.print(f"[red]Build failed:[/red] {e}")
        if e.stage is not None:
            console.print(f"[red]Failed at stage:[/red] {int(e.stage)} ({e.stage.description})")
            console.print(f"[dim]Fix the problem and resume with --start-stage {int(e.stage)}[/dim]")
        raise typer.Exit(1)
    except ValueError as e:
        console.print(f"[red]Invalid input:[/red] {e}")
        raise typer.Exit(1)

    _display_build_summary(final_state)

    for warning in final_state.all_warnings:
        console.print(f"[yellow]Warning:[/yellow] {warning}")

    console.print()
    lines = format_manifest(context.plugin, final_state.artifacts)
    console.print(f"[green]✓ {lines[0]}[/green]")
    for artifact in lines[1:-1]:
        console.print(f"  {artifact}")
    console.print(f"[bold]{lines[-1]}[/bold]")


@app.command()
def stages(
    mode: BuildMode = typer.Option(BuildMode.CLEAN, "--mode", "-m", case_sensitive=False, help="Build mode")
):
    """List the build stages available in a mode."""
    console.print(stage_table(mode))


@app.command()
def verify(
    fo4edit_path: Optional[str] = typer.Option(None, "--fo4edit-path", help="Path to FO4Edit/xEdit executable"),
    fallout4_path: Optional[str] = typer.Option(None, "--fallout4-path", help="Fallout 4 install directory"),
    bsarch_path: Optional[str] = typer.Option(None, "--bsarch-path", help="Path to BSArch executable"),
    use_bsarch: bool = typer.Option(False, "--use-bsarch", "-b", help="Also check BSArch"),
    config_file: Optional[Path] = typer.Option(None, "--config", "-c", help="Configuration file path"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging")
):
    """Check that the tools, CKPE settings and xEdit scripts are in place."""
    _configure_verbosity(verbose)
    console.print("[bold blue]Verifying environment...[/bold blue]")

    try:
        config = _load_config(config_file)
    except (OSError, ValueError) as e:
        console.print(f"[red]Error loading configuration:[/red] {e}")
        raise typer.Exit(1)

    _apply_cli_overrides(
        config,
        fo4edit_path=fo4edit_path,
        fallout4_path=fallout4_path,
        bsarch_path=bsarch_path,
        use_bsarch=use_bsarch,
    )

    try:
        tools = ToolLocator().locate(
            config.fo4edit_path, config.fallout4_path, config.use_bsarch, config.bsarch_path
        )
        warnings = EnvironmentVerifier(tools, config.use_bsarch, config.min_script_version).verify()
    except BuilderError as e:
        console.print(f"[red]✗[/red] {e}")
        raise typer.Exit(1)

    table = Table(title="Environment", show_header=False)
    table.add_column("Item", style="cyan")
    table.add_column("Value", style="green")
    table.add_row("xEdit", str(tools.xedit))
    table.add_row("Fallout 4", str(tools.game_root))
    table.add_row("Creation Kit", str(tools.creation_kit))
    table.add_row("Archiver", str(tools.bsarch if config.use_bsarch else tools.archive2))
    table.add_row("CKPE settings", tools.config_reader.file_name)
    table.add_row("CK log", str(tools.log_file))
    console.print(table)

    for warning in warnings:
        console.print(f"[yellow]Warning:[/yellow] {warning}")

    console.print("[green]✓ Environment is ready[/green]")


@app.command()
def config(
    show: bool = typer.Option(False, "--show", help="Show current configuration"),
    validate_config: bool = typer.Option(False, "--validate", help="Validate configuration file"),
    config_file: Optional[Path] = typer.Option(None, "--config", "-c", help="Configuration file path"),
    env_vars: bool = typer.Option(False, "--env-vars", help="Show available environment variables")
):
    """Manage builder configuration."""
    if env_vars:
        _display_env_vars()
        return

    if show or validate_config:
        try:
            config = _load_config(config_file)
        except (OSError, ValueError) as e:
            console.print(f"[red]Error loading configuration:[/red] {e}")
            raise typer.Exit(1)

        if show:
            _display_config(config)

        if validate_config:
            errors = config.validate()
            if errors:
                console.print("[red]Configuration validation errors:[/red]")
                for error in errors:
                    console.print(f"  • {error}")
                raise typer.Exit(1)
            else:
                console.print("[green]✓ Configuration is valid[/green]")
    else:
        console.print("Use --show to display configuration, --validate to check it, or --env-vars to see environment variables.")


@app.command()
def version():
    """Show builder version information."""
    console.print("[bold]Automatic Previsbine Builder for Fallout 4[/bold]")
    console.print(f"Version: {__version__}")
    console.print("Python: " + sys.version.split()[0])

    import importlib.metadata

    deps_status = [("Typer", typer.__version__, "✓")]

    try:
        deps_status.append(("Rich", importlib.metadata.version("rich"), "✓"))
    except importlib.metadata.PackageNotFoundError:
        deps_status.append(("Rich", "Not installed", "✗"))

    console.print("\n[bold]Dependencies:[/bold]")
    table = Table(show_header=False)
    table.add_column("Status", width=3)
    table.add_column("Package", style="cyan")
    table.add_column("Version", style="green")

    for name, dep_version, status in deps_status:
        color = "green" if status == "✓" else "red"
        table.add_row(f"[{color}]{status}[/{color}]", name, dep_version)

    console.print(table)


def _configure_verbosity(verbose: bool) -> None:
    if verbose:
        logging.getLogger("previs_builder").setLevel(logging.DEBUG)


def _load_config(config_file: Optional[Path]) -> BuilderConfig:
    """Load configuration from file or use defaults with environment variable support."""
    if config_file:
        if not config_file.exists():
            console.print(f"[red]Configuration file not found:[/red] {config_file}")
            raise typer.Exit(1)
        config = BuilderConfig.from_file(config_file)
        console.print(f"[dim]Using configuration: {config_file}[/dim]")
    else:
        config_path = find_default_config()
        if config_path is not None:
            console.print(f"[dim]Using configuration: {config_path}[/dim]")
            config = BuilderConfig.from_file(config_path)
        else:
            config = BuilderConfig()

    # Apply environment variable overrides
    config = BuilderConfig._apply_env_overrides(config)

    env_vars_used = [key for key in os.environ if key.startswith(ENV_PREFIX)]
    if env_vars_used:
        console.print(f"[dim]Environment overrides applied: {len(env_vars_used)} variables[/dim]")

    return config


def _apply_cli_overrides(
    config: BuilderConfig,
    mode: Optional[BuildMode] = None,
    fo4edit_path: Optional[str] = None,
    fallout4_path: Optional[str] = None,
    bsarch_path: Optional[str] = None,
    use_bsarch: bool = False,
    keep_files: bool = False,
    no_prompt: bool = False,
    log_dir: Optional[Path] = None,
) -> BuilderConfig:
    """Command line flags win over file and environment values."""
    if mode is not None:
        config.mode = mode.value
    if fo4edit_path:
        config.fo4edit_path = fo4edit_path
    if fallout4_path:
        config.fallout4_path = fallout4_path
    if bsarch_path:
        config.bsarch_path = bsarch_path
    if log_dir is not None:
        config.log_dir = str(log_dir)

    config.use_bsarch = config.use_bsarch or use_bsarch
    config.keep_files = config.keep_files or keep_files
    config.no_prompt = config.no_prompt or no_prompt
    return config


def _display_build_summary(state) -> None:
    """Display build execution summary."""
    total_duration = 0
    if state.start_time:
        total_duration = time.time() - state.start_time

    console.print("\n[bold]Build Summary[/bold]")

    if state.stage_results:
        stage_table_view = Table()
        stage_table_view.add_column("#", style="cyan", justify="right")
        stage_table_view.add_column("Stage", style="cyan")
        stage_table_view.add_column("Status", width=8)
        stage_table_view.add_column("Duration", style="yellow")
        stage_table_view.add_column("Warnings", style="dim")

        for stage, result in state.stage_results.items():
            status = "[green]✓[/green]" if result.success else "[red]✗[/red]"
            stage_table_view.add_row(
                str(int(stage)), stage.description, status, f"{result.duration:.2f}s", str(len(result.warnings))
            )

        console.print(stage_table_view)

    console.print(f"Total execution time: {total_duration:.2f}s")


def _display_config(config: BuilderConfig) -> None:
    """Display configuration in a formatted table."""
    table = Table(title="Previsbine Builder Configuration")
    table.add_column("Setting", style="cyan")
    table.add_column("Value", style="green")

    # Tool locations
    table.add_row("FO4Edit Path", config.fo4edit_path or "(auto-detect)")
    table.add_row("Fallout 4 Path", config.fallout4_path or "(auto-detect)")
    table.add_row("BSArch Path", config.bsarch_path or "(auto-detect)")
    table.add_row("Log Directory", config.log_dir or tempfile.gettempdir())

    # Build settings
    table.add_row("Mode", config.mode)
    table.add_row("Use BSArch", str(config.use_bsarch))
    table.add_row("Keep Files", str(config.keep_files))
    table.add_row("No Prompt", str(config.no_prompt))
    table.add_row("Min Script Version", str(config.min_script_version))

    # Timing
    timing = config.timing
    table.add_row("Settle Delay", f"{timing.settle_delay}s")
    table.add_row("xEdit Startup Delay", f"{timing.xedit_startup_delay}s")
    table.add_row("xEdit Post-Log Delay", f"{timing.xedit_post_log_delay}s")
    table.add_row("Log Poll Interval", f"{timing.log_poll_interval}s")
    table.add_row(
        "Log Wait Timeout",
        "unbounded" if timing.log_wait_timeout is None else f"{timing.log_wait_timeout}s",
    )
    table.add_row("Extract Delay", f"{timing.extract_delay}s")

    console.print(table)


def _display_env_vars() -> None:
    """Display available environment variables for configuration."""
    table = Table(title="Previsbine Builder Environment Variables")
    table.add_column("Environment Variable", style="cyan")
    table.add_column("Description", style="white")
    table.add_column("Example", style="green")

    env_vars = [
        (f"{ENV_PREFIX}FO4EDIT_PATH", "Path to FO4Edit/xEdit executable", "C:/xEdit/FO4Edit64.exe"),
        (f"{ENV_PREFIX}FALLOUT4_PATH", "Fallout 4 install directory", "C:/Games/Fallout 4"),
        (f"{ENV_PREFIX}BSARCH_PATH", "Path to BSArch executable", "C:/Tools/BSArch/bsarch.exe"),
        (f"{ENV_PREFIX}LOG_DIR", "Directory for the run log", "C:/Temp"),
        (f"{ENV_PREFIX}MODE", "Build mode (clean/filtered/xbox)", "clean"),
        (f"{ENV_PREFIX}USE_BSARCH", "Use BSArch instead of Archive2 (true/false)", "false"),
        (f"{ENV_PREFIX}KEEP_FILES", "Keep working files (true/false)", "false"),
        (f"{ENV_PREFIX}NO_PROMPT", "Never ask questions (true/false)", "false"),
        (f"{ENV_PREFIX}SETTLE_DELAY", "Seconds to wait after each tool exits", "5"),
        (f"{ENV_PREFIX}LOG_POLL_INTERVAL", "Seconds between xEdit log checks", "5"),
        (f"{ENV_PREFIX}LOG_WAIT_TIMEOUT", "Seconds to wait for the xEdit log (none = forever)", "1800"),
    ]

    for var_name, description, example in env_vars:
        table.add_row(var_name, description, example)

    console.print(table)
    console.print("\n[dim]Set these environment variables to override configuration file settings.[/dim]")
    console.print(f"[dim]Example: export {ENV_PREFIX}MODE=filtered[/dim]")


if __name__ == "__main__":
    app()
