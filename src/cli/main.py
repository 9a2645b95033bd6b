"""Main CLI entry point for the portal-sync command.

This module provides the Typer application with one subcommand per
workflow: init, pull, status, push and switch-portal.
"""

import logging
import sys
from datetime import datetime
from pathlib import Path
from typing import Optional

import typer

from src.cli.errors import InitError
from src.cli.init_command import InitCommand
from src.cli.models import ExitCode
from src.cli.output import OutputHandler
from src.cli.sync_command import SyncCommand
from src.scm.chooser import ConsoleChooser

app = typer.Typer(
    name="portal-sync",
    help="""Mirror a Power Apps portal into a local workspace and push local edits back.

QUICK START:
  portal-sync init            # Connect to your Dynamics instance
  portal-sync pull            # Download templates, snippets and web files
  portal-sync status          # Show local changes
  portal-sync push            # Upload local changes""",
    add_completion=False,
    rich_markup_mode=None,
    no_args_is_help=True,
)

logger = logging.getLogger(__name__)

VERSION = "0.1.0"

verbosity_option = typer.Option(
    0,
    "--verbosity",
    "-v",
    help="Verbosity level: 0=summary, 1=info, 2=debug",
)
no_color_option = typer.Option(False, "--no-color", help="Disable colored output")
logdir_option = typer.Option(
    None,
    "--logdir",
    help="Directory for log files (creates timestamped log file)",
)


def _configure_logging(verbosity: int, logdir: Optional[str] = None) -> None:
    """Configure logging based on verbosity level.

    Configures only the 'src' namespace logger to avoid affecting third-party
    libraries. The root logger is left unchanged.

    Args:
        verbosity: Verbosity level (0=WARNING, 1=INFO, 2=DEBUG)
        logdir: Optional directory for log files (creates timestamped log file)
    """
    if verbosity == 0:
        level = logging.WARNING
    elif verbosity == 1:
        level = logging.INFO
    else:
        level = logging.DEBUG

    app_logger = logging.getLogger("src")
    app_logger.setLevel(level)

    date_format = "%Y-%m-%d %H:%M:%S"
    formatter = logging.Formatter("%(asctime)s [%(levelname)8s] %(message)s", datefmt=date_format)

    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setLevel(level)
    console_handler.setFormatter(formatter)
    app_logger.addHandler(console_handler)

    if logdir:
        log_path = Path(logdir)
        log_path.mkdir(parents=True, exist_ok=True)

        timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
        log_file = log_path / f"portal-sync_{timestamp}.log"

        file_formatter = logging.Formatter(
            "%(asctime)s - %(name)s - %(levelname)s - %(message)s", datefmt=date_format
        )
        file_handler = logging.FileHandler(log_file, encoding="utf-8")
        file_handler.setLevel(level)
        file_handler.setFormatter(file_formatter)
        app_logger.addHandler(file_handler)

        logger.info(f"Logging to file: {log_file}")


def _version_callback(value: bool) -> None:
    if value:
        typer.echo(f"portal-sync version {VERSION}")
        raise typer.Exit()


@app.callback()
def main_callback(
    version: bool = typer.Option(
        False,
        "--version",
        "-V",
        help="Show version and exit",
        callback=_version_callback,
        is_eager=True,
    ),
) -> None:
    """Mirror a Power Apps portal into a local workspace and push local edits back."""


@app.command()
def init(
    no_verify: bool = typer.Option(
        False,
        "--no-verify",
        help="Do not check the credentials against Dynamics",
    ),
    verbosity: int = verbosity_option,
    no_color: bool = no_color_option,
) -> None:
    """Connect the workspace to a Dynamics instance (interactive)."""
    _configure_logging(verbosity)
    output = OutputHandler(verbosity=verbosity, no_color=no_color)

    try:
        init_cmd = InitCommand(chooser=ConsoleChooser(output.console))
        portal_count = init_cmd.run(verify=not no_verify)

        output.success("Configuration initialized successfully")
        output.info(f"  Credentials: {init_cmd.env_path}")
        output.info(f"  Config file: {init_cmd.config_path}")
        if portal_count is not None:
            output.info(f"  Portals found: {portal_count}")
        output.info("")
        output.info("Next steps:")
        output.info("  Run 'portal-sync pull' and select your portal")

        raise typer.Exit(ExitCode.SUCCESS)

    except InitError as e:
        logger.error(f"Initialization failed: {e}")
        output.error(f"Initialization failed: {e}")
        raise typer.Exit(ExitCode.GENERAL_ERROR)

    except typer.Exit:
        raise

    except Exception as e:
        logger.exception("Unexpected error during initialization")
        output.error(f"Unexpected error: {e}")
        raise typer.Exit(ExitCode.GENERAL_ERROR)


def _sync_command(verbosity: int, no_color: bool, logdir: Optional[str]) -> SyncCommand:
    _configure_logging(verbosity, logdir)
    return SyncCommand(output_handler=OutputHandler(verbosity=verbosity, no_color=no_color))


@app.command()
def pull(
    logdir: Optional[str] = logdir_option,
    verbosity: int = verbosity_option,
    no_color: bool = no_color_option,
) -> None:
    """Download the portal and write all documents into the workspace."""
    raise typer.Exit(_sync_command(verbosity, no_color, logdir).pull())


@app.command()
def status(
    logdir: Optional[str] = logdir_option,
    verbosity: int = verbosity_option,
    no_color: bool = no_color_option,
) -> None:
    """Show documents added, modified or deleted in the workspace."""
    raise typer.Exit(_sync_command(verbosity, no_color, logdir).status())


@app.command()
def push(
    logdir: Optional[str] = logdir_option,
    verbosity: int = verbosity_option,
    no_color: bool = no_color_option,
) -> None:
    """Upload local additions, edits and deletions to the portal."""
    raise typer.Exit(_sync_command(verbosity, no_color, logdir).push())


@app.command("switch-portal")
def switch_portal(
    verbosity: int = verbosity_option,
    no_color: bool = no_color_option,
) -> None:
    """Forget the configured portal; the next pull asks for one."""
    raise typer.Exit(_sync_command(verbosity, no_color, None).switch_portal())


def main() -> None:
    """Main entry point for the CLI application."""
    app()


# Allow running as: python -m src.cli.main
if __name__ == "__main__":
    main()
