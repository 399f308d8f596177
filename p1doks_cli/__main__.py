"""
Main entry point for the p1doks-cli application.

Runs the typer app and turns errors that escape a command into a message and
an exit status:

* 0: success, or cancelled by the user
* 1: any other failure
* 3: the session expired mid-run; the saved session was removed, so running
  the command again asks for a password
"""

import asyncio
import logging
import os
import sys

from rich.console import Console

from p1doks_cli.cli.app import app
from p1doks_cli.cli.formatters import format_error_with_suggestions
from p1doks_cli.exceptions import P1doksCliError, TokenExpiredError

EXIT_FAILURE = 1
EXIT_SESSION_EXPIRED = 3

log = logging.getLogger("p1doks_cli")


def _use_utf8_console() -> None:
    """Lets the Windows console print the status symbols."""
    if os.name != "nt":
        return
    try:
        sys.stdout.reconfigure(encoding="utf-8")
        sys.stderr.reconfigure(encoding="utf-8")
    except (TypeError, AttributeError):
        pass


def main() -> None:
    """Main entry point function."""
    _use_utf8_console()
    console = Console()

    try:
        app()
    except (KeyboardInterrupt, asyncio.CancelledError):
        console.print("\n[yellow]⚠️  Operation cancelled by user.[/yellow]")
        sys.exit(0)
    except TokenExpiredError as e:
        if e.original_error is not None:
            log.debug(f"Request rejected with: {e.original_error}")
        console.print(f"\n[red]✗ {e}[/red]")
        console.print(
            "[yellow]Your P1Doks session could not be renewed and was signed "
            "out.[/yellow]\n[cyan]💡 Run the command again to sign in.[/cyan]"
        )
        sys.exit(EXIT_SESSION_EXPIRED)
    except P1doksCliError as e:
        console.print(f"\n{format_error_with_suggestions(e)}")
        sys.exit(EXIT_FAILURE)
    except Exception as e:
        console.print(f"\n{format_error_with_suggestions(e, {'type': 'Unexpected'})}")
        log.debug("Full traceback:", exc_info=True)
        sys.exit(EXIT_FAILURE)


if __name__ == "__main__":
    main()
