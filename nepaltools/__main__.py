"""
Entry point for ``nepaltools`` and ``python -m nepaltools``.

Store errors raised outside a command's own handling are rendered as a
suggestions panel; anything else is reported as unexpected.
"""

import logging
import sys

import typer
from rich.console import Console

from nepaltools.cli.app import app
from nepaltools.cli.formatters import format_error_with_suggestions
from nepaltools.exceptions import NepalToolsError

log = logging.getLogger("nepaltools")


def main() -> None:
    console = Console(stderr=True)
    try:
        app()
    except (typer.Exit, typer.Abort):
        pass
    except KeyboardInterrupt:
        console.print("\n[yellow]Interrupted; the store was left as of the last write.[/yellow]")
        sys.exit(130)
    except NepalToolsError as e:
        console.print(format_error_with_suggestions(e))
        sys.exit(1)
    except Exception as e:
        console.print(format_error_with_suggestions(e, {"type": "Unexpected"}))
        log.debug("Full traceback:", exc_info=True)
        sys.exit(1)


if __name__ == "__main__":
    main()
