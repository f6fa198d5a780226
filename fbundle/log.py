import logging

from rich.console import Console
from rich.logging import RichHandler

console = Console()
log = logging.getLogger("fbundle")


def setup_logging(verbose: bool = False) -> None:
    """Route the ``fbundle`` logger through rich."""
    logging.basicConfig(
        level=logging.WARNING,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[
            RichHandler(console=console, rich_tracebacks=True, show_path=False)
        ],
    )
    if verbose:
        log.setLevel(logging.DEBUG)
        log.debug("Verbose logging enabled.")
    else:
        log.setLevel(logging.INFO)
