"""LogSoul - Logging setup"""

import logging
import os
from typing import Optional

from rich.console import Console
from rich.logging import RichHandler

console = Console()
err_console = Console(stderr=True)


def setup_logging(log_file: Optional[str] = None, verbose: bool = False):
    """Route log records to a rich console handler and an optional file"""
    log_level = logging.DEBUG if verbose else logging.INFO

    rich_handler = RichHandler(console=err_console, rich_tracebacks=True, markup=False)
    rich_handler.setLevel(log_level)

    handlers = [rich_handler]
    if log_file:
        log_dir = os.path.dirname(log_file)
        if log_dir:
            os.makedirs(log_dir, exist_ok=True)
        file_handler = logging.FileHandler(log_file)
        file_handler.setLevel(log_level)
        file_handler.setFormatter(
            logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")
        )
        handlers.append(file_handler)

    logging.basicConfig(
        level=log_level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=handlers,
        force=True,
    )
