"""
Shared logging configuration for the CLI.
"""

import logging


def setup_logging(verbose: bool = False) -> logging.Logger:
    """Configure root logging for the CLI."""
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s - %(levelname)s - %(message)s",
    )
    return logging.getLogger("fabric_openai_cli")
