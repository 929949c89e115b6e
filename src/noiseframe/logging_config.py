"""structlog setup for hosts embedding noiseframe."""

import logging

import structlog


def configure_logging(debug: bool = False) -> None:
    """Install the console processor chain and the level filter."""
    level = logging.DEBUG if debug else logging.INFO
    structlog.configure(
        processors=[
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.add_log_level,
            structlog.dev.ConsoleRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(level),
    )
