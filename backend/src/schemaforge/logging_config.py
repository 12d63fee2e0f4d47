"""Process-wide logging setup for command-line entry points."""

import logging

LOG_FORMAT = "%(asctime)s %(levelname)-8s %(name)s: %(message)s"


def configure_logging(level: str = "INFO") -> None:
    """Route schemaforge loggers to stderr at ``level``.

    Library code only creates module loggers; handlers are installed here,
    once, by whoever owns the process.
    """
    numeric = logging.getLevelName(level.upper())
    if not isinstance(numeric, int):
        numeric = logging.INFO

    root = logging.getLogger("schemaforge")
    root.setLevel(numeric)
    if not root.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        root.addHandler(handler)
    # Alembic announces every operation at INFO
    logging.getLogger("alembic").setLevel(max(numeric, logging.WARNING))
