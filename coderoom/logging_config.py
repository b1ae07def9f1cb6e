import logging

DEFAULT_FORMAT = "%(levelname)s: %(message)s"


def configure_logging(level: int | str = logging.WARNING, fmt: str = DEFAULT_FORMAT) -> None:
    """Install a root handler for applications embedding the room engine."""
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
        if not isinstance(level, int):
            level = logging.WARNING
    logging.basicConfig(level=level, format=fmt)
    logging.getLogger("coderoom").setLevel(level)
