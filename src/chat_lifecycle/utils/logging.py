import sys

from loguru import logger

_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | <level>{level: <8}</level> | "
    "<cyan>{name}</cyan>:<cyan>{function}</cyan> | {extra[request_id]} - <level>{message}</level>"
)


def configure_logging(level: str = "INFO", serialize: bool = False) -> None:
    """Replace loguru's default sink with one that shows the send correlation id.

    Library code never calls this; entry points (the CLI, an embedding app) do.
    """
    logger.remove()
    logger.configure(extra={"request_id": "-"})
    logger.add(sys.stderr, level=level.upper(), format=_FORMAT, serialize=serialize)
