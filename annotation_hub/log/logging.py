"""
Loguru configuration shared by the whole service.

Import ``logger`` from here rather than from loguru directly so the sinks
and the correlation-id patcher are installed exactly once.
"""
import sys

from loguru import logger

from annotation_hub.core.config import settings

HUMAN_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | "
    "<level>{level: <8}</level> | "
    "<cyan>{extra[correlation_id]}</cyan> | "
    "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - "
    "<level>{message}</level>"
)


def _add_correlation_id(record: dict) -> None:
    # Imported lazily: correlation imports this module.
    from annotation_hub.core.correlation import get_correlation_id

    record["extra"].setdefault("correlation_id", get_correlation_id() or "-")


def configure_logging(config: dict | None = None) -> None:
    """Install loguru sinks according to the service logging configuration."""
    config = config or settings.logging_config

    logger.remove()
    logger.configure(patcher=_add_correlation_id, extra={"app_name": config["app_name"]})

    if config["json_logs"]:
        logger.add(sys.stdout, level=config["log_level"], serialize=True, enqueue=False)
    else:
        logger.add(sys.stdout, level=config["log_level"], format=HUMAN_FORMAT, colorize=True)

    if config.get("log_file"):
        logger.add(
            config["log_file"],
            level=config["log_level"],
            serialize=True,
            rotation="50 MB",
            retention=config["log_retention"],
        )


configure_logging()

__all__ = ["logger", "configure_logging"]
