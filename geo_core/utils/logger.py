import sys
import uuid
from pathlib import Path
from typing import Any

from loguru import logger

from geo_core.config_manager import ConfigManager

CONSOLE_FORMAT = (
    "<green>{time:HH:mm:ss}</green> | "
    "<level>{level: <8}</level> | "
    "<magenta>{extra[product]}</magenta> | "
    "<cyan>{name}</cyan>:<cyan>{line}</cyan> - "
    "<level>{message}</level>"
)
FILE_FORMAT = "{time:YYYY-MM-DD HH:mm:ss.SSS} | {level: <8} | {extra[run_id]} | {extra[product]} | {name}:{line} - {message}"


def setup_logger(config_manager: ConfigManager) -> Any:
    """
    Configures loguru from the ``paths`` and ``logging`` settings.

    Every record carries ``product`` and ``run_id`` extras so the lines of
    one generation run can be followed across grounding, retrieval and
    critique. Records logged outside a run show ``-`` for both.
    """
    settings = config_manager.logging
    log_path = Path(config_manager.paths.log_dir)
    log_path.mkdir(parents=True, exist_ok=True)

    logger.remove()
    logger.configure(extra={"product": "-", "run_id": "-"})

    logger.add(sys.stderr, format=CONSOLE_FORMAT, level=settings.level.upper())
    logger.add(
        log_path / "geo_copy.log",
        format=FILE_FORMAT,
        rotation=settings.rotation,
        retention=settings.retention,
        level="DEBUG",
        compression="zip",
    )
    if settings.json_sink:
        logger.add(
            log_path / "geo_copy.json.log",
            rotation=settings.rotation,
            retention=settings.retention,
            level="INFO",
            serialize=True,
        )

    logger.debug(f"Logger ready: console={settings.level.upper()}, files in {log_path.absolute()}")
    return logger


def run_logger(product_name: str) -> Any:
    """A logger bound to one generation run."""
    return logger.bind(product=product_name or "-", run_id=uuid.uuid4().hex[:8])
