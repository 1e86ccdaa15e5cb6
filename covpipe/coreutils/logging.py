import logging
from datetime import datetime
from pathlib import Path


def setup_logging(level=logging.INFO, log_dir: str | Path | None = "logs"):
    """Setup basic logging configuration

    Logs go to stderr and, unless ``log_dir`` is None, to a dated file
    ``<log_dir>/pipeline_YYYY-MM-DD.log``.
    """
    handlers: list[logging.Handler] = [logging.StreamHandler()]
    if log_dir is not None:
        log_path = Path(log_dir)
        log_path.mkdir(parents=True, exist_ok=True)
        handlers.append(
            logging.FileHandler(
                log_path / f"pipeline_{datetime.now().strftime('%Y-%m-%d')}.log"
            )
        )

    logging.basicConfig(
        level=level,
        format="%(asctime)s - %(levelname)s - %(name)s - %(message)s",
        handlers=handlers,
        force=True,
    )
    return logging.getLogger(__name__)


def log_function_call(func_name: str, **kwargs):
    """Log function calls with parameters"""
    logger = logging.getLogger(__name__)
    logger.debug(f"Calling {func_name} with params: {kwargs}")
