import logging
import sys
from datetime import datetime
from pathlib import Path

from arena.config import Config

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
DATE_FORMAT = '%Y-%m-%d %H:%M:%S'


def _daily_log_path() -> Path:
    log_dir = Path(Config.LOG_DIR)
    log_dir.mkdir(parents=True, exist_ok=True)
    return log_dir / f'wager_arena_{datetime.now().strftime("%Y%m%d")}.log'


def setup_logger(name: str) -> logging.Logger:
    """Return the named logger, attaching stdout and daily-file handlers once.

    An empty LOG_DIR turns file output off.
    """
    logger = logging.getLogger(name)
    if logger.handlers:
        return logger

    level = logging.DEBUG if Config.DEBUG else logging.INFO
    logger.setLevel(logging.DEBUG)
    formatter = logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT)

    console = logging.StreamHandler(sys.stdout)
    console.setLevel(level)
    console.setFormatter(formatter)
    logger.addHandler(console)

    if Config.LOG_DIR:
        # File keeps DEBUG regardless of console level
        file_handler = logging.FileHandler(_daily_log_path(), encoding='utf-8')
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)

    return logger
