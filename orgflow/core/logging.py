import logging
from logging.handlers import RotatingFileHandler
from typing import Union

from orgflow.core.config import settings


def configure_logging(level: Union[int, str, None] = None) -> None:
    root_logger = logging.getLogger()
    if root_logger.handlers:
        return

    settings.log_path.parent.mkdir(parents=True, exist_ok=True)
    root_logger.setLevel(level or settings.log_level)

    formatter = logging.Formatter(
        "%(asctime)s | %(levelname)s | %(name)s | %(message)s"
    )

    console_handler = logging.StreamHandler()
    console_handler.setFormatter(formatter)

    file_handler = RotatingFileHandler(settings.log_path, maxBytes=1_000_000, backupCount=3)
    file_handler.setFormatter(formatter)

    root_logger.addHandler(console_handler)
    root_logger.addHandler(file_handler)

    # passlib reports its bcrypt backend probe at WARNING on first hash.
    logging.getLogger("passlib").setLevel(logging.ERROR)
