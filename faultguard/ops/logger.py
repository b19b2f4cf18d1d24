import logging
import sys
from pathlib import Path
from datetime import datetime

from ..common.errors import Severity

SEVERITY_LEVELS = {
    Severity.LOW: logging.INFO,
    Severity.MEDIUM: logging.WARNING,
    Severity.HIGH: logging.ERROR,
    Severity.CRITICAL: logging.CRITICAL,
}

SEVERITY_MARKERS = {
    Severity.LOW: "[low]",
    Severity.MEDIUM: "[medium]",
    Severity.HIGH: "[HIGH]",
    Severity.CRITICAL: "[CRITICAL]",
}


def setup_logger(
    run_id: str,
    logs_dir: str = "logs",
    dev_mode: bool = False,
    file_logging: bool = True,
) -> logging.Logger:
    """
    Configures the root logger:
    - Console: DEBUG in dev mode, INFO otherwise
    - File: DEBUG level (logs/debug_{timestamp}_{run_id}.log), optional
    """
    logger = logging.getLogger()
    logger.setLevel(logging.DEBUG)

    # Clear existing handlers to avoid duplicates during re-runs or tests
    if logger.hasHandlers():
        logger.handlers.clear()

    formatter = logging.Formatter(
        "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    )

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(logging.DEBUG if dev_mode else logging.INFO)
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

    if file_logging:
        log_path = Path(logs_dir)
        log_path.mkdir(parents=True, exist_ok=True)

        filename = f"debug_{datetime.now().strftime('%Y%m%d_%H%M%S')}_{run_id}.log"
        file_handler = logging.FileHandler(log_path / filename, encoding="utf-8")
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)

    return logger
