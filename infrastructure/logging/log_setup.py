# infrastructure/logging/log_setup.py
from __future__ import annotations

from pathlib import Path
from typing import Union

from loguru import logger

TESTING_LOG_FORMAT = "{time:DD.MM.YYYY HH:mm:ss} {message}"


def setup_console_logging(level: str = "INFO") -> None:
    logger.remove()
    logger.add(lambda msg: print(msg, end=""), level=level, format=TESTING_LOG_FORMAT)


def add_testing_log_file(path: Union[str, Path], truncate: bool = False) -> int:
    """
    テスターログを testing.log にミラーする。戻り値は loguru の handler id。
    """
    log_path = Path(path)
    if truncate and log_path.exists():
        log_path.write_text("", encoding="utf-8")
    return logger.add(
        str(log_path),
        level="INFO",
        format=TESTING_LOG_FORMAT,
        encoding="utf-8",
        filter=lambda record: record["extra"].get("tester_log", False),
    )
