import logging
from logging.handlers import TimedRotatingFileHandler
from pathlib import Path

from pitstop.util.dirs import DEFAULT_HOME, ensure_dirs


def setup_mode(*, is_debug: bool) -> None:
    if is_debug:
        logging.basicConfig(level=logging.DEBUG)
    else:
        logging.basicConfig(level=logging.INFO)


def setup_logger(
    name: str,
    *,
    is_stream: bool = True,
    is_file: bool = True,
) -> logging.Logger:
    logger = logging.getLogger(name)
    # 複数モジュールから呼ばれてもハンドラは一度だけ付ける
    if logger.handlers:
        return logger
    logger.setLevel(logging.DEBUG)
    formatter = logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")

    if is_stream or not is_file:
        stream_handler = logging.StreamHandler()
        stream_handler.setLevel(logging.INFO)
        stream_handler.setFormatter(formatter)
        logger.addHandler(stream_handler)

    if is_file:
        ensure_dirs()
        time_rotate_file_handler = TimedRotatingFileHandler(
            (Path(DEFAULT_HOME) / f"{name.lower()}.log").as_posix(),
            when="MIDNIGHT",
            interval=1,
            backupCount=7,
            encoding="utf-8",
            delay=True,
        )
        time_rotate_file_handler.setLevel(logging.DEBUG)
        time_rotate_file_handler.setFormatter(formatter)
        logger.addHandler(time_rotate_file_handler)

    return logger
