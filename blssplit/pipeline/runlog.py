"""
실행 로그 (Run Log)
====================

실행마다 logs/ 아래에 추가 모드(append) 로그 파일을 하나 연다.
모든 blssplit.* 로거의 출력과 외부 도구의 병합 출력이 이 파일에 남는다.

  | 항목       | 값                                          |
  |------------|---------------------------------------------|
  | 파일       | logs/run_split_YYYY-MM-DD-HH-MM.log          |
  | 로거       | blssplit (하위 모듈 로거가 전파)              |
  | 형식       | 시각 레벨 로거이름: 메시지                   |
  | 콘솔 출력  | stream=True 일 때 같은 형식으로 함께 출력     |
"""

import logging
from datetime import datetime
from pathlib import Path

LOG_FORMAT = "%(asctime)s %(levelname)-7s %(name)s: %(message)s"
ROOT_LOGGER = "blssplit"


def run_log_path(log_dir, now=None):
    now = now or datetime.now()
    return Path(log_dir) / f"run_split_{now:%Y-%m-%d-%H-%M}.log"


def open_run_log(log_dir, now=None, level=logging.INFO, stream=True):
    """blssplit.* 로거에 run log 파일 핸들러(추가 모드)를 붙인다."""
    path = run_log_path(log_dir, now)
    path.parent.mkdir(parents=True, exist_ok=True)

    logger = logging.getLogger(ROOT_LOGGER)
    logger.setLevel(level)
    formatter = logging.Formatter(LOG_FORMAT)

    file_handler = logging.FileHandler(path, mode="a", encoding="utf-8")
    file_handler.setFormatter(formatter)
    logger.addHandler(file_handler)
    handlers = [file_handler]

    if stream:
        stream_handler = logging.StreamHandler()
        stream_handler.setFormatter(formatter)
        logger.addHandler(stream_handler)
        handlers.append(stream_handler)
    return path, handlers


def close_run_log(handlers):
    logger = logging.getLogger(ROOT_LOGGER)
    for handler in handlers:
        logger.removeHandler(handler)
        handler.close()
