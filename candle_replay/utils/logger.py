"""
로깅 모듈.

[ 역할 ]
    candle_replay 루트 로거에 파일/콘솔 핸들러를 붙인다.
    하위 모듈은 핸들러 없이 logging.getLogger("candle_replay.<영역>")만 쓰고 루트로 전파한다.

[ 영역별 로거 ]
    candle_replay.backtest   - 리플레이 시작/종료, 시그널, 자본 소진 (INFO / DEBUG / ERROR)
    candle_replay.ledger     - 체결 (DEBUG), 진입 거부 (WARNING)
    candle_replay.data       - 파일 로드, 간격 불일치 (INFO / WARNING)
    candle_replay.indicators - 지표 부착 (DEBUG)
    candle_replay.learning   - 에피소드 요약 (INFO), 미니배치 오차 (DEBUG)

[ 로그 파일 위치 ]
    {log_dir}/{name}_{YYYYMMDD}.log (예: logs/candle_replay_20240601.log)
    log_dir가 비어 있으면 파일 없이 콘솔만.

[ 호출하는 곳 ]
    - 노트북/스크립트에서 setup_logger_from_config(config) 또는 setup_logger() 한 번
"""

import logging
import sys
from datetime import datetime
from pathlib import Path
from typing import TYPE_CHECKING

from candle_replay.core.errors import ConfigurationError

if TYPE_CHECKING:
    from candle_replay.utils.config import Config

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def _level(level: str) -> int:
    value = logging.getLevelName(str(level).upper())
    if not isinstance(value, int):
        raise ConfigurationError(f"알 수 없는 로그 레벨: {level}")
    return value


def _daily_file_handler(log_dir: str, name: str) -> logging.FileHandler:
    log_path = Path(log_dir)
    log_path.mkdir(parents=True, exist_ok=True)
    stamp = datetime.now().strftime("%Y%m%d")
    return logging.FileHandler(log_path / f"{name}_{stamp}.log", encoding="utf-8")


def setup_logger(
    name: str = "candle_replay",
    level: str = "INFO",
    log_dir: str | None = "logs",
    console: bool = True,
) -> logging.Logger:
    """로거 설정. 이미 핸들러가 있으면 레벨만 바꾸고 그대로 반환 (중복 출력 방지)."""
    logger = logging.getLogger(name)
    logger.setLevel(_level(level))
    if logger.handlers:
        return logger

    formatter = logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT)
    handlers: list[logging.Handler] = []
    if log_dir:
        handlers.append(_daily_file_handler(log_dir, name))
    if console:
        handlers.append(logging.StreamHandler(sys.stdout))

    for handler in handlers:
        handler.setFormatter(formatter)
        logger.addHandler(handler)
    return logger


def setup_logger_from_config(config: "Config", console: bool = True) -> logging.Logger:
    """Config의 log_level / log_dir로 루트 로거 설정."""
    return setup_logger(level=config.log_level, log_dir=config.log_dir or None, console=console)
