"""
로깅 모듈.

[ 역할 ]
    파일 + 콘솔 로거를 설정. 진입/청산 내역, 데이터 누락, 수집 실패 등을 기록.

[ 로그 파일 위치 ]
    {log_dir}/{name}_{YYYYMMDD}.log (예: logs/signal_backtester_20240601.log)
    log_dir=None이면 파일 핸들러 없이 콘솔만 사용.

[ 호출하는 곳 ]
    - run_backtest.py, scripts/*.py에서 setup_logger() 호출
    - 각 모듈은 logging.getLogger("signal_backtester.<영역>") 사용
      (backtest, data, signals, ingestion)
"""

import logging
import sys
from datetime import datetime
from pathlib import Path
from typing import Optional, TextIO

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def setup_logger(
    name: str = "signal_backtester",
    level: str = "INFO",
    log_dir: Optional[str] = "logs",
    console: bool = True,
    stream: TextIO = sys.stdout,
) -> logging.Logger:
    """패키지 루트 로거 설정. 파일 핸들러(일별) + 콘솔 핸들러 등록.

    하위 로거("signal_backtester.backtest" 등)는 propagate로 여기 핸들러를 공유한다.
    이미 핸들러가 있으면 레벨만 갱신하고 그대로 반환.
    """
    logger = logging.getLogger(name)
    logger.setLevel(getattr(logging, level.upper()))

    if logger.handlers:
        return logger

    formatter = logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT)

    if log_dir:
        log_path = Path(log_dir)
        log_path.mkdir(parents=True, exist_ok=True)
        today = datetime.now().strftime("%Y%m%d")
        file_handler = logging.FileHandler(
            log_path / f"{name}_{today}.log",
            encoding="utf-8",
        )
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)

    if console:
        # --json 실행 시 stderr
        console_handler = logging.StreamHandler(stream)
        console_handler.setFormatter(formatter)
        logger.addHandler(console_handler)

    return logger
