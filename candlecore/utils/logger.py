"""
로깅 모듈.

[ 역할 ]
    파일 + 콘솔 로거를 설정. 주문 체결 내역, 체크포인트, 에러 등을 기록.
    하위 모듈은 logging.getLogger("candlecore.<영역>")로 로그를 남기므로
    "candlecore" 로거에 핸들러를 달면 전부 수집된다.

[ 로그 파일 위치 ]
    {log_dir}/{name}_{YYYYMMDD}.log (예: logs/candlecore_20240601.log)

[ 호출하는 곳 ]
    - run_backtest.py에서 setup_logger() 호출
    - brokers/paper_broker.py: "candlecore.broker"
    - backtest/engine.py: "candlecore.backtest"
    - stores/*.py: "candlecore.store"
"""

import logging
import sys
from datetime import datetime
from pathlib import Path
from typing import Optional


def setup_logger(
    name: str = "candlecore",
    level: str = "INFO",
    log_dir: Optional[str] = "logs",
    console: bool = True,
) -> logging.Logger:
    """로거 설정. 파일 핸들러(일별) + 콘솔 핸들러 등록. log_dir이 None이면 파일 기록 안 함."""
    logger = logging.getLogger(name)
    logger.setLevel(getattr(logging, level.upper()))

    if logger.handlers:
        return logger

    formatter = logging.Formatter(
        "%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    # 파일 핸들러
    if log_dir is not None:
        log_path = Path(log_dir)
        log_path.mkdir(parents=True, exist_ok=True)
        today = datetime.now().strftime("%Y%m%d")
        file_handler = logging.FileHandler(
            log_path / f"{name}_{today}.log",
            encoding="utf-8",
        )
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)

    # 콘솔 핸들러
    if console:
        console_handler = logging.StreamHandler(sys.stdout)
        console_handler.setFormatter(formatter)
        logger.addHandler(console_handler)

    return logger
