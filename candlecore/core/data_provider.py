"""
캔들 데이터 및 데이터 제공 추상 클래스 정의.

[ 역할 ]
    OHLCV(시가/고가/저가/종가/거래량) 캔들의 값 타입과,
    데이터 소스(CSV, DataFrame, 합성 데이터 등)에 독립적인 제공 인터페이스 정의.

[ 구현체 ]
    - data/market_data.py::DataFrameCandleProvider  (DataFrame 기반, 백테스트용)

[ 호출하는 곳 ]
    - backtest/engine.py::BacktestEngine.run()이 Candle 리스트를 순회
    - strategies/*.py가 on_candle()에서 Candle을 읽기 전용으로 사용
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

import pandas as pd


@dataclass(frozen=True)
class Candle:
    """단일 봉(캔들) 데이터. 생성 후 변경 불가."""
    timestamp: datetime
    open: float      # 시가
    high: float      # 고가
    low: float       # 저가
    close: float     # 종가
    volume: float    # 거래량

    def __post_init__(self):
        if self.high < self.low:
            raise ValueError(f"invalid candle: high ({self.high:.2f}) < low ({self.low:.2f})")
        if not self.low <= self.open <= self.high:
            raise ValueError(f"invalid candle: open ({self.open:.2f}) outside [low, high] range")
        if not self.low <= self.close <= self.high:
            raise ValueError(f"invalid candle: close ({self.close:.2f}) outside [low, high] range")


class DataProvider(ABC):
    """캔들 데이터 제공 추상 클래스.

    모든 데이터 제공자 구현체는 이 클래스를 상속받아 아래 메서드를 구현해야 한다.
    """

    @abstractmethod
    def get_ohlcv(
        self,
        symbol: str,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
    ) -> pd.DataFrame:
        """OHLCV 데이터 조회.

        Returns:
            DataFrame with columns: [timestamp, open, high, low, close, volume]
        """
        ...

    @abstractmethod
    def get_candles(
        self,
        symbol: str,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
    ) -> list[Candle]:
        """시간순으로 정렬된 Candle 리스트 조회. 엔진에 그대로 전달 가능."""
        ...

    @abstractmethod
    def get_symbols(self) -> list[str]:
        """조회 가능한 심볼 목록."""
        ...
