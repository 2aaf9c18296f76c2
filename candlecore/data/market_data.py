"""
캔들 데이터 소스 모듈.

[ 역할 ]
    백테스트에 넣을 Candle 리스트를 만든다.
    CSV 파일 로드, DataFrame 변환, 합성(랜덤워크) 데이터 생성을 담당.

[ CSV 형식 ]
    timestamp,open,high,low,close,volume
    2024-01-01T00:00:00Z,42000.0,42100.0,41900.0,42050.0,12.5
    timestamp는 RFC3339(ISO-8601) 형식

[ 포함 클래스/함수 ]
    load_candles_csv()        - CSV → Candle 리스트 (행마다 OHLC 검증)
    candles_from_frame()      - DataFrame → Candle 리스트
    candles_to_frame()        - Candle 리스트 → DataFrame
    generate_sample_candles() - 백테스트용 샘플 캔들 생성
    DataFrameCandleProvider   - core/data_provider.py::DataProvider 구현체

[ 호출하는 곳 ]
    - run_backtest.py에서 --source 옵션에 따라 사용
"""

from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Optional

import numpy as np
import pandas as pd

from candlecore.core.data_provider import Candle, DataProvider

CANDLE_COLUMNS = ["timestamp", "open", "high", "low", "close", "volume"]


def _to_utc(value: datetime) -> pd.Timestamp:
    """naive datetime은 UTC로 간주."""
    ts = pd.Timestamp(value)
    return ts.tz_localize("UTC") if ts.tzinfo is None else ts.tz_convert("UTC")


def candles_from_frame(df: pd.DataFrame) -> list[Candle]:
    """DataFrame을 시간순 Candle 리스트로 변환.

    Raises:
        ValueError: 컬럼 누락 또는 OHLC 범위 오류 (몇 번째 행인지 포함)
    """
    missing = [c for c in CANDLE_COLUMNS if c not in df.columns]
    if missing:
        raise ValueError(f"missing candle columns: {missing}")

    df = df.copy()
    df["timestamp"] = pd.to_datetime(df["timestamp"], utc=True)
    df = df.sort_values("timestamp").reset_index(drop=True)

    candles = []
    for i, row in enumerate(df.itertuples(index=False)):
        try:
            candles.append(Candle(
                timestamp=row.timestamp.to_pydatetime(),
                open=float(row.open),
                high=float(row.high),
                low=float(row.low),
                close=float(row.close),
                volume=float(row.volume),
            ))
        except ValueError as e:
            raise ValueError(f"row {i}: {e}") from e
    return candles


def candles_to_frame(candles: list[Candle]) -> pd.DataFrame:
    """Candle 리스트를 DataFrame으로 변환."""
    return pd.DataFrame(
        [(c.timestamp, c.open, c.high, c.low, c.close, c.volume) for c in candles],
        columns=CANDLE_COLUMNS,
    )


def load_candles_csv(path: str | Path) -> list[Candle]:
    """CSV 파일에서 캔들 로드. 헤더가 정확히 CANDLE_COLUMNS 여야 한다."""
    path = Path(path)
    df = pd.read_csv(path)

    header = [c.strip().lower() for c in df.columns]
    if header != CANDLE_COLUMNS:
        raise ValueError(f"invalid CSV header: expected {CANDLE_COLUMNS}, got {list(df.columns)}")
    df.columns = header

    return candles_from_frame(df)


def generate_sample_candles(
    n: int = 500,
    start: Optional[datetime] = None,
    interval: timedelta = timedelta(hours=1),
    initial_price: float = 42_000.0,
    volatility: float = 0.01,
    seed: int = 42,
) -> list[Candle]:
    """백테스트용 샘플 캔들 생성 (기하 랜덤워크).

    시가는 직전 종가, 고가/저가는 시가·종가를 감싸도록 만들어 OHLC 규칙을 항상 만족한다.
    """
    rng = np.random.default_rng(seed)
    if start is None:
        start = datetime(2024, 1, 1, tzinfo=timezone.utc)

    returns = rng.normal(0.0001, volatility, n)
    closes = initial_price * np.cumprod(1 + returns)
    opens = np.concatenate([[initial_price], closes[:-1]])

    candles = []
    for i in range(n):
        open_price = round(float(opens[i]), 2)
        close = round(float(closes[i]), 2)
        wick_up = abs(rng.normal(0, volatility / 2))
        wick_down = abs(rng.normal(0, volatility / 2))
        # 반올림 후에도 high >= max(open, close), low <= min(open, close) 유지
        high = max(open_price, close, round(max(open_price, close) * (1 + wick_up), 2))
        low = min(open_price, close, round(min(open_price, close) * (1 - wick_down), 2))
        candles.append(Candle(
            timestamp=start + interval * i,
            open=open_price,
            high=high,
            low=low,
            close=close,
            volume=round(float(rng.lognormal(3, 1)), 4),
        ))
    return candles


class DataFrameCandleProvider(DataProvider):
    """DataFrame 기반 캔들 제공자.

    사용법:
        provider = DataFrameCandleProvider()
        provider.load_data("BTC/USD", df)
        candles = provider.get_candles("BTC/USD")
    """

    def __init__(self):
        self._data: dict[str, pd.DataFrame] = {}  # symbol → OHLCV DataFrame

    def load_data(self, symbol: str, df: pd.DataFrame) -> None:
        """데이터 로드 (timestamp 기준 정렬)."""
        df = df.copy()
        df["timestamp"] = pd.to_datetime(df["timestamp"], utc=True)
        self._data[symbol] = df.sort_values("timestamp").reset_index(drop=True)

    def get_ohlcv(
        self,
        symbol: str,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
    ) -> pd.DataFrame:
        if symbol not in self._data:
            return pd.DataFrame(columns=CANDLE_COLUMNS)

        df = self._data[symbol]
        mask = pd.Series(True, index=df.index)
        if start is not None:
            mask &= df["timestamp"] >= _to_utc(start)
        if end is not None:
            mask &= df["timestamp"] <= _to_utc(end)
        return df[mask].copy().reset_index(drop=True)

    def get_candles(
        self,
        symbol: str,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
    ) -> list[Candle]:
        df = self.get_ohlcv(symbol, start, end)
        if df.empty:
            return []
        return candles_from_frame(df)

    def get_symbols(self) -> list[str]:
        return list(self._data.keys())
