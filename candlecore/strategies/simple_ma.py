"""
이동평균 교차(MA Crossover) 전략 구현.

[ 역할 ]
    core/trading_strategy.py::TradingStrategy의 구현체.
    "단기 이평이 장기 이평을 상향 돌파하면 매수, 하향 돌파하면 전량 매도"

[ 전략 흐름 ]
    캔들마다 on_candle() 호출됨 (← backtest/engine.py에서)
        ├── 종가를 내부 이력에 추가 (slow_period + 1 개만 유지)
        ├── 이력 부족 → HOLD
        ├── 미보유 + 골든크로스 → BUY (position_size / 종가 수량)
        └── 보유 중 + 데드크로스 → SELL (보유 전량)

[ 파라미터 (config.yaml의 strategy 섹션에서 로드) ]
    symbol:        매매 심볼
    fast_period:   단기 이동평균 기간
    slow_period:   장기 이동평균 기간
    position_size: 1회 매수 금액
"""

from typing import Any

import pandas as pd

from candlecore.core.broker_api import Account, Trade
from candlecore.core.data_provider import Candle
from candlecore.core.trading_strategy import Signal, SignalAction, TradingStrategy
from candlecore.strategies import register


@register("simple_ma")
class SimpleMAStrategy(TradingStrategy):
    """이동평균 교차 전략 구현체."""

    DEFAULT_PARAMS = {
        "symbol": "BTC/USD",
        "fast_period": 10,
        "slow_period": 30,
        "position_size": 1000.0,
    }

    def __init__(self, params: dict[str, Any] | None = None):
        merged = {**self.DEFAULT_PARAMS, **(params or {})}
        super().__init__(name="simple_ma", params=merged)
        if not 0 < self.fast_period < self.slow_period:
            raise ValueError("fast_period must be positive and less than slow_period")

        self._closes: list[float] = []
        self.trades: list[Trade] = []   # on_trade()로 받은 청산 거래

    @property
    def symbol(self) -> str:
        return str(self.params["symbol"])

    @property
    def fast_period(self) -> int:
        return int(self.params["fast_period"])

    @property
    def slow_period(self) -> int:
        return int(self.params["slow_period"])

    @property
    def position_size(self) -> float:
        return float(self.params["position_size"])

    def moving_averages(self) -> tuple[pd.Series, pd.Series]:
        """(단기 이평, 장기 이평) 시리즈."""
        closes = pd.Series(self._closes, dtype=float)
        return (
            closes.rolling(self.fast_period).mean(),
            closes.rolling(self.slow_period).mean(),
        )

    def on_candle(self, candle: Candle, account: Account) -> Signal:
        self._closes.append(candle.close)
        if len(self._closes) > self.slow_period + 1:
            self._closes = self._closes[-(self.slow_period + 1):]

        # 교차 판단에 직전 값이 필요하므로 slow_period + 1 개
        if len(self._closes) < self.slow_period + 1:
            return Signal.hold("insufficient data for moving averages")

        fast, slow = self.moving_averages()
        prev_fast, last_fast = float(fast.iloc[-2]), float(fast.iloc[-1])
        prev_slow, last_slow = float(slow.iloc[-2]), float(slow.iloc[-1])

        position = account.get_position(self.symbol)
        has_position = position is not None and position.quantity > 0

        if not has_position and prev_fast <= prev_slow and last_fast > last_slow:
            return Signal(
                action=SignalAction.BUY,
                symbol=self.symbol,
                quantity=self.position_size / candle.close,
                reason=f"golden cross (fast {last_fast:,.2f} > slow {last_slow:,.2f})",
            )

        if has_position and prev_fast >= prev_slow and last_fast < last_slow:
            return Signal(
                action=SignalAction.SELL,
                symbol=self.symbol,
                quantity=position.quantity,
                reason=f"death cross (fast {last_fast:,.2f} < slow {last_slow:,.2f})",
            )

        return Signal.hold(f"no crossover (fast {last_fast:,.2f}, slow {last_slow:,.2f})")

    def on_trade(self, trade: Trade) -> None:
        self.trades.append(trade)
