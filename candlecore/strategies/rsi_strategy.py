"""
RSI 과매수/과매도 전략 구현.

[ 역할 ]
    core/trading_strategy.py::TradingStrategy의 구현체.
    "RSI가 oversold 미만이면 매수, overbought 초과면 전량 매도"

[ 파라미터 (config.yaml의 strategy 섹션에서 로드) ]
    symbol:        매매 심볼
    period:        RSI 기간
    oversold:      매수 기준 RSI
    overbought:    매도 기준 RSI
    position_size: 1회 매수 금액
"""

from typing import Any, Optional

import pandas as pd

from candlecore.core.broker_api import Account, Trade
from candlecore.core.data_provider import Candle
from candlecore.core.trading_strategy import Signal, SignalAction, TradingStrategy
from candlecore.strategies import register


@register("rsi")
class RSIStrategy(TradingStrategy):
    """RSI 전략 구현체."""

    DEFAULT_PARAMS = {
        "symbol": "BTC/USD",
        "period": 14,
        "oversold": 30.0,
        "overbought": 70.0,
        "position_size": 1000.0,
    }

    def __init__(self, params: dict[str, Any] | None = None):
        merged = {**self.DEFAULT_PARAMS, **(params or {})}
        super().__init__(name="rsi", params=merged)
        if self.period <= 0:
            raise ValueError("period must be positive")
        if not self.oversold < self.overbought:
            raise ValueError("oversold must be less than overbought")

        self._closes: list[float] = []
        self.trade_count = 0
        self.realized_pnl = 0.0

    @property
    def symbol(self) -> str:
        return str(self.params["symbol"])

    @property
    def period(self) -> int:
        return int(self.params["period"])

    @property
    def oversold(self) -> float:
        return float(self.params["oversold"])

    @property
    def overbought(self) -> float:
        return float(self.params["overbought"])

    @property
    def position_size(self) -> float:
        return float(self.params["position_size"])

    def rsi(self) -> Optional[float]:
        """최근 period 개 변동의 단순평균 RSI. 데이터 부족 시 None."""
        if len(self._closes) < self.period + 1:
            return None

        changes = pd.Series(self._closes, dtype=float).diff().dropna().tail(self.period)
        avg_gain = changes.clip(lower=0).mean()
        avg_loss = (-changes.clip(upper=0)).mean()
        if avg_loss == 0:
            return 100.0
        rs = avg_gain / avg_loss
        return float(100 - 100 / (1 + rs))

    def on_candle(self, candle: Candle, account: Account) -> Signal:
        self._closes.append(candle.close)
        if len(self._closes) > self.period + 1:
            self._closes = self._closes[-(self.period + 1):]

        value = self.rsi()
        if value is None:
            return Signal.hold("insufficient data")

        position = account.get_position(self.symbol)
        has_position = position is not None and position.quantity > 0

        if value < self.oversold and not has_position:
            return Signal(
                action=SignalAction.BUY,
                symbol=self.symbol,
                quantity=self.position_size / candle.close,
                reason=f"RSI oversold: {value:.2f} < {self.oversold:.2f}",
            )

        if value > self.overbought and has_position:
            return Signal(
                action=SignalAction.SELL,
                symbol=self.symbol,
                quantity=position.quantity,
                reason=f"RSI overbought: {value:.2f} > {self.overbought:.2f}",
            )

        return Signal.hold(f"RSI neutral: {value:.2f}")

    def on_trade(self, trade: Trade) -> None:
        self.trade_count += 1
        self.realized_pnl += trade.net_pnl
