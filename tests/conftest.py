from datetime import datetime, timedelta, timezone

import pytest

from candlecore.brokers.paper_broker import PaperBroker
from candlecore.core.data_provider import Candle
from candlecore.core.errors import PersistenceError
from candlecore.core.state_store import StateStore
from candlecore.core.trading_strategy import Signal, SignalAction, TradingStrategy

SYMBOL = "BTC/USD"
START = datetime(2024, 1, 1, tzinfo=timezone.utc)


def make_candle(close: float, index: int = 0) -> Candle:
    return Candle(
        timestamp=START + timedelta(hours=index),
        open=close,
        high=close * 1.01,
        low=close * 0.99,
        close=close,
        volume=1.0,
    )


class ScriptedStrategy(TradingStrategy):
    """캔들 순서대로 미리 정한 시그널을 돌려주는 테스트 전략."""

    def __init__(self, signals=None, fail_at=None):
        super().__init__(name="scripted")
        self.signals = list(signals or [])
        self.fail_at = fail_at
        self.calls = 0
        self.seen_balances = []
        self.trades = []

    def on_candle(self, candle, account):
        index = self.calls
        self.calls += 1
        self.seen_balances.append(account.balance)
        if self.fail_at is not None and index == self.fail_at:
            raise RuntimeError("indicator blew up")
        if index < len(self.signals) and self.signals[index] is not None:
            return self.signals[index]
        return Signal.hold()

    def on_trade(self, trade):
        self.trades.append(trade)


class RecordingStore(StateStore):
    def __init__(self, fail=False):
        self.fail = fail
        self.saved = []

    def save_state(self, broker):
        if self.fail:
            raise PersistenceError("disk full")
        self.saved.append(broker.get_account())

    def load_state(self, broker):
        raise PersistenceError("state file does not exist")


@pytest.fixture
def broker():
    return PaperBroker(initial_balance=10_000.0, taker_fee=0.001, maker_fee=0.0005, slippage_bps=5.0)


@pytest.fixture
def candles():
    return [make_candle(100.0 + i, i) for i in range(25)]


@pytest.fixture
def buy():
    def _buy(quantity=1.0, symbol=SYMBOL):
        return Signal(action=SignalAction.BUY, symbol=symbol, quantity=quantity, reason="test buy")
    return _buy


@pytest.fixture
def sell():
    def _sell(quantity=0.0, symbol=SYMBOL):
        return Signal(action=SignalAction.SELL, symbol=symbol, quantity=quantity, reason="test sell")
    return _sell
