import pytest

from candlecore.core.broker_api import Account, OrderSide, Position
from candlecore.core.errors import ConfigError
from candlecore.core.trading_strategy import Signal, SignalAction, TradingStrategy
from candlecore.strategies import STRATEGY_REGISTRY, create_strategy, list_strategies, register
from candlecore.strategies.rsi_strategy import RSIStrategy
from candlecore.strategies.simple_ma import SimpleMAStrategy
from conftest import make_candle

SYMBOL = "BTC/USD"


def flat_account():
    return Account(balance=10_000.0, equity=10_000.0)


def holding_account(quantity=50.0, price=20.0):
    pos = Position(symbol=SYMBOL, side=OrderSide.BUY, entry_price=price, quantity=quantity, current_price=price)
    return Account(balance=9_000.0, equity=9_000.0, positions=[pos])


def feed(strategy, closes, account):
    return [strategy.on_candle(make_candle(c, i), account) for i, c in enumerate(closes)]


def test_registry_discovers_builtin_strategies():
    assert list_strategies() == ["rsi", "simple_ma"]
    assert STRATEGY_REGISTRY["simple_ma"] is SimpleMAStrategy
    assert STRATEGY_REGISTRY["rsi"] is RSIStrategy


def test_create_strategy_merges_params():
    strategy = create_strategy("simple_ma", {"fast_period": 3})

    assert isinstance(strategy, SimpleMAStrategy)
    assert strategy.fast_period == 3
    assert strategy.slow_period == 30
    assert strategy.name == "simple_ma"


def test_create_unknown_strategy_is_config_error():
    with pytest.raises(ConfigError, match="unknown strategy"):
        create_strategy("does_not_exist")


@pytest.mark.parametrize("fast, slow", [(0, 3), (5, 5), (10, 3)])
def test_simple_ma_rejects_bad_periods(fast, slow):
    with pytest.raises(ValueError):
        SimpleMAStrategy({"fast_period": fast, "slow_period": slow})


def test_simple_ma_holds_until_enough_data():
    strategy = SimpleMAStrategy({"fast_period": 2, "slow_period": 3})

    signals = feed(strategy, [10.0, 9.0, 8.0], flat_account())

    assert all(s.action == SignalAction.HOLD for s in signals)
    assert "insufficient" in signals[-1].reason


def test_simple_ma_buys_on_golden_cross():
    strategy = SimpleMAStrategy({"fast_period": 2, "slow_period": 3, "position_size": 1000.0})

    signals = feed(strategy, [10.0, 9.0, 8.0, 7.0, 20.0], flat_account())

    assert [s.action for s in signals[:4]] == [SignalAction.HOLD] * 4
    assert signals[4].action == SignalAction.BUY
    assert signals[4].symbol == SYMBOL
    assert signals[4].quantity == pytest.approx(50.0)


def test_simple_ma_does_not_buy_twice():
    strategy = SimpleMAStrategy({"fast_period": 2, "slow_period": 3})

    signals = feed(strategy, [10.0, 9.0, 8.0, 7.0, 20.0], holding_account())

    assert signals[4].action == SignalAction.HOLD


def test_simple_ma_sells_full_position_on_death_cross():
    strategy = SimpleMAStrategy({"fast_period": 2, "slow_period": 3})
    feed(strategy, [9.0, 8.0, 7.0, 20.0], flat_account())

    account = holding_account(quantity=50.0)
    first = strategy.on_candle(make_candle(1.0, 4), account)
    second = strategy.on_candle(make_candle(1.0, 5), account)

    assert first.action == SignalAction.HOLD
    assert second.action == SignalAction.SELL
    assert second.quantity == 50.0


def test_rsi_value():
    strategy = RSIStrategy({"period": 3})
    feed(strategy, [10.0, 11.0, 10.0, 11.0], flat_account())

    assert strategy.rsi() == pytest.approx(100 - 100 / 3)


def test_rsi_insufficient_data():
    strategy = RSIStrategy({"period": 3})

    signals = feed(strategy, [10.0, 11.0, 12.0], flat_account())

    assert strategy.rsi() is None
    assert all(s.action == SignalAction.HOLD for s in signals)


def test_rsi_buys_when_oversold():
    strategy = RSIStrategy({"period": 3, "position_size": 700.0})

    signals = feed(strategy, [10.0, 9.0, 8.0, 7.0], flat_account())

    assert signals[-1].action == SignalAction.BUY
    assert signals[-1].quantity == pytest.approx(100.0)


def test_rsi_sells_when_overbought():
    strategy = RSIStrategy({"period": 3})

    signals = feed(strategy, [1.0, 2.0, 3.0, 4.0], holding_account())

    assert signals[-1].action == SignalAction.SELL
    assert signals[-1].quantity == 50.0


def test_rsi_rejects_inverted_thresholds():
    with pytest.raises(ValueError):
        RSIStrategy({"oversold": 80, "overbought": 20})


def test_strategy_runs_through_engine(broker):
    from candlecore.backtest.engine import BacktestEngine, RunStatus
    from candlecore.data.market_data import generate_sample_candles

    strategy = create_strategy("simple_ma", {"fast_period": 5, "slow_period": 20})
    result = BacktestEngine(broker, strategy).run(generate_sample_candles(n=300, initial_price=100.0))

    assert result.status == RunStatus.COMPLETED
    assert result.processed_candles == 300
    assert len(strategy.trades) == len(result.account.trade_history)


def test_create_strategy_with_bad_params_is_config_error():
    with pytest.raises(ConfigError, match="simple_ma"):
        create_strategy("simple_ma", {"fast_period": 30, "slow_period": 10})
    with pytest.raises(ConfigError):
        create_strategy("rsi", {"period": "fourteen"})


def test_register_rejects_non_strategy_classes():
    with pytest.raises(TypeError, match="subclass"):
        register("not_a_strategy")(dict)


def test_register_rejects_strategy_without_on_candle():
    class Incomplete(TradingStrategy):
        pass

    with pytest.raises(TypeError, match="on_candle"):
        register("incomplete")(Incomplete)
    assert "incomplete" not in STRATEGY_REGISTRY


def test_register_rejects_name_clash():
    class Another(TradingStrategy):
        def on_candle(self, candle, account):
            return Signal.hold()

    with pytest.raises(TypeError, match="already registered"):
        register("rsi")(Another)
    assert STRATEGY_REGISTRY["rsi"] is RSIStrategy
