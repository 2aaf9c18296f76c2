import math

import pytest

from candlecore.backtest.metrics import calculate_metrics
from candlecore.core.broker_api import OrderSide, Trade


def trade(net_pnl, fee=1.0):
    return Trade(
        id=f"t{net_pnl}",
        symbol="BTC/USD",
        side=OrderSide.BUY,
        entry_price=100.0,
        exit_price=100.0,
        quantity=1.0,
        pnl=net_pnl + fee,
        fee=fee,
        net_pnl=net_pnl,
    )


def test_equity_based_metrics():
    metrics = calculate_metrics([], [11_000.0, 9_900.0, 12_000.0], 10_000.0)

    assert metrics.total_return == pytest.approx(20.0)
    assert metrics.max_drawdown == pytest.approx(10.0)
    assert metrics.sharpe_ratio != 0.0
    assert metrics.total_trades == 0


def test_flat_equity_has_zero_sharpe_and_drawdown():
    metrics = calculate_metrics([], [10_000.0] * 5, 10_000.0)

    assert metrics.total_return == 0.0
    assert metrics.sharpe_ratio == 0.0
    assert metrics.max_drawdown == 0.0


def test_trade_statistics():
    trades = [trade(10.0), trade(20.0), trade(-5.0), trade(-15.0), trade(30.0)]

    metrics = calculate_metrics(trades, [10_040.0], 10_000.0)

    assert metrics.total_trades == 5
    assert metrics.winning_trades == 3
    assert metrics.losing_trades == 2
    assert metrics.win_rate == pytest.approx(60.0)
    assert metrics.avg_profit == pytest.approx(20.0)
    assert metrics.avg_loss == pytest.approx(-10.0)
    assert metrics.profit_factor == pytest.approx(3.0)
    assert metrics.realized_pnl == pytest.approx(40.0)
    assert metrics.total_fees == pytest.approx(5.0)
    assert metrics.max_consecutive_wins == 2
    assert metrics.max_consecutive_losses == 2


def test_profit_factor_without_losses():
    metrics = calculate_metrics([trade(5.0)], [10_005.0], 10_000.0)

    assert math.isinf(metrics.profit_factor)


def test_empty_inputs():
    metrics = calculate_metrics([], [], 10_000.0)

    assert metrics.total_trades == 0
    assert metrics.realized_pnl == 0.0
    assert "백테스트 성과 리포트" in metrics.summary()
