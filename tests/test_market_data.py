from datetime import datetime, timezone

import pandas as pd
import pytest

from candlecore.core.data_provider import Candle
from candlecore.data.market_data import (
    DataFrameCandleProvider,
    candles_from_frame,
    candles_to_frame,
    generate_sample_candles,
    load_candles_csv,
)

CSV = """timestamp,open,high,low,close,volume
2024-01-01T01:00:00Z,101.0,103.0,100.0,102.0,4.0
2024-01-01T00:00:00Z,100.0,102.0,99.0,101.0,5.5
"""


def test_candle_rejects_inverted_range():
    with pytest.raises(ValueError, match="high"):
        Candle(timestamp=datetime(2024, 1, 1), open=1.0, high=1.0, low=2.0, close=1.5, volume=0.0)


@pytest.mark.parametrize("open_, close", [(3.0, 1.5), (1.5, 0.5)])
def test_candle_rejects_prices_outside_range(open_, close):
    with pytest.raises(ValueError, match="outside"):
        Candle(timestamp=datetime(2024, 1, 1), open=open_, high=2.0, low=1.0, close=close, volume=0.0)


def test_load_csv_sorts_by_time(tmp_path):
    path = tmp_path / "candles.csv"
    path.write_text(CSV, encoding="utf-8")

    candles = load_candles_csv(path)

    assert [c.close for c in candles] == [101.0, 102.0]
    assert candles[0].timestamp == datetime(2024, 1, 1, tzinfo=timezone.utc)
    assert candles[0].volume == 5.5


def test_load_csv_rejects_bad_header(tmp_path):
    path = tmp_path / "candles.csv"
    path.write_text("time,o,h,l,c,v\n2024-01-01T00:00:00Z,1,1,1,1,1\n", encoding="utf-8")

    with pytest.raises(ValueError, match="invalid CSV header"):
        load_candles_csv(path)


def test_load_csv_reports_bad_row(tmp_path):
    path = tmp_path / "candles.csv"
    path.write_text(CSV + "2024-01-01T02:00:00Z,100.0,99.0,101.0,100.0,1.0\n", encoding="utf-8")

    with pytest.raises(ValueError, match="row 2"):
        load_candles_csv(path)


def test_frame_conversion_keeps_values():
    candles = generate_sample_candles(n=10)

    again = candles_from_frame(candles_to_frame(candles))

    assert again == candles


def test_frame_missing_columns():
    with pytest.raises(ValueError, match="missing candle columns"):
        candles_from_frame(pd.DataFrame({"timestamp": [], "close": []}))


def test_sample_candles_are_valid_and_deterministic():
    first = generate_sample_candles(n=200, seed=7)
    second = generate_sample_candles(n=200, seed=7)

    assert first == second
    assert len(first) == 200
    for prev, cur in zip(first, first[1:]):
        assert cur.timestamp > prev.timestamp
        assert cur.open == prev.close
    for c in first:
        assert c.low <= min(c.open, c.close)
        assert c.high >= max(c.open, c.close)
        assert c.volume > 0


def test_provider_filters_by_range():
    provider = DataFrameCandleProvider()
    provider.load_data("BTC/USD", candles_to_frame(generate_sample_candles(n=48)))

    start = datetime(2024, 1, 1, 10)
    end = datetime(2024, 1, 1, 19, tzinfo=timezone.utc)
    candles = provider.get_candles("BTC/USD", start, end)

    assert len(candles) == 10
    assert candles[0].timestamp == datetime(2024, 1, 1, 10, tzinfo=timezone.utc)
    assert provider.get_symbols() == ["BTC/USD"]
    assert provider.get_candles("ETH/USD") == []
    assert provider.get_ohlcv("ETH/USD").empty
