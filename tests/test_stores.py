import json

import pytest

from candlecore.brokers.paper_broker import PaperBroker
from candlecore.core.broker_api import Order, OrderSide, OrderType
from candlecore.core.errors import PersistenceError
from candlecore.stores.file_store import FileStore
from candlecore.stores.sqlite_store import SqliteStore

SYMBOL = "BTC/USD"


@pytest.fixture
def traded_broker(broker):
    """포지션 1개, 청산 거래 1건, 미체결 지정가 주문 1건을 가진 브로커."""
    broker.update_market_price(SYMBOL, 100.0)
    broker.place_order(Order(side=OrderSide.BUY, symbol=SYMBOL, quantity=2.0))
    broker.update_market_price(SYMBOL, 110.0)
    broker.place_order(Order(side=OrderSide.SELL, symbol=SYMBOL, quantity=1.0))
    broker.place_order(
        Order(side=OrderSide.BUY, symbol="ETH/USD", quantity=3.0, type=OrderType.LIMIT, price=50.0)
    )
    return broker


@pytest.fixture(params=["file", "sqlite"])
def store(request, tmp_path):
    if request.param == "file":
        yield FileStore(tmp_path / "state")
    else:
        s = SqliteStore(tmp_path / "state" / "candlecore.db")
        yield s
        s.close()


def assert_same_account(restored, expected):
    assert restored.balance == pytest.approx(expected.balance)
    assert restored.equity == pytest.approx(expected.equity)
    assert restored.positions == expected.positions
    assert [o.to_dict() for o in restored.open_orders] == [o.to_dict() for o in expected.open_orders]
    assert restored.trade_history == expected.trade_history


def test_save_then_load_restores_account(store, traded_broker):
    store.save_state(traded_broker)

    fresh = PaperBroker(initial_balance=10_000.0)
    store.load_state(fresh)

    assert_same_account(fresh.get_account(), traded_broker.get_account())


def test_restored_broker_keeps_trading(store, traded_broker):
    store.save_state(traded_broker)
    fresh = PaperBroker(initial_balance=10_000.0)
    store.load_state(fresh)

    fresh.place_order(Order(side=OrderSide.SELL, symbol=SYMBOL, quantity=1.0))

    account = fresh.get_account()
    assert account.positions == []
    assert len(account.trade_history) == 2


def test_latest_save_wins(store, traded_broker):
    store.save_state(traded_broker)
    traded_broker.place_order(Order(side=OrderSide.SELL, symbol=SYMBOL, quantity=1.0))
    store.save_state(traded_broker)

    fresh = PaperBroker()
    store.load_state(fresh)

    account = fresh.get_account()
    assert account.positions == []
    assert len(account.trade_history) == 2
    assert account.balance == pytest.approx(traded_broker.get_account().balance)


def test_file_store_missing_state(tmp_path, broker):
    store = FileStore(tmp_path)

    with pytest.raises(PersistenceError, match="does not exist"):
        store.load_state(broker)
    assert broker.get_account().balance == 10_000.0


def test_file_store_corrupt_state(tmp_path, broker):
    store = FileStore(tmp_path)
    store.state_path.write_text("{not json", encoding="utf-8")

    with pytest.raises(PersistenceError):
        store.load_state(broker)


def test_file_store_incomplete_state(tmp_path, broker):
    store = FileStore(tmp_path)
    store.state_path.write_text(json.dumps({"positions": []}), encoding="utf-8")

    with pytest.raises(PersistenceError):
        store.load_state(broker)


def test_file_store_writes_readable_json(tmp_path, traded_broker):
    store = FileStore(tmp_path)
    store.save_state(traded_broker)

    data = json.loads(store.state_path.read_text(encoding="utf-8"))

    assert data["balance"] == pytest.approx(traded_broker.get_account().balance)
    assert data["positions"][0]["symbol"] == SYMBOL
    assert data["positions"][0]["side"] == "buy"
    assert len(data["trade_history"]) == 1
    assert [p.name for p in tmp_path.iterdir()] == ["account.json"]


def test_sqlite_store_missing_account(tmp_path, broker):
    store = SqliteStore(tmp_path / "candlecore.db")
    try:
        with pytest.raises(PersistenceError, match="not found"):
            store.load_state(broker)
    finally:
        store.close()


def test_sqlite_store_keeps_accounts_separate(tmp_path, traded_broker):
    db = tmp_path / "candlecore.db"
    first = SqliteStore(db, account_id=1)
    second = SqliteStore(db, account_id=2)
    try:
        first.save_state(traded_broker)
        second.save_state(PaperBroker(initial_balance=500.0))

        restored = PaperBroker()
        first.load_state(restored)
        assert_same_account(restored.get_account(), traded_broker.get_account())

        other = PaperBroker()
        second.load_state(other)
        assert other.get_account().balance == 500.0
        assert other.get_account().trade_history == []
    finally:
        first.close()
        second.close()


def test_sqlite_store_saves_from_another_thread(tmp_path, traded_broker):
    from concurrent.futures import ThreadPoolExecutor

    store = SqliteStore(tmp_path / "candlecore.db")
    try:
        with ThreadPoolExecutor(max_workers=1) as pool:
            pool.submit(store.save_state, traded_broker).result()

        restored = PaperBroker()
        store.load_state(restored)
        assert restored.get_account().balance == pytest.approx(traded_broker.get_account().balance)
    finally:
        store.close()


def test_sqlite_store_same_ledger_under_two_accounts(tmp_path, traded_broker):
    db = tmp_path / "candlecore.db"
    first = SqliteStore(db, account_id=1)
    second = SqliteStore(db, account_id=2)
    try:
        first.save_state(traded_broker)
        second.save_state(traded_broker)
        first.save_state(traded_broker)

        for s in (first, second):
            restored = PaperBroker()
            s.load_state(restored)
            assert_same_account(restored.get_account(), traded_broker.get_account())
    finally:
        first.close()
        second.close()
