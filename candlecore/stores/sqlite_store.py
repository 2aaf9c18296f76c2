"""
SQLite 기반 상태 저장소.

[ 역할 ]
    계좌/포지션/미체결 주문/거래내역을 테이블로 저장하여 조회 가능한 형태로 보관.
    account_id 로 여러 계좌를 하나의 DB 파일에 둘 수 있다.

[ 테이블 ]
    accounts   - 계좌별 잔고/평가자산
    positions  - (account_id, symbol) 유일
    orders     - 미체결 주문
    trades     - 청산 거래 (seq 로 기록 순서 보존)

[ 저장 방식 ]
    save_state() 1회가 하나의 트랜잭션. 해당 account_id 의 행을 스냅샷 내용으로 통째로 교체.

[ 호출하는 곳 ]
    - run_backtest.py에서 store.backend == "sqlite" 일 때 생성
    - backtest/engine.py::BacktestEngine이 체크포인트 스레드에서 save_state() 호출
"""

import logging
import sqlite3
import threading
from pathlib import Path

from candlecore.core.broker_api import Account, Broker, Order, Position, Trade, utc_now
from candlecore.core.errors import PersistenceError
from candlecore.core.state_store import StateStore

logger = logging.getLogger("candlecore.store")

SCHEMA = """
CREATE TABLE IF NOT EXISTS accounts (
    id INTEGER PRIMARY KEY,
    balance REAL NOT NULL,
    equity REAL NOT NULL,
    updated_at TEXT NOT NULL,
    created_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS positions (
    account_id INTEGER NOT NULL,
    symbol TEXT NOT NULL,
    side TEXT NOT NULL,
    entry_price REAL NOT NULL,
    quantity REAL NOT NULL,
    current_price REAL NOT NULL,
    unrealized_pnl REAL NOT NULL,
    opened_at TEXT,
    FOREIGN KEY (account_id) REFERENCES accounts(id) ON DELETE CASCADE,
    UNIQUE (account_id, symbol)
);

CREATE TABLE IF NOT EXISTS orders (
    id TEXT NOT NULL,
    account_id INTEGER NOT NULL,
    timestamp TEXT NOT NULL,
    side TEXT NOT NULL,
    type TEXT NOT NULL,
    symbol TEXT NOT NULL,
    quantity REAL NOT NULL,
    price REAL NOT NULL,
    status TEXT NOT NULL,
    filled_price REAL,
    filled_qty REAL,
    fee REAL,
    slippage REAL,
    PRIMARY KEY (account_id, id),
    FOREIGN KEY (account_id) REFERENCES accounts(id) ON DELETE CASCADE
);

CREATE TABLE IF NOT EXISTS trades (
    id TEXT NOT NULL,
    account_id INTEGER NOT NULL,
    seq INTEGER NOT NULL,
    symbol TEXT NOT NULL,
    side TEXT NOT NULL,
    entry_price REAL NOT NULL,
    exit_price REAL NOT NULL,
    quantity REAL NOT NULL,
    pnl REAL NOT NULL,
    fee REAL NOT NULL,
    net_pnl REAL NOT NULL,
    opened_at TEXT,
    closed_at TEXT,
    PRIMARY KEY (account_id, id),
    FOREIGN KEY (account_id) REFERENCES accounts(id) ON DELETE CASCADE
);

CREATE INDEX IF NOT EXISTS idx_positions_account ON positions(account_id);
CREATE INDEX IF NOT EXISTS idx_orders_account ON orders(account_id);
CREATE INDEX IF NOT EXISTS idx_trades_account_seq ON trades(account_id, seq);
"""

POSITION_COLUMNS = [
    "symbol", "side", "entry_price", "quantity", "current_price", "unrealized_pnl", "opened_at",
]
ORDER_COLUMNS = [
    "id", "timestamp", "side", "type", "symbol", "quantity", "price", "status",
    "filled_price", "filled_qty", "fee", "slippage",
]
TRADE_COLUMNS = [
    "id", "symbol", "side", "entry_price", "exit_price", "quantity",
    "pnl", "fee", "net_pnl", "opened_at", "closed_at",
]


class SqliteStore(StateStore):
    """SQLite 상태 저장소.

    사용 예:
        store = SqliteStore(".state/candlecore.db", account_id=1)
        store.save_state(broker)
        store.close()
    """

    def __init__(self, path: str | Path, account_id: int = 1):
        self.path = Path(path)
        self.account_id = account_id
        self._lock = threading.Lock()
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            # 체크포인트는 엔진의 별도 스레드에서 실행되므로 스레드 검사를 끄고 _lock으로 직렬화
            self._conn = sqlite3.connect(self.path, check_same_thread=False)
            self._conn.execute("PRAGMA foreign_keys=ON;")
            self._conn.executescript(SCHEMA)
        except (OSError, sqlite3.Error) as e:
            raise PersistenceError(f"failed to open database {self.path}: {e}") from e

    def close(self) -> None:
        with self._lock:
            self._conn.close()

    def save_state(self, broker: Broker) -> None:
        account = broker.get_account()
        data = account.to_dict()
        now = utc_now().isoformat()

        with self._lock:
            try:
                with self._conn:
                    self._conn.execute(
                        """
                        INSERT INTO accounts (id, balance, equity, updated_at, created_at)
                        VALUES (?, ?, ?, ?, ?)
                        ON CONFLICT(id) DO UPDATE SET
                            balance = excluded.balance,
                            equity = excluded.equity,
                            updated_at = excluded.updated_at
                        """,
                        (self.account_id, account.balance, account.equity, data["updated_at"], now),
                    )

                    self._conn.execute("DELETE FROM positions WHERE account_id = ?", (self.account_id,))
                    self._conn.executemany(
                        f"INSERT INTO positions (account_id, {', '.join(POSITION_COLUMNS)}) "
                        f"VALUES (?, {', '.join('?' * len(POSITION_COLUMNS))})",
                        [
                            (self.account_id, *[p[c] for c in POSITION_COLUMNS])
                            for p in data["positions"]
                        ],
                    )

                    self._conn.execute("DELETE FROM orders WHERE account_id = ?", (self.account_id,))
                    self._conn.executemany(
                        f"INSERT INTO orders (account_id, {', '.join(ORDER_COLUMNS)}) "
                        f"VALUES (?, {', '.join('?' * len(ORDER_COLUMNS))})",
                        [
                            (self.account_id, *[o[c] for c in ORDER_COLUMNS])
                            for o in data["open_orders"]
                        ],
                    )

                    self._conn.execute("DELETE FROM trades WHERE account_id = ?", (self.account_id,))
                    self._conn.executemany(
                        f"INSERT INTO trades (account_id, seq, {', '.join(TRADE_COLUMNS)}) "
                        f"VALUES (?, ?, {', '.join('?' * len(TRADE_COLUMNS))})",
                        [
                            (self.account_id, seq, *[t[c] for c in TRADE_COLUMNS])
                            for seq, t in enumerate(data["trade_history"])
                        ],
                    )
            except sqlite3.Error as e:
                raise PersistenceError(f"failed to save state: {e}") from e

        logger.debug(f"상태 저장: db={self.path} account_id={self.account_id} balance={account.balance}")

    def load_state(self, broker: Broker) -> None:
        with self._lock:
            try:
                row = self._conn.execute(
                    "SELECT balance, equity, updated_at FROM accounts WHERE id = ?",
                    (self.account_id,),
                ).fetchone()
                if row is None:
                    raise PersistenceError(f"account {self.account_id} not found in {self.path}")

                positions = self._fetch(
                    f"SELECT {', '.join(POSITION_COLUMNS)} FROM positions "
                    "WHERE account_id = ? ORDER BY rowid",
                    POSITION_COLUMNS,
                )
                orders = self._fetch(
                    f"SELECT {', '.join(ORDER_COLUMNS)} FROM orders "
                    "WHERE account_id = ? ORDER BY rowid",
                    ORDER_COLUMNS,
                )
                trades = self._fetch(
                    f"SELECT {', '.join(TRADE_COLUMNS)} FROM trades "
                    "WHERE account_id = ? ORDER BY seq",
                    TRADE_COLUMNS,
                )
            except sqlite3.Error as e:
                raise PersistenceError(f"failed to load state: {e}") from e

        try:
            account = Account(
                balance=float(row[0]),
                equity=float(row[1]),
                positions=[Position.from_dict(p) for p in positions],
                open_orders=[Order.from_dict(o) for o in orders],
                trade_history=[Trade.from_dict(t) for t in trades],
            )
        except (KeyError, TypeError, ValueError) as e:
            raise PersistenceError(f"invalid stored state: {e}") from e

        broker.restore(account)
        logger.info(f"상태 로드: db={self.path} account_id={self.account_id}")

    def _fetch(self, query: str, columns: list[str]) -> list[dict]:
        rows = self._conn.execute(query, (self.account_id,)).fetchall()
        return [dict(zip(columns, r)) for r in rows]
