"""
원장 상태(포트폴리오) 관리 모듈.

[ 역할 ]
    잔고, 보유 포지션(Position), 미체결 주문, 거래 기록(Trade)을 하나의 객체로 관리.
    체결된 주문을 받아 포지션 가중평균/청산/손익 계산을 수행.

[ 주요 클래스 ]
    Portfolio - 잔고 + 포지션들 + 미체결 주문 + 거래내역

[ 스레드 안전성 ]
    Portfolio 자체는 락을 갖지 않는다.
    brokers/paper_broker.py::PaperBroker가 쓰기 락을 잡은 상태에서만 변경한다.

[ 호출하는 곳 ]
    - brokers/paper_broker.py::PaperBroker._execute_market_order()에서
      apply_buy()/apply_sell() 호출하여 상태 갱신
    - backtest/metrics.py에서 snapshot().trade_history로 성과 계산
"""

import copy
import logging
import uuid
from typing import Optional

from candlecore.core.broker_api import (
    POSITION_EPSILON,
    Account,
    Order,
    Position,
    Trade,
    utc_now,
)

logger = logging.getLogger("candlecore.portfolio")


class Portfolio:
    """원장 상태 집합체.

    PaperBroker가 소유하며, 체결 결과를 반영.
    trade_history는 추가만 가능 (기존 Trade는 변경/삭제하지 않음).
    """

    def __init__(self, initial_balance: float):
        self.balance = initial_balance              # 실현 현금
        self.positions: dict[str, Position] = {}    # symbol → Position
        self.open_orders: list[Order] = []          # 미체결 (지정가) 주문
        self.trade_history: list[Trade] = []        # 청산 거래 내역
        self.updated_at = utc_now()

    @property
    def unrealized_pnl(self) -> float:
        return sum(p.unrealized_pnl for p in self.positions.values())

    @property
    def equity(self) -> float:
        """총 평가 자산 (잔고 + 미실현 손익)."""
        return self.balance + self.unrealized_pnl

    def get_position(self, symbol: str) -> Optional[Position]:
        return self.positions.get(symbol)

    def apply_buy(self, order: Order) -> Position:
        """매수 체결 반영. 잔고 차감 후 포지션 신규 생성 또는 가중평균 갱신.

        잔고 검증은 호출자(PaperBroker)가 먼저 수행한다.
        """
        self.balance -= order.filled_price * order.filled_qty + order.fee

        pos = self.positions.get(order.symbol)
        if pos is None:
            pos = Position(
                symbol=order.symbol,
                side=order.side,
                entry_price=order.filled_price,
                quantity=order.filled_qty,
                current_price=order.filled_price,
                opened_at=order.timestamp,
            )
            self.positions[order.symbol] = pos
        else:
            total_cost = pos.entry_price * pos.quantity + order.filled_price * order.filled_qty
            pos.quantity += order.filled_qty
            pos.entry_price = total_cost / pos.quantity

        self.updated_at = utc_now()
        logger.debug(
            f"포지션 진입/추가: symbol={order.symbol} quantity={pos.quantity} "
            f"entry_price={pos.entry_price}"
        )
        return pos

    def apply_sell(self, order: Order) -> Trade:
        """매도 체결 반영. 실현 손익 계산 → Trade 기록 → 잔고 입금 → 포지션 축소/삭제.

        포지션 존재 및 수량 검증은 호출자(PaperBroker)가 먼저 수행한다.
        """
        pos = self.positions[order.symbol]

        pnl = pos.calculate_pnl(order.filled_price, order.filled_qty)
        net_pnl = pnl - order.fee

        trade = Trade(
            id=str(uuid.uuid4()),
            symbol=order.symbol,
            side=pos.side,
            entry_price=pos.entry_price,
            exit_price=order.filled_price,
            quantity=order.filled_qty,
            pnl=pnl,
            fee=order.fee,
            net_pnl=net_pnl,
            opened_at=pos.opened_at,
            closed_at=order.timestamp,
        )
        self.trade_history.append(trade)

        proceeds = order.filled_price * order.filled_qty
        self.balance += proceeds - order.fee

        pos.quantity -= order.filled_qty
        if pos.quantity <= POSITION_EPSILON:
            del self.positions[order.symbol]

        self.updated_at = utc_now()
        logger.info(
            f"포지션 청산: symbol={order.symbol} pnl={pnl} net_pnl={net_pnl} "
            f"remaining_qty={max(pos.quantity, 0.0)}"
        )
        return trade

    def add_open_order(self, order: Order) -> None:
        self.open_orders.append(order)
        self.updated_at = utc_now()

    def remove_open_order(self, order_id: str) -> Optional[Order]:
        """미체결 주문 제거. 없으면 None."""
        for i, order in enumerate(self.open_orders):
            if order.id == order_id:
                self.updated_at = utc_now()
                return self.open_orders.pop(i)
        return None

    def snapshot(self) -> Account:
        """독립적인 Account 복사본 생성. Trade는 불변이므로 객체를 공유한다."""
        return Account(
            balance=self.balance,
            equity=self.equity,
            positions=[copy.copy(p) for p in self.positions.values()],
            open_orders=[copy.copy(o) for o in self.open_orders],
            trade_history=list(self.trade_history),
            updated_at=utc_now(),
        )

    def load(self, account: Account) -> None:
        """Account 스냅샷으로 전체 상태 교체."""
        self.balance = account.balance
        self.positions = {p.symbol: copy.copy(p) for p in account.positions}
        self.open_orders = [copy.copy(o) for o in account.open_orders]
        self.trade_history = list(account.trade_history)
        self.updated_at = utc_now()
