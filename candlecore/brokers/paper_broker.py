"""
페이퍼 트레이딩 브로커(원장) 구현.

[ 역할 ]
    실제 거래소 없이 주문 체결을 시뮬레이션.
    수수료, 슬리피지를 적용하여 현실적인 체결을 모사하고
    잔고/포지션/거래기록을 일관되게 유지.

[ 체결 규칙 ]
    슬리피지:  시세 * slippage_bps / 10000
    매수 체결가: 시세 + 슬리피지 (불리하게)
    매도 체결가: 시세 - 슬리피지 (불리하게)
    수수료:    체결가 * 수량 * taker_fee (maker_fee는 설정만 있고 적용하지 않음)
    시세가 아직 없으면 주문에 적힌 price를 시세로 사용

[ 동시성 ]
    상태 전체를 하나의 ReadWriteLock으로 보호.
    변경(place/cancel/update/restore)은 쓰기 락, 조회는 읽기 락.
    잔고 검증 → 잔고 변경 → 포지션 변경 → 거래 기록이 하나의 쓰기 락 구간에서 일어난다.

[ 호출하는 곳 ]
    - backtest/engine.py::BacktestEngine이 시세 갱신/주문 제출/계좌 조회
    - stores/*.py가 get_account()/restore() 사용
"""

import copy
import logging
import math
import uuid
from typing import Optional

from candlecore.core.broker_api import (
    POSITION_EPSILON,
    Account,
    Broker,
    Order,
    OrderSide,
    OrderStatus,
    OrderType,
    Position,
)
from candlecore.core.errors import (
    InsufficientBalanceError,
    InvalidOrderError,
    OrderNotFoundError,
)
from candlecore.data.portfolio import Portfolio
from candlecore.utils.locks import ReadWriteLock

logger = logging.getLogger("candlecore.broker")


class PaperBroker(Broker):
    """페이퍼 브로커. 가상 잔고로 시장가 주문을 즉시 체결.

    사용법:
        broker = PaperBroker(initial_balance=10_000, taker_fee=0.001, slippage_bps=5)
        broker.update_market_price("BTC/USD", 100.0)
        broker.place_order(Order(side=OrderSide.BUY, symbol="BTC/USD", quantity=1.0))
        account = broker.get_account()
    """

    def __init__(
        self,
        initial_balance: float = 10_000.0,
        taker_fee: float = 0.001,      # 0.1%
        maker_fee: float = 0.0005,     # 0.05% (미사용)
        slippage_bps: float = 5.0,     # 5bp = 0.05%
    ):
        self._lock = ReadWriteLock()
        self._initial_balance = initial_balance
        self._taker_fee = taker_fee
        self._maker_fee = maker_fee
        self._slippage_bps = slippage_bps

        self._portfolio = Portfolio(initial_balance)
        self._market_prices: dict[str, float] = {}  # symbol → 마지막 시세

    @property
    def initial_balance(self) -> float:
        return self._initial_balance

    @property
    def taker_fee(self) -> float:
        return self._taker_fee

    @property
    def maker_fee(self) -> float:
        return self._maker_fee

    @property
    def slippage_bps(self) -> float:
        return self._slippage_bps

    # ─── 조회 ────────────────────────────────────────────────────────────────

    def get_account(self) -> Account:
        with self._lock.read_locked():
            return self._portfolio.snapshot()

    def get_position(self, symbol: str) -> Optional[Position]:
        with self._lock.read_locked():
            pos = self._portfolio.get_position(symbol)
            return copy.copy(pos) if pos is not None else None

    def get_market_price(self, symbol: str) -> Optional[float]:
        with self._lock.read_locked():
            return self._market_prices.get(symbol)

    # ─── 변경 ────────────────────────────────────────────────────────────────

    def place_order(self, order: Order) -> None:
        with self._lock.write_locked():
            order.id = str(uuid.uuid4())

            try:
                self._validate_order(order)
            except InvalidOrderError as e:
                order.status = OrderStatus.REJECTED
                logger.warning(f"주문 거부: order_id={order.id} error={e}")
                raise

            if order.type == OrderType.MARKET:
                self._execute_market_order(order)
                return

            # 지정가 주문은 접수만 하고 체결하지 않는다
            order.status = OrderStatus.PENDING
            self._portfolio.add_open_order(order)
            logger.info(
                f"지정가 주문 접수: order_id={order.id} side={order.side.value} "
                f"symbol={order.symbol} quantity={order.quantity} price={order.price}"
            )

    def cancel_order(self, order_id: str) -> None:
        with self._lock.write_locked():
            order = self._portfolio.remove_open_order(order_id)
            if order is None:
                raise OrderNotFoundError(order_id)
            order.status = OrderStatus.CANCELLED
            logger.info(f"주문 취소: order_id={order_id}")

    def update_market_price(self, symbol: str, price: float) -> None:
        if not price > 0 or math.isinf(price):
            logger.warning(f"잘못된 시세 무시: symbol={symbol} price={price}")
            return

        with self._lock.write_locked():
            self._market_prices[symbol] = price

            pos = self._portfolio.get_position(symbol)
            if pos is not None:
                pos.current_price = price
                pos.unrealized_pnl = pos.calculate_pnl(price)

    def restore(self, account: Account) -> None:
        with self._lock.write_locked():
            self._portfolio.load(account)
            for pos in account.positions:
                if pos.current_price > 0:
                    self._market_prices[pos.symbol] = pos.current_price
            logger.info(
                f"상태 복원: balance={account.balance} positions={len(account.positions)} "
                f"open_orders={len(account.open_orders)} trades={len(account.trade_history)}"
            )

    # ─── 내부 (쓰기 락 보유 상태에서만 호출) ──────────────────────────────────

    def _validate_order(self, order: Order) -> None:
        if not order.quantity > 0 or math.isinf(order.quantity):
            raise InvalidOrderError("quantity must be positive")
        if not order.symbol:
            raise InvalidOrderError("symbol is required")

        if order.type == OrderType.MARKET and order.side == OrderSide.SELL:
            pos = self._portfolio.get_position(order.symbol)
            if pos is None:
                raise InvalidOrderError(f"no open position for {order.symbol}")
            if order.quantity > pos.quantity + POSITION_EPSILON:
                raise InvalidOrderError(
                    f"sell quantity {order.quantity} exceeds position {pos.quantity}"
                )

        if order.type == OrderType.MARKET and self._reference_price(order) <= 0:
            raise InvalidOrderError(f"no market price for {order.symbol}")

    def _reference_price(self, order: Order) -> float:
        """체결 기준 시세. 기록된 시세가 없으면 주문 가격으로 대체."""
        return self._market_prices.get(order.symbol) or order.price

    def _execute_market_order(self, order: Order) -> None:
        """시장가 주문 즉시 체결. 검증을 모두 마친 뒤에만 상태를 변경한다."""
        market_price = self._reference_price(order)

        slippage = market_price * (self._slippage_bps / 10000.0)
        if order.side == OrderSide.BUY:
            fill_price = market_price + slippage
        else:
            fill_price = market_price - slippage

        fill_qty = order.quantity
        if order.side == OrderSide.SELL:
            # 잔여 수량이 epsilon 이하로 남는 초과 매도는 보유 수량으로 맞춘다
            fill_qty = min(fill_qty, self._portfolio.get_position(order.symbol).quantity)
        fee = fill_price * fill_qty * self._taker_fee

        if order.side == OrderSide.BUY:
            total_cost = fill_price * fill_qty + fee
            if total_cost > self._portfolio.balance:
                order.status = OrderStatus.REJECTED
                logger.warning(
                    f"주문 거부: order_id={order.id} reason=insufficient_balance "
                    f"need={total_cost:.2f} have={self._portfolio.balance:.2f}"
                )
                raise InsufficientBalanceError(total_cost, self._portfolio.balance)

        order.filled_price = fill_price
        order.filled_qty = fill_qty
        order.slippage = slippage
        order.fee = fee

        if order.side == OrderSide.BUY:
            self._portfolio.apply_buy(order)
        else:
            self._portfolio.apply_sell(order)

        order.status = OrderStatus.FILLED

        logger.info(
            f"주문 체결: order_id={order.id} side={order.side.value} symbol={order.symbol} "
            f"quantity={order.filled_qty} price={order.filled_price} fee={order.fee} "
            f"balance={self._portfolio.balance}"
        )
