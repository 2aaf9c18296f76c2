"""
백테스팅 엔진 모듈.

[ 역할 ]
    캔들 시퀀스에 전략을 적용하여 가상 매매를 시뮬레이션하고 상태를 주기적으로 저장.
    시스템의 핵심 실행 루프를 담당.

[ 실행 흐름 ]
    run() 호출 시 캔들마다:
        1. 취소 신호(cancel_event) 확인 → 설정되어 있으면 즉시 중단 (CANCELLED)
        2. broker.update_market_price()로 종가를 시세로 반영
        3. broker.get_account()로 계좌 스냅샷 조회
        4. strategy.on_candle(candle, account) → Signal
           → 전략 예외 발생 시 실행 중단 (FAILED, 롤백 없음)
        5. Signal을 0~1개의 시장가 주문으로 변환하여 broker.place_order()
           → 주문 거부(InvalidOrder/InsufficientBalance)는 로깅 후 다음 캔들 진행
        6. 새로 완료된 Trade마다 strategy.on_trade() 호출
        7. checkpoint_interval 마다, 그리고 마지막 캔들 후 store.save_state()
           → 마지막 저장 이후 변화가 없으면 종료 시 저장 생략
           → 저장 실패/타임아웃은 경고 로깅만

[ 상태 전이 ]
    NOT_STARTED → RUNNING → COMPLETED | CANCELLED | FAILED
    예상하지 못한 예외가 run() 밖으로 나가도 FAILED로 바꾼 뒤 다시 발생시킨다.

[ 의존성 ]
    - core/broker_api.py::Broker (원장 인터페이스)
    - core/trading_strategy.py::TradingStrategy (전략 인터페이스)
    - core/state_store.py::StateStore (체크포인트 저장소)
    - backtest/metrics.py::calculate_metrics() (성과 계산)

[ 호출하는 곳 ]
    - run_backtest.py (진입점)에서 생성 및 실행
"""

import logging
import numbers
import threading
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, Sequence

from candlecore.backtest.metrics import BacktestMetrics, calculate_metrics
from candlecore.core.broker_api import Account, Broker, Order, OrderSide, OrderType
from candlecore.core.data_provider import Candle
from candlecore.core.errors import OrderError, PersistenceError, StrategyError
from candlecore.core.state_store import StateStore
from candlecore.core.trading_strategy import Signal, SignalAction, TradingStrategy

logger = logging.getLogger("candlecore.backtest")


class RunStatus(Enum):
    """백테스트 실행 상태."""
    NOT_STARTED = "not_started"
    RUNNING = "running"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    FAILED = "failed"


@dataclass
class BacktestResult:
    """run()의 반환값."""
    status: RunStatus
    processed_candles: int
    total_candles: int
    error: Optional[Exception] = None           # FAILED일 때 중단 사유
    equity_curve: list[float] = field(default_factory=list)
    account: Optional[Account] = None           # 종료 시점 계좌 스냅샷
    metrics: Optional[BacktestMetrics] = None

    @property
    def cancelled(self) -> bool:
        return self.status == RunStatus.CANCELLED

    def summary(self) -> str:
        text = f"{self.status.value}: {self.processed_candles}/{self.total_candles} candles"
        if self.error is not None:
            text += f" (error: {self.error})"
        if self.account is not None:
            text += f", balance={self.account.balance:,.2f}, equity={self.account.equity:,.2f}"
        return text


class BacktestEngine:
    """백테스팅 엔진. run()으로 시뮬레이션 실행.

    사용법:
        engine = BacktestEngine(broker, strategy, store, symbol="BTC/USD")
        engine.load_state()              # 선택: 이전 체크포인트 복원
        result = engine.run(candles)
    """

    def __init__(
        self,
        broker: Broker,
        strategy: TradingStrategy,
        store: Optional[StateStore] = None,
        symbol: str = "BTC/USD",
        checkpoint_interval: int = 10,
        persist_timeout: float = 5.0,    # 저장 1회 최대 대기 시간 (초)
    ):
        if checkpoint_interval <= 0:
            raise ValueError("checkpoint_interval must be positive")

        self.broker = broker
        self.strategy = strategy
        self.store = store
        self.symbol = symbol
        self.checkpoint_interval = checkpoint_interval
        self.persist_timeout = persist_timeout

        self._status = RunStatus.NOT_STARTED
        self._save_thread: Optional[threading.Thread] = None
        self._last_checkpoint = 0   # 마지막으로 저장에 성공한 시점의 처리 캔들 수
        self.equity_curve: list[float] = []

    @property
    def status(self) -> RunStatus:
        return self._status

    def load_state(self) -> bool:
        """이전 체크포인트 복원 (best-effort). 실패해도 기본 상태로 시작할 수 있다."""
        if self.store is None:
            return False
        try:
            self.store.load_state(self.broker)
        except PersistenceError as e:
            logger.warning(f"이전 상태 없음 또는 복원 실패, 기본 상태로 시작: {e}")
            return False
        logger.info("이전 상태 복원 완료")
        return True

    def run(
        self,
        candles: Sequence[Candle],
        cancel_event: Optional[threading.Event] = None,
    ) -> BacktestResult:
        """백테스트 실행.

        Args:
            candles: 시간순 캔들 (실행 전에 전체가 준비되어 있어야 함)
            cancel_event: 설정되면 다음 캔들 경계에서 중단

        Returns:
            BacktestResult: 실행 결과 (처리한 캔들 수, 상태, 최종 계좌, 성과 지표)
        """
        if self._status == RunStatus.RUNNING:
            raise RuntimeError("engine is already running")

        self._status = RunStatus.RUNNING
        self.equity_curve = []
        self._last_checkpoint = 0

        total = len(candles)
        processed = 0
        error: Optional[Exception] = None

        logger.info(f"엔진 시작: strategy={self.strategy.name} symbol={self.symbol} candles={total}")

        try:
            for i, candle in enumerate(candles):
                if cancel_event is not None and cancel_event.is_set():
                    self._status = RunStatus.CANCELLED
                    logger.info(f"엔진 중단 (취소 요청): processed_candles={processed}")
                    break

                try:
                    self._process_candle(i, candle)
                except StrategyError as e:
                    error = e
                    self._status = RunStatus.FAILED
                    logger.error(f"전략 오류로 실행 중단: candle_index={i} error={e}")
                    break

                processed += 1
                self.equity_curve.append(self.broker.get_account().equity)

                if processed % self.checkpoint_interval == 0 and processed < total:
                    self._checkpoint(processed)

            # 마지막 저장 이후 처리한 캔들이 있을 때만
            if processed > self._last_checkpoint:
                self._checkpoint(processed)
        except BaseException as e:
            # 예상하지 못한 예외도 엔진을 RUNNING 상태로 남기지 않는다
            self._status = RunStatus.FAILED
            logger.exception(f"엔진 비정상 종료: processed_candles={processed} error={e!r}")
            raise

        if self._status == RunStatus.RUNNING:
            self._status = RunStatus.COMPLETED
            logger.info(f"엔진 완료: total_candles={total}")

        account = self.broker.get_account()
        initial_balance = getattr(self.broker, "initial_balance", account.balance)
        metrics = calculate_metrics(account.trade_history, self.equity_curve, initial_balance)

        return BacktestResult(
            status=self._status,
            processed_candles=processed,
            total_candles=total,
            error=error,
            equity_curve=list(self.equity_curve),
            account=account,
            metrics=metrics,
        )

    def _process_candle(self, index: int, candle: Candle) -> None:
        """캔들 1개 처리. 전략 오류만 StrategyError로 올려보낸다."""
        self.broker.update_market_price(self.symbol, candle.close)
        account = self.broker.get_account()

        logger.debug(
            f"캔들 처리: index={index} timestamp={candle.timestamp} close={candle.close} "
            f"balance={account.balance} equity={account.equity}"
        )

        try:
            signal = self.strategy.on_candle(candle, account)
        except Exception as e:
            raise StrategyError(f"{self.strategy.name} failed on candle {index}: {e}") from e
        if not isinstance(signal, Signal):
            raise StrategyError(f"{self.strategy.name} returned {type(signal).__name__}, expected Signal")
        if isinstance(signal.quantity, bool) or not isinstance(signal.quantity, numbers.Real):
            raise StrategyError(
                f"{self.strategy.name} returned non-numeric quantity: {signal.quantity!r}"
            )

        trades_before = len(account.trade_history)
        try:
            self._execute_signal(signal, candle)
        except OrderError as e:
            # 주문 1건 실패는 치명적이지 않다
            logger.error(
                f"시그널 실행 실패: error={e} signal={signal.action.value} candle_index={index}"
            )
            return

        self._notify_trades(trades_before)

    def _execute_signal(self, signal: Signal, candle: Candle) -> Optional[Order]:
        """시그널을 브로커 주문으로 변환. 주문이 없으면 None."""
        if signal.action == SignalAction.BUY:
            return self._execute_buy(signal, candle)
        if signal.action == SignalAction.SELL:
            return self._execute_sell(signal, candle)
        if signal.action == SignalAction.HOLD:
            return None

        logger.error(f"알 수 없는 시그널 무시: action={signal.action}")
        return None

    def _execute_buy(self, signal: Signal, candle: Candle) -> Order:
        symbol = signal.symbol or self.symbol
        logger.info(
            f"매수 시그널 실행: symbol={symbol} quantity={signal.quantity} "
            f"price={candle.close} reason={signal.reason}"
        )

        order = Order(
            side=OrderSide.BUY,
            type=OrderType.MARKET,
            symbol=symbol,
            quantity=signal.quantity,
            price=candle.close,
            timestamp=candle.timestamp,
        )
        self.broker.place_order(order)
        return order

    def _execute_sell(self, signal: Signal, candle: Candle) -> Optional[Order]:
        symbol = signal.symbol or self.symbol

        # 보유 포지션이 없으면 매도 시그널 무시 (공매도 불가)
        position = self.broker.get_position(symbol)
        if position is None or position.quantity <= 0:
            logger.debug(f"매도 시그널 무시 (보유 포지션 없음): symbol={symbol}")
            return None

        quantity = signal.quantity if signal.quantity > 0 else position.quantity
        logger.info(
            f"매도 시그널 실행: symbol={symbol} quantity={quantity} "
            f"price={candle.close} reason={signal.reason}"
        )

        order = Order(
            side=OrderSide.SELL,
            type=OrderType.MARKET,
            symbol=symbol,
            quantity=quantity,
            price=candle.close,
            timestamp=candle.timestamp,
        )
        self.broker.place_order(order)
        return order

    def _notify_trades(self, trades_before: int) -> None:
        """주문으로 새로 생긴 Trade를 전략에 1회씩 전달."""
        history = self.broker.get_account().trade_history
        for trade in history[trades_before:]:
            try:
                self.strategy.on_trade(trade)
            except Exception as e:
                raise StrategyError(f"{self.strategy.name}.on_trade failed: {e}") from e

    def _checkpoint(self, processed: int) -> None:
        """상태 저장. 실패/타임아웃은 실행을 멈추지 않는다.

        저장은 데몬 스레드에서 실행하고 persist_timeout 만큼만 기다린다.
        타임아웃된 저장이 아직 끝나지 않았으면 다음 체크포인트는 건너뛴다.
        """
        if self.store is None:
            return
        if self._save_thread is not None and self._save_thread.is_alive():
            logger.warning(f"이전 상태 저장이 진행 중이라 체크포인트 생략: processed_candles={processed}")
            return

        errors: list[Exception] = []

        def save() -> None:
            try:
                self.store.save_state(self.broker)
            except Exception as e:
                errors.append(e)

        thread = threading.Thread(target=save, name="checkpoint", daemon=True)
        self._save_thread = thread
        thread.start()
        thread.join(self.persist_timeout)

        if thread.is_alive():
            logger.warning(f"상태 저장 타임아웃: timeout={self.persist_timeout}s")
        elif errors:
            logger.warning(f"상태 저장 실패: error={errors[0]!r}")
        else:
            self._last_checkpoint = processed
            logger.debug(f"체크포인트 저장 완료: processed_candles={processed}")
