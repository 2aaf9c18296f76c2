"""
매매 전략 추상 클래스 정의.

[ 역할 ]
    매매 로직의 인터페이스를 정의.
    캔들 1개와 계좌 스냅샷을 받아 매수/매도/홀드 시그널을 생성.

[ 구현체 ]
    - strategies/simple_ma.py::SimpleMAStrategy (이동평균 교차 전략)
    - strategies/rsi_strategy.py::RSIStrategy   (RSI 과매수/과매도 전략)

[ 호출하는 곳 ]
    - backtest/engine.py::BacktestEngine.run()에서
      캔들마다 on_candle()을 호출하여 시그널을 받고 주문으로 변환
    - 거래(Trade)가 완료될 때마다 on_trade() 호출

[ 데이터 흐름 ]
    Candle + Account(스냅샷) → on_candle() → Signal 반환
    Signal.action이 BUY/SELL이면 엔진이 시장가 주문 실행
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Any

from candlecore.core.broker_api import Account, Trade
from candlecore.core.data_provider import Candle


class SignalAction(Enum):
    """전략이 반환하는 시그널 종류."""
    BUY = "buy"
    SELL = "sell"
    HOLD = "hold"


@dataclass
class Signal:
    """on_candle()의 반환값. 엔진에 전달되어 주문으로 변환됨."""
    action: SignalAction
    symbol: str = ""
    quantity: float = 0.0    # 주문 수량 (매도 시 0이면 보유 전량)
    reason: str = ""         # 시그널 발생 사유 (로깅용)

    @classmethod
    def hold(cls, reason: str = "") -> "Signal":
        return cls(action=SignalAction.HOLD, reason=reason)


class TradingStrategy(ABC):
    """매매 전략 추상 클래스.

    새 전략을 만들려면 이 클래스를 상속받아 on_candle()을 구현하면 된다.
    on_trade()는 선택 사항 (기본 동작: 아무것도 하지 않음).

    on_candle()에 전달되는 Account는 읽기 전용으로 취급해야 한다.
    """

    def __init__(self, name: str, params: dict[str, Any] | None = None):
        self.name = name
        self.params = params or {}  # config.yaml에서 로드된 전략 파라미터

    @abstractmethod
    def on_candle(self, candle: Candle, account: Account) -> Signal:
        """캔들 1개를 분석하여 매매 시그널 생성.

        Args:
            candle: 현재 캔들
            account: 현재 계좌 스냅샷

        Returns:
            Signal: 매수/매도/홀드 시그널

        Raises:
            Exception: 전략 내부 오류. 엔진은 이를 실행 중단 사유로 처리한다.
        """
        ...

    def on_trade(self, trade: Trade) -> None:
        """거래 완료 시 호출됨. 전략 자체 통계 관리용."""
        return None
