"""
예외 계층 정의.

[ 역할 ]
    원장/엔진/저장소가 발생시키는 오류를 종류별로 구분.
    엔진은 예외 타입으로 "복구 가능(다음 캔들 진행)"과 "실행 중단"을 판단한다.

[ 복구 정책 ]
    InvalidOrderError        → 엔진이 로깅 후 다음 캔들 진행
    InsufficientBalanceError → 엔진이 로깅 후 다음 캔들 진행
    OrderNotFoundError       → cancel_order() 호출자에게 그대로 전달
    PersistenceError         → 엔진이 경고 로깅 후 무시 (체크포인트보다 실행이 우선)
    StrategyError            → 백테스트 중단 (FAILED), 이미 반영된 상태는 롤백하지 않음
    ConfigError              → 설정 로드 시점에 발생, 진입점에서 처리
"""


class CandlecoreError(Exception):
    """모든 candlecore 예외의 부모."""


class OrderError(CandlecoreError):
    """주문 처리 중 발생한 복구 가능한 오류."""


class InvalidOrderError(OrderError):
    """수량/심볼 등 입력 오류. 상태 변경 전에 거부됨."""


class InsufficientBalanceError(OrderError):
    """매수 비용(체결금액 + 수수료)이 잔고를 초과."""

    def __init__(self, required: float, available: float):
        self.required = required
        self.available = available
        super().__init__(f"insufficient balance: need {required:.2f}, have {available:.2f}")


class OrderNotFoundError(CandlecoreError):
    """취소 대상 주문이 미체결 주문 목록에 없음."""

    def __init__(self, order_id: str):
        self.order_id = order_id
        super().__init__(f"order not found: {order_id}")


class PersistenceError(CandlecoreError):
    """상태 저장/복원 실패 (I/O, 직렬화)."""


class StrategyError(CandlecoreError):
    """전략 내부 오류. 백테스트 실행을 중단시킨다."""


class ConfigError(CandlecoreError):
    """잘못된 설정 값."""
