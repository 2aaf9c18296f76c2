"""
상태 저장소 추상 클래스 정의.

[ 역할 ]
    원장(Broker) 상태를 저장/복원하여 전체 캔들을 다시 돌리지 않고 재시작 가능하게 한다.

[ 구현체 ]
    - stores/file_store.py::FileStore      (JSON 파일)
    - stores/sqlite_store.py::SqliteStore  (관계형 DB)

[ 호출하는 곳 ]
    - backtest/engine.py::BacktestEngine이 주기적으로 save_state() 호출 (체크포인트)
    - 시작 시 BacktestEngine.load_state()가 load_state() 호출 (실패해도 기본 상태로 시작)
"""

from abc import ABC, abstractmethod

from candlecore.core.broker_api import Broker


class StateStore(ABC):
    """상태 저장소 추상 클래스. 실패 시 PersistenceError 발생."""

    @abstractmethod
    def save_state(self, broker: Broker) -> None:
        """브로커의 현재 계좌 스냅샷 저장."""
        ...

    @abstractmethod
    def load_state(self, broker: Broker) -> None:
        """저장된 스냅샷으로 브로커 상태 복원."""
        ...
