"""
JSON 파일 기반 상태 저장소.

[ 역할 ]
    브로커 계좌 스냅샷을 {directory}/account.json 에 저장하고,
    재시작 시 읽어서 브로커 상태를 복원.

[ 저장 방식 ]
    임시 파일에 먼저 쓴 뒤 os.replace()로 교체 → 저장 도중 중단되어도 이전 파일이 남는다.

[ 호출하는 곳 ]
    - run_backtest.py에서 store.backend == "file" 일 때 생성
    - backtest/engine.py::BacktestEngine이 체크포인트마다 save_state() 호출
"""

import json
import logging
import os
import tempfile
from pathlib import Path

from candlecore.core.broker_api import Account, Broker
from candlecore.core.errors import PersistenceError
from candlecore.core.state_store import StateStore

logger = logging.getLogger("candlecore.store")

STATE_FILENAME = "account.json"


class FileStore(StateStore):
    """JSON 파일 상태 저장소.

    사용 예:
        store = FileStore(".state")
        store.save_state(broker)
        store.load_state(broker)
    """

    def __init__(self, directory: str | Path):
        self.directory = Path(directory)
        try:
            self.directory.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise PersistenceError(f"failed to create state directory: {e}") from e

    @property
    def state_path(self) -> Path:
        return self.directory / STATE_FILENAME

    def save_state(self, broker: Broker) -> None:
        account = broker.get_account()

        try:
            data = json.dumps(account.to_dict(), ensure_ascii=False, indent=2, allow_nan=False)
        except (TypeError, ValueError) as e:
            raise PersistenceError(f"failed to serialize state: {e}") from e

        try:
            fd, tmp_path = tempfile.mkstemp(dir=self.directory, prefix=".account-", suffix=".tmp")
        except OSError as e:
            raise PersistenceError(f"failed to create temp state file: {e}") from e

        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(data)
            os.replace(tmp_path, self.state_path)
        except OSError as e:
            Path(tmp_path).unlink(missing_ok=True)
            raise PersistenceError(f"failed to write state file: {e}") from e

        logger.debug(f"상태 저장: path={self.state_path} balance={account.balance}")

    def load_state(self, broker: Broker) -> None:
        if not self.state_path.exists():
            raise PersistenceError(f"state file does not exist: {self.state_path}")

        try:
            with open(self.state_path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except OSError as e:
            raise PersistenceError(f"failed to read state file: {e}") from e
        except json.JSONDecodeError as e:
            raise PersistenceError(f"failed to parse state file: {e}") from e

        try:
            account = Account.from_dict(data)
        except (KeyError, TypeError, ValueError) as e:
            raise PersistenceError(f"invalid state file: {e}") from e

        broker.restore(account)
        logger.info(f"상태 로드: path={self.state_path}")
