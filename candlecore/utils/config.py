"""
설정 관리 모듈.

[ 역할 ]
    config.yaml (또는 .json) 파일을 파싱하여 Config 객체로 변환.
    브로커(수수료/슬리피지), 백테스트, 상태 저장소, 전략, 로깅 설정을 통합 관리.

[ 설정 파일 구조 (config.yaml) ]
    broker:     → BrokerConfig (초기 잔고, 수수료, 슬리피지)
    backtest:   → BacktestConfig (심볼, 데이터 경로, 체크포인트 주기)
    store:      → StoreConfig (file / sqlite)
    strategy:   → StrategyConfig (전략 이름 + 파라미터)
    log_level:  → "INFO" / "DEBUG"
    log_dir:    → 로그 디렉토리 경로

[ 환경변수 오버라이드 ]
    CANDLECORE_INITIAL_BALANCE, CANDLECORE_TAKER_FEE, CANDLECORE_MAKER_FEE,
    CANDLECORE_SLIPPAGE_BPS, CANDLECORE_SYMBOL, CANDLECORE_DATA_SOURCE,
    CANDLECORE_CHECKPOINT_INTERVAL, CANDLECORE_STORE_BACKEND, CANDLECORE_STATE_DIR,
    CANDLECORE_SQLITE_PATH, CANDLECORE_ACCOUNT_ID, CANDLECORE_STRATEGY_NAME,
    CANDLECORE_LOG_LEVEL
    숫자 변환에 실패한 값은 무시한다.

[ 호출하는 곳 ]
    - run_backtest.py에서 Config.load()로 로드
    - 브로커/엔진/저장소/전략 생성 시 각 섹션 값을 사용
"""

import json
import math
import os
from dataclasses import asdict, dataclass, field, fields
from pathlib import Path
from typing import Any, Callable, Mapping, Optional

import yaml

from candlecore.core.errors import ConfigError

STORE_BACKENDS = ("file", "sqlite")
LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR")


@dataclass
class BrokerConfig:
    """브로커 설정. config.yaml의 broker 섹션에 대응."""
    initial_balance: float = 10_000.0
    taker_fee: float = 0.001    # 0.1%
    maker_fee: float = 0.0005   # 0.05%
    slippage_bps: float = 5.0   # 0.05%


@dataclass
class BacktestConfig:
    """백테스트 설정. config.yaml의 backtest 섹션에 대응."""
    symbol: str = "BTC/USD"
    data_source: str = "data/candles.csv"
    checkpoint_interval: int = 10
    persist_timeout: float = 5.0


@dataclass
class StoreConfig:
    """상태 저장소 설정. config.yaml의 store 섹션에 대응."""
    backend: str = "file"
    state_directory: str = ".state"
    sqlite_path: str = ".state/candlecore.db"
    account_id: int = 1


@dataclass
class StrategyConfig:
    """전략 설정. config.yaml의 strategy 섹션에 대응.

    전략별 파라미터는 params dict에 자유롭게 넣는다.
    각 전략 클래스의 DEFAULT_PARAMS가 기본값 역할을 하므로,
    여기서는 오버라이드할 값만 지정하면 된다.
    """
    name: str = "simple_ma"
    params: dict[str, Any] = field(default_factory=dict)


@dataclass
class Config:
    """전체 설정. load(), from_yaml() 또는 from_json()으로 생성."""
    broker: BrokerConfig = field(default_factory=BrokerConfig)
    backtest: BacktestConfig = field(default_factory=BacktestConfig)
    store: StoreConfig = field(default_factory=StoreConfig)
    strategy: StrategyConfig = field(default_factory=StrategyConfig)
    log_level: str = "INFO"
    log_dir: str = "logs"

    @classmethod
    def load(
        cls,
        path: str | Path = "config.yaml",
        env: Optional[Mapping[str, str]] = None,
    ) -> "Config":
        """파일(있으면) → 환경변수 오버라이드 → 검증 순서로 설정 로드."""
        path = Path(path)
        config = cls.from_yaml(path) if path.exists() else cls()
        config.apply_env_overrides(os.environ if env is None else env)
        config.validate()
        return config

    @classmethod
    def from_yaml(cls, path: str | Path) -> "Config":
        """YAML 파일에서 설정 로드."""
        path = Path(path)
        try:
            with open(path, "r", encoding="utf-8") as f:
                data = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ConfigError(f"failed to parse config file {path}: {e}") from e
        return cls._from_dict(data or {})

    @classmethod
    def from_json(cls, path: str | Path) -> "Config":
        """JSON 파일에서 설정 로드."""
        path = Path(path)
        try:
            with open(path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except json.JSONDecodeError as e:
            raise ConfigError(f"failed to parse config file {path}: {e}") from e
        return cls._from_dict(data or {})

    @classmethod
    def _from_dict(cls, data: dict[str, Any]) -> "Config":
        """딕셔너리에서 Config 생성. 알 수 없는 키는 무시."""
        if not isinstance(data, dict):
            raise ConfigError("config root must be a mapping")
        strategy_data = data.get("strategy") or {}
        if not isinstance(strategy_data, dict):
            raise ConfigError("strategy section must be a mapping")

        # strategy 섹션: params가 명시적으로 있으면 그것을 사용, 없으면 name 외 나머지를 params로
        if "params" in strategy_data:
            params = strategy_data["params"] or {}
            if not isinstance(params, dict):
                raise ConfigError("strategy.params must be a mapping")
            strategy_params = dict(params)
        else:
            strategy_params = {k: v for k, v in strategy_data.items() if k != "name"}
        strategy = StrategyConfig(
            name=str(strategy_data.get("name", "simple_ma")),
            params=strategy_params,
        )

        return cls(
            broker=_section(BrokerConfig, data.get("broker")),
            backtest=_section(BacktestConfig, data.get("backtest")),
            store=_section(StoreConfig, data.get("store")),
            strategy=strategy,
            log_level=str(data.get("log_level", "INFO")).upper(),
            log_dir=str(data.get("log_dir", "logs")),
        )

    def apply_env_overrides(self, env: Mapping[str, str]) -> None:
        """CANDLECORE_* 환경변수로 값 덮어쓰기."""
        overrides: list[tuple[str, Any, str, Callable[[str], Any]]] = [
            ("CANDLECORE_INITIAL_BALANCE", self.broker, "initial_balance", float),
            ("CANDLECORE_TAKER_FEE", self.broker, "taker_fee", float),
            ("CANDLECORE_MAKER_FEE", self.broker, "maker_fee", float),
            ("CANDLECORE_SLIPPAGE_BPS", self.broker, "slippage_bps", float),
            ("CANDLECORE_SYMBOL", self.backtest, "symbol", str),
            ("CANDLECORE_DATA_SOURCE", self.backtest, "data_source", str),
            ("CANDLECORE_CHECKPOINT_INTERVAL", self.backtest, "checkpoint_interval", int),
            ("CANDLECORE_STORE_BACKEND", self.store, "backend", str),
            ("CANDLECORE_STATE_DIR", self.store, "state_directory", str),
            ("CANDLECORE_SQLITE_PATH", self.store, "sqlite_path", str),
            ("CANDLECORE_ACCOUNT_ID", self.store, "account_id", int),
            ("CANDLECORE_STRATEGY_NAME", self.strategy, "name", str),
        ]
        for key, section, attr, convert in overrides:
            value = env.get(key)
            if not value:
                continue
            try:
                setattr(section, attr, convert(value))
            except ValueError:
                continue

        if env.get("CANDLECORE_LOG_LEVEL"):
            self.log_level = env["CANDLECORE_LOG_LEVEL"].upper()

    def validate(self) -> None:
        """설정 값 검증. 잘못된 값이면 ConfigError."""
        if self.broker.initial_balance <= 0:
            raise ConfigError("initial_balance must be positive")
        if not 0 <= self.broker.taker_fee <= 1:
            raise ConfigError("taker_fee must be between 0 and 1")
        if not 0 <= self.broker.maker_fee <= 1:
            raise ConfigError("maker_fee must be between 0 and 1")
        if self.broker.slippage_bps < 0:
            raise ConfigError("slippage_bps must be non-negative")
        if not self.backtest.symbol:
            raise ConfigError("symbol is required")
        if self.backtest.checkpoint_interval <= 0:
            raise ConfigError("checkpoint_interval must be positive")
        if self.backtest.persist_timeout <= 0:
            raise ConfigError("persist_timeout must be positive")
        if self.store.backend not in STORE_BACKENDS:
            raise ConfigError(f"store backend must be one of {STORE_BACKENDS}")
        if self.store.account_id <= 0:
            raise ConfigError("account_id must be positive")
        if self.log_level not in LOG_LEVELS:
            raise ConfigError(f"log_level must be one of {LOG_LEVELS}")

    def to_dict(self) -> dict[str, Any]:
        """딕셔너리로 변환."""
        return asdict(self)

    def save_yaml(self, path: str | Path) -> None:
        """YAML 파일로 저장."""
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w", encoding="utf-8") as f:
            yaml.dump(self.to_dict(), f, allow_unicode=True, default_flow_style=False)


def _coerce(field_type: Any, value: Any) -> Any:
    """YAML 값을 섹션 필드 타입으로 변환. 변환할 수 없으면 ValueError."""
    if value is None or isinstance(value, (bool, dict, list)):
        raise ValueError(f"unsupported value {value!r}")
    if field_type is int:
        if isinstance(value, float) and not value.is_integer():
            raise ValueError(f"expected an integer, got {value!r}")
        return int(value)
    if field_type is float:
        number = float(value)
        if not math.isfinite(number):
            raise ValueError(f"expected a finite number, got {value!r}")
        return number
    if field_type is str:
        return str(value)
    return value


def _section(cls, data: Optional[dict[str, Any]]):
    """dataclass 섹션 생성. 값은 필드 타입으로 변환하고, 정의되지 않은 키는 버린다."""
    data = data or {}
    if not isinstance(data, dict):
        raise ConfigError(f"{cls.__name__} section must be a mapping")

    values = {}
    for f in fields(cls):
        if f.name not in data:
            continue
        try:
            values[f.name] = _coerce(f.type, data[f.name])
        except (TypeError, ValueError) as e:
            raise ConfigError(f"invalid {f.name}: {e}") from e
    return cls(**values)
