"""
전략 패키지.

[ 역할 ]
    config.yaml의 strategy.name 으로 TradingStrategy 구현체를 찾아 생성.
    이 패키지의 모듈은 import 시점에 @register로 STRATEGY_REGISTRY에 등록된다.

[ 등록 규칙 ]
    - TradingStrategy 하위 클래스만 등록 가능
    - on_candle()을 구현하지 않은 (추상) 클래스는 등록 거부
    - 같은 이름을 다른 클래스로 다시 등록하면 거부

[ 호출하는 곳 ]
    - run_backtest.py: create_strategy(config.strategy.name, params)
    - run_backtest.py --list: list_strategies()
"""

import inspect
import pkgutil
from importlib import import_module
from typing import Any, Optional

from candlecore.core.errors import ConfigError
from candlecore.core.trading_strategy import TradingStrategy

STRATEGY_REGISTRY: dict[str, type[TradingStrategy]] = {}


def register(name: str):
    """전략 클래스를 이름으로 등록하는 데코레이터."""
    def decorator(cls):
        if not (inspect.isclass(cls) and issubclass(cls, TradingStrategy)):
            raise TypeError(f"strategy '{name}' must subclass TradingStrategy")
        if inspect.isabstract(cls):
            raise TypeError(f"strategy '{name}' does not implement on_candle")
        existing = STRATEGY_REGISTRY.get(name)
        if existing is not None and existing is not cls:
            raise TypeError(f"strategy '{name}' is already registered by {existing.__name__}")
        STRATEGY_REGISTRY[name] = cls
        return cls
    return decorator


def create_strategy(name: str, params: Optional[dict[str, Any]] = None) -> TradingStrategy:
    """등록된 이름으로 전략 생성. params는 각 전략의 DEFAULT_PARAMS를 덮어쓴다.

    Raises:
        ConfigError: 등록되지 않은 이름이거나 파라미터가 전략 검증을 통과하지 못함
    """
    cls = STRATEGY_REGISTRY.get(name)
    if cls is None:
        raise ConfigError(f"unknown strategy '{name}', available: {', '.join(list_strategies())}")
    try:
        return cls(params=params)
    except (TypeError, ValueError) as e:
        raise ConfigError(f"invalid params for strategy '{name}': {e}") from e


def list_strategies() -> list[str]:
    return sorted(STRATEGY_REGISTRY)


def _load_builtin_strategies() -> None:
    for module in pkgutil.iter_modules(__path__):
        if not module.name.startswith("_"):
            import_module(f"{__name__}.{module.name}")


_load_builtin_strategies()
