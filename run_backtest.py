"""
백테스트 실행 스크립트 (시스템 진입점).

[ 사용법 ]
    # 기본 실행 (config.yaml 사용, 샘플 데이터)
    python run_backtest.py

    # 전략 지정
    python run_backtest.py --strategy simple_ma
    python run_backtest.py --strategy rsi

    # 파라미터 오버라이드
    python run_backtest.py --strategy simple_ma -p fast_period=5 -p slow_period=20

    # CSV 데이터 사용 (timestamp,open,high,low,close,volume)
    python run_backtest.py --source csv --csv data/candles.csv

    # 이전 체크포인트를 무시하고 새로 시작
    python run_backtest.py --fresh

    # 등록된 전략 목록 확인
    python run_backtest.py --list

    실행 중 Ctrl-C → 현재 캔들까지 처리하고 중단 (CANCELLED)
"""

import argparse
import signal
import sys
import threading
from pathlib import Path

from candlecore.backtest.engine import BacktestEngine, RunStatus
from candlecore.brokers.paper_broker import PaperBroker
from candlecore.core.data_provider import Candle
from candlecore.core.errors import ConfigError, PersistenceError
from candlecore.core.state_store import StateStore
from candlecore.data.market_data import generate_sample_candles, load_candles_csv
from candlecore.stores.file_store import FileStore
from candlecore.stores.sqlite_store import SqliteStore
from candlecore.strategies import create_strategy, list_strategies
from candlecore.utils.config import Config
from candlecore.utils.logger import setup_logger


def parse_param(param_str: str) -> tuple[str, object]:
    """'key=value' 문자열을 파싱하여 (key, value) 반환. 숫자면 자동 변환."""
    key, _, value = param_str.partition("=")
    key = key.strip()
    value = value.strip()

    # 숫자 자동 변환
    try:
        if "." in value:
            return key, float(value)
        return key, int(value)
    except ValueError:
        # bool 변환
        if value.lower() in ("true", "yes"):
            return key, True
        if value.lower() in ("false", "no"):
            return key, False
        return key, value


def create_store(config: Config) -> StateStore:
    """설정에 맞는 상태 저장소 생성."""
    if config.store.backend == "sqlite":
        return SqliteStore(config.store.sqlite_path, account_id=config.store.account_id)
    return FileStore(config.store.state_directory)


def load_candles(config: Config, source: str, csv_path: str | None, count: int) -> list[Candle]:
    """데이터 소스에서 캔들 로드."""
    if source == "csv":
        path = Path(csv_path or config.backtest.data_source)
        print(f"CSV 캔들 로드 중: {path}")
        candles = load_candles_csv(path)
    else:
        print("샘플 캔들 생성 중...")
        candles = generate_sample_candles(n=count)
    print(f"  {config.backtest.symbol}: {len(candles)}개 캔들")
    return candles


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="캔들 기반 페이퍼 트레이딩 백테스트")
    parser.add_argument("--config", type=str, default="config.yaml", help="설정 파일 경로")
    parser.add_argument("--strategy", type=str, default=None, help="전략 이름 (config.yaml 대신 지정)")
    parser.add_argument("-p", "--param", action="append", default=[], help="파라미터 오버라이드 (예: -p fast_period=5)")
    parser.add_argument("--source", type=str, default="sample", choices=["sample", "csv"], help="데이터 소스")
    parser.add_argument("--csv", type=str, default=None, help="CSV 경로 (기본: backtest.data_source)")
    parser.add_argument("--candles", type=int, default=500, help="샘플 캔들 개수")
    parser.add_argument("--fresh", action="store_true", help="저장된 상태를 불러오지 않음")
    parser.add_argument("--list", action="store_true", help="등록된 전략 목록 출력")
    args = parser.parse_args(argv)

    # 전략 목록 출력
    if args.list:
        print("등록된 전략:")
        for name in list_strategies():
            print(f"  - {name}")
        return 0

    # 설정 로드
    try:
        config = Config.load(args.config)
    except ConfigError as e:
        print(f"설정 오류: {e}", file=sys.stderr)
        return 1

    setup_logger(level=config.log_level, log_dir=config.log_dir)

    try:
        candles = load_candles(config, args.source, args.csv, args.candles)
    except (OSError, ValueError) as e:
        print(f"캔들 로드 실패: {e}", file=sys.stderr)
        return 1
    if not candles:
        print("오류: 백테스트할 캔들이 없습니다.", file=sys.stderr)
        return 1

    # 전략 생성 (CLI 파라미터 오버라이드 반영)
    strategy_name = args.strategy or config.strategy.name
    strategy_params = {"symbol": config.backtest.symbol, **config.strategy.params}
    for p in args.param:
        key, value = parse_param(p)
        strategy_params[key] = value
    try:
        strategy = create_strategy(strategy_name, params=strategy_params)
    except ConfigError as e:
        print(f"전략 생성 실패: {e}", file=sys.stderr)
        return 1

    try:
        store = create_store(config)
    except PersistenceError as e:
        print(f"상태 저장소 초기화 실패: {e}", file=sys.stderr)
        return 1

    broker = PaperBroker(
        initial_balance=config.broker.initial_balance,
        taker_fee=config.broker.taker_fee,
        maker_fee=config.broker.maker_fee,
        slippage_bps=config.broker.slippage_bps,
    )
    engine = BacktestEngine(
        broker=broker,
        strategy=strategy,
        store=store,
        symbol=config.backtest.symbol,
        checkpoint_interval=config.backtest.checkpoint_interval,
        persist_timeout=config.backtest.persist_timeout,
    )
    if not args.fresh:
        engine.load_state()

    # Ctrl-C → 다음 캔들 경계에서 중단
    cancel_event = threading.Event()
    previous_handler = signal.signal(signal.SIGINT, lambda *_: cancel_event.set())

    print(f"\n전략: {strategy_name} {strategy.params}")
    try:
        result = engine.run(candles, cancel_event=cancel_event)
    finally:
        signal.signal(signal.SIGINT, previous_handler)

    if isinstance(store, SqliteStore):
        store.close()

    print(f"\n{result.summary()}")
    if result.metrics is not None:
        print(result.metrics.summary())

    if result.account is not None and result.account.trade_history:
        print("\n최근 청산 거래 (최대 5건):")
        for t in result.account.trade_history[-5:]:
            print(
                f"  [{t.closed_at}] {t.symbol} {t.quantity:.6f} "
                f"@ {t.entry_price:,.2f} -> {t.exit_price:,.2f} net={t.net_pnl:+,.2f}"
            )

    return 0 if result.status != RunStatus.FAILED else 2


if __name__ == "__main__":
    sys.exit(main())
