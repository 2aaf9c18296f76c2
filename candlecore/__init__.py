"""
=============================================================================
캔들 기반 페이퍼 트레이딩 / 백테스트 시스템 (candlecore)
=============================================================================

[ 시스템 전체 구조 ]

    run_backtest.py (진입점)
         │
         ├── utils/config.py        ← config.yaml + CANDLECORE_* 환경변수
         ├── utils/logger.py        ← 로깅
         │
         ├── data/market_data.py    ← 캔들 로드 (CSV / 샘플 생성)
         ├── strategies/            ← 매매 전략 (시그널 생성)
         │     ├── simple_ma.py
         │     └── rsi_strategy.py
         │
         └── backtest/engine.py     ← 캔들 루프 실행 엔진
               │
               ├── brokers/paper_broker.py  ← 원장: 체결/잔고/포지션 (락으로 보호)
               │     └── data/portfolio.py  ← 포지션/거래기록 상태
               ├── stores/                  ← 체크포인트 저장 (JSON 파일 / SQLite)
               └── backtest/metrics.py      ← 성과 지표 계산


[ 핵심 추상 클래스 (core/) - 모든 구현체의 부모 ]

    core/broker_api.py       → brokers/paper_broker.py::PaperBroker
    core/data_provider.py    → data/market_data.py::DataFrameCandleProvider
    core/trading_strategy.py → strategies/*.py
    core/state_store.py      → stores/file_store.py, stores/sqlite_store.py
    core/errors.py           ← 예외 계층 (복구 가능 / 실행 중단 구분)


[ 데이터 흐름 (캔들 1개) ]

    1. 엔진이 캔들 종가를 PaperBroker 시세로 반영 (미실현 손익 갱신)
    2. PaperBroker.get_account()로 계좌 스냅샷(복사본) 조회
    3. TradingStrategy.on_candle(candle, account) → Signal(매수/매도/홀드)
    4. 엔진이 Signal을 시장가 주문 0~1건으로 변환하여 PaperBroker에 제출
    5. PaperBroker가 쓰기 락 안에서 잔고/포지션/거래기록을 한 번에 갱신
    6. N개 캔들마다, 그리고 마지막에 StateStore가 상태 저장
"""

__version__ = "0.1.0"
