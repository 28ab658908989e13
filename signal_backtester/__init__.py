"""
=============================================================================
시그널 기반 포트폴리오 백테스터 (Signal Backtester)
=============================================================================

[ 시스템 전체 구조 ]

    run_backtest.py (진입점)
         │
         ├── utils/config.py        ← config.yaml 설정 로드
         ├── utils/logger.py        ← 로깅
         │
         ├── signals/               ← 시그널 메타데이터 + 인프로세스 계산
         │     ├── abnormal_volume.py
         │     ├── volume_anomaly.py
         │     └── lars.py
         │
         ├── data/market_data.py    ← 가격/시그널 병렬 로드 → MarketSnapshot
         │
         └── backtest/engine.py     ← 시뮬레이션 루프
               │
               ├── backtest/sizing.py   ← 포지션 사이징 (equal / signal_weighted / volatility)
               ├── data/portfolio.py    ← 현금/포지션/거래기록 관리
               └── backtest/metrics.py  ← 성과 지표 계산


[ 핵심 추상 클래스 (core/) - 모든 구현체의 부모 ]

    core/feeds.py::PriceFeed   → data/frame_feeds.py::FramePriceFeed (샘플/테스트)
                               → data/clickhouse_provider.py::ClickHousePriceFeed

    core/feeds.py::SignalFeed  → data/frame_feeds.py::FrameSignalFeed (테스트)
                               → data/frame_feeds.py::ComputedSignalFeed (가격으로 직접 계산)
                               → data/clickhouse_provider.py::ClickHouseSignalFeed (signal_history)

    backtest/sizing.py::AllocationStrategy → Equal / SignalWeighted / VolatilityAdjusted


[ 데이터 흐름 ]

    1. config.yaml에서 유니버스, 백테스트 파라미터 로드
    2. MarketDataLoader가 종목별 가격을 병렬 조회하고 시그널 이력과 합쳐 MarketSnapshot 생성
    3. BacktestEngine이 거래일마다 청산 → 후보 선정 → 매수 → 자산 스냅샷
    4. metrics.py가 자산 곡선과 거래 기록으로 성과 지표 계산
    5. BacktestResult.to_dict()로 외부 응답 형식 (camelCase) 변환


[ 데이터 적재 (scripts/) ]

    scripts/ingest_data.py       → Yahoo Finance → ClickHouse stock_ohlcv
    scripts/backfill_signals.py  → 시그널 계산 → ClickHouse signal_history
"""

__version__ = "0.1.0"
