"""
백테스트 실행 스크립트 (시스템 진입점).

[ 사용법 ]
    # 기본 실행 (config.yaml의 backtest 섹션 사용, 샘플 데이터)
    python run_backtest.py

    # 시그널/파라미터 지정
    python run_backtest.py --signal volume_anomaly --threshold 100
    python run_backtest.py --signal lars --threshold 0.5 --sizing volatility --max-positions 3

    # ClickHouse 데이터 사용 (시그널은 가격으로 직접 계산하거나 signal_history에서 조회)
    python run_backtest.py --source clickhouse
    python run_backtest.py --source clickhouse --signal-source history

    # 사이징 방식 비교 (같은 데이터로 equal / signal_weighted / volatility)
    python run_backtest.py --signal volume_anomaly --threshold 100 --compare

    # 시그널 이벤트 스터디 (포트폴리오 제약 없이 선행 수익률)
    python run_backtest.py --study

    # JSON 응답 형식으로 출력
    python run_backtest.py --json

    # 등록된 시그널 목록 확인
    python run_backtest.py --list
"""

import argparse
import json
import sys
import zlib
from datetime import date, timedelta
from pathlib import Path
from typing import TextIO

import numpy as np
import pandas as pd

from signal_backtester.backtest.engine import BacktestEngine, BacktestRequest, BacktestResult
from signal_backtester.backtest.metrics import stats_as_dict
from signal_backtester.backtest.sizing import PositionSizing
from signal_backtester.backtest.signal_study import study_from_feeds
from signal_backtester.core.errors import BacktestError, InputValidationError
from signal_backtester.core.feeds import PriceFeed, SignalFeed
from signal_backtester.data.frame_feeds import ComputedSignalFeed, FramePriceFeed
from signal_backtester.data.market_data import MarketDataLoader
from signal_backtester.signals import COMPUTE_REGISTRY, SIGNAL_REGISTRY, get_signal_spec, list_signals
from signal_backtester.utils.config import Config
from signal_backtester.utils.logger import setup_logger

# 샘플 데이터는 롤링 윈도우 워밍업을 위해 시작일보다 앞에서부터 생성
SAMPLE_WARMUP_DAYS = 120


def generate_sample_data(
    ticker: str,
    start_date: date,
    end_date: date,
    initial_price: float = 150,
    volatility: float = 0.015,
) -> pd.DataFrame:
    """백테스트용 샘플 종가/거래량 생성. 가끔 거래량 급증일을 섞는다."""
    np.random.seed(zlib.crc32(ticker.encode()))

    dates = pd.bdate_range(start=start_date, end=end_date)
    n = len(dates)

    returns = np.random.normal(0.0003, volatility, n)
    prices = initial_price * np.cumprod(1 + returns)

    volumes = np.random.lognormal(11, 0.4, n)
    spikes = np.random.random(n) < 0.04
    volumes[spikes] *= np.random.uniform(3, 6, spikes.sum())

    return pd.DataFrame({
        "date": [d.date() for d in dates],
        "close": np.round(prices, 2),
        "volume": volumes.astype("int64"),
    })


def build_feeds(
    config: Config,
    source: str,
    signal_source: str,
    out: TextIO = sys.stdout,
) -> tuple[PriceFeed, SignalFeed] | None:
    """데이터 소스에 맞는 가격/시그널 제공자 생성."""
    start = date.fromisoformat(config.backtest.start_date)
    end = date.fromisoformat(config.backtest.end_date)
    tickers = config.universe.tickers

    if source == "sample":
        print("샘플 데이터 생성 중...", file=out)
        price_feed = FramePriceFeed()
        for i, ticker in enumerate(tickers):
            df = generate_sample_data(
                ticker=ticker,
                start_date=start - timedelta(days=SAMPLE_WARMUP_DAYS),
                end_date=end + timedelta(days=45),
                initial_price=50 + 25 * (i % 10),
            )
            price_feed.load_data(ticker, df)
        print(f"  {len(tickers)}개 종목 생성", file=out)

        if signal_source == "history":
            print("오류: --signal-source history는 --source clickhouse에서만 사용 가능합니다.", file=out)
            return None
        return price_feed, ComputedSignalFeed(price_feed, config.universe)

    elif source == "clickhouse":
        from signal_backtester.data.clickhouse_provider import ClickHousePriceFeed, ClickHouseSignalFeed

        print("ClickHouse에 연결 중...", file=out)
        price_feed = ClickHousePriceFeed(
            host=config.database.host,
            port=config.database.port,
            database=config.database.database,
            user=config.database.user,
            password=config.database.password,
            use_adjusted_close=config.database.use_adjusted_close,
        )

        available = set(price_feed.get_tickers())
        missing = [t for t in tickers if t not in available]
        for ticker in missing:
            print(f"  [SKIP] {ticker}: ClickHouse에 데이터 없음", file=out)
        if len(missing) == len(tickers):
            print("\n오류: 백테스트할 데이터가 없습니다.", file=out)
            print("  1. scripts/ingest_data.py로 데이터 수집", file=out)
            print("  2. --source sample 옵션으로 샘플 데이터 사용", file=out)
            return None

        if signal_source == "history":
            return price_feed, ClickHouseSignalFeed(price_feed.client)
        return price_feed, ComputedSignalFeed(price_feed, config.universe)

    else:
        print(f"오류: 알 수 없는 데이터 소스: {source}", file=out)
        return None


def apply_overrides(config: Config, args: argparse.Namespace) -> None:
    """CLI 인자로 config.backtest 덮어쓰기."""
    overrides = {
        "signal_name": args.signal,
        "threshold": args.threshold,
        "start_date": args.start,
        "end_date": args.end,
        "initial_capital": args.capital,
        "max_positions": args.max_positions,
        "holding_period": args.holding_period,
        "position_sizing": args.sizing,
    }
    for key, value in overrides.items():
        if value is not None:
            setattr(config.backtest, key, value)


def create_engine(config: Config) -> BacktestEngine:
    bt = config.backtest
    return BacktestEngine(
        commission_rate=bt.commission_rate,
        tax_rate=bt.tax_rate,
        slippage_rate=bt.slippage_rate,
        risk_free_rate=bt.risk_free_rate,
        max_trading_days=bt.max_trading_days,
        time_budget_seconds=bt.time_budget_seconds,
        signal_overrides=config.signals,
    )


def run_single(config: Config, loader: MarketDataLoader, request_data: dict) -> BacktestResult:
    """단일 시그널 백테스트 실행."""
    request = BacktestRequest.from_dict(request_data)
    return create_engine(config).run_backtest(request, loader)


def run_sizing_comparison(config: Config, loader: MarketDataLoader, out: TextIO = sys.stdout) -> dict[str, dict]:
    """같은 스냅샷으로 사이징 방식별 백테스트 실행. {사이징: stats_as_dict}."""
    engine = create_engine(config)
    request_data = config.backtest.to_request_dict()
    base = BacktestRequest.from_dict(request_data)
    engine.prepare(base)
    snapshot = loader.load(base.signal_name, base.start_date, base.end_date)

    results = {}
    for sizing in PositionSizing:
        print(f"--- {sizing.value} 실행 중 ---", file=out)
        request = BacktestRequest.from_dict({**request_data, "position_sizing": sizing.value})
        results[sizing.value] = stats_as_dict(engine.run(request, snapshot).metrics)
    return results


def print_single_result(result: BacktestResult):
    """단일 백테스트 결과 출력."""
    request = result.request
    print(f"\n[시그널: {request.signal_name}, threshold={request.threshold}, "
          f"사이징={request.position_sizing.value}]")
    print(result.metrics.summary())

    buys = [t for t in result.trades if not t.is_sell]
    sells = [t for t in result.trades if t.is_sell]
    print(f"\n총 거래 횟수: {len(result.trades)}")
    print(f"  매수: {len(buys)}회")
    print(f"  매도: {len(sells)}회")

    if sells:
        print("\n최근 매도 거래 (최대 5건):")
        for t in sells[-5:]:
            print(f"  [{t.date}] {t.ticker} {t.shares}주 @ {t.price:,.2f} -> {t.pnl:+,.0f} "
                  f"({t.return_pct:+.2f}%, {t.holding_days}일)")

    if result.active_positions:
        print(f"\n미청산 포지션 ({len(result.active_positions)}건):")
        for p in result.active_positions:
            print(f"  {p.ticker} {p.shares}주 (진입 {p.entry_date} @ {p.entry_price:,.2f})")


def print_comparison(results: dict[str, dict], config: Config):
    """사이징 방식별 비교 결과 출력."""
    bt = config.backtest
    title = f"{bt.signal_name}, threshold={bt.threshold}, {bt.start_date} ~ {bt.end_date}"

    names = list(results.keys())
    col_width = max(14, max(len(n) for n in names) + 2)

    print(f"\n{'=' * (20 + col_width * len(names))}")
    print(f"사이징 비교 결과 ({title})")
    print(f"{'=' * (20 + col_width * len(names))}")

    header = f"{'':>20}" + "".join(f"{n:>{col_width}}" for n in names)
    print(header)
    print("-" * len(header))

    def fmt_pf(value):
        return "-" if value is None else f"{value:.2f}"

    rows = [
        ("총 수익률", lambda s: f"{s['total_return']:.2f}%"),
        ("연환산 수익률", lambda s: f"{s['annualized_return']:.2f}%"),
        ("샤프 비율", lambda s: f"{s['sharpe_ratio']:.2f}"),
        ("최대 낙폭(MDD)", lambda s: f"{s['max_drawdown']:.2f}%"),
        ("총 거래 횟수", lambda s: f"{s['total_trades']}"),
        ("승률", lambda s: f"{s['win_rate']:.1f}%"),
        ("수익 팩터", lambda s: fmt_pf(s["profit_factor"])),
        ("평균 거래 규모", lambda s: f"{s['avg_trade_size']:,.0f}"),
    ]

    for label, fmt in rows:
        row = f"{label:>20}" + "".join(f"{fmt(results[n]):>{col_width}}" for n in names)
        print(row)

    print(f"{'=' * (20 + col_width * len(names))}")


def report_error(error: BacktestError, as_json: bool) -> int:
    if as_json:
        print(json.dumps(error.to_dict(), ensure_ascii=False, indent=2, default=str))
    else:
        print(f"\n오류 [{type(error).__name__}]: {error.message}")
    return 1


def main() -> int:
    parser = argparse.ArgumentParser(description="시그널 기반 포트폴리오 백테스트 실행")
    parser.add_argument("--config", type=str, default="config.yaml", help="설정 파일 경로")
    parser.add_argument("--signal", type=str, default=None, help="시그널 이름 (config.yaml 대신 지정)")
    parser.add_argument("--threshold", type=float, default=None, help="시그널 발동 임계값")
    parser.add_argument("--start", type=str, default=None, help="시작일 (YYYY-MM-DD)")
    parser.add_argument("--end", type=str, default=None, help="종료일 (YYYY-MM-DD)")
    parser.add_argument("--capital", type=float, default=None, help="초기 자금")
    parser.add_argument("--max-positions", type=int, default=None, help="최대 동시 보유 종목 수")
    parser.add_argument("--holding-period", type=int, default=None, help="보유기간 (거래일)")
    parser.add_argument("--sizing", type=str, default=None,
                        choices=["equal", "signal_weighted", "volatility"], help="포지션 사이징 방식")
    parser.add_argument("--source", type=str, default="sample", choices=["sample", "clickhouse"], help="데이터 소스")
    parser.add_argument("--signal-source", type=str, default="computed", choices=["computed", "history"],
                        help="시그널 소스 (computed: 가격으로 직접 계산, history: signal_history 테이블)")
    parser.add_argument("--compare", action="store_true",
                        help="포지션 사이징 방식 비교 (equal / signal_weighted / volatility)")
    parser.add_argument("--study", action="store_true", help="시그널 이벤트 스터디 실행")
    parser.add_argument("--json", action="store_true", help="결과를 JSON으로 출력")
    parser.add_argument("--list", action="store_true", help="등록된 시그널 목록 출력")
    args = parser.parse_args()

    # 시그널 목록 출력
    if args.list:
        print("등록된 시그널:")
        for name in list_signals():
            spec = SIGNAL_REGISTRY[name]
            computed = "계산 가능" if name in COMPUTE_REGISTRY else "이력 전용"
            print(f"  - {name:<16} {spec.direction.value:<9} {spec.scope.value:<10} [{computed}] {spec.description}")
        return 0

    # --json이면 상태 메시지는 stderr
    out = sys.stderr if args.json else sys.stdout

    # 설정 로드
    config_path = Path(args.config)
    if config_path.exists():
        config = Config.from_yaml(config_path)
    else:
        print(f"설정 파일 없음: {config_path}, 기본값 사용", file=out)
        config = Config()
    apply_overrides(config, args)

    # 로거
    setup_logger(
        level=config.log_level,
        log_dir=config.log_dir,
        stream=out,
    )

    try:
        date.fromisoformat(config.backtest.start_date)
        date.fromisoformat(config.backtest.end_date)
    except ValueError as e:
        return report_error(InputValidationError(f"날짜 형식 오류: {e}"), args.json)

    feeds = build_feeds(config, args.source, args.signal_source, out)
    if feeds is None:
        return 1
    price_feed, signal_feed = feeds

    try:
        # ─── 시그널 스터디 ─────────────────────────────────────────────────
        if args.study:
            bt = config.backtest
            spec = get_signal_spec(bt.signal_name, config.signals)
            if not bt.threshold > 0:
                raise InputValidationError(f"threshold은(는) 양수여야 합니다: {bt.threshold}", field="threshold")
            study = study_from_feeds(
                spec,
                bt.threshold,
                price_feed,
                signal_feed,
                config.universe.tickers,
                date.fromisoformat(bt.start_date),
                date.fromisoformat(bt.end_date),
            )
            if args.json:
                print(json.dumps(study.to_dict(), ensure_ascii=False, indent=2, default=str))
            else:
                print(f"\n[시그널 스터디: {study.signal_name}, threshold={study.threshold}]")
                for key, value in study.stats.items():
                    print(f"  {key:<20} {value:>12,.2f}")
            return 0

        loader = MarketDataLoader(
            price_feed,
            signal_feed,
            config.universe.tickers,
            max_workers=config.data_ingestion.max_workers,
            volatility_lookback=config.backtest.volatility_lookback,
        )

        # ─── 사이징 비교 모드 ─────────────────────────────────────────────
        if args.compare:
            results = run_sizing_comparison(config, loader, out)
            if args.json:
                print(json.dumps(results, ensure_ascii=False, indent=2, default=str))
            else:
                print_comparison(results, config)
            return 0

        # ─── 단일 실행 모드 ─────────────────────────────────────────────
        result = run_single(config, loader, config.backtest.to_request_dict())
        if args.json:
            print(json.dumps(result.to_dict(), ensure_ascii=False, indent=2))
        else:
            print_single_result(result)
        return 0

    except BacktestError as e:
        return report_error(e, args.json)


if __name__ == "__main__":
    sys.exit(main())
