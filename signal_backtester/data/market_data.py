"""
시장 데이터 로딩 모듈.

[ 역할 ]
    루프 시작 전에 유니버스 전체의 가격/시그널을 미리 조회하여
    날짜별 조회 테이블(MarketSnapshot)로 조립.
    종목별 가격 조회는 서로 독립이므로 ThreadPoolExecutor로 병렬 실행하고,
    전부 끝난 뒤에만 스냅샷을 만든다. 시뮬레이션 루프는 I/O를 하지 않는다.

[ 조회 테이블 ] (모두 (날짜, 종목) O(1) 조회)
    calendar   - 요청 기간 내 가격이 하나라도 있는 날짜 (오름차순)
    prices     - 종가
    signals    - 시그널 값 (섹터 시그널은 ticker = PORTFOLIO)
    volatility - 직전 N거래일 일간 수익률 표준편차 (미리 롤링 계산)

[ 의존성 ]
    - core/feeds.py::PriceFeed, SignalFeed

[ 호출하는 곳 ]
    - backtest/engine.py::BacktestEngine.run()
    - backtest/signal_study.py::run_signal_study()
"""

import logging
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from datetime import date, timedelta
from typing import Optional

import numpy as np
import pandas as pd

from signal_backtester.core.errors import DataGapError
from signal_backtester.core.feeds import PRICE_COLUMNS, PriceFeed, SignalFeed
from signal_backtester.data.reference import PORTFOLIO_TICKER

logger = logging.getLogger("signal_backtester.data")


@dataclass
class MarketSnapshot:
    """백테스트 한 번에 필요한 모든 데이터의 날짜별 조회 테이블."""
    calendar: list[date] = field(default_factory=list)
    prices: dict[date, dict[str, float]] = field(default_factory=dict)
    signals: dict[date, dict[str, float]] = field(default_factory=dict)
    volatility: dict[date, dict[str, float]] = field(default_factory=dict)
    tickers: list[str] = field(default_factory=list)

    def price(self, ticker: str, on: date) -> float:
        """종가 조회.

        Raises:
            DataGapError: 해당 날짜에 가격 없음
        """
        try:
            return self.prices[on][ticker]
        except KeyError:
            raise DataGapError(ticker, on, "price") from None

    def signal(self, ticker: str, on: date) -> float:
        try:
            return self.signals[on][ticker]
        except KeyError:
            raise DataGapError(ticker, on, "signal") from None

    def trailing_volatility(self, ticker: str, on: date) -> float:
        try:
            return self.volatility[on][ticker]
        except KeyError:
            raise DataGapError(ticker, on, "volatility") from None

    def priced_tickers(self, on: date) -> dict[str, float]:
        return self.prices.get(on, {})

    def signals_on(self, on: date) -> dict[str, float]:
        return self.signals.get(on, {})

    def has_priced_signal(self, on: date) -> bool:
        """시그널 종목(또는 PORTFOLIO)과 가격이 같은 날 함께 있는지."""
        signals = self.signals.get(on)
        prices = self.prices.get(on)
        if not signals or not prices:
            return False
        if PORTFOLIO_TICKER in signals:
            return True
        return any(ticker in prices for ticker in signals)

    @property
    def signal_coverage(self) -> int:
        """캘린더 중 시그널 값이 하나라도 있는 날짜 수."""
        return sum(1 for d in self.calendar if self.signals.get(d))


def _frame_to_lookup(wide: pd.DataFrame) -> dict[date, dict[str, float]]:
    """index=date, columns=ticker wide 프레임 → {date: {ticker: value}} (NaN 제외)."""
    lookup: dict[date, dict[str, float]] = {}
    for day, row in wide.iterrows():
        values = {ticker: float(v) for ticker, v in row.items() if pd.notna(v)}
        if values:
            lookup[day] = values
    return lookup


class MarketDataLoader:
    """PriceFeed/SignalFeed 위에 병렬 조회 + 캐싱 + 스냅샷 조립을 담당.

    사용 예:
        loader = MarketDataLoader(price_feed, signal_feed, tickers, max_workers=8)
        snapshot = loader.load("abnormal_volume", start, end)
    """

    def __init__(
        self,
        price_feed: PriceFeed,
        signal_feed: SignalFeed,
        tickers: list[str],
        max_workers: int = 8,
        volatility_lookback: int = 20,
    ):
        self.price_feed = price_feed
        self.signal_feed = signal_feed
        self.tickers = list(tickers)
        self.max_workers = max(1, max_workers)
        self.volatility_lookback = volatility_lookback
        self._cache: dict[str, pd.DataFrame] = {}  # "ticker_start_end" → DataFrame

    def warmup_start(self, start_date: date) -> date:
        """변동성 롤링 윈도우를 채우기 위한 조회 시작일 (거래일 ≈ 달력일 / 2 여유)."""
        return start_date - timedelta(days=self.volatility_lookback * 2 + 10)

    def fetch_prices(self, start_date: date, end_date: date) -> dict[str, pd.DataFrame]:
        """유니버스 전체 가격을 병렬 조회. 실패한 종목은 경고 후 "데이터 없음"으로 처리."""
        results: dict[str, pd.DataFrame] = {}
        pending: list[str] = []
        for ticker in self.tickers:
            key = f"{ticker}_{start_date}_{end_date}"
            if key in self._cache:
                results[ticker] = self._cache[key]
            else:
                pending.append(ticker)

        if pending:
            with ThreadPoolExecutor(max_workers=min(self.max_workers, len(pending))) as executor:
                futures = {
                    executor.submit(self.price_feed.get_prices, ticker, start_date, end_date): ticker
                    for ticker in pending
                }
                for future in as_completed(futures):
                    ticker = futures[future]
                    try:
                        df = future.result()
                    except Exception as e:
                        logger.warning(f"{ticker} 가격 조회 실패, 데이터 없음으로 처리: {e}")
                        continue
                    self._cache[f"{ticker}_{start_date}_{end_date}"] = df
                    results[ticker] = df

        # 결과 순서를 유니버스 순서로 고정 (재현성)
        return {t: results[t] for t in self.tickers if t in results and not results[t].empty}

    def load(self, signal_name: str, start_date: date, end_date: date) -> MarketSnapshot:
        """가격 + 시그널을 조회하여 MarketSnapshot 조립."""
        history = self.fetch_prices(self.warmup_start(start_date), end_date)
        snapshot = MarketSnapshot(tickers=[t for t in self.tickers if t in history])
        if not history:
            logger.warning("가격 데이터가 있는 종목이 없습니다.")
            return snapshot

        close = self._close_frame(history)
        in_range = close[(close.index >= start_date) & (close.index <= end_date)]
        in_range = in_range.dropna(how="all")

        snapshot.calendar = list(in_range.index)
        snapshot.prices = _frame_to_lookup(in_range)
        snapshot.volatility = _frame_to_lookup(self._volatility_frame(close).reindex(in_range.index))

        try:
            signals = self.signal_feed.get_signals(signal_name, start_date, end_date)
        except Exception as e:
            logger.warning(f"{signal_name} 시그널 조회 실패, 데이터 없음으로 처리: {e}")
            signals = pd.DataFrame(columns=["date", "ticker", "value"])
        snapshot.signals = self._signal_lookup(signals)

        logger.info(
            f"데이터 로드 완료: {len(snapshot.tickers)}종목, {len(snapshot.calendar)}거래일, "
            f"시그널 {len(signals)}건"
        )
        return snapshot

    @staticmethod
    def _close_frame(history: dict[str, pd.DataFrame]) -> pd.DataFrame:
        frames = []
        for ticker, df in history.items():
            part = df[PRICE_COLUMNS].copy()
            part["date"] = pd.to_datetime(part["date"]).dt.date
            part["ticker"] = ticker
            frames.append(part)
        long = pd.concat(frames, ignore_index=True)
        long = long[long["close"].notna() & (long["close"] > 0)]
        long = long.drop_duplicates(["date", "ticker"], keep="last")
        return long.pivot(index="date", columns="ticker", values="close").sort_index().astype(float)

    def _volatility_frame(self, close: pd.DataFrame) -> pd.DataFrame:
        """종목별 일간 수익률의 롤링 표준편차. 각 종목 자신의 거래일 기준으로 계산."""
        columns = {}
        for ticker in close.columns:
            series = close[ticker].dropna()
            returns = series.pct_change()
            columns[ticker] = returns.rolling(
                self.volatility_lookback, min_periods=self.volatility_lookback
            ).std()
        vol = pd.DataFrame(columns).reindex(close.index)
        return vol.replace([np.inf, -np.inf], np.nan)

    @staticmethod
    def _signal_lookup(signals: pd.DataFrame) -> dict[date, dict[str, float]]:
        lookup: dict[date, dict[str, float]] = {}
        if signals.empty:
            return lookup
        df = signals.copy()
        df["date"] = pd.to_datetime(df["date"]).dt.date
        df = df[df["value"].notna()]
        for row in df.itertuples(index=False):
            lookup.setdefault(row.date, {})[row.ticker] = float(row.value)
        return lookup

    def clear_cache(self) -> None:
        """캐시 초기화."""
        self._cache.clear()


def load_snapshot(
    price_feed: PriceFeed,
    signal_feed: SignalFeed,
    tickers: list[str],
    signal_name: str,
    start_date: date,
    end_date: date,
    volatility_lookback: int = 20,
    max_workers: Optional[int] = None,
) -> MarketSnapshot:
    """MarketDataLoader 일회성 사용 헬퍼."""
    loader = MarketDataLoader(
        price_feed,
        signal_feed,
        tickers,
        max_workers=max_workers or 8,
        volatility_lookback=volatility_lookback,
    )
    return loader.load(signal_name, start_date, end_date)
