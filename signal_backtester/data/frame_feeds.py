"""
DataFrame 기반 가격/시그널 제공자.

[ 역할 ]
    미리 로드된 DataFrame에서 가격과 시그널을 제공. 테스트, 샘플 데이터 실행용.
    ComputedSignalFeed는 PriceFeed의 이력으로 시그널을 인프로세스 계산한다
    (다른 계산 함수를 네트워크 너머로 호출하지 않는다).

[ 호출하는 곳 ]
    - run_backtest.py (--source sample, --signal-source computed)
    - tests/ 전반
"""

import logging
from datetime import date, timedelta
from typing import Optional

import pandas as pd

from signal_backtester.core.feeds import PRICE_COLUMNS, SIGNAL_COLUMNS, PriceFeed, SignalFeed
from signal_backtester.data.reference import ReferenceData
from signal_backtester.signals import compute_signal

logger = logging.getLogger("signal_backtester.data")


def _normalize_dates(df: pd.DataFrame) -> pd.DataFrame:
    df = df.copy()
    if "date" in df.columns:
        df["date"] = pd.to_datetime(df["date"]).dt.date
    return df


class FramePriceFeed(PriceFeed):
    """DataFrame 기반 가격 제공자.

    사용법:
        feed = FramePriceFeed()
        feed.load_data("DNB.OL", dnb_df)   # columns: date, close, (volume)
        df = feed.get_prices("DNB.OL", start, end)
    """

    def __init__(self, data: Optional[dict[str, pd.DataFrame]] = None):
        self._data: dict[str, pd.DataFrame] = {}
        for ticker, df in (data or {}).items():
            self.load_data(ticker, df)

    def load_data(self, ticker: str, df: pd.DataFrame) -> None:
        df = _normalize_dates(df)
        if "volume" not in df.columns:
            df["volume"] = 0
        self._data[ticker] = df[PRICE_COLUMNS].sort_values("date").reset_index(drop=True)

    def get_prices(self, ticker: str, start_date: date, end_date: date) -> pd.DataFrame:
        if ticker not in self._data:
            return pd.DataFrame(columns=PRICE_COLUMNS)
        df = self._data[ticker]
        mask = (df["date"] >= start_date) & (df["date"] <= end_date)
        return df[mask].copy().reset_index(drop=True)

    def get_tickers(self) -> list[str]:
        return list(self._data.keys())


class FrameSignalFeed(SignalFeed):
    """DataFrame 기반 시그널 제공자. {signal_name: DataFrame[date, ticker, value]}."""

    def __init__(self, data: Optional[dict[str, pd.DataFrame]] = None):
        self._data: dict[str, pd.DataFrame] = {}
        for name, df in (data or {}).items():
            self.load_signal(name, df)

    def load_signal(self, signal_name: str, df: pd.DataFrame) -> None:
        df = _normalize_dates(df)
        self._data[signal_name] = df[SIGNAL_COLUMNS].sort_values(["date", "ticker"]).reset_index(drop=True)

    def get_signals(self, signal_name: str, start_date: date, end_date: date) -> pd.DataFrame:
        if signal_name not in self._data:
            return pd.DataFrame(columns=SIGNAL_COLUMNS)
        df = self._data[signal_name]
        mask = (df["date"] >= start_date) & (df["date"] <= end_date)
        return df[mask].copy().reset_index(drop=True)


class ComputedSignalFeed(SignalFeed):
    """PriceFeed 이력으로 시그널을 직접 계산하는 제공자.

    롤링 윈도우를 채우기 위해 start_date보다 warmup_days(달력일) 앞부터 가격을 읽는다.
    """

    def __init__(
        self,
        price_feed: PriceFeed,
        reference: ReferenceData,
        warmup_days: int = 60,
    ):
        self.price_feed = price_feed
        self.reference = reference
        self.warmup_days = warmup_days

    def get_signals(self, signal_name: str, start_date: date, end_date: date) -> pd.DataFrame:
        fetch_start = start_date - timedelta(days=self.warmup_days)
        history: dict[str, pd.DataFrame] = {}
        for ticker in self.reference.tickers:
            df = self.price_feed.get_prices(ticker, fetch_start, end_date)
            if not df.empty:
                history[ticker] = df

        values = compute_signal(signal_name, history, self.reference)
        mask = (values["date"] >= start_date) & (values["date"] <= end_date)
        values = values[mask].reset_index(drop=True)
        logger.debug(f"{signal_name} 계산: {len(values)}건 ({start_date} ~ {end_date})")
        return values
