"""
공용 테스트 픽스처.

거래일 캘린더, 작은 MarketSnapshot, DataFrame 피드를 만드는 헬퍼 제공.
"""

from datetime import date

import numpy as np
import pandas as pd
import pytest

from signal_backtester.backtest.engine import BacktestEngine, BacktestRequest
from signal_backtester.data.frame_feeds import FramePriceFeed, FrameSignalFeed
from signal_backtester.data.market_data import MarketSnapshot

SEED = 42


def trading_days(n: int, start: str = "2024-01-01") -> list[date]:
    """월~금 거래일 n개."""
    return [d.date() for d in pd.bdate_range(start=start, periods=n)]


def make_snapshot(
    days: list[date],
    prices: dict[str, list[float | None]],
    signals: dict[tuple[int, str], float] | None = None,
    volatility: dict[str, float] | None = None,
) -> MarketSnapshot:
    """테스트용 스냅샷.

    Args:
        days: 거래일 목록
        prices: {ticker: 날짜별 종가} (None은 가격 없음)
        signals: {(거래일 인덱스, ticker): 값}
        volatility: {ticker: 모든 날짜에 같은 변동성}
    """
    price_lookup: dict[date, dict[str, float]] = {}
    for ticker, series in prices.items():
        for day, value in zip(days, series):
            if value is not None:
                price_lookup.setdefault(day, {})[ticker] = float(value)

    signal_lookup: dict[date, dict[str, float]] = {}
    for (index, ticker), value in (signals or {}).items():
        signal_lookup.setdefault(days[index], {})[ticker] = float(value)

    vol_lookup: dict[date, dict[str, float]] = {}
    for ticker, value in (volatility or {}).items():
        for day in days:
            vol_lookup.setdefault(day, {})[ticker] = value

    return MarketSnapshot(
        calendar=[d for d in days if d in price_lookup],
        prices=price_lookup,
        signals=signal_lookup,
        volatility=vol_lookup,
        tickers=list(prices),
    )


def make_request(days: list[date], **overrides) -> BacktestRequest:
    params = dict(
        signal_name="abnormal_volume",
        threshold=2.0,
        start_date=days[0],
        end_date=days[-1],
        initial_capital=100_000,
        max_positions=1,
        holding_period=5,
    )
    params.update(overrides)
    return BacktestRequest(**params)


def random_walk(n: int, start: float = 100.0, seed: int = SEED) -> list[float]:
    rng = np.random.default_rng(seed)
    return list(np.round(start * np.cumprod(1 + rng.normal(0, 0.02, n)), 2))


@pytest.fixture()
def days():
    """10 거래일 (2024-01-01 ~ 2024-01-12)."""
    return trading_days(10)


@pytest.fixture()
def engine():
    return BacktestEngine()


@pytest.fixture()
def price_history():
    """5종목 80거래일 종가/거래량 (결정적)."""
    calendar = trading_days(80, start="2024-01-01")
    rng = np.random.default_rng(SEED)
    history = {}
    for i, ticker in enumerate(["AAA.OL", "BBB.OL", "CCC.OL", "DDD.OL", "EEE.OL"]):
        closes = random_walk(len(calendar), start=50 + 10 * i, seed=SEED + i)
        volume = rng.lognormal(10, 0.3, len(calendar)).astype("int64")
        history[ticker] = pd.DataFrame({"date": calendar, "close": closes, "volume": volume})
    return history


@pytest.fixture()
def price_feed(price_history):
    return FramePriceFeed(price_history)


@pytest.fixture()
def signal_frame(price_history):
    """AAA.OL만 10, 30번째 거래일에 3.0으로 발동하는 시그널."""
    calendar = list(price_history["AAA.OL"]["date"])
    rows = []
    for day in calendar:
        for ticker in price_history:
            value = 3.0 if ticker == "AAA.OL" and day in (calendar[10], calendar[30]) else 0.5
            rows.append({"date": day, "ticker": ticker, "value": value})
    return pd.DataFrame(rows)


@pytest.fixture()
def signal_feed(signal_frame):
    return FrameSignalFeed({"abnormal_volume": signal_frame})
