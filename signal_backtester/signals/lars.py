"""
LARS (Liquidity-Adjusted Return Skew) 시그널.

[ 계산 ]
    lars (PORTFOLIO 가상 티커, 섹터 전체 시그널):
        1. 종목별 일간 수익률과 정규화 회전율 (회전율 / 30일 이동평균, 초반은 있는 만큼만 평균)
        2. 날짜별 횡단면 (종목 3개 미만인 날은 제외)
        3. LARS = 수익률 왜도 / 평균 정규화 회전율 (평균 회전율 0이면 0)

    lars_rank (종목별):
        1. 정규화 회전율 = 회전율 / 20일 이동평균 (20일치가 쌓이기 전은 제외)
        2. 날짜별 백분위 순위 0~100 (자기보다 작은 종목 비율, 종목 5개 미만인 날은 제외)

    회전율 = 거래량 / 발행주식수 (ReferenceData)
"""

import numpy as np
import pandas as pd

from signal_backtester.core.signal_spec import Direction, Scope, SignalSpec
from signal_backtester.data.reference import PORTFOLIO_TICKER, ReferenceData
from signal_backtester.signals import register_computation, register_spec
from signal_backtester.signals._frames import to_long, to_wide

LARS_TURNOVER_WINDOW = 30
LARS_MIN_CROSS_SECTION = 3

RANK_TURNOVER_WINDOW = 20
RANK_MIN_CROSS_SECTION = 5

register_spec(SignalSpec(
    "lars_rank", Direction.ABOVE, Scope.TICKER,
    "Per-bank percentile rank of normalized turnover",
    "Percentile threshold (80 = top quintile of turnover)",
))


def skewness(values: np.ndarray) -> float:
    """모집단 왜도. 표준편차 0이면 0."""
    std = values.std()
    if std == 0:
        return 0.0
    return float((((values - values.mean()) / std) ** 3).mean())


def _return_and_turnover(df: pd.DataFrame, shares: float) -> pd.DataFrame:
    """종목 하나의 [date, ret, turnover]. 첫 행은 직전 종가가 없어 제외."""
    frame = df[["date", "close", "volume"]].copy()
    frame["date"] = pd.to_datetime(frame["date"]).dt.date
    frame = frame.drop_duplicates("date", keep="last").sort_values("date").reset_index(drop=True)

    close = frame["close"].astype(float)
    previous = close.shift(1).replace(0.0, np.nan)
    frame["ret"] = (close / previous - 1).fillna(0.0)

    turnover = frame["volume"].astype(float) / shares
    moving_average = turnover.rolling(LARS_TURNOVER_WINDOW, min_periods=1).mean()
    frame["turnover"] = (turnover / moving_average.replace(0.0, np.nan)).fillna(0.0)
    return frame.iloc[1:][["date", "ret", "turnover"]]


@register_computation("lars")
def lars(history: dict[str, pd.DataFrame], reference: ReferenceData) -> pd.DataFrame:
    parts = [
        _return_and_turnover(df, float(reference.shares_outstanding(ticker)))
        for ticker, df in history.items()
        if df is not None and len(df) > 1
    ]
    if not parts:
        return pd.DataFrame(columns=["date", "ticker", "value"])

    rows = []
    for day, group in pd.concat(parts, ignore_index=True).groupby("date", sort=True):
        if len(group) < LARS_MIN_CROSS_SECTION:
            continue
        avg_turnover = group["turnover"].mean()
        skew = skewness(group["ret"].to_numpy())
        value = 0.0 if avg_turnover == 0 else skew / avg_turnover
        rows.append({"date": day, "ticker": PORTFOLIO_TICKER, "value": value})
    return pd.DataFrame(rows, columns=["date", "ticker", "value"])


def normalized_turnover(history: dict[str, pd.DataFrame], reference: ReferenceData) -> pd.DataFrame:
    """lars_rank용 정규화 회전율 wide 프레임. 20일치가 쌓이기 전은 NaN."""
    volume = to_wide(history, "volume")
    if volume.empty:
        return volume
    shares = pd.Series({t: float(reference.shares_outstanding(t)) for t in volume.columns})
    turnover = volume.div(shares, axis="columns")
    moving_average = turnover.rolling(RANK_TURNOVER_WINDOW, min_periods=RANK_TURNOVER_WINDOW).mean()
    return turnover / moving_average.replace(0.0, np.nan)


@register_computation("lars_rank")
def lars_rank(history: dict[str, pd.DataFrame], reference: ReferenceData) -> pd.DataFrame:
    turnover = normalized_turnover(history, reference)
    if turnover.empty:
        return to_long(turnover)
    counts = turnover.notna().sum(axis=1)
    # rank(method="min") - 1 == 자기보다 작은 값의 개수
    below = turnover.rank(axis=1, method="min") - 1
    percentile = below.div(counts, axis="index") * 100
    percentile = percentile[counts >= RANK_MIN_CROSS_SECTION]
    return to_long(percentile)
