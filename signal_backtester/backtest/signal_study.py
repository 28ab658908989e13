"""
시그널 이벤트 스터디 모듈.

[ 역할 ]
    포트폴리오 제약 없이 "시그널이 발동한 시점 이후 주가가 어떻게 움직였나"를 측정.
    임계값을 넘은 (날짜, 종목)마다 1/5/20거래일 후 수익률을 계산한다.
    20거래일 뒤 가격이 없는 이벤트는 제외.

[ 통계 ]
    평균 수익률·승률 (1/5/20일), 5일 수익률 샤프, 5일 수익률 복리 누적 MDD,
    이벤트 수, 시그널 평균/중앙값, 5일 수익률 누적 곡선

[ 호출하는 곳 ]
    - run_backtest.py --study
"""

import logging
from dataclasses import dataclass, field
from datetime import date, timedelta
from typing import Any

import numpy as np
import pandas as pd

from signal_backtester.core.errors import NoSignalEventsError
from signal_backtester.core.feeds import PriceFeed, SignalFeed
from signal_backtester.core.signal_spec import Scope, SignalSpec
from signal_backtester.data.reference import PORTFOLIO_TICKER

logger = logging.getLogger("signal_backtester.backtest")

HORIZONS = (1, 5, 20)


@dataclass(frozen=True)
class SignalEvent:
    date: date
    ticker: str
    signal_value: float
    return_1d: float   # 소수 (0.01 = 1%)
    return_5d: float
    return_20d: float

    def to_dict(self) -> dict[str, Any]:
        return {
            "date": self.date.isoformat(),
            "ticker": self.ticker,
            "signalValue": self.signal_value,
            "return1d": self.return_1d * 100,
            "return5d": self.return_5d * 100,
            "return20d": self.return_20d * 100,
        }


@dataclass
class SignalStudyResult:
    signal_name: str
    threshold: float
    stats: dict[str, float] = field(default_factory=dict)
    events: list[SignalEvent] = field(default_factory=list)
    equity_curve: list[dict[str, Any]] = field(default_factory=list)

    def to_dict(self, limit: int = 100) -> dict[str, Any]:
        """응답 크기 제한을 위해 이벤트/곡선은 앞에서 limit개만."""
        return {
            "signalName": self.signal_name,
            "threshold": self.threshold,
            "stats": self.stats,
            "forwardReturns": [e.to_dict() for e in self.events[:limit]],
            "equityCurve": self.equity_curve[:limit],
        }


def forward_returns(closes: list[float], index: int) -> tuple[float, float, float]:
    current = closes[index]
    return tuple((closes[index + h] - current) / current for h in HORIZONS)


def _stats(events: list[SignalEvent]) -> dict[str, float]:
    r1 = np.array([e.return_1d for e in events])
    r5 = np.array([e.return_5d for e in events])
    r20 = np.array([e.return_20d for e in events])
    values = sorted(e.signal_value for e in events)

    std5 = r5.std()
    sharpe = float(r5.mean() / std5) if std5 > 0 else 0.0

    # 5일 수익률을 이벤트 순서대로 복리 누적했을 때의 MDD
    peak = 1.0
    cumulative = 1.0
    max_dd = 0.0
    for ret in r5:
        cumulative *= 1 + ret
        peak = max(peak, cumulative)
        max_dd = max(max_dd, (peak - cumulative) / peak)

    return {
        "sharpe": sharpe,
        "avgReturn1d": float(r1.mean() * 100),
        "avgReturn5d": float(r5.mean() * 100),
        "avgReturn20d": float(r20.mean() * 100),
        "winRate1d": float((r1 > 0).mean() * 100),
        "winRate5d": float((r5 > 0).mean() * 100),
        "winRate20d": float((r20 > 0).mean() * 100),
        "maxDrawdown": max_dd * 100,
        "numTrades": len(events),
        "avgSignalValue": float(np.mean(values)),
        "medianSignalValue": float(values[len(values) // 2]),
    }


def run_signal_study(
    spec: SignalSpec,
    threshold: float,
    price_history: dict[str, pd.DataFrame],
    signals: pd.DataFrame,
) -> SignalStudyResult:
    """시그널 이벤트별 선행 수익률 계산.

    Args:
        spec: 시그널 메타데이터 (발동 규칙, 범위)
        threshold: 발동 임계값
        price_history: {ticker: DataFrame[date, close, ...]} (종료일 이후 20거래일 이상 포함)
        signals: DataFrame[date, ticker, value]

    Raises:
        NoSignalEventsError: 발동 이벤트가 하나도 없음
    """
    closes: dict[str, tuple[dict[date, int], list[float]]] = {}
    for ticker, df in price_history.items():
        df = df.copy()
        df["date"] = pd.to_datetime(df["date"]).dt.date
        df = df[df["close"].notna() & (df["close"] > 0)].sort_values("date")
        dates = list(df["date"])
        closes[ticker] = ({d: i for i, d in enumerate(dates)}, [float(c) for c in df["close"]])

    records = signals.copy()
    records["date"] = pd.to_datetime(records["date"]).dt.date
    if spec.scope is Scope.PORTFOLIO:
        # 섹터 시그널은 유니버스 전 종목에 적용
        sector = records[records["ticker"] == PORTFOLIO_TICKER]
        expanded = [sector.assign(ticker=t) for t in closes]
        records = pd.concat([records[records["ticker"] != PORTFOLIO_TICKER], *expanded])
        records = records.drop_duplicates(["date", "ticker"], keep="first")

    events: list[SignalEvent] = []
    for row in records.sort_values(["date", "ticker"]).itertuples(index=False):
        if row.ticker not in closes or not spec.fires(float(row.value), threshold):
            continue
        index_of, series = closes[row.ticker]
        idx = index_of.get(row.date)
        if idx is None or idx + max(HORIZONS) >= len(series):
            continue
        r1, r5, r20 = forward_returns(series, idx)
        events.append(SignalEvent(row.date, row.ticker, float(row.value), r1, r5, r20))

    if not events:
        raise NoSignalEventsError(
            "No trades found with given threshold", signal_name=spec.name, threshold=threshold
        )

    curve = []
    cumulative = 0.0
    for event in events:
        cumulative += event.return_5d * 100
        curve.append({"date": event.date.isoformat(), "cumulativeReturn": cumulative})

    result = SignalStudyResult(spec.name, threshold, _stats(events), events, curve)
    logger.info(
        f"시그널 스터디 완료: {spec.name} {len(events)}건, 샤프 {result.stats['sharpe']:.2f}"
    )
    return result


def study_from_feeds(
    spec: SignalSpec,
    threshold: float,
    price_feed: PriceFeed,
    signal_feed: SignalFeed,
    tickers: list[str],
    start_date: date,
    end_date: date,
) -> SignalStudyResult:
    """피드에서 이력을 읽어 스터디 실행. 선행 수익률용으로 종료일 뒤 40일까지 가격 조회."""
    price_end = end_date + timedelta(days=40)
    history = {}
    for ticker in tickers:
        df = price_feed.get_prices(ticker, start_date, price_end)
        if not df.empty:
            history[ticker] = df
    signals = signal_feed.get_signals(spec.name, start_date, end_date)
    return run_signal_study(spec, threshold, history, signals)
