"""
백테스트 성과 분석 모듈.

[ 역할 ]
    백테스트 결과(거래기록 + 일별 자산가치 곡선)를 받아 성과 지표를 계산.
    analyze() 함수가 핵심. 실행이 끝난 뒤 한 번만 호출된다.

[ 계산하는 지표 ]
    stats
        - 총 수익률 / 연환산 수익률 (252거래일 기준)
        - 샤프 비율 (일간 수익률 평균 / 표준편차 × √252)
        - MDD (최대 낙폭)
    trade_metrics (매도 거래 = 실현된 왕복 거래만)
        - 거래 수, 승률, 수익 팩터, 평균 거래 규모, 최고/최저 거래
        - 평균 수익/손실, 평균 보유일, 연속 승/패

[ 퇴화 케이스 ]
    표준편차 0 → 샤프 0, 손실 거래 없음 → 수익 팩터 None.
    응답에 NaN/Infinity가 나가지 않도록 모든 값은 유한값 또는 None.

[ 호출하는 곳 ]
    - backtest/engine.py::BacktestEngine.run() 완료 시 호출
"""

import math
from dataclasses import asdict, dataclass, field
from datetime import date
from typing import Any, Optional

import numpy as np

from signal_backtester.data.portfolio import Trade

TRADING_DAYS_PER_YEAR = 252


@dataclass(frozen=True)
class EquityPoint:
    """하루치 자산가치 스냅샷."""
    date: date
    portfolio_value: float
    num_positions: int
    cash: float = 0.0

    def to_dict(self) -> dict[str, Any]:
        return {
            "date": self.date.isoformat(),
            "portfolioValue": self.portfolio_value,
            "numPositions": self.num_positions,
        }


@dataclass
class PortfolioStats:
    initial_capital: float = 0.0
    final_value: float = 0.0
    total_return: float = 0.0         # 총 수익률 (%)
    annualized_return: float = 0.0    # 연환산 수익률 (%)
    sharpe_ratio: float = 0.0         # 샤프 비율 (1 이상 양호)
    max_drawdown: float = 0.0         # 최대 낙폭 MDD (%)

    def to_dict(self) -> dict[str, Any]:
        return {
            "initialCapital": self.initial_capital,
            "finalValue": self.final_value,
            "totalReturn": self.total_return,
            "annualizedReturn": self.annualized_return,
            "sharpeRatio": self.sharpe_ratio,
            "maxDrawdown": self.max_drawdown,
        }


@dataclass
class TradeMetrics:
    total_trades: int = 0             # 매도 거래 수
    win_rate: float = 0.0             # 승률 (%)
    profit_factor: Optional[float] = 0.0   # 총이익 / 총손실. 손실 없으면 None
    avg_trade_size: float = 0.0       # 거래 금액(value) 평균
    best_trade: Optional[Trade] = None
    worst_trade: Optional[Trade] = None
    winning_trades: int = 0
    losing_trades: int = 0
    avg_profit: float = 0.0           # 수익 거래 평균 이익
    avg_loss: float = 0.0             # 손실 거래 평균 손실
    avg_holding_days: float = 0.0
    max_consecutive_wins: int = 0
    max_consecutive_losses: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "totalTrades": self.total_trades,
            "winRate": self.win_rate,
            "profitFactor": self.profit_factor,
            "avgTradeSize": self.avg_trade_size,
            "bestTrade": self.best_trade.to_dict() if self.best_trade else None,
            "worstTrade": self.worst_trade.to_dict() if self.worst_trade else None,
            "winningTrades": self.winning_trades,
            "losingTrades": self.losing_trades,
            "avgProfit": self.avg_profit,
            "avgLoss": self.avg_loss,
            "avgHoldingDays": self.avg_holding_days,
            "maxConsecutiveWins": self.max_consecutive_wins,
            "maxConsecutiveLosses": self.max_consecutive_losses,
        }


@dataclass
class BacktestMetrics:
    """백테스트 성과 지표. summary()로 포맷된 리포트 출력 가능."""
    stats: PortfolioStats = field(default_factory=PortfolioStats)
    trade_metrics: TradeMetrics = field(default_factory=TradeMetrics)

    def to_dict(self) -> dict[str, Any]:
        return {"stats": self.stats.to_dict(), "tradeMetrics": self.trade_metrics.to_dict()}

    def summary(self) -> str:
        """성과 요약 문자열."""
        s, t = self.stats, self.trade_metrics
        profit_factor = "-" if t.profit_factor is None else f"{t.profit_factor:.2f}"
        lines = [
            "=" * 50,
            "백테스트 성과 리포트",
            "=" * 50,
            f"초기 자금:       {s.initial_capital:>14,.0f}",
            f"최종 자산:       {s.final_value:>14,.0f}",
            f"총 수익률:       {s.total_return:>13.2f}%",
            f"연환산 수익률:    {s.annualized_return:>13.2f}%",
            f"샤프 비율:       {s.sharpe_ratio:>14.2f}",
            f"최대 낙폭(MDD):  {s.max_drawdown:>13.2f}%",
            "-" * 50,
            f"총 거래 횟수:    {t.total_trades:>14d}",
            f"승률:            {t.win_rate:>13.2f}%",
            f"수익 거래:       {t.winning_trades:>14d}",
            f"손실 거래:       {t.losing_trades:>14d}",
            f"평균 수익:       {t.avg_profit:>14,.0f}",
            f"평균 손실:       {t.avg_loss:>14,.0f}",
            f"수익 팩터:       {profit_factor:>14}",
            f"평균 거래 규모:  {t.avg_trade_size:>14,.0f}",
            f"평균 보유일:     {t.avg_holding_days:>14.1f}",
            "-" * 50,
            f"최대 연속 수익:  {t.max_consecutive_wins:>14d}",
            f"최대 연속 손실:  {t.max_consecutive_losses:>14d}",
            "=" * 50,
        ]
        return "\n".join(lines)


def _finite(value: float, default: float = 0.0) -> float:
    value = float(value)
    return value if math.isfinite(value) else default


def daily_returns(values: list[float]) -> np.ndarray:
    """일간 수익률 (전일 대비 변화율). 전일 값이 0 이하인 구간은 제외."""
    returns = [
        (values[i] - values[i - 1]) / values[i - 1]
        for i in range(1, len(values))
        if values[i - 1] > 0
    ]
    return np.array(returns, dtype=float)


def sharpe_ratio(values: list[float], risk_free_rate: float = 0.0) -> float:
    """연환산 샤프 비율. 표준편차가 0이면 0."""
    returns = daily_returns(values)
    if returns.size == 0:
        return 0.0
    excess = returns - risk_free_rate / TRADING_DAYS_PER_YEAR
    std = np.std(excess)
    if std <= 1e-12:
        return 0.0
    return _finite(np.mean(excess) / std * np.sqrt(TRADING_DAYS_PER_YEAR))


def max_drawdown(values: list[float]) -> float:
    """고점 대비 최대 하락폭 (%)."""
    if not values:
        return 0.0
    peak = values[0]
    max_dd = 0.0
    for value in values:
        if value > peak:
            peak = value
        if peak > 0:
            max_dd = max(max_dd, (peak - value) / peak * 100)
    return max_dd


def annualized_return(final_value: float, initial_capital: float, elapsed_days: int) -> float:
    """(최종/초기)^(252/거래일) - 1 (%)."""
    if elapsed_days <= 0 or initial_capital <= 0:
        return 0.0
    ratio = final_value / initial_capital
    if ratio <= 0:
        return -100.0
    return _finite((ratio ** (TRADING_DAYS_PER_YEAR / elapsed_days) - 1) * 100)


def trade_metrics(trades: list[Trade]) -> TradeMetrics:
    """거래 기반 지표. 수익 실현은 매도 시에만 발생하므로 매도 거래만 분석."""
    metrics = TradeMetrics()
    if trades:
        metrics.avg_trade_size = sum(t.value for t in trades) / len(trades)

    sells = [t for t in trades if t.is_sell]
    metrics.total_trades = len(sells)
    if not sells:
        return metrics

    profits = [t.pnl or 0.0 for t in sells]
    winners = [p for p in profits if p > 0]
    losers = [p for p in profits if p <= 0]

    metrics.winning_trades = len(winners)
    metrics.losing_trades = len(losers)
    metrics.win_rate = len(winners) / len(sells) * 100
    if winners:
        metrics.avg_profit = sum(winners) / len(winners)
    if losers:
        metrics.avg_loss = sum(losers) / len(losers)

    gross_profit = sum(winners)
    gross_loss = abs(sum(p for p in profits if p < 0))
    if gross_loss > 0:
        metrics.profit_factor = gross_profit / gross_loss
    else:
        metrics.profit_factor = None if gross_profit > 0 else 0.0

    metrics.best_trade = max(sells, key=lambda t: t.pnl or 0.0)
    metrics.worst_trade = min(sells, key=lambda t: t.pnl or 0.0)
    metrics.avg_holding_days = sum(t.holding_days or 0 for t in sells) / len(sells)

    # 연속 승패
    consecutive_wins = 0
    consecutive_losses = 0
    for p in profits:
        if p > 0:
            consecutive_wins += 1
            consecutive_losses = 0
            metrics.max_consecutive_wins = max(metrics.max_consecutive_wins, consecutive_wins)
        else:
            consecutive_losses += 1
            consecutive_wins = 0
            metrics.max_consecutive_losses = max(metrics.max_consecutive_losses, consecutive_losses)

    return metrics


def analyze(
    initial_capital: float,
    equity_curve: list[EquityPoint],
    trades: list[Trade],
    risk_free_rate: float = 0.0,
) -> BacktestMetrics:
    """성과 지표 계산. engine.py에서 백테스트 완료 후 호출됨.

    Args:
        initial_capital: 초기 자금
        equity_curve: 일별 EquityPoint (현금 + 보유종목 평가)
        trades: TradeLedger.all() (매수+매도 전체)
        risk_free_rate: 연 무위험 수익률 (샤프 비율 계산용, 기본 0)
    """
    values = [p.portfolio_value for p in equity_curve]
    final_value = values[-1] if values else initial_capital

    stats = PortfolioStats(
        initial_capital=initial_capital,
        final_value=final_value,
        total_return=_finite((final_value - initial_capital) / initial_capital * 100),
        annualized_return=annualized_return(final_value, initial_capital, len(values)),
        sharpe_ratio=sharpe_ratio(values, risk_free_rate),
        max_drawdown=max_drawdown(values),
    )
    return BacktestMetrics(stats=stats, trade_metrics=trade_metrics(trades))


def stats_as_dict(metrics: BacktestMetrics) -> dict[str, Any]:
    """snake_case 평면 딕셔너리 (비교 출력/로그용)."""
    flat = asdict(metrics.stats)
    trade = metrics.trade_metrics
    flat.update({
        "total_trades": trade.total_trades,
        "win_rate": trade.win_rate,
        "profit_factor": trade.profit_factor,
        "avg_trade_size": trade.avg_trade_size,
    })
    return flat
