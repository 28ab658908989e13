"""성과 지표 계산 테스트."""

import json
import math
from datetime import date

import pytest

from conftest import trading_days
from signal_backtester.backtest.metrics import (
    EquityPoint,
    analyze,
    annualized_return,
    max_drawdown,
    sharpe_ratio,
    stats_as_dict,
    trade_metrics,
)
from signal_backtester.data.portfolio import Trade, TradeType

DAY = date(2024, 3, 1)


def curve(values: list[float]) -> list[EquityPoint]:
    return [EquityPoint(d, v, 0, v) for d, v in zip(trading_days(len(values)), values)]


def round_trip(pnl: float, entry: float = 1_000.0, holding_days: int = 5) -> list[Trade]:
    return [
        Trade(0, TradeType.BUY, "A", DAY, 100.0, 10, entry, 3.0),
        Trade(0, TradeType.SELL, "A", DAY, 100.0, 10, entry + pnl, 3.0,
              pnl=pnl, return_pct=pnl / entry * 100, holding_days=holding_days),
    ]


class TestPortfolioStats:

    def test_flat_curve_is_neutral(self):
        metrics = analyze(100_000, curve([100_000] * 20), [])
        assert metrics.stats.sharpe_ratio == 0.0
        assert metrics.stats.max_drawdown == 0.0
        assert metrics.stats.total_return == 0.0
        assert metrics.stats.annualized_return == 0.0

    def test_sharpe_ratio(self):
        # 일간 수익률 1%, 2% → 평균 1.5%, 모표준편차 0.5%
        assert sharpe_ratio([100, 101, 103.02]) == pytest.approx(3 * math.sqrt(252))

    def test_sharpe_with_risk_free_rate(self):
        values = [100, 101, 103.02]
        assert sharpe_ratio(values, risk_free_rate=0.252) < sharpe_ratio(values)

    def test_max_drawdown_from_running_peak(self):
        assert max_drawdown([100, 120, 90, 130, 117]) == pytest.approx(25.0)

    def test_annualized_return(self):
        assert annualized_return(110, 100, 252) == pytest.approx(10.0)
        assert annualized_return(110, 100, 126) == pytest.approx(21.0)
        assert annualized_return(100, 100, 0) == 0.0

    def test_total_loss_stays_finite(self):
        metrics = analyze(100, curve([100, 50, 0]), [])
        payload = json.dumps(metrics.to_dict(), allow_nan=False)
        assert metrics.stats.total_return == pytest.approx(-100.0)
        assert metrics.stats.annualized_return == pytest.approx(-100.0)
        assert "NaN" not in payload

    def test_final_value_is_last_point(self):
        metrics = analyze(100_000, curve([100_000, 101_000, 105_000]), [])
        assert metrics.stats.final_value == 105_000
        assert metrics.stats.total_return == pytest.approx(5.0)

    def test_empty_curve(self):
        metrics = analyze(100_000, [], [])
        assert metrics.stats.final_value == 100_000
        assert metrics.stats.sharpe_ratio == 0.0


class TestTradeMetrics:

    def test_counts_only_sells(self):
        trades = round_trip(200) + round_trip(-100) + round_trip(50)
        metrics = trade_metrics(trades)

        assert metrics.total_trades == 3
        assert metrics.win_rate == pytest.approx(200 / 3)
        assert metrics.profit_factor == pytest.approx(2.5)
        assert metrics.best_trade.pnl == 200
        assert metrics.worst_trade.pnl == -100
        assert metrics.avg_profit == pytest.approx(125)
        assert metrics.avg_loss == pytest.approx(-100)
        assert metrics.max_consecutive_wins == 1
        assert metrics.max_consecutive_losses == 1

    def test_avg_trade_size_over_all_trades(self):
        trades = round_trip(200) + round_trip(-100)
        # BUY 1000, SELL 1200, BUY 1000, SELL 900
        assert trade_metrics(trades).avg_trade_size == pytest.approx(1_025)

    def test_no_losses_gives_undefined_profit_factor(self):
        metrics = trade_metrics(round_trip(100) + round_trip(50))
        assert metrics.profit_factor is None
        assert metrics.to_dict()["profitFactor"] is None

    def test_no_closed_trades(self):
        metrics = trade_metrics(round_trip(100)[:1])
        assert metrics.total_trades == 0
        assert metrics.win_rate == 0.0
        assert metrics.profit_factor == 0.0
        assert metrics.best_trade is None

    def test_breakeven_counts_as_loss(self):
        metrics = trade_metrics(round_trip(0) + round_trip(10))
        assert metrics.losing_trades == 1
        assert metrics.win_rate == pytest.approx(50.0)


class TestSerialization:

    def test_response_keys(self):
        metrics = analyze(1_000, curve([1_000, 1_100]), round_trip(100))
        payload = metrics.to_dict()
        assert set(payload["stats"]) == {
            "initialCapital", "finalValue", "totalReturn", "annualizedReturn", "sharpeRatio", "maxDrawdown",
        }
        assert {"totalTrades", "winRate", "profitFactor", "avgTradeSize", "bestTrade", "worstTrade"} <= set(
            payload["tradeMetrics"]
        )
        assert payload["tradeMetrics"]["bestTrade"]["type"] == "SELL"

    def test_flat_dict_for_comparison(self):
        flat = stats_as_dict(analyze(1_000, curve([1_000, 1_100]), round_trip(100)))
        assert flat["total_return"] == pytest.approx(10.0)
        assert flat["total_trades"] == 1

    def test_summary_mentions_profit_factor_marker(self):
        text = analyze(1_000, curve([1_000, 1_100]), round_trip(100)).summary()
        assert "백테스트 성과 리포트" in text
        assert "수익 팩터" in text
