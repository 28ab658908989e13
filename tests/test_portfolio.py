"""PositionBook / TradeLedger / PortfolioState 테스트."""

from datetime import date

import pytest

from signal_backtester.data.portfolio import (
    PortfolioState,
    Position,
    PositionBook,
    PositionStatus,
    Trade,
    TradeLedger,
    TradeType,
)

DAY = date(2024, 1, 2)


def position(ticker: str, entry_index: int = 0, price: float = 100.0, shares: int = 10) -> Position:
    return Position(
        ticker=ticker,
        entry_date=DAY,
        entry_price=price,
        shares=shares,
        entry_value=price * shares,
        signal_value=3.0,
        entry_index=entry_index,
    )


class TestPositionBook:

    def test_capacity(self):
        book = PositionBook(max_positions=2)
        assert book.try_open(position("A"))
        assert book.try_open(position("B"))
        assert not book.try_open(position("C"))
        assert book.open_count() == 2
        assert book.remaining_slots == 0

    def test_one_position_per_ticker(self):
        book = PositionBook(max_positions=3)
        assert book.try_open(position("A"))
        assert not book.try_open(position("A"))
        assert book.is_held("A")

    def test_close_due_after_holding_period(self):
        book = PositionBook(max_positions=3)
        book.try_open(position("A", entry_index=0))
        book.try_open(position("B", entry_index=2))

        assert book.close_due(4, 5, {"A", "B"}) == []
        due = book.close_due(5, 5, {"A", "B"})
        assert [p.ticker for p in due] == ["A"]
        assert book.positions()[0].ticker == "B"

    def test_close_due_waits_for_price(self):
        book = PositionBook(max_positions=1)
        book.try_open(position("A", entry_index=0))
        assert book.close_due(5, 5, {"B"}) == []
        assert [p.ticker for p in book.close_due(6, 5, {"A"})] == ["A"]

    def test_entry_value(self):
        book = PositionBook(max_positions=2)
        book.try_open(position("A", shares=10))
        book.try_open(position("B", shares=5))
        assert book.entry_value() == pytest.approx(1_500)


class TestPosition:

    def test_close_records_realized_pnl(self):
        p = position("A", price=100.0, shares=10)
        p.close(date(2024, 1, 9), 110.0, 1_100.0, holding_days=5)
        assert p.status is PositionStatus.CLOSED
        assert p.pnl == pytest.approx(100.0)
        assert p.return_pct == pytest.approx(10.0)

        payload = p.to_dict()
        assert payload["status"] == "Closed"
        assert payload["exitDate"] == "2024-01-09"
        assert payload["holdingDays"] == 5

    def test_unrealized_fields_need_current_price(self):
        p = position("A", price=100.0, shares=10)
        assert "unrealizedPnl" not in p.to_dict()
        assert p.to_dict(90.0)["unrealizedPnl"] == pytest.approx(-100.0)


class TestTradeLedger:

    def test_ids_assigned_in_order(self):
        ledger = TradeLedger()
        buy = ledger.record(Trade(0, TradeType.BUY, "A", DAY, 100.0, 10, 1_000.0, 3.0))
        sell = ledger.record(Trade(0, TradeType.SELL, "A", DAY, 110.0, 10, 1_100.0, 3.0, pnl=100.0))
        assert (buy.id, sell.id) == (1, 2)
        assert ledger.sells() == [sell]
        assert len(ledger) == 2

    def test_buy_payload_has_no_realized_fields(self):
        trade = Trade(1, TradeType.BUY, "A", DAY, 100.0, 10, 1_000.0, 3.0)
        payload = trade.to_dict()
        assert payload["type"] == "BUY"
        assert "pnl" not in payload
        assert "commission" not in payload


class TestPortfolioState:

    def test_reconciles_through_round_trip(self):
        state = PortfolioState(10_000, max_positions=2)
        p = position("A", price=100.0, shares=50)
        state.book.try_open(p)
        state.debit(p.entry_value)
        assert state.reconciles()

        closed = state.book.close_due(5, 5, {"A"})[0]
        closed.close(DAY, 90.0, 4_500.0, 5)
        state.credit(closed.exit_value, closed.pnl)
        assert state.cash == pytest.approx(9_500)
        assert state.realized_pnl == pytest.approx(-500)
        assert state.reconciles()

    def test_market_value_falls_back_to_entry_price(self):
        state = PortfolioState(10_000, max_positions=2)
        p = position("A", price=100.0, shares=50)
        state.book.try_open(p)
        state.debit(p.entry_value)
        assert state.market_value({}) == pytest.approx(10_000)
        assert state.market_value({"A": 120.0}) == pytest.approx(11_000)
