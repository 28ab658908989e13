"""
포트폴리오 상태 관리 모듈.

[ 역할 ]
    현금, 보유 포지션(PositionBook), 거래 기록(TradeLedger)을 관리.
    백테스트 엔진이 청산/진입 시 이 클래스들을 통해 상태를 갱신.

[ 주요 클래스 ]
    Position       - 개별 포지션 (진입가/수량/진입금액, 청산 시 손익 기록)
    Trade          - BUY/SELL 거래 내역. SELL은 실현 손익/수익률/보유일 포함
    PositionBook   - 열린 포지션의 유일한 소유자. 최대 보유 종목 수 강제
    TradeLedger    - 추가만 가능한 거래 기록. id는 1부터 단조 증가
    PortfolioState - 현금 + PositionBook. 루프 중 유일한 가변 집계 상태

[ 불변식 ]
    cash + Σ(열린 포지션 entry_value) == initial_capital + Σ(실현 손익)
    open_count() <= max_positions

[ 호출하는 곳 ]
    - backtest/engine.py::BacktestEngine에서 상태 갱신 (단일 쓰레드, 날짜 순서대로)
    - backtest/metrics.py에서 ledger.all()로 성과 계산
"""

from dataclasses import dataclass, replace
from datetime import date
from enum import Enum
from typing import Any, Container, Mapping, Optional


class PositionStatus(Enum):
    OPEN = "Open"
    CLOSED = "Closed"


class TradeType(Enum):
    BUY = "BUY"
    SELL = "SELL"


@dataclass
class Position:
    """개별 포지션. PositionBook이 소유하며 청산 시 exit_* 필드만 채워진다."""
    ticker: str
    entry_date: date
    entry_price: float          # 체결가 (슬리피지 적용 후)
    shares: int
    entry_value: float          # 매수 총액 (수수료 포함). 현금에서 차감된 금액
    signal_value: float         # 진입 시점 시그널 값
    entry_index: int = 0        # 진입일의 거래일 인덱스 (보유기간 계산용)
    status: PositionStatus = PositionStatus.OPEN
    exit_date: Optional[date] = None
    exit_price: Optional[float] = None
    exit_value: Optional[float] = None   # 매도 순수령액 (수수료/세금 차감 후)
    pnl: Optional[float] = None
    return_pct: Optional[float] = None
    holding_days: Optional[int] = None

    def market_value(self, price: float) -> float:
        """현재가 기준 평가금액."""
        return self.shares * price

    def close(
        self,
        exit_date: date,
        exit_price: float,
        exit_value: float,
        holding_days: int,
    ) -> None:
        """청산. 실현 손익과 수익률(%)을 기록."""
        self.status = PositionStatus.CLOSED
        self.exit_date = exit_date
        self.exit_price = exit_price
        self.exit_value = exit_value
        self.pnl = exit_value - self.entry_value
        self.return_pct = (exit_price / self.entry_price - 1) * 100
        self.holding_days = holding_days

    def to_dict(self, current_price: Optional[float] = None) -> dict[str, Any]:
        """응답용 딕셔너리. current_price가 있으면 미실현 손익 포함."""
        payload: dict[str, Any] = {
            "ticker": self.ticker,
            "entryDate": self.entry_date.isoformat(),
            "entryPrice": self.entry_price,
            "shares": self.shares,
            "entryValue": self.entry_value,
            "signalValue": self.signal_value,
            "status": self.status.value,
        }
        if current_price is not None:
            current_value = self.market_value(current_price)
            payload["currentPrice"] = current_price
            payload["currentValue"] = current_value
            payload["unrealizedPnl"] = current_value - self.entry_value
            payload["unrealizedReturnPct"] = (current_price / self.entry_price - 1) * 100
        if self.status is PositionStatus.CLOSED:
            payload.update({
                "exitDate": self.exit_date.isoformat() if self.exit_date else None,
                "exitPrice": self.exit_price,
                "pnl": self.pnl,
                "returnPct": self.return_pct,
                "holdingDays": self.holding_days,
            })
        return payload


@dataclass(frozen=True)
class Trade:
    """개별 거래 기록. metrics.py에서 승률/손익 계산에 사용됨."""
    id: int
    type: TradeType
    ticker: str
    date: date
    price: float
    shares: int
    value: float                # BUY: 매수 총액, SELL: 매도 순수령액
    signal_value: float
    commission: float = 0.0
    tax: float = 0.0
    pnl: Optional[float] = None           # SELL만
    return_pct: Optional[float] = None    # SELL만
    holding_days: Optional[int] = None    # SELL만

    @property
    def is_sell(self) -> bool:
        return self.type is TradeType.SELL

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "id": self.id,
            "type": self.type.value,
            "ticker": self.ticker,
            "date": self.date.isoformat(),
            "price": self.price,
            "shares": self.shares,
            "value": self.value,
            "signalValue": self.signal_value,
        }
        if self.commission or self.tax:
            payload["commission"] = self.commission
            payload["tax"] = self.tax
        if self.is_sell:
            payload["pnl"] = self.pnl
            payload["returnPct"] = self.return_pct
            payload["holdingDays"] = self.holding_days
        return payload


class PositionBook:
    """열린 포지션의 유일한 소유자. 종목당 포지션은 하나."""

    def __init__(self, max_positions: int):
        self.max_positions = max_positions
        self._positions: dict[str, Position] = {}  # ticker → Position (진입 순서 유지)

    def open_count(self) -> int:
        return len(self._positions)

    @property
    def remaining_slots(self) -> int:
        return self.max_positions - len(self._positions)

    def is_held(self, ticker: str) -> bool:
        return ticker in self._positions

    def positions(self) -> list[Position]:
        """진입 순서대로 열린 포지션 목록 (복사본)."""
        return list(self._positions.values())

    def try_open(self, position: Position) -> bool:
        """포지션 추가. 한도 초과이거나 이미 보유 중이면 False."""
        if len(self._positions) >= self.max_positions or position.ticker in self._positions:
            return False
        self._positions[position.ticker] = position
        return True

    def close_due(
        self,
        day_index: int,
        holding_period: int,
        priced: Container[str],
    ) -> list[Position]:
        """보유기간(거래일)이 찬 포지션을 꺼내서 반환.

        당일 가격이 없는 종목은 남겨두고 다음 가격이 있는 날 다시 확인한다.
        꺼낸 포지션의 청산 필드는 호출자가 Position.close()로 채운다.
        """
        due = [
            p for p in self._positions.values()
            if day_index - p.entry_index >= holding_period and p.ticker in priced
        ]
        for position in due:
            del self._positions[position.ticker]
        return due

    def entry_value(self) -> float:
        return sum(p.entry_value for p in self._positions.values())


class TradeLedger:
    """추가만 가능한 거래 기록."""

    def __init__(self):
        self._trades: list[Trade] = []

    def record(self, trade: Trade) -> Trade:
        """거래 추가. id는 ledger가 부여 (1부터 단조 증가)."""
        recorded = replace(trade, id=len(self._trades) + 1)
        self._trades.append(recorded)
        return recorded

    def all(self) -> list[Trade]:
        return list(self._trades)

    def sells(self) -> list[Trade]:
        return [t for t in self._trades if t.is_sell]

    def __len__(self) -> int:
        return len(self._trades)


class PortfolioState:
    """현금 + 열린 포지션. BacktestEngine이 run() 한 번마다 새로 만든다."""

    def __init__(self, initial_capital: float, max_positions: int):
        self.initial_capital = initial_capital
        self.cash = initial_capital
        self.book = PositionBook(max_positions)
        self.realized_pnl = 0.0
        self.date: Optional[date] = None

    def debit(self, amount: float) -> None:
        self.cash -= amount

    def credit(self, amount: float, pnl: float) -> None:
        self.cash += amount
        self.realized_pnl += pnl

    def market_value(self, prices: Mapping[str, float]) -> float:
        """현금 + 보유 포지션 평가금액. prices에 없는 종목은 진입가로 평가."""
        total = self.cash
        for position in self.book.positions():
            total += position.market_value(prices.get(position.ticker, position.entry_price))
        return total

    def reconciles(self, tolerance: float = 1e-6) -> bool:
        """cash + Σ entry_value == initial_capital + 실현손익 여부."""
        lhs = self.cash + self.book.entry_value()
        rhs = self.initial_capital + self.realized_pnl
        return abs(lhs - rhs) <= tolerance * max(1.0, abs(self.initial_capital))
