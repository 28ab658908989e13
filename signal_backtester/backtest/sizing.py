"""
포지션 사이징(자금 배분) 모듈.

[ 역할 ]
    가용 현금, 남은 슬롯 수, 당일 선택된 후보들의 시그널 강도로 후보별 투입 금액을 계산.

[ 배분 방식 ] (position_sizing)
    equal           - 후보당 가용현금 / 남은 슬롯
    signal_weighted - |시그널 값| 비중으로 배분
    volatility      - 직전 변동성의 역수 비중으로 배분 (리스크 패리티)

    당일 예산 = 가용현금 × (선택 후보 수 / 남은 슬롯) 이므로 어떤 방식이든
    당일 총 배분액은 가용현금을 넘지 않는다. equal은 후보당 가용현금 / 남은 슬롯과 같다.

[ 수량 ]
    shares_for()로 정수 주식 수로 내림. 1주도 못 사면 호출자가 건너뛴다 (다음 날로 미루지 않음).

[ 호출하는 곳 ]
    - backtest/engine.py::BacktestEngine._entry_pass()
"""

import math
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from signal_backtester.core.errors import InputValidationError


class PositionSizing(Enum):
    EQUAL = "equal"
    SIGNAL_WEIGHTED = "signal_weighted"
    VOLATILITY = "volatility"


@dataclass(frozen=True)
class Candidate:
    """당일 진입 후보. engine이 발동 시그널과 가격으로 구성."""
    ticker: str
    signal_value: float
    strength: float
    price: float
    volatility: Optional[float] = None


class AllocationStrategy(ABC):
    """자금 배분 전략 추상 클래스. weights()만 구현하면 된다."""

    sizing: PositionSizing

    @abstractmethod
    def weights(self, selected: list[Candidate]) -> dict[str, float]:
        """선택된 후보별 비중 (합계 1). 배분 대상이 아닌 후보는 빠진다."""
        ...

    def allocate(
        self,
        selected: list[Candidate],
        available_cash: float,
        remaining_slots: int,
    ) -> dict[str, float]:
        """후보별 투입 금액 계산.

        Args:
            selected: 이번에 채울 후보 (len <= remaining_slots)
            available_cash: 가용 현금
            remaining_slots: max_positions - 현재 보유 수

        Returns:
            {ticker: 투입 금액}
        """
        if not selected or remaining_slots <= 0 or available_cash <= 0:
            return {}
        budget = available_cash * min(len(selected), remaining_slots) / remaining_slots
        return {ticker: budget * w for ticker, w in self.weights(selected).items()}


class EqualWeightAllocation(AllocationStrategy):
    sizing = PositionSizing.EQUAL

    def weights(self, selected: list[Candidate]) -> dict[str, float]:
        return {c.ticker: 1.0 / len(selected) for c in selected}


class SignalWeightedAllocation(AllocationStrategy):
    sizing = PositionSizing.SIGNAL_WEIGHTED

    def weights(self, selected: list[Candidate]) -> dict[str, float]:
        total = sum(abs(c.signal_value) for c in selected)
        if total <= 0:
            return {c.ticker: 1.0 / len(selected) for c in selected}
        return {c.ticker: abs(c.signal_value) / total for c in selected}


class VolatilityAdjustedAllocation(AllocationStrategy):
    """역변동성 비중. 변동성 추정치가 없는(이력 부족) 후보는 배분에서 제외."""
    sizing = PositionSizing.VOLATILITY

    def weights(self, selected: list[Candidate]) -> dict[str, float]:
        inverse = {
            c.ticker: 1.0 / c.volatility
            for c in selected
            if c.volatility is not None and c.volatility > 0
        }
        total = sum(inverse.values())
        if total <= 0:
            return {}
        return {ticker: v / total for ticker, v in inverse.items()}


ALLOCATION_REGISTRY: dict[PositionSizing, type[AllocationStrategy]] = {
    PositionSizing.EQUAL: EqualWeightAllocation,
    PositionSizing.SIGNAL_WEIGHTED: SignalWeightedAllocation,
    PositionSizing.VOLATILITY: VolatilityAdjustedAllocation,
}


def parse_sizing(name: str | PositionSizing) -> PositionSizing:
    if isinstance(name, PositionSizing):
        return name
    try:
        return PositionSizing(name)
    except ValueError:
        available = ", ".join(s.value for s in PositionSizing)
        raise InputValidationError(
            f"알 수 없는 position_sizing: '{name}'. 사용 가능: {available}",
            position_sizing=name,
        ) from None


def create_allocation(name: str | PositionSizing) -> AllocationStrategy:
    """이름으로 배분 전략 인스턴스 생성."""
    return ALLOCATION_REGISTRY[parse_sizing(name)]()


def shares_for(budget: float, price: float, commission_rate: float = 0.0) -> int:
    """투입 금액으로 살 수 있는 정수 주식 수 (수수료 포함, 내림)."""
    if budget <= 0 or price <= 0:
        return 0
    return int(math.floor(budget / (price * (1 + commission_rate))))
