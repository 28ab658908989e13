"""
시그널 메타데이터 정의.

[ 역할 ]
    시그널마다 다른 발동 방향(높을수록 매수 / 낮을수록 매수 / 절대값)을
    명시적인 속성으로 표현. 엔진은 시그널 이름만 보고 추측하지 않고
    SignalSpec.fires() / strength()만 호출한다.

[ 발동 규칙 ] (threshold = X, 항상 양수)
    ABOVE    : value >= X       강도 = value
    BELOW    : value <= -X      강도 = -value
    ABSOLUTE : |value| >= X     강도 = |value|

[ 범위 ]
    TICKER    : 종목별 값
    PORTFOLIO : 섹터 전체 값 (가상 티커 PORTFOLIO). 발동 시 유니버스 전 종목이 후보

[ 호출하는 곳 ]
    - signals/__init__.py에서 내장 시그널 등록
    - backtest/engine.py::BacktestEngine._rank_candidates()
    - backtest/signal_study.py
"""

from dataclasses import dataclass
from enum import Enum


class Direction(Enum):
    """시그널 발동 방향."""
    ABOVE = "above"
    BELOW = "below"
    ABSOLUTE = "absolute"


class Scope(Enum):
    """시그널 값의 단위 (종목별 / 섹터 전체)."""
    TICKER = "ticker"
    PORTFOLIO = "portfolio"


@dataclass(frozen=True)
class SignalSpec:
    """시그널 메타데이터. 레지스트리에 이름으로 등록됨."""
    name: str
    direction: Direction = Direction.ABOVE
    scope: Scope = Scope.TICKER
    description: str = ""
    threshold_guide: str = ""

    def fires(self, value: float, threshold: float) -> bool:
        """threshold 기준으로 시그널 발동 여부."""
        if self.direction is Direction.ABOVE:
            return value >= threshold
        if self.direction is Direction.BELOW:
            return value <= -threshold
        return abs(value) >= threshold

    def strength(self, value: float) -> float:
        """후보 정렬용 강도. 클수록 우선."""
        if self.direction is Direction.ABOVE:
            return value
        if self.direction is Direction.BELOW:
            return -value
        return abs(value)
