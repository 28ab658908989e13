"""
백테스트 예외 정의.

[ 역할 ]
    시뮬레이션 전/중에 발생하는 오류를 종류별로 구분.
    호스트(CLI, API 래퍼)는 BacktestError만 잡으면 되고,
    to_dict()로 구조화된 에러 응답을 만들 수 있다.

[ 분류 ]
    InputValidationError  - 파라미터 오류. 루프 시작 전에 거부 (상태 생성 없음)
    DataGapError          - (날짜, 종목) 가격/시그널 없음. 엔진이 잡아서 해당일만 제외
    NoCommonRangeError    - 요청 기간에 유효 거래일이 0일. 치명적
    RangeTooLargeError    - 거래일 수가 max_trading_days 초과. 루프 전에 거부
    TimeBudgetExceeded    - 실행 시간 한도 초과. 부분 결과는 버림
"""

from datetime import date
from typing import Any


class BacktestError(Exception):
    """백테스트 예외 최상위 클래스."""

    def __init__(self, message: str, **details: Any):
        super().__init__(message)
        self.message = message
        self.details = details

    def to_dict(self) -> dict[str, Any]:
        """호스트 응답용 딕셔너리."""
        payload: dict[str, Any] = {"error": type(self).__name__, "message": self.message}
        for key, value in self.details.items():
            payload[key] = value.isoformat() if isinstance(value, date) else value
        return payload


class InputValidationError(BacktestError):
    """요청 파라미터가 잘못되었거나 서로 모순됨."""


class UnknownSignalError(InputValidationError):
    """레지스트리에 없는 시그널 이름."""

    def __init__(self, signal_name: str, available: list[str]):
        super().__init__(
            f"알 수 없는 시그널: '{signal_name}'. 사용 가능: {', '.join(available)}",
            signal_name=signal_name,
        )


class DataGapError(BacktestError):
    """특정 (날짜, 종목)에 가격 또는 시그널 값이 없음."""

    def __init__(self, ticker: str, on: date, kind: str = "price"):
        super().__init__(f"{on} {ticker}: {kind} 데이터 없음", ticker=ticker, date=on, kind=kind)
        self.ticker = ticker
        self.date = on
        self.kind = kind


class NoCommonRangeError(BacktestError):
    """요청 기간에 가격/시그널이 함께 존재하는 거래일이 없음."""

    def __init__(self, start_date: date, end_date: date, reason: str = ""):
        message = f"{start_date} ~ {end_date} 기간에 유효한 거래일이 없습니다"
        if reason:
            message = f"{message} ({reason})"
        super().__init__(message, start_date=start_date, end_date=end_date)
        self.start_date = start_date
        self.end_date = end_date


class NoSignalEventsError(BacktestError):
    """시그널 스터디에서 임계값을 넘는 이벤트가 하나도 없음."""


class RangeTooLargeError(BacktestError):
    """거래일 수가 설정된 한도를 초과."""

    def __init__(self, trading_days: int, max_trading_days: int):
        super().__init__(
            f"기간이 너무 깁니다: {trading_days}거래일 (최대 {max_trading_days})",
            trading_days=trading_days,
            max_trading_days=max_trading_days,
        )


class TimeBudgetExceeded(BacktestError):
    """실행 시간 한도 초과. 부분 결과는 반환하지 않는다."""

    def __init__(self, elapsed: float, budget: float, reached: date):
        super().__init__(
            f"실행 시간 한도 초과: {elapsed:.1f}s > {budget:.1f}s ({reached} 처리 중)",
            elapsed_seconds=round(elapsed, 3),
            budget_seconds=budget,
            reached_date=reached,
        )
