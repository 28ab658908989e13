"""
백테스팅 엔진 모듈 (시뮬레이션 루프).

[ 역할 ]
    날짜별·종목별 시그널 이력을 자금/보유 종목 수 제약 하의 매수/매도 결정으로 바꾸고,
    고정 보유기간 동안 포지션을 추적한 뒤 성과를 측정.

[ 실행 흐름 ]
    run() 호출 시:
        0. 요청 검증 (InputValidationError) → 상태를 만들기 전에 거부.
           영업일 추정치가 max_trading_days를 넘으면 데이터 조회 전에 RangeTooLargeError
        1. 캘린더 확인: 유효 거래일 0일이거나 시그널 종목과 가격이 함께 있는 날이 없으면
           NoCommonRangeError,
           max_trading_days 초과면 RangeTooLargeError
        2. 각 거래일에 대해 (날짜 오름차순, 당일까지의 데이터만 사용):
           a. 청산: 보유기간(거래일)이 찬 포지션을 당일 가격으로 매도 → SELL 기록
           b. 후보: 미보유 종목 중 시그널이 발동한 종목을 강도 내림차순 정렬
           c. 진입: 슬롯이 남는 동안 AllocationStrategy로 사이징 후 매수 → BUY 기록
              (현금 부족/1주 미만 후보는 건너뜀, 재시도 없음)
           d. 스냅샷: 현금 + 보유 종목 평가금액 → EquityPoint
        3. metrics.analyze()로 성과 지표 계산
        종료일에 남은 포지션은 강제 청산하지 않고 active_positions로 반환.

[ 의존성 ]
    - data/market_data.py::MarketSnapshot (날짜별 조회 테이블, 루프 중 I/O 없음)
    - data/portfolio.py::PortfolioState, PositionBook, TradeLedger
    - backtest/sizing.py::AllocationStrategy
    - backtest/metrics.py::analyze()

[ 호출하는 곳 ]
    - run_backtest.py (진입점)에서 생성 및 실행
"""

import logging
import time
from dataclasses import dataclass, field
from datetime import date, timedelta
from typing import Any, Callable, Optional

import numpy as np
import pandas as pd

from signal_backtester.backtest.metrics import BacktestMetrics, EquityPoint, analyze
from signal_backtester.backtest.sizing import (
    AllocationStrategy,
    Candidate,
    PositionSizing,
    create_allocation,
    parse_sizing,
    shares_for,
)
from signal_backtester.core.errors import (
    DataGapError,
    InputValidationError,
    NoCommonRangeError,
    RangeTooLargeError,
    TimeBudgetExceeded,
)
from signal_backtester.core.feeds import PriceFeed, SignalFeed
from signal_backtester.core.signal_spec import Scope, SignalSpec
from signal_backtester.data.market_data import MarketDataLoader, MarketSnapshot
from signal_backtester.data.portfolio import (
    PortfolioState,
    Position,
    Trade,
    TradeLedger,
    TradeType,
)
from signal_backtester.data.reference import PORTFOLIO_TICKER
from signal_backtester.signals import get_signal_spec

logger = logging.getLogger("signal_backtester.backtest")

# 영업일 추정치는 휴장일만큼 실제 거래일보다 많다
BUSINESS_DAY_SLACK = 1.05


def _to_date(value: Any, name: str) -> date:
    if isinstance(value, date):
        return value
    try:
        return pd.Timestamp(value).date()
    except (TypeError, ValueError):
        raise InputValidationError(f"{name} 날짜 형식 오류: {value!r}", field=name) from None


def _to_int(value: Any, name: str) -> int:
    """정수 파라미터 변환. 2.0은 허용, 2.7은 거부 (잘라내지 않음)."""
    try:
        number = float(value)
    except (TypeError, ValueError):
        raise InputValidationError(f"{name}은(는) 정수여야 합니다: {value!r}", field=name) from None
    if not number.is_integer():
        raise InputValidationError(f"{name}은(는) 정수여야 합니다: {value!r}", field=name)
    return int(number)


@dataclass
class BacktestRequest:
    """백테스트 요청 파라미터."""
    signal_name: str
    threshold: float
    start_date: date
    end_date: date
    initial_capital: float = 1_000_000
    max_positions: int = 5
    holding_period: int = 5
    position_sizing: PositionSizing = PositionSizing.EQUAL

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "BacktestRequest":
        """camelCase(외부 요청) 또는 snake_case 키 모두 허용."""
        def pick(snake: str, camel: str, default: Any = None) -> Any:
            if snake in data:
                return data[snake]
            return data.get(camel, default)

        signal_name = pick("signal_name", "signalName")
        if not signal_name:
            raise InputValidationError("signalName이 필요합니다", field="signalName")
        threshold = pick("threshold", "threshold")
        if threshold is None:
            raise InputValidationError("threshold가 필요합니다", field="threshold")
        try:
            return cls(
                signal_name=str(signal_name),
                threshold=float(threshold),
                start_date=_to_date(pick("start_date", "startDate"), "startDate"),
                end_date=_to_date(pick("end_date", "endDate"), "endDate"),
                initial_capital=float(pick("initial_capital", "initialCapital", 1_000_000)),
                max_positions=_to_int(pick("max_positions", "maxPositions", 5), "maxPositions"),
                holding_period=_to_int(pick("holding_period", "holdingPeriod", 5), "holdingPeriod"),
                position_sizing=parse_sizing(pick("position_sizing", "positionSizing", "equal")),
            )
        except (TypeError, ValueError) as e:
            raise InputValidationError(f"요청 파라미터 형식 오류: {e}") from None

    def validate(self) -> None:
        """논리적으로 모순된 파라미터 거부.

        Raises:
            InputValidationError
        """
        if self.start_date > self.end_date:
            raise InputValidationError(
                f"startDate({self.start_date})가 endDate({self.end_date})보다 늦습니다",
                start_date=self.start_date,
                end_date=self.end_date,
            )
        checks = [
            ("threshold", self.threshold),
            ("initialCapital", self.initial_capital),
            ("maxPositions", self.max_positions),
            ("holdingPeriod", self.holding_period),
        ]
        for name, value in checks:
            if not value > 0:
                raise InputValidationError(f"{name}은(는) 양수여야 합니다: {value}", field=name)
        self.max_positions = _to_int(self.max_positions, "maxPositions")
        self.holding_period = _to_int(self.holding_period, "holdingPeriod")
        self.position_sizing = parse_sizing(self.position_sizing)


@dataclass
class BacktestResult:
    """run()의 반환값. to_dict()로 외부 응답 형식 변환."""
    request: BacktestRequest
    metrics: BacktestMetrics
    equity_curve: list[EquityPoint] = field(default_factory=list)
    trades: list[Trade] = field(default_factory=list)
    active_positions: list[Position] = field(default_factory=list)
    last_prices: dict[str, float] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        payload = self.metrics.to_dict()
        payload["equityCurve"] = [p.to_dict() for p in self.equity_curve]
        payload["trades"] = [t.to_dict() for t in self.trades]
        payload["activePositions"] = [
            p.to_dict(self.last_prices.get(p.ticker)) for p in self.active_positions
        ]
        return payload


class BacktestEngine:
    """시그널 기반 포트폴리오 백테스트 엔진. run()으로 시뮬레이션 실행.

    엔진 인스턴스는 설정(비용 모델, 한도)만 들고 있고, 실행 상태는 run() 안에서
    매번 새로 만든다. 따라서 같은 엔진으로 여러 백테스트를 동시에 돌려도 된다.
    """

    def __init__(
        self,
        commission_rate: float = 0.0,   # 매수/매도 수수료율
        tax_rate: float = 0.0,          # 매도세율
        slippage_rate: float = 0.0,     # 슬리피지율
        risk_free_rate: float = 0.0,    # 샤프 비율용 연 무위험 수익률
        max_trading_days: Optional[int] = 2520,
        time_budget_seconds: Optional[float] = None,
        signal_overrides: Optional[dict[str, dict[str, Any]]] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.commission_rate = commission_rate
        self.tax_rate = tax_rate
        self.slippage_rate = slippage_rate
        self.risk_free_rate = risk_free_rate
        self.max_trading_days = max_trading_days
        self.time_budget_seconds = time_budget_seconds
        self.signal_overrides = signal_overrides or {}
        self._clock = clock

    def prepare(self, request: BacktestRequest) -> tuple[SignalSpec, AllocationStrategy]:
        """요청 검증 + 시그널 메타데이터/배분 전략 조회. 데이터 로드 전에 호출.

        기간이 영업일 기준으로도 max_trading_days를 크게 넘으면 조회 없이 바로 거부한다.
        정확한 거래일 수 검사는 run()에서 캘린더로 한 번 더 한다.
        """
        request.validate()
        if self.max_trading_days is not None:
            estimate = int(np.busday_count(request.start_date, request.end_date + timedelta(days=1)))
            if estimate > self.max_trading_days * BUSINESS_DAY_SLACK:
                raise RangeTooLargeError(estimate, self.max_trading_days)
        spec = get_signal_spec(request.signal_name, self.signal_overrides)
        return spec, create_allocation(request.position_sizing)

    def run_backtest(self, request: BacktestRequest, loader: MarketDataLoader) -> BacktestResult:
        """요청 검증 → 데이터 로드 → 시뮬레이션."""
        self.prepare(request)
        snapshot = loader.load(request.signal_name, request.start_date, request.end_date)
        return self.run(request, snapshot)

    def run(self, request: BacktestRequest, snapshot: MarketSnapshot) -> BacktestResult:
        """백테스트 실행.

        Args:
            request: 백테스트 요청
            snapshot: 루프 전에 조립된 날짜별 가격/시그널/변동성 조회 테이블

        Returns:
            BacktestResult: 성과 지표, 자산 곡선, 거래 내역, 미청산 포지션

        Raises:
            InputValidationError, NoCommonRangeError, RangeTooLargeError, TimeBudgetExceeded
        """
        spec, allocation = self.prepare(request)

        calendar = [d for d in snapshot.calendar if request.start_date <= d <= request.end_date]
        if not calendar:
            raise NoCommonRangeError(request.start_date, request.end_date, "가격 데이터 없음")
        if not any(snapshot.has_priced_signal(d) for d in calendar):
            raise NoCommonRangeError(
                request.start_date, request.end_date, f"{request.signal_name} 시그널 데이터 없음"
            )
        if self.max_trading_days is not None and len(calendar) > self.max_trading_days:
            raise RangeTooLargeError(len(calendar), self.max_trading_days)

        logger.info(
            f"백테스트 시작: {request.signal_name} (threshold={request.threshold}, "
            f"{request.position_sizing.value}) {calendar[0]} ~ {calendar[-1]} ({len(calendar)}일)"
        )

        state = PortfolioState(request.initial_capital, request.max_positions)
        ledger = TradeLedger()
        equity_curve: list[EquityPoint] = []
        last_prices: dict[str, float] = {}
        started = self._clock()

        for index, current_date in enumerate(calendar):
            if self.time_budget_seconds is not None:
                elapsed = self._clock() - started
                if elapsed > self.time_budget_seconds:
                    raise TimeBudgetExceeded(elapsed, self.time_budget_seconds, current_date)

            state.date = current_date
            prices = snapshot.priced_tickers(current_date)
            last_prices.update(prices)

            self._exit_pass(state, ledger, request, index, current_date, prices)
            candidates = self._rank_candidates(spec, request, state, snapshot, current_date, prices)
            self._entry_pass(state, ledger, allocation, index, current_date, candidates)

            equity_curve.append(EquityPoint(
                date=current_date,
                portfolio_value=state.market_value(last_prices),
                num_positions=state.book.open_count(),
                cash=state.cash,
            ))

        metrics = analyze(
            initial_capital=request.initial_capital,
            equity_curve=equity_curve,
            trades=ledger.all(),
            risk_free_rate=self.risk_free_rate,
        )
        logger.info(
            f"백테스트 완료. 총 수익률: {metrics.stats.total_return:.2f}%, "
            f"거래 {metrics.trade_metrics.total_trades}건, 미청산 {state.book.open_count()}건"
        )
        return BacktestResult(
            request=request,
            metrics=metrics,
            equity_curve=equity_curve,
            trades=ledger.all(),
            active_positions=state.book.positions(),
            last_prices=dict(last_prices),
        )

    def _exit_pass(
        self,
        state: PortfolioState,
        ledger: TradeLedger,
        request: BacktestRequest,
        index: int,
        current_date: date,
        prices: dict[str, float],
    ) -> None:
        """보유기간이 찬 포지션 청산. 슬리피지(가격↓) + 수수료 + 세금 적용."""
        for position in state.book.close_due(index, request.holding_period, prices):
            exec_price = prices[position.ticker] * (1 - self.slippage_rate)
            gross = exec_price * position.shares
            commission = gross * self.commission_rate
            tax = gross * self.tax_rate
            proceeds = gross - commission - tax

            position.close(current_date, exec_price, proceeds, index - position.entry_index)
            state.credit(proceeds, position.pnl)
            ledger.record(Trade(
                id=0,
                type=TradeType.SELL,
                ticker=position.ticker,
                date=current_date,
                price=exec_price,
                shares=position.shares,
                value=proceeds,
                signal_value=position.signal_value,
                commission=commission,
                tax=tax,
                pnl=position.pnl,
                return_pct=position.return_pct,
                holding_days=position.holding_days,
            ))
            logger.debug(
                f"[{current_date}] 매도: {position.ticker} {position.shares}주 @ {exec_price:,.2f} "
                f"→ {position.pnl:+,.0f} ({position.return_pct:+.2f}%)"
            )

    def _rank_candidates(
        self,
        spec: SignalSpec,
        request: BacktestRequest,
        state: PortfolioState,
        snapshot: MarketSnapshot,
        current_date: date,
        prices: dict[str, float],
    ) -> list[Candidate]:
        """미보유 + 당일 가격 있음 + 시그널 발동 종목을 강도 내림차순(동률은 티커순)으로."""
        candidates: list[Candidate] = []
        for ticker in sorted(prices):
            if ticker == PORTFOLIO_TICKER or state.book.is_held(ticker):
                continue
            try:
                value = snapshot.signal(ticker, current_date)
            except DataGapError:
                if spec.scope is not Scope.PORTFOLIO:
                    continue
                try:
                    value = snapshot.signal(PORTFOLIO_TICKER, current_date)
                except DataGapError:
                    continue
            if not spec.fires(value, request.threshold):
                continue
            try:
                volatility: Optional[float] = snapshot.trailing_volatility(ticker, current_date)
            except DataGapError:
                volatility = None
            candidates.append(Candidate(
                ticker=ticker,
                signal_value=value,
                strength=spec.strength(value),
                price=prices[ticker],
                volatility=volatility,
            ))
        candidates.sort(key=lambda c: (-c.strength, c.ticker))
        return candidates

    def _entry_pass(
        self,
        state: PortfolioState,
        ledger: TradeLedger,
        allocation: AllocationStrategy,
        index: int,
        current_date: date,
        candidates: list[Candidate],
    ) -> None:
        """남은 슬롯만큼 상위 후보를 골라 사이징 후 매수.

        한 번에 남은 슬롯 수만큼 후보를 선택해 배분하고, 건너뛴 후보가 있어
        슬롯이 남으면 다음 순위 후보들로 다시 배분한다.
        """
        queue = list(candidates)
        while state.book.remaining_slots > 0 and queue:
            slots = state.book.remaining_slots
            selected, queue = queue[:slots], queue[slots:]
            budgets = allocation.allocate(selected, state.cash, slots)

            for candidate in selected:
                budget = budgets.get(candidate.ticker)
                if budget is None:
                    logger.debug(f"[{current_date}] 건너뜀: {candidate.ticker} (배분 대상 아님)")
                    continue

                exec_price = candidate.price * (1 + self.slippage_rate)  # 매수 시 불리하게
                shares = shares_for(budget, exec_price, self.commission_rate)
                gross = exec_price * shares
                commission = gross * self.commission_rate
                cost = gross + commission
                if shares < 1 or cost > state.cash:
                    logger.debug(
                        f"[{current_date}] 건너뜀: {candidate.ticker} "
                        f"(예산 {budget:,.0f}, 가격 {exec_price:,.2f}, 현금 {state.cash:,.0f})"
                    )
                    continue

                position = Position(
                    ticker=candidate.ticker,
                    entry_date=current_date,
                    entry_price=exec_price,
                    shares=shares,
                    entry_value=cost,
                    signal_value=candidate.signal_value,
                    entry_index=index,
                )
                if not state.book.try_open(position):
                    continue
                state.debit(cost)
                ledger.record(Trade(
                    id=0,
                    type=TradeType.BUY,
                    ticker=candidate.ticker,
                    date=current_date,
                    price=exec_price,
                    shares=shares,
                    value=cost,
                    signal_value=candidate.signal_value,
                    commission=commission,
                ))
                logger.debug(
                    f"[{current_date}] 매수: {candidate.ticker} {shares}주 @ {exec_price:,.2f} "
                    f"(시그널 {candidate.signal_value:.2f})"
                )


def run_backtest(
    request: BacktestRequest,
    price_feed: PriceFeed,
    signal_feed: SignalFeed,
    tickers: list[str],
    engine: Optional[BacktestEngine] = None,
    volatility_lookback: int = 20,
    max_workers: int = 8,
) -> BacktestResult:
    """피드에서 바로 백테스트를 돌리는 헬퍼."""
    engine = engine or BacktestEngine()
    loader = MarketDataLoader(
        price_feed,
        signal_feed,
        tickers,
        max_workers=max_workers,
        volatility_lookback=volatility_lookback,
    )
    return engine.run_backtest(request, loader)
