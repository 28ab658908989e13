"""
시그널 모듈.

[ 구성 ]
    SIGNAL_REGISTRY  - 시그널 이름 → SignalSpec (발동 방향/범위 메타데이터)
    COMPUTE_REGISTRY - 시그널 이름 → 가격/거래량 이력으로 값을 계산하는 함수

[ 인프로세스 계산 추가 방법 ]
    1. 이 디렉토리에 새 .py 파일 생성
    2. (history, reference) → DataFrame[date, ticker, value] 함수 작성
    3. @register_computation("이름") 데코레이터 추가
    → 끝. ComputedSignalFeed / scripts/backfill_signals.py 수정 불필요.

[ 호출하는 곳 ]
    - backtest/engine.py에서 get_signal_spec()으로 발동 규칙 조회
    - data/frame_feeds.py::ComputedSignalFeed에서 compute_signal() 호출
"""

from dataclasses import replace
from importlib import import_module
from pathlib import Path
from typing import Any, Callable

import pandas as pd

from signal_backtester.core.errors import UnknownSignalError
from signal_backtester.core.feeds import SIGNAL_COLUMNS
from signal_backtester.core.signal_spec import Direction, Scope, SignalSpec
from signal_backtester.data.reference import ReferenceData

SignalComputation = Callable[[dict[str, pd.DataFrame], ReferenceData], pd.DataFrame]

SIGNAL_REGISTRY: dict[str, SignalSpec] = {}
COMPUTE_REGISTRY: dict[str, SignalComputation] = {}


def register_spec(spec: SignalSpec) -> SignalSpec:
    SIGNAL_REGISTRY[spec.name] = spec
    return spec


def register_computation(name: str):
    """시그널 계산 함수를 COMPUTE_REGISTRY에 등록하는 데코레이터."""
    def decorator(func: SignalComputation) -> SignalComputation:
        COMPUTE_REGISTRY[name] = func
        return func
    return decorator


def list_signals() -> list[str]:
    """등록된 시그널 이름 목록."""
    return sorted(SIGNAL_REGISTRY.keys())


def get_signal_spec(name: str, overrides: dict[str, dict[str, Any]] | None = None) -> SignalSpec:
    """시그널 메타데이터 조회. config의 signals 섹션으로 direction/scope 덮어쓰기 가능.

    레지스트리 자체는 수정하지 않고 복사본을 반환한다.

    Raises:
        UnknownSignalError: 등록되지 않은 시그널 이름
    """
    if name not in SIGNAL_REGISTRY:
        raise UnknownSignalError(name, list_signals())
    spec = SIGNAL_REGISTRY[name]
    override = (overrides or {}).get(name)
    if not override:
        return spec
    changes: dict[str, Any] = {}
    if "direction" in override:
        changes["direction"] = Direction(override["direction"])
    if "scope" in override:
        changes["scope"] = Scope(override["scope"])
    return replace(spec, **changes)


def compute_signal(
    name: str,
    history: dict[str, pd.DataFrame],
    reference: ReferenceData,
) -> pd.DataFrame:
    """가격/거래량 이력으로 시그널 값 계산.

    Args:
        name: 시그널 이름 (COMPUTE_REGISTRY에 등록된 것)
        history: {ticker: DataFrame[date, close, volume]}
        reference: 유니버스 기준 데이터

    Returns:
        DataFrame[date, ticker, value] (date 오름차순)
    """
    if name not in COMPUTE_REGISTRY:
        raise UnknownSignalError(name, sorted(COMPUTE_REGISTRY.keys()))
    result = COMPUTE_REGISTRY[name](history, reference)
    if result.empty:
        return pd.DataFrame(columns=SIGNAL_COLUMNS)
    return result[SIGNAL_COLUMNS].sort_values(["date", "ticker"]).reset_index(drop=True)


# ─── 내장 시그널 메타데이터 ─────────────────────────────────────────────────

register_spec(SignalSpec(
    "abnormal_volume", Direction.ABSOLUTE, Scope.TICKER,
    "Identifies banks with unusual trading activity",
    "Z-score threshold (2.0 = 2 std deviations, typically significant)",
))
register_spec(SignalSpec(
    "volume_anomaly", Direction.ABOVE, Scope.TICKER,
    "Volume spike versus the trailing 20-day average",
    "Spike % threshold (100 = double the usual volume)",
))
register_spec(SignalSpec(
    "lars", Direction.ABOVE, Scope.PORTFOLIO,
    "Sector-wide return skew scaled by inverse average normalized turnover",
    "LARS threshold (0.5 = moderate skew, triggers all banks)",
))
register_spec(SignalSpec(
    "alpha_engine", Direction.ABOVE, Scope.TICKER,
    "Multi-factor alpha score for individual banks",
    "BAS_EMA threshold (2.0 = strong alpha signal)",
))
register_spec(SignalSpec(
    "vdi", Direction.ABOVE, Scope.PORTFOLIO,
    "Measures divergence in volatility patterns",
    "VDI threshold (1.0 = high volatility divergence)",
))
register_spec(SignalSpec(
    "ssi", Direction.ABOVE, Scope.PORTFOLIO,
    "Composite sentiment indicator for banking sector",
    "SSI threshold (1.0 = positive sector sentiment)",
))
register_spec(SignalSpec(
    "rotation", Direction.ABSOLUTE, Scope.PORTFOLIO,
    "Identifies rotation between small/mid/large cap banks",
    "Rotation strength threshold (1.0 = clear rotation signal)",
))
register_spec(SignalSpec(
    "smfi", Direction.ABOVE, Scope.TICKER,
    "Tracks institutional money flow patterns",
    "SMFI threshold (1.0 = significant smart money inflow)",
))
register_spec(SignalSpec(
    "outlier_radar", Direction.ABSOLUTE, Scope.TICKER,
    "Flags banks whose moves deviate from the sector",
    "Outlier score threshold (2.0 = strong outlier)",
))


def _auto_discover():
    """이 디렉토리의 계산 모듈을 자동 임포트하여 @register_computation이 실행되게 한다."""
    signals_dir = Path(__file__).parent
    for py_file in signals_dir.glob("*.py"):
        if py_file.name.startswith("_"):
            continue
        import_module(f"signal_backtester.signals.{py_file.stem}")


_auto_discover()
