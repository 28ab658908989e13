"""
설정 관리 모듈.

[ 역할 ]
    config.yaml (또는 .json) 파일을 파싱하여 Config 객체로 변환.
    백테스트 파라미터, 유니버스(기준 데이터), 시그널 메타데이터 덮어쓰기,
    DB 접속, 수집, 로깅 설정 등을 통합 관리.

[ 설정 파일 구조 (config.yaml) ]
    backtest:         → BacktestConfig (백테스트 파라미터 + 비용 모델 + 실행 한도)
    universe:         → ReferenceData (종목, 발행주식수, 규모 구분 기준)
    signals:          → {시그널 이름: {direction, scope}} 덮어쓰기
    database:         → DatabaseConfig (ClickHouse)
    data_ingestion:   → DataIngestionConfig
    log_level:        → "INFO" / "DEBUG"
    log_dir:          → 로그 디렉토리 경로

[ 호출하는 곳 ]
    - run_backtest.py, scripts/*.py에서 Config.from_yaml()로 로드
    - 엔진 생성 시 config.backtest의 비용 모델/한도 사용
    - 요청 생성 시 config.backtest.to_request()
"""

import json
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any, Optional

import yaml

from signal_backtester.data.reference import ReferenceData


@dataclass
class BacktestConfig:
    """백테스트 설정. config.yaml의 backtest 섹션에 대응."""
    signal_name: str = "abnormal_volume"
    threshold: float = 2.0
    start_date: str = "2024-05-01"
    end_date: str = "2024-11-14"
    initial_capital: float = 1_000_000
    max_positions: int = 5
    holding_period: int = 5                 # 거래일
    position_sizing: str = "equal"          # equal / signal_weighted / volatility
    volatility_lookback: int = 20           # volatility 사이징용 거래일 수
    commission_rate: float = 0.0            # 비용 모델은 명시적으로 설정할 때만
    tax_rate: float = 0.0
    slippage_rate: float = 0.0
    risk_free_rate: float = 0.0
    max_trading_days: Optional[int] = 2520  # 약 10년
    time_budget_seconds: Optional[float] = None

    def to_request_dict(self) -> dict[str, Any]:
        """BacktestRequest.from_dict()에 넘길 요청 딕셔너리."""
        return {
            "signal_name": self.signal_name,
            "threshold": self.threshold,
            "start_date": self.start_date,
            "end_date": self.end_date,
            "initial_capital": self.initial_capital,
            "max_positions": self.max_positions,
            "holding_period": self.holding_period,
            "position_sizing": self.position_sizing,
        }


@dataclass
class DatabaseConfig:
    """데이터베이스 설정. config.yaml의 database 섹션에 대응."""
    host: str = "localhost"
    port: int = 8123
    database: str = "default"
    user: str = "default"
    password: str = "password"
    use_adjusted_close: bool = True


@dataclass
class DataIngestionConfig:
    """데이터 수집 설정. config.yaml의 data_ingestion 섹션에 대응."""
    default_lookback_days: int = 365
    max_retries: int = 3
    retry_delay: int = 5
    max_workers: int = 8        # 종목별 병렬 조회 쓰레드 수


def _section(cls, data: dict[str, Any]):
    """알 수 없는 키는 무시하고 dataclass 생성."""
    return cls(**{k: v for k, v in (data or {}).items() if k in cls.__dataclass_fields__})


@dataclass
class Config:
    """전체 설정. from_yaml() 또는 from_json()으로 파일에서 로드."""
    backtest: BacktestConfig = field(default_factory=BacktestConfig)
    universe: ReferenceData = field(default_factory=ReferenceData)
    signals: dict[str, dict[str, Any]] = field(default_factory=dict)
    database: DatabaseConfig = field(default_factory=DatabaseConfig)
    data_ingestion: DataIngestionConfig = field(default_factory=DataIngestionConfig)
    log_level: str = "INFO"
    log_dir: str = "logs"

    @classmethod
    def from_yaml(cls, path: str | Path) -> "Config":
        """YAML 파일에서 설정 로드."""
        path = Path(path)
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
        return cls._from_dict(data)

    @classmethod
    def from_json(cls, path: str | Path) -> "Config":
        """JSON 파일에서 설정 로드."""
        path = Path(path)
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
        return cls._from_dict(data)

    @classmethod
    def _from_dict(cls, data: dict[str, Any]) -> "Config":
        """딕셔너리에서 Config 생성."""
        backtest = _section(BacktestConfig, data.get("backtest", {}))
        # YAML이 날짜를 date로 파싱하는 경우 문자열로 통일
        backtest.start_date = str(backtest.start_date)
        backtest.end_date = str(backtest.end_date)

        signals = {
            name: dict(override or {})
            for name, override in (data.get("signals") or {}).items()
        }

        return cls(
            backtest=backtest,
            universe=ReferenceData.from_dict(data.get("universe")),
            signals=signals,
            database=_section(DatabaseConfig, data.get("database", {})),
            data_ingestion=_section(DataIngestionConfig, data.get("data_ingestion", {})),
            log_level=data.get("log_level", "INFO"),
            log_dir=data.get("log_dir", "logs"),
        )

    def to_dict(self) -> dict[str, Any]:
        """딕셔너리로 변환."""
        return {
            "backtest": asdict(self.backtest),
            "universe": self.universe.to_dict(),
            "signals": self.signals,
            "database": asdict(self.database),
            "data_ingestion": asdict(self.data_ingestion),
            "log_level": self.log_level,
            "log_dir": self.log_dir,
        }

    def save_yaml(self, path: str | Path) -> None:
        """YAML 파일로 저장."""
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w", encoding="utf-8") as f:
            yaml.dump(self.to_dict(), f, allow_unicode=True, default_flow_style=False)
