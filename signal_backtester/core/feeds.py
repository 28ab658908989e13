"""
가격/시그널 데이터 제공 추상 클래스 정의.

[ 역할 ]
    시뮬레이터가 사용하는 두 외부 협력자의 경계.
    데이터 소스(DataFrame, ClickHouse, 인프로세스 계산)에 독립적으로
    백테스트에 가격과 시그널을 공급.

[ 구현체 ]
    PriceFeed
        - data/frame_feeds.py::FramePriceFeed         (DataFrame 기반, 테스트/샘플용)
        - data/clickhouse_provider.py::ClickHousePriceFeed
    SignalFeed
        - data/frame_feeds.py::FrameSignalFeed
        - data/clickhouse_provider.py::ClickHouseSignalFeed  (signal_history 테이블)
        - data/frame_feeds.py::ComputedSignalFeed     (가격 이력으로 직접 계산)

[ 호출하는 곳 ]
    - data/market_data.py::MarketDataLoader가 루프 시작 전에 전부 조회
      (루프 자체는 I/O를 하지 않는다)
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import date

import pandas as pd

PRICE_COLUMNS = ["date", "close", "volume"]
SIGNAL_COLUMNS = ["date", "ticker", "value"]


@dataclass(frozen=True)
class SignalRecord:
    """(날짜, 종목) 하나의 시그널 값. (date, ticker)당 하나."""
    date: date
    ticker: str
    value: float


class PriceFeed(ABC):
    """종가/거래량 이력 제공 추상 클래스."""

    @abstractmethod
    def get_prices(
        self,
        ticker: str,
        start_date: date,
        end_date: date,
    ) -> pd.DataFrame:
        """종가 이력 조회.

        Args:
            ticker: 종목 코드
            start_date: 시작일
            end_date: 종료일

        Returns:
            DataFrame with columns: [date, close, volume] (date 오름차순, 없으면 빈 프레임)
        """
        ...

    @abstractmethod
    def get_tickers(self) -> list[str]:
        """조회 가능한 종목 코드 목록."""
        ...


class SignalFeed(ABC):
    """이름 붙은 시그널의 (date, ticker, value) 이력 제공 추상 클래스."""

    @abstractmethod
    def get_signals(
        self,
        signal_name: str,
        start_date: date,
        end_date: date,
    ) -> pd.DataFrame:
        """시그널 이력 조회.

        Returns:
            DataFrame with columns: [date, ticker, value]
            섹터 전체 시그널은 ticker = "PORTFOLIO"
        """
        ...

    def get_records(self, signal_name: str, start_date: date, end_date: date) -> list[SignalRecord]:
        """get_signals() 결과를 SignalRecord 리스트로 변환."""
        df = self.get_signals(signal_name, start_date, end_date)
        return [
            SignalRecord(date=row.date, ticker=row.ticker, value=float(row.value))
            for row in df.itertuples(index=False)
        ]
