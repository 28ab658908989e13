"""
ClickHouse 기반 가격/시그널 제공자.

[ 역할 ]
    ClickHouse에 저장된 가격(stock_ohlcv)과 시그널 이력(signal_history)을 조회.
    PriceFeed / SignalFeed 인터페이스를 구현하여 시뮬레이터와 호환.

[ 의존성 ]
    - core/feeds.py::PriceFeed, SignalFeed (추상 클래스)
    - ingestion/clickhouse_schema.py (ClickHouse 연결 및 스키마)

[ 호출하는 곳 ]
    - run_backtest.py (--source clickhouse, --signal-source history)
"""

from datetime import date
from typing import Optional

import pandas as pd
from clickhouse_connect.driver import Client

from signal_backtester.core.feeds import PRICE_COLUMNS, SIGNAL_COLUMNS, PriceFeed, SignalFeed
from signal_backtester.ingestion.clickhouse_schema import get_client


def _to_frame(rows: list, columns: list[str]) -> pd.DataFrame:
    df = pd.DataFrame(rows, columns=columns)
    if not df.empty:
        df["date"] = pd.to_datetime(df["date"]).dt.date
    return df


class ClickHousePriceFeed(PriceFeed):
    """ClickHouse stock_ohlcv 테이블 기반 가격 제공자.

    사용 예:
        feed = ClickHousePriceFeed('localhost', 8123, 'default', password='password')
        df = feed.get_prices('DNB.OL', date(2024, 1, 1), date(2024, 12, 31))
    """

    def __init__(
        self,
        host: str = "localhost",
        port: int = 8123,
        database: str = "default",
        user: str = "default",
        password: str = "password",
        use_adjusted_close: bool = True,
        client: Optional[Client] = None,
    ):
        """
        Args:
            host: ClickHouse 호스트
            port: HTTP 포트 (기본값: 8123)
            database: 데이터베이스 이름
            user: 사용자 이름
            password: 비밀번호
            use_adjusted_close: True이면 adjusted_close를 close로 사용
            client: 이미 연결된 클라이언트 (주어지면 새로 연결하지 않음)
        """
        self.client: Client = client or get_client(host, port, database, user, password)
        self.use_adjusted_close = use_adjusted_close

    def get_prices(self, ticker: str, start_date: date, end_date: date) -> pd.DataFrame:
        close_column = "adjusted_close" if self.use_adjusted_close else "close"

        query = f"""
            SELECT
                date,
                {close_column} as close,
                volume
            FROM stock_ohlcv
            WHERE ticker = %(ticker)s
              AND date >= %(start_date)s
              AND date <= %(end_date)s
            ORDER BY date ASC
        """
        result = self.client.query(
            query,
            parameters={"ticker": ticker, "start_date": start_date, "end_date": end_date},
        )
        return _to_frame(result.result_rows, PRICE_COLUMNS)

    def get_tickers(self) -> list[str]:
        query = "SELECT DISTINCT ticker FROM stock_ohlcv ORDER BY ticker"
        result = self.client.query(query)
        return [row[0] for row in result.result_rows]

    def close(self):
        """ClickHouse 연결 종료."""
        if hasattr(self.client, "close"):
            self.client.close()


class ClickHouseSignalFeed(SignalFeed):
    """ClickHouse signal_history 테이블 기반 시그널 제공자.

    scripts/backfill_signals.py가 채운 이력을 읽는다. 백테스트마다 시그널을 다시
    계산하지 않기 위한 캐시 역할.
    """

    def __init__(self, client: Client):
        self.client = client

    def get_signals(self, signal_name: str, start_date: date, end_date: date) -> pd.DataFrame:
        query = """
            SELECT date, ticker, signal_value AS value
            FROM signal_history FINAL
            WHERE signal_type = %(signal_type)s
              AND date >= %(start_date)s
              AND date <= %(end_date)s
            ORDER BY date ASC, ticker ASC
        """
        result = self.client.query(
            query,
            parameters={"signal_type": signal_name, "start_date": start_date, "end_date": end_date},
        )
        return _to_frame(result.result_rows, SIGNAL_COLUMNS)

    def count_by_signal(self) -> dict[str, int]:
        """시그널 종류별 저장 건수."""
        result = self.client.query(
            "SELECT signal_type, COUNT(*) FROM signal_history FINAL GROUP BY signal_type ORDER BY signal_type"
        )
        return {row[0]: int(row[1]) for row in result.result_rows}
