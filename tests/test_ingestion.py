"""수집 모듈 및 ClickHouse 제공자 테스트 (가짜 클라이언트 사용, DB 불필요)."""

from datetime import date
from types import SimpleNamespace

import pandas as pd
import pytest

from signal_backtester.data.clickhouse_provider import ClickHousePriceFeed, ClickHouseSignalFeed
from signal_backtester.ingestion import clickhouse_schema, yahoo_finance
from signal_backtester.ingestion.clickhouse_schema import (
    get_last_ingestion_date,
    initialize_schema,
    insert_ohlcv_data,
    insert_signal_history,
)
from signal_backtester.ingestion.yahoo_finance import fetch_universe, normalize_history


class FakeClient:
    """clickhouse_connect Client 대역. 쿼리 결과는 미리 넣어둔 행을 돌려준다."""

    def __init__(self, rows=None, fail_batches=()):
        self.rows = rows or []
        self.fail_batches = set(fail_batches)
        self.inserts = []
        self.commands = []
        self.queries = []

    def query(self, sql, parameters=None):
        self.queries.append((sql, parameters))
        return SimpleNamespace(result_rows=self.rows)

    def command(self, sql):
        self.commands.append(sql)
        return 1

    def insert(self, table, data, column_names=None):
        if len(self.inserts) in self.fail_batches:
            self.inserts.append(None)
            raise RuntimeError("insert failed")
        self.inserts.append((table, data, column_names))


class TestSchema:

    def test_creates_three_tables(self):
        client = FakeClient()
        initialize_schema(client)
        created = " ".join(client.commands)
        for table in ("stock_ohlcv", "ingestion_log", "signal_history"):
            assert f"CREATE TABLE IF NOT EXISTS {table}" in created
        assert "ORDER BY (signal_type, date, ticker)" in created

    def test_last_ingestion_date(self):
        assert get_last_ingestion_date(FakeClient(rows=[[date(2024, 6, 3)]]), "DNB.OL") == date(2024, 6, 3)
        assert get_last_ingestion_date(FakeClient(), "DNB.OL") is None

    def test_insert_ohlcv_renames_adjusted_close(self):
        client = FakeClient()
        df = pd.DataFrame({
            "date": [date(2024, 1, 2)], "open": [1.0], "high": [2.0], "low": [0.5],
            "close": [1.5], "adj_close": [1.4], "volume": [100],
        })
        assert insert_ohlcv_data(client, "DNB.OL", df) == 1
        table, data, columns = client.inserts[0]
        assert table == "stock_ohlcv"
        assert columns[6] == "adjusted_close"
        assert data[0][0] == "DNB.OL"

    def test_signal_history_batches(self, monkeypatch):
        monkeypatch.setattr(clickhouse_schema, "SIGNAL_BATCH_SIZE", 2)
        client = FakeClient(fail_batches={1})
        values = pd.DataFrame({
            "date": [date(2024, 1, d) for d in range(2, 7)],
            "ticker": ["A"] * 5,
            "value": [1.0, 2.0, 3.0, 4.0, 5.0],
        })
        assert insert_signal_history(client, "abnormal_volume", values) == 3
        assert len(client.inserts) == 3
        table, data, columns = client.inserts[0]
        assert table == "signal_history"
        assert data[0] == ["abnormal_volume", date(2024, 1, 2), "A", 1.0]

    def test_signal_history_empty(self):
        assert insert_signal_history(FakeClient(), "lars", pd.DataFrame(columns=["date", "ticker", "value"])) == 0


class TestYahooFinance:

    def test_normalize_history(self):
        raw = pd.DataFrame(
            {
                "Open": [10.0, 11.0, 12.0],
                "High": [11.0, 12.0, 13.0],
                "Low": [9.0, 10.0, 11.0],
                "Close": [10.5, None, 12.5],
                "Adj Close": [10.4, None, 12.4],
                "Volume": [1000, 0, 3000],
            },
            index=pd.DatetimeIndex(["2024-01-02", "2024-01-03", "2024-01-04"], name="Date"),
        )
        df = normalize_history(raw, "DNB.OL")
        assert list(df.columns) == yahoo_finance.REQUIRED_COLUMNS
        assert df["date"].tolist() == [date(2024, 1, 2), date(2024, 1, 4)]
        assert df["volume"].tolist() == [1000, 3000]

    def test_missing_columns(self):
        raw = pd.DataFrame({"Close": [1.0]}, index=pd.DatetimeIndex(["2024-01-02"], name="Date"))
        assert normalize_history(raw, "X") is None

    def test_fetch_universe_keeps_order_and_drops_failures(self, monkeypatch):
        def fake_fetch(ticker, start, end, max_retries, retry_delay):
            if ticker == "BAD":
                return None
            return pd.DataFrame({"date": [start], "close": [1.0]})

        monkeypatch.setattr(yahoo_finance, "fetch_ticker_data", fake_fetch)
        result = fetch_universe(["B", "BAD", "A"], date(2024, 1, 1), date(2024, 1, 31), max_workers=3)
        assert list(result) == ["B", "A"]


class TestClickHouseFeeds:

    def test_price_feed_uses_adjusted_close(self):
        client = FakeClient(rows=[[date(2024, 1, 2), 10.0, 100], [date(2024, 1, 3), 11.0, 200]])
        feed = ClickHousePriceFeed(client=client)
        df = feed.get_prices("DNB.OL", date(2024, 1, 1), date(2024, 1, 31))

        assert df["close"].tolist() == [10.0, 11.0]
        sql, params = client.queries[0]
        assert "adjusted_close as close" in sql
        assert params["ticker"] == "DNB.OL"

    def test_price_feed_raw_close(self):
        client = FakeClient()
        ClickHousePriceFeed(client=client, use_adjusted_close=False).get_prices("A", date(2024, 1, 1), date(2024, 1, 2))
        assert "close as close" in client.queries[0][0]

    def test_signal_feed(self):
        client = FakeClient(rows=[[date(2024, 1, 2), "PORTFOLIO", 0.7]])
        df = ClickHouseSignalFeed(client).get_signals("lars", date(2024, 1, 1), date(2024, 1, 31))
        assert df.to_dict("records") == [{"date": date(2024, 1, 2), "ticker": "PORTFOLIO", "value": 0.7}]
        assert client.queries[0][1]["signal_type"] == "lars"

    def test_count_by_signal(self):
        client = FakeClient(rows=[["abnormal_volume", 120], ["lars", 40]])
        assert ClickHouseSignalFeed(client).count_by_signal() == {"abnormal_volume": 120, "lars": 40}
