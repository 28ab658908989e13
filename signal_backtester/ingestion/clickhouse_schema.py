"""
ClickHouse 데이터베이스 스키마 정의 및 연결 관리

[ 테이블 ]
    stock_ohlcv     - 일별 가격/거래량 (Yahoo Finance 수집분)
    ingestion_log   - 종목별 마지막 수집 기록
    signal_history  - 날짜별·종목별 시그널 값 (백테스트마다 재계산하지 않기 위한 캐시)
                      (signal_type, date, ticker) 당 한 건, 재적재 시 최신 값으로 교체
"""
import logging
from datetime import date, datetime
from typing import Optional

import clickhouse_connect
import pandas as pd
from clickhouse_connect.driver import Client

logger = logging.getLogger("signal_backtester.ingestion")

SIGNAL_BATCH_SIZE = 500


def get_client(
    host: str = "localhost",
    port: int = 8123,
    database: str = "default",
    user: str = "default",
    password: str = "password",
) -> Client:
    """
    ClickHouse 클라이언트 연결 생성

    Args:
        host: ClickHouse 호스트
        port: HTTP 포트 (기본값: 8123)
        database: 데이터베이스 이름
        user: 사용자 이름
        password: 비밀번호
    """
    return clickhouse_connect.get_client(
        host=host,
        port=port,
        database=database,
        username=user,
        password=password,
    )


def initialize_schema(client: Client) -> None:
    """
    필요한 테이블 생성 (이미 존재하면 무시)
    """
    create_ohlcv_table = """
    CREATE TABLE IF NOT EXISTS stock_ohlcv (
        ticker String,
        date Date,
        open Float64,
        high Float64,
        low Float64,
        close Float64,
        adjusted_close Float64,
        volume UInt64,
        source String DEFAULT 'yahoo',
        ingestion_time DateTime DEFAULT now()
    )
    ENGINE = MergeTree()
    PARTITION BY toYYYYMM(date)
    ORDER BY (ticker, date)
    SETTINGS index_granularity = 8192
    """

    create_log_table = """
    CREATE TABLE IF NOT EXISTS ingestion_log (
        ticker String,
        last_date Date,
        last_ingestion DateTime,
        record_count UInt32,
        status String
    )
    ENGINE = ReplacingMergeTree(last_ingestion)
    ORDER BY ticker
    """

    create_signal_table = """
    CREATE TABLE IF NOT EXISTS signal_history (
        signal_type String,
        date Date,
        ticker String,
        signal_value Float64,
        metadata String DEFAULT '{}',
        updated_at DateTime DEFAULT now()
    )
    ENGINE = ReplacingMergeTree(updated_at)
    PARTITION BY toYYYYMM(date)
    ORDER BY (signal_type, date, ticker)
    """

    client.command(create_ohlcv_table)
    client.command(create_log_table)
    client.command(create_signal_table)
    logger.info("테이블 생성 완료 (또는 이미 존재)")


def verify_connection(client: Client) -> bool:
    """ClickHouse 연결 검증."""
    try:
        return client.command("SELECT 1") == 1
    except Exception as e:
        logger.error(f"연결 실패: {e}")
        return False


def get_last_ingestion_date(client: Client, ticker: str) -> Optional[date]:
    """특정 티커의 마지막 수집 날짜 (ingestion_log 기준). 없으면 None."""
    query = """
        SELECT last_date
        FROM ingestion_log
        WHERE ticker = %(ticker)s
        ORDER BY last_ingestion DESC
        LIMIT 1
    """
    result = client.query(query, parameters={"ticker": ticker})
    if result.result_rows:
        return result.result_rows[0][0]
    return None


def insert_ohlcv_data(client: Client, ticker: str, df: pd.DataFrame) -> int:
    """
    OHLCV 데이터를 stock_ohlcv에 삽입

    Returns:
        삽입된 레코드 수
    """
    if df is None or df.empty:
        logger.warning(f"No data to insert for {ticker}")
        return 0

    df = df.copy()
    df["ticker"] = ticker
    df = df.rename(columns={"adj_close": "adjusted_close"})

    columns = ["ticker", "date", "open", "high", "low", "close", "adjusted_close", "volume"]
    data = df[columns].values.tolist()
    client.insert("stock_ohlcv", data, column_names=columns)
    logger.info(f"Inserted {len(data)} rows for {ticker}")
    return len(data)


def update_ingestion_log(
    client: Client,
    ticker: str,
    last_date: date,
    record_count: int,
    status: str = "success",
) -> None:
    """ingestion_log 갱신. 실패해도 수집 자체는 계속한다."""
    data = [[ticker, last_date, datetime.now(), record_count, status]]
    try:
        client.insert(
            "ingestion_log",
            data,
            column_names=["ticker", "last_date", "last_ingestion", "record_count", "status"],
        )
    except Exception as e:
        logger.error(f"Error updating ingestion_log for {ticker}: {e}")


def insert_signal_history(client: Client, signal_name: str, values: pd.DataFrame) -> int:
    """
    시그널 값 DataFrame[date, ticker, value]를 signal_history에 배치 삽입

    ReplacingMergeTree라 같은 (signal_type, date, ticker)는 최신 값으로 교체된다.
    배치 하나가 실패해도 나머지 배치는 계속 삽입.

    Returns:
        삽입된 레코드 수
    """
    if values.empty:
        return 0

    columns = ["signal_type", "date", "ticker", "signal_value"]
    rows = [
        [signal_name, row.date, row.ticker, float(row.value)]
        for row in values.itertuples(index=False)
    ]

    inserted = 0
    for start in range(0, len(rows), SIGNAL_BATCH_SIZE):
        batch = rows[start:start + SIGNAL_BATCH_SIZE]
        try:
            client.insert("signal_history", batch, column_names=columns)
        except Exception as e:
            logger.error(f"Error inserting {signal_name} batch {start // SIGNAL_BATCH_SIZE + 1}: {e}")
            continue
        inserted += len(batch)
    logger.info(f"{signal_name}: {inserted}/{len(rows)}건 저장")
    return inserted
