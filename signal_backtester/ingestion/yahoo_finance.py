"""
Yahoo Finance 데이터 수집 모듈

[ 역할 ]
    종목별 일봉을 yfinance로 받아 표준 컬럼으로 정리.
    fetch_universe()는 유니버스 전체를 병렬로 받는다 (종목끼리 독립).
"""
import logging
import time
from concurrent.futures import ThreadPoolExecutor, as_completed
from datetime import date, timedelta
from typing import Optional

import pandas as pd
import yfinance as yf

logger = logging.getLogger("signal_backtester.ingestion")

REQUIRED_COLUMNS = ["date", "open", "high", "low", "close", "adj_close", "volume"]


def fetch_ticker_data(
    ticker: str,
    start_date: date,
    end_date: date,
    max_retries: int = 3,
    retry_delay: int = 5,
) -> Optional[pd.DataFrame]:
    """
    Yahoo Finance에서 티커 데이터를 수집합니다.

    Args:
        ticker: 티커 심볼 (예: 'DNB.OL')
        start_date: 시작 날짜
        end_date: 종료 날짜 (포함)
        max_retries: 최대 재시도 횟수
        retry_delay: 재시도 간 대기 시간 (초)

    Returns:
        DataFrame with columns: [date, open, high, low, close, adj_close, volume]
        또는 실패 시 None
    """
    for attempt in range(max_retries):
        try:
            logger.info(f"Fetching {ticker} from {start_date} to {end_date} (attempt {attempt + 1}/{max_retries})")
            df = yf.Ticker(ticker).history(
                start=start_date,
                end=end_date + timedelta(days=1),
                auto_adjust=False,
                actions=False,
            )
            if df.empty:
                logger.warning(f"No data found for {ticker}")
                return None
            return normalize_history(df, ticker)

        except Exception as e:
            logger.error(f"Error fetching {ticker} (attempt {attempt + 1}/{max_retries}): {e}")
            if attempt < max_retries - 1:
                time.sleep(retry_delay)

    logger.error(f"Max retries reached for {ticker}")
    return None


def normalize_history(df: pd.DataFrame, ticker: str) -> Optional[pd.DataFrame]:
    """yfinance history() 결과 → 표준 컬럼. 종가/거래량이 비거나 0 이하인 행은 제거."""
    df = df.reset_index().rename(columns={
        "Date": "date",
        "Open": "open",
        "High": "high",
        "Low": "low",
        "Close": "close",
        "Adj Close": "adj_close",
        "Volume": "volume",
    })
    missing = set(REQUIRED_COLUMNS) - set(df.columns)
    if missing:
        logger.error(f"Missing columns for {ticker}: {missing}")
        return None

    df = df[REQUIRED_COLUMNS].copy()
    if pd.api.types.is_datetime64_any_dtype(df["date"]):
        df["date"] = df["date"].dt.date

    valid = df["close"].notna() & (df["close"] > 0) & df["volume"].notna() & (df["volume"] > 0)
    dropped = int((~valid).sum())
    if dropped:
        logger.warning(f"{ticker}: dropped {dropped} rows with empty close/volume")
    df = df[valid].reset_index(drop=True)
    df["volume"] = df["volume"].astype("int64")

    if (df["high"] < df["low"]).any():
        logger.warning(f"Invalid OHLC relationship (high < low) for {ticker}: {(df['high'] < df['low']).sum()} rows")
    return df


def fetch_universe(
    tickers: list[str],
    start_date: date,
    end_date: date,
    max_workers: int = 8,
    max_retries: int = 3,
    retry_delay: int = 5,
) -> dict[str, pd.DataFrame]:
    """
    유니버스 전체를 병렬 수집. 실패한 종목은 결과에서 빠진다.

    Returns:
        {ticker: DataFrame} (입력 순서 유지)
    """
    results: dict[str, pd.DataFrame] = {}
    with ThreadPoolExecutor(max_workers=max(1, max_workers)) as executor:
        futures = {
            executor.submit(fetch_ticker_data, t, start_date, end_date, max_retries, retry_delay): t
            for t in tickers
        }
        for future in as_completed(futures):
            df = future.result()
            if df is not None and not df.empty:
                results[futures[future]] = df
    return {t: results[t] for t in tickers if t in results}
