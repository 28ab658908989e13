#!/usr/bin/env python3
"""
Yahoo Finance 일봉을 ClickHouse stock_ohlcv로 수집하는 스크립트

[ 사용법 ]
    # config.yaml의 유니버스 전체, 마지막 수집일 다음 날부터 (증분)
    python scripts/ingest_data.py --init-schema

    # 특정 종목/기간
    python scripts/ingest_data.py --tickers DNB.OL,SB1NO.OL --start-date 2023-01-01
"""
import argparse
import sys
from datetime import date, datetime, timedelta
from pathlib import Path

# 프로젝트 루트를 sys.path에 추가
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from signal_backtester.ingestion.clickhouse_schema import (
    get_client,
    get_last_ingestion_date,
    initialize_schema,
    insert_ohlcv_data,
    update_ingestion_log,
    verify_connection,
)
from signal_backtester.ingestion.yahoo_finance import fetch_universe
from signal_backtester.utils.config import Config
from signal_backtester.utils.logger import setup_logger


def resolve_start_dates(client, tickers: list[str], start_date: date | None, end_date: date,
                        lookback_days: int) -> dict[str, date]:
    """종목별 수집 시작일. --start-date가 없으면 ingestion_log의 마지막 날짜 다음 날."""
    starts = {}
    for ticker in tickers:
        if start_date is not None:
            starts[ticker] = start_date
            continue
        last = get_last_ingestion_date(client, ticker)
        starts[ticker] = last + timedelta(days=1) if last else end_date - timedelta(days=lookback_days)
    return starts


def main():
    parser = argparse.ArgumentParser(description='Ingest stock data from Yahoo Finance to ClickHouse')
    parser.add_argument('--config', type=str, default='config.yaml', help='설정 파일 경로')
    parser.add_argument(
        '--tickers',
        type=str,
        default=None,
        help='Comma-separated ticker symbols (default: config.yaml universe)'
    )
    parser.add_argument('--start-date', type=str, default=None,
                        help='Start date in YYYY-MM-DD format (default: day after last ingestion)')
    parser.add_argument('--end-date', type=str, default=None,
                        help='End date in YYYY-MM-DD format (default: today)')
    parser.add_argument('--init-schema', action='store_true', help='Initialize schema before ingestion')
    args = parser.parse_args()

    config_path = Path(args.config)
    config = Config.from_yaml(config_path) if config_path.exists() else Config()
    logger = setup_logger(name="signal_backtester", level=config.log_level, log_dir=config.log_dir)

    end_date = datetime.strptime(args.end_date, '%Y-%m-%d').date() if args.end_date else date.today()
    start_date = datetime.strptime(args.start_date, '%Y-%m-%d').date() if args.start_date else None
    tickers = [t.strip() for t in args.tickers.split(',')] if args.tickers else config.universe.tickers

    db = config.database
    ingestion = config.data_ingestion
    logger.info("Ingestion parameters:")
    logger.info(f"  Tickers: {len(tickers)}")
    logger.info(f"  End date: {end_date}")
    logger.info(f"  ClickHouse: {db.host}:{db.port}/{db.database}")

    try:
        client = get_client(db.host, db.port, db.database, db.user, db.password)
        if not verify_connection(client):
            sys.exit(1)
        if args.init_schema:
            initialize_schema(client)

        starts = resolve_start_dates(client, tickers, start_date, end_date, ingestion.default_lookback_days)
        pending = [t for t in tickers if starts[t] <= end_date]
        for ticker in sorted(set(tickers) - set(pending)):
            logger.info(f"{ticker}: 이미 최신 ({starts[ticker] - timedelta(days=1)})")

        # 시작일이 같은 종목끼리 묶어 병렬 수집
        by_start: dict[date, list[str]] = {}
        for ticker in pending:
            by_start.setdefault(starts[ticker], []).append(ticker)

        success_count = 0
        fail_count = 0
        for group_start, group in sorted(by_start.items()):
            frames = fetch_universe(
                group,
                group_start,
                end_date,
                max_workers=ingestion.max_workers,
                max_retries=ingestion.max_retries,
                retry_delay=ingestion.retry_delay,
            )
            for ticker in group:
                df = frames.get(ticker)
                if df is None:
                    update_ingestion_log(client, ticker, end_date, 0, 'failed')
                    fail_count += 1
                    continue
                count = insert_ohlcv_data(client, ticker, df)
                update_ingestion_log(client, ticker, df['date'].max(), count, 'success')
                success_count += 1

        logger.info("=" * 60)
        logger.info("Ingestion completed:")
        logger.info(f"  Success: {success_count}/{len(pending)}")
        logger.info(f"  Failed: {fail_count}/{len(pending)}")
        sys.exit(0 if fail_count == 0 else 1)

    except Exception as e:
        logger.error(f"Fatal error: {e}", exc_info=True)
        sys.exit(1)


if __name__ == "__main__":
    main()
