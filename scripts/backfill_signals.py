#!/usr/bin/env python3
"""
시그널 값을 계산해 ClickHouse signal_history에 적재하는 스크립트

stock_ohlcv의 가격/거래량으로 인프로세스 계산 가능한 시그널을 다시 계산한다.
ReplacingMergeTree라 같은 기간을 다시 돌려도 중복되지 않는다.

[ 사용법 ]
    python scripts/backfill_signals.py --start-date 2024-01-01
    python scripts/backfill_signals.py --signals abnormal_volume,lars --start-date 2024-01-01 --end-date 2024-06-30
"""
import argparse
import sys
from datetime import date, datetime
from pathlib import Path

project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from signal_backtester.core.errors import BacktestError
from signal_backtester.data.clickhouse_provider import ClickHousePriceFeed, ClickHouseSignalFeed
from signal_backtester.data.frame_feeds import ComputedSignalFeed
from signal_backtester.ingestion.clickhouse_schema import initialize_schema, insert_signal_history
from signal_backtester.signals import COMPUTE_REGISTRY
from signal_backtester.utils.config import Config
from signal_backtester.utils.logger import setup_logger


def main():
    parser = argparse.ArgumentParser(description='Backfill computed signal values into ClickHouse')
    parser.add_argument('--config', type=str, default='config.yaml', help='설정 파일 경로')
    parser.add_argument('--signals', type=str, default=None,
                        help='Comma-separated signal names (default: all computable signals)')
    parser.add_argument('--start-date', type=str, required=True, help='Start date in YYYY-MM-DD format')
    parser.add_argument('--end-date', type=str, default=None, help='End date in YYYY-MM-DD format (default: today)')
    args = parser.parse_args()

    config_path = Path(args.config)
    config = Config.from_yaml(config_path) if config_path.exists() else Config()
    logger = setup_logger(name="signal_backtester", level=config.log_level, log_dir=config.log_dir)

    start_date = datetime.strptime(args.start_date, '%Y-%m-%d').date()
    end_date = datetime.strptime(args.end_date, '%Y-%m-%d').date() if args.end_date else date.today()
    names = [s.strip() for s in args.signals.split(',')] if args.signals else sorted(COMPUTE_REGISTRY)

    db = config.database
    price_feed = ClickHousePriceFeed(db.host, db.port, db.database, db.user, db.password,
                                     use_adjusted_close=db.use_adjusted_close)
    initialize_schema(price_feed.client)
    computed = ComputedSignalFeed(price_feed, config.universe)

    failed = []
    for name in names:
        try:
            values = computed.get_signals(name, start_date, end_date)
        except BacktestError as e:
            logger.error(f"{name}: {e.message}")
            failed.append(name)
            continue
        insert_signal_history(price_feed.client, name, values)

    counts = ClickHouseSignalFeed(price_feed.client).count_by_signal()
    for name, count in sorted(counts.items()):
        logger.info(f"  {name}: {count}건")
    price_feed.close()
    sys.exit(1 if failed else 0)


if __name__ == "__main__":
    main()
