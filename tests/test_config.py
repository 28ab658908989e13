"""설정 로드 테스트."""

import json

import pytest

from signal_backtester.backtest.engine import BacktestRequest
from signal_backtester.utils.config import Config


@pytest.fixture()
def config_file(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text(
        """
backtest:
  signal_name: lars
  threshold: 0.5
  start_date: 2024-05-01
  end_date: 2024-06-28
  max_positions: 3
  position_sizing: volatility
  commission_rate: 0.001
  unknown_key: ignored
universe:
  small_max: 5
  instruments:
    - {name: DNB, ticker: DNB.OL, shares_outstanding: 1500000000}
    - {ticker: MING.OL}
signals:
  outlier_radar:
    direction: above
database:
  host: clickhouse
log_level: DEBUG
""",
        encoding="utf-8",
    )
    return path


class TestConfig:

    def test_defaults(self):
        config = Config()
        assert config.backtest.commission_rate == 0.0
        assert config.backtest.position_sizing == "equal"
        assert len(config.universe.tickers) == 22

    def test_from_yaml(self, config_file):
        config = Config.from_yaml(config_file)

        assert config.backtest.signal_name == "lars"
        assert config.backtest.start_date == "2024-05-01"
        assert config.backtest.commission_rate == 0.001
        assert config.universe.tickers == ["DNB.OL", "MING.OL"]
        assert config.universe.get("MING.OL").name == "MING.OL"
        assert config.universe.small_max == 5
        assert config.signals == {"outlier_radar": {"direction": "above"}}
        assert config.database.host == "clickhouse"
        assert config.database.port == 8123
        assert config.log_level == "DEBUG"

    def test_request_from_config(self, config_file):
        request = BacktestRequest.from_dict(Config.from_yaml(config_file).backtest.to_request_dict())
        assert request.signal_name == "lars"
        assert request.max_positions == 3
        assert request.position_sizing.value == "volatility"

    def test_yaml_round_trip(self, config_file, tmp_path):
        config = Config.from_yaml(config_file)
        out = tmp_path / "saved" / "config.yaml"
        config.save_yaml(out)
        assert Config.from_yaml(out) == config

    def test_from_json(self, tmp_path):
        path = tmp_path / "config.json"
        path.write_text(json.dumps({"backtest": {"holding_period": 10}, "log_dir": "out"}), encoding="utf-8")
        config = Config.from_json(path)
        assert config.backtest.holding_period == 10
        assert config.log_dir == "out"
