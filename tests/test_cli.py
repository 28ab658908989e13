"""run_backtest.py 진입점 테스트 (샘플 데이터)."""

import json
import logging

import pytest

import run_backtest


@pytest.fixture(autouse=True)
def reset_logger():
    yield
    logger = logging.getLogger("signal_backtester")
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()


@pytest.fixture()
def config_path(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text(
        f"""
backtest:
  start_date: "2024-05-01"
  end_date: "2024-08-30"
universe:
  instruments:
    - {{ticker: AAA.OL}}
    - {{ticker: BBB.OL}}
    - {{ticker: CCC.OL}}
    - {{ticker: DDD.OL}}
    - {{ticker: EEE.OL}}
    - {{ticker: FFF.OL}}
log_level: WARNING
log_dir: {tmp_path / "logs"}
""",
        encoding="utf-8",
    )
    return str(path)


def run(monkeypatch, *argv):
    monkeypatch.setattr("sys.argv", ["run_backtest.py", *argv])
    return run_backtest.main()


class TestSampleData:

    def test_deterministic_per_ticker(self):
        from datetime import date

        first = run_backtest.generate_sample_data("DNB.OL", date(2024, 1, 1), date(2024, 3, 1))
        second = run_backtest.generate_sample_data("DNB.OL", date(2024, 1, 1), date(2024, 3, 1))
        assert first.equals(second)
        assert list(first.columns) == ["date", "close", "volume"]
        assert (first["close"] > 0).all()


class TestMain:

    def test_json_response(self, monkeypatch, capsys, config_path):
        assert run(monkeypatch, "--config", config_path, "--threshold", "1.5", "--json") == 0
        payload = json.loads(capsys.readouterr().out)
        assert set(payload) == {"stats", "tradeMetrics", "equityCurve", "trades", "activePositions"}
        assert payload["equityCurve"][0]["date"] >= "2024-05-01"

    def test_text_report(self, monkeypatch, capsys, config_path):
        assert run(monkeypatch, "--config", config_path, "--signal", "volume_anomaly", "--threshold", "50") == 0
        assert "백테스트 성과 리포트" in capsys.readouterr().out

    def test_compare_sizing_modes(self, monkeypatch, capsys, config_path):
        code = run(monkeypatch, "--config", config_path, "--signal", "volume_anomaly", "--threshold", "50",
                   "--max-positions", "3", "--compare")
        assert code == 0
        out = capsys.readouterr().out
        assert "사이징 비교 결과 (volume_anomaly" in out
        header = next(line for line in out.splitlines() if "equal" in line and "signal_weighted" in line)
        assert header.split() == ["equal", "signal_weighted", "volatility"]

    def test_compare_json(self, monkeypatch, capsys, config_path):
        code = run(monkeypatch, "--config", config_path, "--threshold", "1.5", "--compare", "--json")
        assert code == 0
        payload = json.loads(capsys.readouterr().out)
        assert list(payload) == ["equal", "signal_weighted", "volatility"]
        for stats in payload.values():
            assert stats["initial_capital"] == pytest.approx(payload["equal"]["initial_capital"])
            assert {"total_return", "sharpe_ratio", "total_trades", "profit_factor"} <= set(stats)

    def test_compare_rejects_signal_list(self, monkeypatch, config_path):
        monkeypatch.setattr("sys.argv", ["run_backtest.py", "--config", config_path, "--compare", "lars"])
        with pytest.raises(SystemExit):
            run_backtest.main()

    def test_error_is_structured(self, monkeypatch, capsys, config_path):
        code = run(monkeypatch, "--config", config_path, "--signal", "moon_phase", "--json")
        assert code == 1
        payload = json.loads(capsys.readouterr().out)
        assert payload["error"] == "UnknownSignalError"

    def test_bad_date(self, monkeypatch, capsys, config_path):
        assert run(monkeypatch, "--config", config_path, "--start", "yesterday", "--json") == 1
        assert json.loads(capsys.readouterr().out)["error"] == "InputValidationError"

    def test_history_signals_need_clickhouse(self, monkeypatch, config_path):
        assert run(monkeypatch, "--config", config_path, "--signal-source", "history") == 1

    def test_list(self, monkeypatch, capsys):
        assert run(monkeypatch, "--list") == 0
        out = capsys.readouterr().out
        assert "abnormal_volume" in out
        assert "이력 전용" in out
