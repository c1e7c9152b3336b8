from __future__ import annotations

from pathlib import Path

import polars as pl
import pytest
from click.testing import CliRunner

from txnsim.cli import cli, configure_logging
from txnsim.simulation.transactions import RAW_LOG_COLUMNS

SMALL_RUN = ["--steps", "24", "--clients", "20", "--merchants", "3", "--banks", "1", "--seed", "3"]


class TestSimulateCommand:
    def test_writes_outputs(self, tmp_path: Path) -> None:
        runner = CliRunner()
        with runner.isolated_filesystem(temp_dir=tmp_path):
            result = runner.invoke(cli, ["simulate", *SMALL_RUN, "--name", "cli", "--output-dir", "out"])
            assert result.exit_code == 0, result.output
            assert "Transactions:" in result.output

            out = Path("out")
            assert (out / "cli_transactions.parquet").exists()
            assert (out / "cli_aggregatedTransactions.csv").exists()
            assert (out / "cli_clientsProfiles.csv").exists()
            assert (out / "cli_summary.json").exists()

            raw = pl.read_csv(out / "cli_rawLog.csv")
            parquet = pl.read_parquet(out / "cli_transactions.parquet")
            assert raw.columns == list(RAW_LOG_COLUMNS.values())
            assert raw.height == parquet.height

    def test_no_raw_log(self, tmp_path: Path) -> None:
        runner = CliRunner()
        with runner.isolated_filesystem(temp_dir=tmp_path):
            result = runner.invoke(
                cli, ["simulate", *SMALL_RUN, "--name", "quiet", "--output-dir", "out", "--no-raw-log"]
            )
            assert result.exit_code == 0, result.output
            assert not Path("out/quiet_rawLog.csv").exists()
            assert Path("out/quiet_summary.json").exists()

    def test_loads_step_profiles(self, tmp_path: Path) -> None:
        runner = CliRunner()
        with runner.isolated_filesystem(temp_dir=tmp_path):
            pl.DataFrame(
                {
                    "action": ["PAYMENT", "CASH_IN", "PAYMENT"],
                    "step": [0, 0, 1],
                    "count": [40, 10, 30],
                    "avg": [500.0, 2_000.0, 450.0],
                    "std": [100.0, 500.0, 90.0],
                }
            ).write_csv("steps.csv")

            result = runner.invoke(
                cli,
                ["simulate", *SMALL_RUN, "--profiles", "steps.csv", "--output-dir", "out", "--name", "loaded"],
            )
            assert result.exit_code == 0, result.output
            steps = pl.read_parquet("out/loaded_transactions.parquet")["step"].unique().to_list()
            assert set(steps) <= {0, 1}

    def test_missing_profiles_file(self, tmp_path: Path) -> None:
        runner = CliRunner()
        result = runner.invoke(cli, ["simulate", "--profiles", str(tmp_path / "nope.csv")])
        assert result.exit_code != 0


class TestConfigureLogging:
    def test_explicit_level_wins(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("TXNSIM_LOG_LEVEL", "ERROR")
        assert configure_logging("debug") == "DEBUG"

    def test_falls_back_to_settings(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("TXNSIM_LOG_LEVEL", "warning")
        assert configure_logging() == "WARNING"

    def test_default_level(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.delenv("TXNSIM_LOG_LEVEL", raising=False)
        assert configure_logging(None) == "INFO"
