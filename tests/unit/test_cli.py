"""Unit tests for the genotype-load CLI that need no database."""

from __future__ import annotations

from pathlib import Path

import yaml
from click.testing import CliRunner

from genotype_etl.import_genotype_matrix import ProgressReporter, main


class TestProgressReporter:
    def test_echoes_at_each_step(self, capsys):
        report = ProgressReporter("run-1", step_pct=50)
        for current in range(1, 5):
            report(current, 4)
        out = capsys.readouterr().out.splitlines()
        assert out == [
            "[run-1] Progress: 2/4 lines (50%)",
            "[run-1] Progress: 4/4 lines (100%)",
        ]

    def test_large_jumps_echo_once(self, capsys):
        report = ProgressReporter("run-1", step_pct=10)
        for current in range(1, 4):
            report(current, 3)
        out = capsys.readouterr().out.splitlines()
        assert len(out) == 3
        assert out[-1].endswith("(100%)")

    def test_empty_file_is_silent(self, capsys):
        ProgressReporter("run-1")(0, 0)
        assert capsys.readouterr().out == ""


class TestConfigErrors:
    def _invoke(self, tmp_path: Path, config_path: Path):
        matrix = tmp_path / "matrix.tsv"
        matrix.write_text("variant\tbackbone\tposition\tsample\tallele\n", encoding="utf-8")
        return CliRunner().invoke(main, [
            "--db-dsn", "host=invalid.example dbname=none",
            "--input-path", str(matrix),
            "--config-path", str(config_path),
            "--report-dir", str(tmp_path / "reports"),
            "--run-id", "cfg-test",
        ])

    def test_missing_config_file(self, tmp_path: Path):
        result = self._invoke(tmp_path, tmp_path / "absent.yml")
        assert result.exit_code == 1
        assert "FATAL: invalid config" in result.output

    def test_invalid_config(self, tmp_path: Path):
        config = tmp_path / "load.yml"
        config.write_text("organism_id: 1\nstorage_method: genotype_call\n", encoding="utf-8")
        result = self._invoke(tmp_path, config)
        assert result.exit_code == 1
        assert "missing required keys" in result.output
        assert not (tmp_path / "reports").exists()

    def test_unknown_storage_method(self, tmp_path: Path, config_data):
        config_data["storage_method"] = "hdf5"
        config = tmp_path / "load.yml"
        config.write_text(yaml.safe_dump(config_data), encoding="utf-8")
        result = self._invoke(tmp_path, config)
        assert result.exit_code == 1
        assert "hdf5" in result.output
