"""Tests for the ledger-recover command line."""

import json

import pytest

from ledger_recovery.cli import EXIT_OK, EXIT_UNRECOVERABLE, EXIT_USAGE, main


@pytest.fixture(autouse=True)
def _workdir(monkeypatch, tmp_path):
    monkeypatch.chdir(tmp_path)
    monkeypatch.delenv("LEDGER_LOG_LEVEL", raising=False)
    monkeypatch.delenv("LEDGER_JSON_LOGS", raising=False)


class TestMain:
    """Tests for main()."""

    def test_qif_file(self, tmp_path, sample_qif, capsys):
        path = tmp_path / "checking.qif"
        path.write_text(sample_qif)

        assert main([str(path)]) == EXIT_OK

        output = json.loads(capsys.readouterr().out)
        assert output["transactions"][0]["category"] == "Food"
        assert output["accounts"][0]["balance"] == "-50.00"

    def test_binary_file_prints_sample(self, tmp_path, structured_mny, capsys):
        path = tmp_path / "home.mny"
        path.write_bytes(structured_mny)

        assert main([str(path), "--sample", "3"]) == EXIT_OK

        output = json.loads(capsys.readouterr().out)
        assert output["needs_mapping"] is True
        assert len(output["raw_data"]) == 3

    def test_binary_file_with_mapping(self, tmp_path, structured_mny, capsys):
        path = tmp_path / "home.mny"
        path.write_bytes(structured_mny)

        code = main([str(path), "--mapping", "date=0,amount=1,description=3"])

        assert code == EXIT_OK
        output = json.loads(capsys.readouterr().out)
        assert len(output["transactions"]) == 12
        assert output["skipped"] == 0

    def test_unrecoverable_file(self, tmp_path, capsys):
        path = tmp_path / "empty.mbf"
        path.write_bytes(bytes(1024))

        assert main([str(path)]) == EXIT_UNRECOVERABLE
        output = json.loads(capsys.readouterr().out)
        assert "Unable to extract data" in output["warning"]

    def test_missing_file(self, tmp_path, capsys):
        assert main([str(tmp_path / "nope.qif")]) == EXIT_USAGE
        assert "Error" in capsys.readouterr().err

    def test_bad_mapping_is_usage_error(self, tmp_path):
        with pytest.raises(SystemExit) as exc_info:
            main([str(tmp_path / "x.mny"), "--mapping", "date=zero"])
        assert exc_info.value.code == EXIT_USAGE

    def test_bad_log_level(self, tmp_path, sample_qif, capsys):
        path = tmp_path / "checking.qif"
        path.write_text(sample_qif)

        assert main([str(path), "--log-level", "LOUD"]) == EXIT_USAGE

    def test_non_standard_numeric_log_level(self, tmp_path, sample_qif, capsys):
        path = tmp_path / "checking.qif"
        path.write_text(sample_qif)

        assert main([str(path), "--log-level", "15"]) == EXIT_USAGE

    def test_json_logs_go_to_stderr(self, tmp_path, sample_qif, capsys):
        path = tmp_path / "checking.qif"
        path.write_text(sample_qif)

        main([str(path), "--json-logs", "--log-level", "INFO"])

        captured = capsys.readouterr()
        json.loads(captured.out)
        events = [json.loads(line)["event"] for line in captured.err.splitlines() if line]
        assert "qif_parse_finished" in events
