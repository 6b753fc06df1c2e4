"""Tests for the claim-triage command line."""

import json
import sys
from pathlib import Path

import pytest

from claim_triage import main as cli

SAMPLE = Path(cli.__file__).resolve().parent / "data" / "sample_submission.json"


def _run(monkeypatch, *args):
    monkeypatch.setattr(sys, "argv", ["claim-triage", *args])
    cli.main()


def test_no_arguments_prints_usage(monkeypatch, capsys):
    with pytest.raises(SystemExit) as exc_info:
        _run(monkeypatch)
    assert exc_info.value.code == 1
    assert "Usage:" in capsys.readouterr().err


def test_unknown_command(monkeypatch, capsys):
    with pytest.raises(SystemExit):
        _run(monkeypatch, "approve")
    assert "Unknown command: approve" in capsys.readouterr().err


def test_status_requires_claim_id(monkeypatch, capsys):
    with pytest.raises(SystemExit):
        _run(monkeypatch, "status")
    assert "status requires <claim_id>" in capsys.readouterr().err


def test_missing_file(monkeypatch, capsys, tmp_path):
    with pytest.raises(SystemExit):
        _run(monkeypatch, "process", str(tmp_path / "nope.json"))
    assert "File not found" in capsys.readouterr().err


def test_invalid_json(monkeypatch, capsys, tmp_path):
    path = tmp_path / "bad.json"
    path.write_text("{not json")
    with pytest.raises(SystemExit):
        _run(monkeypatch, "process", str(path))
    assert "Invalid JSON" in capsys.readouterr().err


def test_submission_rejected_at_intake(monkeypatch, capsys, tmp_path):
    submission = json.loads(SAMPLE.read_text())
    del submission["policy"]
    path = tmp_path / "no_policy.json"
    path.write_text(json.dumps(submission))
    with pytest.raises(SystemExit):
        _run(monkeypatch, "process", str(path))
    out = json.loads(capsys.readouterr().out)
    assert out == {"status": "INCOMPLETE", "validation_errors": ["Policy not found"]}


def test_process_then_inspect(monkeypatch, capsys, repo):
    _run(monkeypatch, "process", str(SAMPLE))
    result = json.loads(capsys.readouterr().out)
    claim_id = result["claim_id"]
    assert result["routing"]["decision"]
    assert repo.get_claim(claim_id) is not None

    _run(monkeypatch, "status", claim_id)
    status = json.loads(capsys.readouterr().out)
    assert status["id"] == claim_id
    assert status["status"] == result["status"]
    assert "payload" not in status

    _run(monkeypatch, "history", claim_id)
    history = json.loads(capsys.readouterr().out)
    assert history[0]["action"] == "created"
    assert history[-1]["action"] == "decision"

    _run(monkeypatch, "runs", claim_id)
    runs = json.loads(capsys.readouterr().out)
    assert [r["run_id"] for r in runs] == [result["run_id"]]

    _run(monkeypatch, "metrics", claim_id, "--json")
    metrics = json.loads(capsys.readouterr().out)
    assert metrics["claim_id"] == claim_id


def test_status_for_unknown_claim(monkeypatch, capsys):
    with pytest.raises(SystemExit):
        _run(monkeypatch, "status", "CLM-NOPE")
    assert "Claim not found: CLM-NOPE" in capsys.readouterr().err


def test_metrics_for_unknown_claim(monkeypatch, capsys):
    with pytest.raises(SystemExit):
        _run(monkeypatch, "metrics", "CLM-NOPE")
    assert "No metrics found" in capsys.readouterr().err
