from __future__ import annotations

import json
import sys
from pathlib import Path

import pytest

_REPO_ROOT = Path(__file__).resolve().parents[1]
if str(_REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(_REPO_ROOT))

from connectors import medreg_cli
from connectors.medreg_cli import _read_text


class DummyClient:
    reports: dict = {}

    def __init__(self, *_args, **kwargs):
        self.auth = kwargs.get("auth")

    def add_report(self, patient_id, report_data):
        if patient_id in DummyClient.reports:
            raise RuntimeError(f"POST /reports/{patient_id} -> 409: Report already exists")
        DummyClient.reports[patient_id] = report_data
        return {"patient_id": patient_id, "added_by": "owner_1", "hash": "h", "timestamp": "t"}

    def get_report(self, patient_id):
        return DummyClient.reports.get(patient_id, "")

    def verify_notifications(self):
        return {"valid": False, "entries": 2}

    def close(self):
        return None


@pytest.fixture(autouse=True)
def dummy_client(monkeypatch: pytest.MonkeyPatch):
    DummyClient.reports = {}
    monkeypatch.setattr(medreg_cli, "MedregClient", DummyClient)


def _run(monkeypatch: pytest.MonkeyPatch, *argv: str) -> None:
    monkeypatch.setattr(sys, "argv", ["medreg_cli.py", "--url", "http://example", *argv])
    medreg_cli.main()


def test_read_text_from_file(tmp_path: Path) -> None:
    path = tmp_path / "report.txt"
    path.write_text("from file")
    assert _read_text(str(path)) == "from file"


def test_data_stored_verbatim_even_if_it_names_a_file(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture[str]
) -> None:
    path = tmp_path / "report.txt"
    path.write_text("file contents")
    _run(monkeypatch, "add", "1", "--data", str(path))
    assert DummyClient.reports[1] == str(path)


def test_data_file_reads_contents(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture[str]
) -> None:
    path = tmp_path / "report.txt"
    path.write_text("file contents")
    _run(monkeypatch, "add", "2", "--data-file", str(path))
    assert DummyClient.reports[2] == "file contents"


def test_data_and_data_file_exclusive(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    path = tmp_path / "report.txt"
    path.write_text("x")
    with pytest.raises(SystemExit) as exc:
        _run(monkeypatch, "add", "3", "--data", "x", "--data-file", str(path))
    assert exc.value.code == 2
    assert 3 not in DummyClient.reports


def test_add_then_get_json(monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture[str]) -> None:
    _run(monkeypatch, "add", "1", "--data", "report-hash-abc")
    added = json.loads(capsys.readouterr().out.strip())
    assert added["patient_id"] == 1

    _run(monkeypatch, "get", "1")
    got = json.loads(capsys.readouterr().out.strip())
    assert got == {"patient_id": 1, "report_data": "report-hash-abc"}


def test_get_text_mode_unknown_is_empty(monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture[str]) -> None:
    _run(monkeypatch, "--format", "text", "get", "999")
    assert capsys.readouterr().out == "\n"


def test_add_conflict_exits_nonzero(monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture[str]) -> None:
    _run(monkeypatch, "add", "1", "--data", "first")
    capsys.readouterr()
    with pytest.raises(SystemExit) as exc:
        _run(monkeypatch, "add", "1", "--data", "second")
    assert exc.value.code == 1
    out = json.loads(capsys.readouterr().out.strip())
    assert out["status"] == "error"
    assert "409" in out["error"]


def test_verify_broken_chain_exit_code(monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture[str]) -> None:
    with pytest.raises(SystemExit) as exc:
        _run(monkeypatch, "verify")
    assert exc.value.code == 2


def test_keygen_is_local(monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture[str]) -> None:
    _run(monkeypatch, "keygen")
    keys = json.loads(capsys.readouterr().out.strip())
    assert len(keys["private_key_hex"]) == 64
    assert len(keys["public_key_hex"]) == 64


def test_login_requires_private_key(monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture[str]) -> None:
    monkeypatch.delenv("MEDREG_PRIVATE_KEY", raising=False)
    with pytest.raises(SystemExit) as exc:
        _run(monkeypatch, "login", "--address", "abc")
    assert exc.value.code == 2
