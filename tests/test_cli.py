from __future__ import annotations

import json
from pathlib import Path
import zipfile

import pytest

from modforge import cli
from modforge.archive import write_zip
from modforge.models.mock import MockStreamingModel


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for name in ("OPENAI_API_KEY", "MODFORGE_OUTPUT_DIR", "MODFORGE_FAIL_ON_TRUNCATION"):
        monkeypatch.delenv(name, raising=False)


def test_mock_run_writes_files(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    out = tmp_path / "out"
    assert cli.main(["display best sellers", "--mock", "--output", str(out)]) == 0
    assert (out / "MockModule" / "MockModule.php").read_text(encoding="utf-8").startswith("<?php")
    assert (out / "MockModule" / "config.xml").exists()
    printed = capsys.readouterr().out
    assert "Plan:" in printed
    assert "File: MockModule/config.xml" in printed
    assert "Done: Module generation is complete." in printed


def test_zip_output(tmp_path: Path) -> None:
    zip_path = tmp_path / "module.zip"
    assert cli.main(["display best sellers", "--mock", "--zip", str(zip_path)]) == 0
    with zipfile.ZipFile(zip_path) as archive:
        assert "MockModule/MockModule.php" in archive.namelist()


def test_json_output(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    assert cli.main(["x", "--mock", "--json", "--output", str(tmp_path)]) == 0
    payload = json.loads(capsys.readouterr().out)
    assert payload["status"] == "completed"
    assert "MockModule/config.xml" in payload["artifacts"]


def test_blank_description_exit_code(capsys: pytest.CaptureFixture[str]) -> None:
    assert cli.main(["  ", "--mock"]) == 2
    assert "Please provide" in capsys.readouterr().err


def test_transport_failure_exit_code(
    monkeypatch: pytest.MonkeyPatch, tmp_path: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    model = MockStreamingModel(fragments=["[PLAN_START]1. a[PLAN_END]"], fail_after=1)
    monkeypatch.setattr(cli, "build_model", lambda settings, use_mock=False: model)
    assert cli.main(["x", "--output", str(tmp_path / "out")]) == 1
    assert "Error: Mock transport failure" in capsys.readouterr().err
    assert not (tmp_path / "out").exists()


def test_truncated_stream_exit_code(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    model = MockStreamingModel(fragments=["[CODE_START:a.php]half"])
    monkeypatch.setattr(cli, "build_model", lambda settings, use_mock=False: model)
    assert cli.main(["x", "--output", str(tmp_path)]) == 1


def test_modify_from_zip(tmp_path: Path) -> None:
    source = write_zip({"Best/Best.php": "<?php"}, tmp_path / "best.zip")
    out = tmp_path / "out"
    assert cli.main(["add a hook", "--mock", "--modify-from", str(source), "--output", str(out)]) == 0
    assert (out / "MockModule" / "MockModule.php").exists()


def test_apply_overrides() -> None:
    args = cli.parse_args(
        ["x", "--base-url", "http://local", "--model", "m", "--api-key", "k", "--fail-on-truncation"]
    )
    settings = cli.apply_overrides(cli.Settings(), args)
    assert settings.openai_base_url == "http://local"
    assert settings.openai_model == "m"
    assert settings.openai_api_key == "k"
    assert settings.fail_on_truncation is True


def test_mode_flag_is_parsed_and_not_abbreviated() -> None:
    args = cli.parse_args(["x", "--mode", "modify"])
    assert args.mode == "modify"
    assert args.model is None
    assert cli.parse_args(["x"]).mode == "create"
    with pytest.raises(SystemExit):
        cli.parse_args(["x", "--mod", "m"])
    with pytest.raises(SystemExit):
        cli.parse_args(["x", "--mode", "rewrite"])


def test_mode_flag_reaches_prompt(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    model = MockStreamingModel()
    monkeypatch.setattr(cli, "build_model", lambda settings, use_mock=False: model)
    assert cli.main(["add a hook", "--mode", "modify", "--output", str(tmp_path)]) == 0
    assert "modify an existing module" in model.requests[0][0]["content"]


def test_missing_modify_archive_exit_code(
    tmp_path: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    missing = tmp_path / "nope.zip"
    assert cli.main(["x", "--mock", "--modify-from", str(missing)]) == 2
    err = capsys.readouterr().err
    assert "Error:" in err
    assert "nope.zip" in err
