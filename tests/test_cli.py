from __future__ import annotations

import os
import stat
import tomllib
from pathlib import Path

import pytest
from typer.testing import CliRunner

from fmcore.cli import app
from fmcore.config import DEFAULT_CONFIG_FILENAME

runner = CliRunner(env={"COLUMNS": "250"})


def _write_config(directory: Path, body: str) -> Path:
    config_path = directory / DEFAULT_CONFIG_FILENAME
    config_path.write_text(body)
    return config_path


@pytest.fixture
def spawned(monkeypatch: pytest.MonkeyPatch) -> list[list[str]]:
    calls: list[list[str]] = []

    def fake_popen(argv, **_kwargs):  # noqa: ANN001
        calls.append(list(argv))

    monkeypatch.setattr("fmcore.system.subprocess.Popen", fake_popen)
    return calls


def test_cli_init_writes_starter_config(tmp_path: Path, fake_home: Path) -> None:
    config_path = tmp_path / "fmcore.toml"

    result = runner.invoke(app, ["init", "--config", str(config_path), "--terminal", "foot -e"])

    assert result.exit_code == 0
    data = tomllib.loads(config_path.read_text())
    assert data["settings"]["terminal"] == "foot -e"
    assert "https" in data["handlers"]["schemes"]

    again = runner.invoke(app, ["init", "--config", str(config_path)])
    assert again.exit_code == 1
    assert "already exists" in again.stdout

    forced = runner.invoke(app, ["init", "--config", str(config_path), "--force"])
    assert forced.exit_code == 0


def test_cli_missing_config(tmp_path: Path, fake_home: Path) -> None:
    result = runner.invoke(app, ["copy", "a", "--to", "b", "--config", str(tmp_path / "missing.toml")])

    assert result.exit_code == 1
    assert "fmcore init" in result.stdout


def test_cli_open_groups_by_type(tmp_path: Path, fake_home: Path, spawned: list[list[str]]) -> None:
    docs = tmp_path / "docs"
    docs.mkdir()
    (docs / "a.txt").write_text("a")
    (docs / "b.txt").write_text("b")
    config_path = _write_config(
        tmp_path,
        """
[handlers.types]
"text/plain" = "editor %F"

[handlers.schemes]
https = "browser %u"
""",
    )

    result = runner.invoke(
        app,
        [
            "open",
            str(docs / "a.txt"),
            "https://example.org/",
            str(docs / "b.txt"),
            "--config",
            str(config_path),
        ],
    )

    assert result.exit_code == 0
    assert spawned == [
        ["browser", "https://example.org/"],
        ["editor", (docs / "a.txt").as_uri(), (docs / "b.txt").as_uri()],
    ]


def test_cli_open_reports_missing_handler(tmp_path: Path, fake_home: Path, spawned: list[list[str]]) -> None:
    (tmp_path / "a.txt").write_text("a")
    config_path = _write_config(tmp_path, "[settings]\n")

    result = runner.invoke(app, ["open", str(tmp_path / "a.txt"), "--config", str(config_path)])

    assert result.exit_code == 1
    assert "No default application is set for MIME type text/plain" in result.stdout
    assert spawned == []


def test_cli_open_with_fallback_command(tmp_path: Path, fake_home: Path, spawned: list[list[str]]) -> None:
    (tmp_path / "a.txt").write_text("a")
    config_path = _write_config(tmp_path, "[settings]\n")

    result = runner.invoke(
        app,
        ["open", str(tmp_path / "a.txt"), "--with", "pager %f", "--config", str(config_path)],
    )

    assert result.exit_code == 0
    assert spawned == [["pager", (tmp_path / "a.txt").as_uri()]]


def test_cli_open_runs_executable(tmp_path: Path, fake_home: Path, spawned: list[list[str]]) -> None:
    tool = tmp_path / "tool"
    tool.write_text("#!/bin/sh\n")
    tool.chmod(0o755)
    config_path = _write_config(tmp_path, '[settings]\nterminal = "term -e"\n')

    result = runner.invoke(
        app,
        ["open", str(tool), "--exec", "terminal", "--config", str(config_path)],
    )

    assert result.exit_code == 0
    assert spawned == [["term", "-e", str(tool)]]


def test_cli_open_groups_folders(tmp_path: Path, fake_home: Path, spawned: list[list[str]]) -> None:
    first = tmp_path / "one"
    second = tmp_path / "two"
    first.mkdir()
    second.mkdir()
    config_path = _write_config(tmp_path, '[settings]\nfolder_handler = "files %U"\n')

    result = runner.invoke(app, ["open", str(first), str(second), "--config", str(config_path)])

    assert result.exit_code == 0
    assert spawned == [["files", first.as_uri(), second.as_uri()]]


def test_cli_copy_conflict_policies(tmp_path: Path, fake_home: Path) -> None:
    source = tmp_path / "a.txt"
    source.write_text("new")
    dest = tmp_path / "dest"
    dest.mkdir()
    (dest / "a.txt").write_text("old")
    config_path = _write_config(tmp_path, "[settings]\n")
    base = ["copy", str(source), "--to", str(dest), "--config", str(config_path)]

    skipped = runner.invoke(app, [*base, "--on-conflict", "skip"])
    assert skipped.exit_code == 0
    assert (dest / "a.txt").read_text() == "old"

    unanswered = runner.invoke(app, base)
    assert unanswered.exit_code == 1
    assert (dest / "a.txt").read_text() == "old"

    overwritten = runner.invoke(app, [*base, "--on-conflict", "overwrite"])
    assert overwritten.exit_code == 0
    assert (dest / "a.txt").read_text() == "new"


def test_cli_move_and_delete(tmp_path: Path, fake_home: Path) -> None:
    source = tmp_path / "a.txt"
    source.write_text("a")
    dest = tmp_path / "dest"
    dest.mkdir()
    config_path = _write_config(tmp_path, "[settings]\n")

    moved = runner.invoke(app, ["move", str(source), "--to", str(dest), "--config", str(config_path)])
    assert moved.exit_code == 0
    assert not source.exists()

    deleted = runner.invoke(app, ["delete", str(dest / "a.txt"), "--config", str(config_path)])
    assert deleted.exit_code == 0
    assert not (dest / "a.txt").exists()

    missing = runner.invoke(app, ["delete", str(dest / "a.txt"), "--config", str(config_path)])
    assert missing.exit_code == 1
    assert "No such file or directory" in missing.stdout


def test_cli_chmod(tmp_path: Path, fake_home: Path) -> None:
    target = tmp_path / "script.sh"
    target.write_text("echo hi\n")
    config_path = _write_config(tmp_path, "[settings]\n")

    result = runner.invoke(app, ["chmod", "700", str(target), "--config", str(config_path)])
    assert result.exit_code == 0
    assert stat.S_IMODE(os.stat(target).st_mode) == 0o700

    bad = runner.invoke(app, ["chmod", "rwx", str(target), "--config", str(config_path)])
    assert bad.exit_code == 2


def test_cli_handles_permission_error(tmp_path: Path, fake_home: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    def deny(_path):  # noqa: ANN001
        raise PermissionError("mocked")

    monkeypatch.setattr("fmcore.cli.load_config", deny)

    result = runner.invoke(app, ["trash", str(tmp_path / "a.txt")])
    assert result.exit_code == 1
    assert "Permission denied" in result.stdout
