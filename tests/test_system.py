from __future__ import annotations

import subprocess
from pathlib import Path

import pytest

from fmcore.config import Config, HandlerSpec, HandlerTable, Settings
from fmcore.errors import LaunchError
from fmcore.models import FileRef, Handler, LaunchContext
from fmcore.system import ConfiguredHandlers, MimeContentTypes, SubprocessLauncher, SystemServices, expand_command


@pytest.mark.parametrize(
    "command, targets, expected",
    [
        ("viewer %F", ["a", "b"], [["viewer", "a", "b"]]),
        ("viewer %u --new", ["a", "b"], [["viewer", "a", "--new"], ["viewer", "b", "--new"]]),
        ("viewer %f", [], [["viewer"]]),
        ("viewer --icon %i %U", ["a"], [["viewer", "a"]]),
        ("viewer", ["a", "b"], [["viewer", "a", "b"]]),
        ("printf 100%%", [], [["printf", "100%"]]),
    ],
)
def test_expand_command(command: str, targets: list[str], expected: list[list[str]]) -> None:
    assert expand_command(command, targets) == expected


def test_expand_command_rejects_bad_quoting() -> None:
    with pytest.raises(LaunchError, match="Bad command line"):
        expand_command("viewer 'unterminated", [])


def test_configured_handlers_lookup() -> None:
    table = HandlerTable(
        types={
            "text/plain": HandlerSpec(command="editor %F"),
            "image/*": HandlerSpec(command="viewer %F"),
        },
        schemes={"https": HandlerSpec(command="browser %u")},
        entries={"term.desktop": HandlerSpec(command="term", terminal=True)},
    )
    handlers = ConfiguredHandlers(table)

    assert handlers.default_handler_for_type("text/plain") == Handler(name="editor", command="editor %F")
    assert handlers.default_handler_for_type("image/png").name == "viewer"
    assert handlers.default_handler_for_type("video/mp4") is None
    assert handlers.default_handler_for_scheme("HTTPS").name == "browser"
    assert handlers.resolve_desktop_entry("/usr/share/applications/term.desktop").terminal is True


def test_mime_content_types(tmp_path: Path) -> None:
    types = MimeContentTypes()
    script = tmp_path / "tool"
    script.write_text("#!/bin/sh\n")
    script.chmod(0o755)
    blob = tmp_path / "blob"
    blob.write_bytes(b"\0")

    assert types.get_content_type(FileRef(location="/x/readme.txt")) == "text/plain"
    assert types.get_content_type(FileRef(location="/x/any", content_type="image/png")) == "image/png"
    assert types.get_content_type(FileRef(location=str(tmp_path), is_directory=True)) == "inode/directory"
    assert types.get_content_type(FileRef(location=str(script))) == "application/x-executable"
    assert types.get_content_type(FileRef(location=str(blob))) == "application/octet-stream"
    assert types.get_content_type(FileRef(location=str(tmp_path / "missing"))) is None
    assert types.is_executable_type("application/x-shellscript") is True
    assert types.is_directory_type("inode/directory") is True


def test_subprocess_launcher_spawns_detached(monkeypatch: pytest.MonkeyPatch) -> None:
    spawned: list[tuple[list[str], dict]] = []

    def fake_popen(argv, **kwargs):  # noqa: ANN001
        spawned.append((argv, kwargs))

    monkeypatch.setattr("fmcore.system.subprocess.Popen", fake_popen)
    launcher = SubprocessLauncher("xterm -e")

    launcher.launch(Handler(name="vi", command="vi %F", terminal=True), ["/a.txt"], LaunchContext(env={"X": "1"}))

    argv, kwargs = spawned[0]
    assert argv == ["xterm", "-e", "vi", "/a.txt"]
    assert kwargs["start_new_session"] is True
    assert kwargs["stdin"] is subprocess.DEVNULL
    assert kwargs["env"]["X"] == "1"


def test_subprocess_launcher_reports_spawn_failure(monkeypatch: pytest.MonkeyPatch) -> None:
    def fake_popen(argv, **kwargs):  # noqa: ANN001
        raise FileNotFoundError(2, "No such file or directory")

    monkeypatch.setattr("fmcore.system.subprocess.Popen", fake_popen)

    with pytest.raises(LaunchError, match="Failed to execute child process 'nothing'"):
        SubprocessLauncher("xterm -e").launch(Handler(name="nothing", command="nothing"), [], LaunchContext())


def test_folder_handler_falls_back_to_directory_type() -> None:
    table = HandlerTable(types={"inode/directory": HandlerSpec(command="files %U")})

    services = SystemServices(Config(handlers=table))
    assert services.folder_handler() == Handler(name="files", command="files %U")

    custom = SystemServices(Config(settings=Settings(folder_handler=HandlerSpec(command="nav %F")), handlers=table))
    assert custom.folder_handler().name == "nav"
