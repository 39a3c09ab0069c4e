from __future__ import annotations

import pytest

from fmcore.classifier import TargetClassifier
from fmcore.errors import ClassificationError
from fmcore.models import DesktopEntry, Directory, Executable, ExternalScheme, FileRef, Shortcut, Typed

from conftest import FakeContentTypes


def _classifier(content_types: FakeContentTypes, executables: set[str] | None = None) -> TargetClassifier:
    allowed = executables or set()
    return TargetClassifier(content_types, executable_probe=lambda path: path in allowed)


def test_directory_wins_when_grouping(content_types: FakeContentTypes) -> None:
    ref = FileRef(location="/data/photos", is_directory=True, is_desktop_entry=True)

    assert _classifier(content_types).classify(ref, group_directories=True) == Directory()


def test_directory_without_grouping_is_typed(content_types: FakeContentTypes) -> None:
    ref = FileRef(location="/data/photos", is_directory=True)

    assert _classifier(content_types).classify(ref) == Typed("inode/directory")


def test_desktop_entry_uses_own_path(content_types: FakeContentTypes) -> None:
    ref = FileRef(location="/usr/share/applications/editor.desktop", is_desktop_entry=True)

    assert _classifier(content_types).classify(ref) == DesktopEntry("/usr/share/applications/editor.desktop")


def test_desktop_entry_shortcut_uses_target_verbatim(content_types: FakeContentTypes) -> None:
    ref = FileRef(
        location="menu://applications/editor",
        is_desktop_entry=True,
        is_shortcut=True,
        target="editor.desktop",
    )

    assert _classifier(content_types).classify(ref) == DesktopEntry("editor.desktop")


def test_shortcut_to_executable(content_types: FakeContentTypes) -> None:
    ref = FileRef(location="/home/me/Desktop/tool", is_shortcut=True, target="/opt/tool/bin/tool")

    result = _classifier(content_types, {"/opt/tool/bin/tool"}).classify(ref)

    assert isinstance(result, Shortcut)
    assert result.target == "/opt/tool/bin/tool"
    assert isinstance(result.resolved, Executable)
    assert result.resolved.path == "/opt/tool/bin/tool"


def test_shortcut_to_external_scheme(content_types: FakeContentTypes) -> None:
    ref = FileRef(location="/home/me/Desktop/site", is_shortcut=True, target="https://example.org/")

    result = _classifier(content_types).classify(ref)

    assert result == Shortcut("https://example.org/", ExternalScheme("https", "https://example.org/"))


@pytest.mark.parametrize("scheme", ["trash", "network", "computer", "menu"])
def test_internal_schemes_are_classified_by_type(content_types: FakeContentTypes, scheme: str) -> None:
    target = f"{scheme}:///"
    content_types.types[target] = "inode/directory"
    ref = FileRef(location="/home/me/Desktop/place", is_shortcut=True, target=target)

    grouped = _classifier(content_types).classify(ref, group_directories=True)
    ungrouped = _classifier(content_types).classify(ref)

    assert grouped == Shortcut(target, Directory())
    assert ungrouped == Shortcut(target, Typed("inode/directory"))


def test_shortcut_to_document(content_types: FakeContentTypes) -> None:
    content_types.types["/srv/report.pdf"] = "application/pdf"
    ref = FileRef(location="/home/me/Desktop/report", is_shortcut=True, target="/srv/report.pdf")

    assert _classifier(content_types).classify(ref) == Shortcut("/srv/report.pdf", Typed("application/pdf"))


def test_executable_needs_probe(content_types: FakeContentTypes) -> None:
    ref = FileRef(location="/opt/run.sh", content_type="application/x-executable")

    assert _classifier(content_types, {"/opt/run.sh"}).classify(ref) == Executable(
        "/opt/run.sh", "application/x-executable"
    )
    assert _classifier(content_types).classify(ref) == Typed("application/x-executable")


def test_executable_flag_on_plain_type(content_types: FakeContentTypes) -> None:
    ref = FileRef(location="/opt/run", content_type="text/plain", is_executable=True)

    assert _classifier(content_types, {"/opt/run"}).classify(ref) == Executable("/opt/run", "text/plain")


def test_remote_file_is_never_executable(content_types: FakeContentTypes) -> None:
    ref = FileRef(location="sftp://host/run.sh", content_type="application/x-executable", is_executable=True)

    assert _classifier(content_types, {"sftp://host/run.sh"}).classify(ref) == Typed("application/x-executable")


def test_unknown_content_type_is_an_error(content_types: FakeContentTypes) -> None:
    ref = FileRef(location="/data/blob", display_name="blob")

    with pytest.raises(ClassificationError, match="Could not determine content type of 'blob' to launch"):
        _classifier(content_types).classify(ref)
