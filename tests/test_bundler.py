from __future__ import annotations

import logging
import os
import re
import shutil
import threading
from pathlib import Path
from typing import Callable

import pytest

from css_bundle.bundler import CssBundler
from css_bundle.config import BundleOptions
from css_bundle.fragments import discover
from css_bundle.publish.publisher import AtomicPublisher


def _count_buffer_writes(monkeypatch: pytest.MonkeyPatch) -> list[Path]:
    writes: list[Path] = []
    real_write = AtomicPublisher._write_buffer

    def counting_write(self: AtomicPublisher, buffer: Path, content: str) -> None:
        writes.append(buffer)
        real_write(self, buffer, content)

    monkeypatch.setattr(AtomicPublisher, "_write_buffer", counting_write)
    return writes


def test_refresh_merges_and_deduplicates(bundler: CssBundler, read_styles: Callable[[], str]) -> None:
    result = bundler.refresh()
    content = read_styles()

    assert result.status == "published"
    assert result.ok
    assert result.fragment_count == 6
    for selector in (".class1", ".class2", ".class3", ".nestedClass"):
        assert selector in content
    assert ".class1 { color: purple; }" in content
    assert ".class1 { color: red; }" in content
    assert content.count("color: red;") == 1
    assert len(re.findall(r"\.class1 \{", content)) == 2
    assert ".unique { padding: 10px; }" in content


def test_refresh_is_idempotent_without_buffer_writes(
    bundler: CssBundler, read_styles: Callable[[], str], monkeypatch: pytest.MonkeyPatch
) -> None:
    writes = _count_buffer_writes(monkeypatch)
    first = bundler.refresh()
    first_content = read_styles()
    writes_after_first = len(writes)

    second = bundler.refresh()

    assert first.status == "published"
    assert second.status == "unchanged"
    assert second.fingerprint == first.fingerprint
    assert len(writes) == writes_after_first
    assert read_styles() == first_content


def test_runtime_edit_is_picked_up(bundler: CssBundler, output_dir: Path, read_styles: Callable[[], str]) -> None:
    bundler.refresh()
    initial = read_styles()

    (output_dir / "style2.module.css").write_text(
        ".class2 { color: yellow; } .newClass { font-size: 16px; }", encoding="utf-8"
    )
    result = bundler.refresh()

    assert result.status == "published"
    assert read_styles() != initial
    assert "color: yellow" in read_styles()
    assert ".newClass" in read_styles()


def test_same_length_edit_is_detected(bundler: CssBundler, output_dir: Path, read_styles: Callable[[], str]) -> None:
    bundler.refresh()

    (output_dir / "style1.module.css").write_text(".class1 { color: tan; }", encoding="utf-8")
    bundler.refresh()

    assert "color: tan" in read_styles()
    assert "color: red" in read_styles()


def test_deleted_file_is_removed_from_artifact(
    bundler: CssBundler, output_dir: Path, read_styles: Callable[[], str]
) -> None:
    bundler.refresh()
    assert ".class3" in read_styles()

    (output_dir / "style3.module.css").unlink()
    bundler.refresh()

    assert ".class3" not in read_styles()


def test_deleted_directory_is_removed_from_artifact(
    bundler: CssBundler, output_dir: Path, read_styles: Callable[[], str]
) -> None:
    bundler.refresh()
    assert ".nestedClass" in read_styles()

    shutil.rmtree(output_dir / "nested")
    bundler.refresh()

    assert ".nestedClass" not in read_styles()


def test_ignored_directories_never_contribute(
    bundler: CssBundler, output_dir: Path, read_styles: Callable[[], str]
) -> None:
    (output_dir / "node_modules" / "ignored.module.css").write_text(".ignoredClass { display: none; }", encoding="utf-8")

    bundler.refresh()

    assert ".ignoredClass" not in read_styles()
    assert ".ignoreMe" not in read_styles()


def test_empty_scan_preserves_previous_artifact(tmp_path: Path) -> None:
    out = tmp_path / "out"
    out.mkdir()
    fragment = out / "only.module.css"
    fragment.write_text(".only { color: red; }", encoding="utf-8")

    with CssBundler(out / "merged.css", out) as bundler:
        assert bundler.refresh().status == "published"
        fragment.unlink()
        result = bundler.refresh()

    assert result.status == "preserved"
    assert (out / "styles.css").read_text(encoding="utf-8") == ".only { color: red; }"


def test_empty_scan_over_undecodable_artifact_is_preserved(tmp_path: Path) -> None:
    out = tmp_path / "out"
    out.mkdir()

    with CssBundler(out / "merged.css", out) as bundler:
        assert bundler.refresh().status == "preserved"
        bundler.layout.backup_file.write_bytes(b"\xff\xfe.a{}")
        result = bundler.refresh()

    assert result.status == "preserved"
    assert bundler.layout.backup_file.read_bytes() == b"\xff\xfe.a{}"


def test_empty_fragment_files_do_not_truncate(tmp_path: Path) -> None:
    out = tmp_path / "out"
    out.mkdir()
    (out / "a.module.css").write_text(".a { color: red; }", encoding="utf-8")

    with CssBundler(out / "merged.css", out) as bundler:
        bundler.refresh()
        (out / "a.module.css").write_text("", encoding="utf-8")
        result = bundler.refresh()

    assert result.status == "skipped"
    assert (out / "styles.css").read_text(encoding="utf-8") == ".a { color: red; }"


def test_empty_fragment_among_others_is_harmless(
    bundler: CssBundler, output_dir: Path, read_styles: Callable[[], str]
) -> None:
    (output_dir / "empty.module.css").write_text("", encoding="utf-8")

    bundler.refresh()

    assert ".class1" in read_styles()


def test_clear_empties_artifact_and_next_refresh_republishes(
    bundler: CssBundler, read_styles: Callable[[], str]
) -> None:
    bundler.refresh()
    assert read_styles()

    cleared = bundler.clear()
    assert cleared.status == "cleared"
    assert read_styles().strip() == ""

    result = bundler.refresh()
    assert result.status == "published"
    assert ".class1" in read_styles()


def test_clear_before_any_refresh(output_dir: Path) -> None:
    with CssBundler(output_dir / "merged.css", output_dir) as bundler:
        assert bundler.clear().ok

    assert (output_dir / "styles.css").read_text(encoding="utf-8") == ""


def test_release_resources_closes_handles(bundler: CssBundler) -> None:
    bundler.refresh()
    held = bundler.handles.handles()
    assert len(held) == 2

    bundler.release_resources()
    bundler.release_resources()

    assert all(handle.closed for handle in held)
    assert not bundler.handles.is_open


def test_output_files_are_not_scanned_as_fragments(tmp_path: Path) -> None:
    out = tmp_path / "out"
    out.mkdir()
    (out / "a.module.css").write_text(".a {}", encoding="utf-8")
    output_file = out / "bundle.module.css"
    output_file.write_text(".stale-output {}", encoding="utf-8")

    with CssBundler(output_file, out) as bundler:
        result = bundler.refresh()

    assert result.fragment_count == 1
    assert ".stale-output" not in (out / "styles.css").read_text(encoding="utf-8")


def test_scan_failure_keeps_previous_artifact(
    bundler: CssBundler, output_dir: Path, read_styles: Callable[[], str], monkeypatch: pytest.MonkeyPatch
) -> None:
    bundler.refresh()
    before = read_styles()
    (output_dir / "style2.module.css").write_text(".class2 { color: orange; }", encoding="utf-8")
    real_scandir = os.scandir

    def failing_scandir(path):  # type: ignore[no-untyped-def]
        if Path(path) == output_dir / "nested":
            raise PermissionError(13, "Permission denied", str(path))
        return real_scandir(path)

    monkeypatch.setattr(discover.os, "scandir", failing_scandir)
    result = bundler.refresh()

    assert result.status == "failed"
    assert not result.ok
    assert "Permission denied" in (result.error or "")
    assert read_styles() == before


def test_malformed_fragment_is_reported_not_raised(
    bundler: CssBundler, output_dir: Path, read_styles: Callable[[], str]
) -> None:
    bundler.refresh()
    before = read_styles()
    (output_dir / "zzz-broken.module.css").write_text(".broken", encoding="utf-8")

    result = bundler.refresh()

    assert result.status == "failed"
    assert read_styles() == before


def test_shadow_link_occupied_by_file_is_reported(output_dir: Path) -> None:
    (output_dir / ".styles.shadow.css").write_text("This is a file, not a symlink", encoding="utf-8")

    with CssBundler(output_dir / "merged.css", output_dir) as bundler:
        result = bundler.refresh()

    assert result.status == "failed"
    assert result.error


def test_failed_rollback_surfaces_inconsistent_status(
    bundler: CssBundler, output_dir: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    bundler.refresh()
    state_before = bundler.state
    (output_dir / "style2.module.css").write_text(".class2 { color: orange; }", encoding="utf-8")

    def broken_point(self: AtomicPublisher, target: Path) -> None:
        raise OSError("link replace unavailable")

    monkeypatch.setattr(AtomicPublisher, "_point_shadow_at", broken_point)
    monkeypatch.setattr(AtomicPublisher, "active_buffer", lambda self: None)

    result = bundler.refresh()

    assert result.status == "inconsistent"
    assert not result.ok
    assert bundler.state == state_before


def test_readers_never_observe_partial_artifact(bundler: CssBundler, output_dir: Path) -> None:
    main_link = output_dir / "styles.css"
    fragment = output_dir / "style2.module.css"
    bundler.refresh()
    published = {main_link.read_text(encoding="utf-8")}
    observed: list[str] = []
    errors: list[BaseException] = []
    stop = threading.Event()

    def reader() -> None:
        while not stop.is_set():
            try:
                observed.append(main_link.read_text(encoding="utf-8"))
            except OSError as exc:
                errors.append(exc)

    thread = threading.Thread(target=reader)
    thread.start()
    try:
        for index in range(30):
            padding = "x" * (index % 2) * 500
            fragment.write_text(f".class2 {{ color: blue; content: '{padding}{index}'; }}", encoding="utf-8")
            assert bundler.refresh().status == "published"
            published.add(main_link.read_text(encoding="utf-8"))
    finally:
        stop.set()
        thread.join()

    assert errors == []
    assert observed
    assert set(observed) <= published


def test_overlapping_refreshes_are_serialized(bundler: CssBundler, read_styles: Callable[[], str]) -> None:
    results = []

    def run() -> None:
        results.append(bundler.refresh())

    threads = [threading.Thread(target=run) for _ in range(5)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    statuses = sorted(result.status for result in results)
    assert statuses == ["published", "unchanged", "unchanged", "unchanged", "unchanged"]
    assert ".class1" in read_styles()
    assert ".class3" in read_styles()


def test_independent_targets_coexist(tmp_path: Path) -> None:
    first_dir = tmp_path / "first"
    second_dir = tmp_path / "second"
    for directory, selector in ((first_dir, ".one"), (second_dir, ".two")):
        directory.mkdir()
        (directory / "x.module.css").write_text(f"{selector} {{}}", encoding="utf-8")

    with CssBundler(first_dir / "merged.css", first_dir) as first, CssBundler(
        second_dir / "merged.css", second_dir
    ) as second:
        first.refresh()
        second.refresh()

    assert (first_dir / "styles.css").read_text(encoding="utf-8") == ".one {}"
    assert (second_dir / "styles.css").read_text(encoding="utf-8") == ".two {}"


def test_deduplicate_disabled_keeps_duplicates(output_dir: Path) -> None:
    options = BundleOptions(deduplicate=False)

    with CssBundler(output_dir / "merged.css", output_dir, options=options) as bundler:
        bundler.refresh()

    assert (output_dir / "styles.css").read_text(encoding="utf-8").count("color: red;") == 2


def test_quiet_mode_suppresses_progress_logs(output_dir: Path, caplog: pytest.LogCaptureFixture) -> None:
    caplog.set_level(logging.DEBUG)

    with CssBundler(output_dir / "merged.css", output_dir, options=BundleOptions(verbose=False)) as bundler:
        assert bundler.refresh().status == "published"

    assert not any(record.levelno < logging.WARNING for record in caplog.records if record.name.startswith("css_bundle"))


def test_verbose_mode_logs_fragment_changes(
    bundler: CssBundler, output_dir: Path, caplog: pytest.LogCaptureFixture
) -> None:
    caplog.set_level(logging.INFO)
    bundler.refresh()
    (output_dir / "style3.module.css").unlink()

    bundler.refresh()

    messages = [record.getMessage() for record in caplog.records]
    assert any("refresh.fragments new=0 changed=0 unchanged=5 removed=1" in message for message in messages)
