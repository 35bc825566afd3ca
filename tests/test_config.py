from __future__ import annotations

from pathlib import Path

import pytest
from pydantic import ValidationError

from css_bundle.bundler import CssBundler
from css_bundle.config import BundleOptions, load_settings, resolve_settings_file


def _write_settings(root: Path, body: str) -> Path:
    settings_file = root / "configs" / "settings.yaml"
    settings_file.parent.mkdir(parents=True)
    settings_file.write_text(body, encoding="utf-8")
    return settings_file


def test_yaml_values_and_relative_paths(tmp_path: Path) -> None:
    settings_file = _write_settings(
        tmp_path,
        "paths:\n  output_dir: ./site\n  output_file: ./site/build/bundle.css\n"
        "bundle:\n  deduplicate: false\n  batch_size: 3\n",
    )

    settings = load_settings(config_file=settings_file)

    assert settings.paths.output_dir == (tmp_path / "site").resolve()
    assert settings.paths.output_file == (tmp_path / "site" / "build" / "bundle.css").resolve()
    assert settings.bundle.deduplicate is False
    assert settings.bundle.batch_size == 3
    assert settings.bundle.verbose is True
    assert settings.bundle.file_name_pattern == r"\.module\.css$"


def test_env_overrides_yaml(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    settings_file = _write_settings(tmp_path, "bundle:\n  verbose: true\n")
    monkeypatch.setenv("CSS_BUNDLE_BUNDLE__VERBOSE", "false")
    monkeypatch.setenv("CSS_BUNDLE_WATCH__INTERVAL_SECONDS", "2.5")

    settings = load_settings(config_file=settings_file)

    assert settings.bundle.verbose is False
    assert settings.watch.interval_seconds == 2.5


def test_settings_file_from_env(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    settings_file = _write_settings(tmp_path, "project:\n  env: ci\n")
    monkeypatch.setenv("CSS_BUNDLE_SETTINGS_FILE", str(settings_file))

    assert resolve_settings_file() == settings_file
    assert load_settings().project.env == "ci"


def test_invalid_pattern_rejected() -> None:
    with pytest.raises(ValidationError):
        BundleOptions(file_name_pattern="(unclosed")


def test_batch_size_must_be_positive() -> None:
    with pytest.raises(ValidationError):
        BundleOptions(batch_size=0)


def test_bundler_from_settings_uses_configured_paths(tmp_path: Path) -> None:
    settings_file = _write_settings(
        tmp_path,
        "paths:\n  output_dir: ./out\n  output_file: ./build/bundle.css\n",
    )
    settings = load_settings(config_file=settings_file)

    bundler = CssBundler.from_settings(settings)

    assert bundler.layout.main_link == (tmp_path / "out" / "styles.css").resolve()
    assert bundler.layout.backup_file == (tmp_path / "build" / "styles.backup.css").resolve()
