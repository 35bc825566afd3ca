from __future__ import annotations

from pathlib import Path
from typing import Callable, Iterator

import pytest

from css_bundle.bundler import CssBundler

TEST_CSS_FILES = {
    "style1.module.css": ".class1 { color: red; }",
    "style2.module.css": ".class2 { color: blue; }",
    "style3.module.css": ".class3 { color: green; }",
    "style4.module.css": ".class1 { color: red; }",
    "duplicateClass.module.css": ".class1 { color: purple; } .unique { padding: 10px; }",
}


@pytest.fixture
def output_dir(tmp_path: Path) -> Path:
    """Build output tree with top-level, nested, and node_modules fragments."""

    out = tmp_path / "output"
    out.mkdir()
    for name, content in TEST_CSS_FILES.items():
        (out / name).write_text(content, encoding="utf-8")

    nested = out / "nested"
    nested.mkdir()
    (nested / "nested.module.css").write_text(".nestedClass { margin: 20px; }", encoding="utf-8")

    node_modules = out / "node_modules"
    node_modules.mkdir()
    (node_modules / "should-ignore.module.css").write_text(".ignoreMe { display: none; }", encoding="utf-8")
    return out


@pytest.fixture
def bundler(output_dir: Path) -> Iterator[CssBundler]:
    instance = CssBundler(output_dir / "merged.css", output_dir)
    yield instance
    instance.release_resources()


@pytest.fixture
def read_styles(output_dir: Path) -> Callable[[], str]:
    """Read styles.css through its symlink chain."""

    def _read() -> str:
        return (output_dir / "styles.css").read_text(encoding="utf-8")

    return _read
