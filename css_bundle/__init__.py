"""Lets ``python -m pytest`` and ad-hoc imports find src/css_bundle without an install."""

from __future__ import annotations

from pathlib import Path
from pkgutil import extend_path

__path__ = extend_path(__path__, __name__)  # type: ignore[name-defined]

src_package_dir = Path(__file__).resolve().parent.parent / "src" / "css_bundle"
if src_package_dir.exists():
    __path__.append(str(src_package_dir))
