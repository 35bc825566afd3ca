"""Discover style fragment files under an output directory tree."""

from __future__ import annotations

import logging
import os
import re
from pathlib import Path
from typing import Iterable

from css_bundle.errors import ScanError

LOGGER = logging.getLogger(__name__)

DEFAULT_FILE_NAME_PATTERN = r"\.module\.css$"
DEFAULT_IGNORE_DIR_NAMES: tuple[str, ...] = ("node_modules",)


def compile_pattern(pattern: str | re.Pattern[str]) -> re.Pattern[str]:
    """Return a compiled file-name pattern."""

    if isinstance(pattern, re.Pattern):
        return pattern
    return re.compile(pattern)


def _normalize_excludes(exclude_paths: Iterable[Path | str]) -> frozenset[Path]:
    return frozenset(Path(os.path.abspath(path)) for path in exclude_paths)


def _scan_directory(
    directory: Path,
    pattern: re.Pattern[str],
    excluded: frozenset[Path],
    ignore_dir_names: frozenset[str],
    logger: logging.Logger,
    found: list[Path],
) -> None:
    logger.debug("scan.directory dir=%s pattern=%s", directory, pattern.pattern)
    try:
        with os.scandir(directory) as iterator:
            entries = sorted(iterator, key=lambda entry: (not entry.is_dir(follow_symlinks=False), entry.name))
    except OSError as exc:
        raise ScanError(f"Cannot read directory {directory}: {exc}") from exc

    for entry in entries:
        full_path = directory / entry.name
        if full_path in excluded:
            logger.debug("scan.skip_excluded path=%s", full_path)
            continue

        if entry.is_dir(follow_symlinks=False):
            if entry.name in ignore_dir_names:
                logger.debug("scan.skip_ignored path=%s", full_path)
                continue
            _scan_directory(full_path, pattern, excluded, ignore_dir_names, logger, found)
        elif entry.is_file(follow_symlinks=False) and pattern.search(entry.name):
            logger.debug("scan.match path=%s", full_path)
            found.append(full_path)


def scan_fragments(
    root_dir: Path,
    pattern: str | re.Pattern[str] = DEFAULT_FILE_NAME_PATTERN,
    exclude_paths: Iterable[Path | str] = (),
    ignore_dir_names: Iterable[str] = DEFAULT_IGNORE_DIR_NAMES,
    logger: logging.Logger | None = None,
) -> tuple[Path, ...]:
    """Walk ``root_dir`` depth-first and return matching fragment paths.

    Subdirectories are visited before sibling files and entries are sorted by
    name, so the result order is stable between calls. Any directory that
    cannot be read aborts the whole scan with ``ScanError``.
    """

    effective_logger = logger or LOGGER
    found: list[Path] = []
    _scan_directory(
        Path(os.path.abspath(root_dir)),
        compile_pattern(pattern),
        _normalize_excludes(exclude_paths),
        frozenset(ignore_dir_names),
        effective_logger,
        found,
    )
    return tuple(found)
