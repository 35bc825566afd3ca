"""Concatenate fragment contents and run the rule-merge transform."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Callable, Sequence

from css_bundle.errors import MergeError
from css_bundle.merge.dedupe import discard_duplicates

LOGGER = logging.getLogger(__name__)

DEFAULT_BATCH_SIZE = 5
FRAGMENT_SEPARATOR = "\n"

RuleMerger = Callable[[str], str]


def read_fragment(path: Path) -> str:
    """Read one fragment as UTF-8 text."""

    try:
        return path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as exc:
        raise MergeError(f"Cannot read fragment {path}: {exc}") from exc


def concatenate_fragments(files: Sequence[Path], batch_size: int = DEFAULT_BATCH_SIZE) -> str:
    """Read fragments batch by batch and join them in order."""

    if batch_size < 1:
        raise ValueError("batch_size must be >= 1")
    chunks: list[str] = []
    for start in range(0, len(files), batch_size):
        batch = files[start : start + batch_size]
        chunks.append(FRAGMENT_SEPARATOR.join(read_fragment(path) for path in batch))
    return FRAGMENT_SEPARATOR.join(chunks)


def merge_fragments(
    files: Sequence[Path],
    deduplicate: bool = True,
    batch_size: int = DEFAULT_BATCH_SIZE,
    merger: RuleMerger = discard_duplicates,
    logger: logging.Logger | None = None,
) -> str:
    """Build the merged stylesheet for an ordered fragment set."""

    effective_logger = logger or LOGGER
    if not files:
        return ""

    combined = concatenate_fragments(files, batch_size=batch_size)
    effective_logger.debug("merge.concatenated fragments=%s chars=%s", len(files), len(combined))
    if not deduplicate:
        return combined

    merged = merger(combined)
    effective_logger.debug("merge.deduplicated chars_in=%s chars_out=%s", len(combined), len(merged))
    return merged
