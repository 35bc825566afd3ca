"""Content fingerprints and change detection for fragment sets."""

from __future__ import annotations

import hashlib
from dataclasses import dataclass, field
from pathlib import Path
from typing import Collection, Sequence

from css_bundle.errors import FingerprintError

HASH_CHUNK_SIZE = 65536
DEFAULT_BATCH_SIZE = 5


@dataclass(frozen=True, slots=True)
class ChangeState:
    """Fragment set and fingerprint accepted by the last successful publish."""

    files: frozenset[Path] = field(default_factory=frozenset)
    fingerprint: str = ""

    @classmethod
    def from_publish(cls, files: Sequence[Path], fingerprint: str) -> "ChangeState":
        return cls(files=frozenset(files), fingerprint=fingerprint)


def hash_file(path: Path, chunk_size: int = HASH_CHUNK_SIZE) -> str:
    """Return the SHA-256 hex digest of one file, read in chunks."""

    digest = hashlib.sha256()
    try:
        with path.open("rb") as handle:
            for chunk in iter(lambda: handle.read(chunk_size), b""):
                digest.update(chunk)
    except OSError as exc:
        raise FingerprintError(f"Cannot hash fragment {path}: {exc}") from exc
    return digest.hexdigest()


def file_digests(files: Sequence[Path], batch_size: int = DEFAULT_BATCH_SIZE) -> list[str]:
    """Return per-fragment digests in input order.

    Each file is opened, streamed and closed before the next one, so at most
    one descriptor is open at a time. ``batch_size`` groups files the same
    way the merge engine groups reads and never changes the digests.
    """

    if batch_size < 1:
        raise ValueError("batch_size must be >= 1")
    digests: list[str] = []
    for start in range(0, len(files), batch_size):
        digests.extend(hash_file(path) for path in files[start : start + batch_size])
    return digests


def combine_digests(digests: Sequence[str]) -> str:
    """Fold ordered per-file digests into one fingerprint."""

    combined = hashlib.sha256()
    for file_digest in digests:
        combined.update(file_digest.encode("ascii"))
    return combined.hexdigest()


def compute_fingerprint(files: Sequence[Path], batch_size: int = DEFAULT_BATCH_SIZE) -> str:
    """Return the fingerprint of an ordered fragment set."""

    return combine_digests(file_digests(files, batch_size=batch_size))


def has_changed(
    new_files: Sequence[Path],
    new_fingerprint: str,
    last_files: Collection[Path],
    last_fingerprint: str,
) -> bool:
    """Return True when the fragment set or any fragment content changed.

    Set membership is re-checked even when fingerprints match.
    """

    if not last_fingerprint:
        return True
    if new_fingerprint != last_fingerprint:
        return True
    if len(new_files) != len(last_files):
        return True
    return any(path not in last_files for path in new_files)
