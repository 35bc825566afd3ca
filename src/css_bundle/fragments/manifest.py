"""Build and classify per-fragment manifests."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Literal, Sequence

import polars as pl

LOGGER = logging.getLogger(__name__)

FragmentStatus = Literal["NEW", "CHANGED", "UNCHANGED", "REMOVED"]
FRAGMENT_STATUS_VALUES: tuple[FragmentStatus, ...] = ("NEW", "CHANGED", "UNCHANGED", "REMOVED")


def _base_manifest_schema() -> dict[str, pl.DataType]:
    """Stable schema for fragment manifests (without status column)."""

    return {
        "fragment_path": pl.String,
        "relative_path": pl.String,
        "size_bytes": pl.Int64,
        "mtime": pl.Datetime(time_zone="UTC"),
        "digest": pl.String,
        "discovered_ts": pl.Datetime(time_zone="UTC"),
    }


def _manifest_schema_with_status() -> dict[str, pl.DataType]:
    schema = dict(_base_manifest_schema())
    schema["fragment_status"] = pl.String
    return schema


def empty_manifest(include_status: bool = False) -> pl.DataFrame:
    """Return an empty manifest frame with stable schema."""

    return pl.DataFrame(schema=_manifest_schema_with_status() if include_status else _base_manifest_schema())


def _relative_to(path: Path, root_dir: Path | None) -> str:
    if root_dir is None:
        return str(path)
    try:
        return path.relative_to(root_dir).as_posix()
    except ValueError:
        return str(path)


def build_fragment_manifest(
    files: Sequence[Path],
    digests: Sequence[str],
    root_dir: Path | None = None,
    discovered_ts: datetime | None = None,
    logger: logging.Logger | None = None,
) -> pl.DataFrame:
    """Create a manifest frame from fragment paths and their content digests."""

    if len(files) != len(digests):
        raise ValueError("files and digests must have the same length")

    effective_logger = logger or LOGGER
    discovered_at = discovered_ts or datetime.now(timezone.utc)
    rows: list[dict[str, object]] = []
    for path, digest in zip(files, digests):
        try:
            stats = path.stat()
        except OSError as exc:
            effective_logger.warning("manifest.stat_failed path=%s error=%s", path, exc)
            continue
        rows.append(
            {
                "fragment_path": str(path),
                "relative_path": _relative_to(path, root_dir),
                "size_bytes": stats.st_size,
                "mtime": datetime.fromtimestamp(stats.st_mtime, tz=timezone.utc),
                "digest": digest,
                "discovered_ts": discovered_at,
            }
        )

    if not rows:
        return empty_manifest(include_status=False)
    return pl.DataFrame(rows, schema_overrides=_base_manifest_schema())


def classify_fragment_manifest(
    current_manifest: pl.DataFrame,
    previous_manifest: pl.DataFrame | None,
) -> pl.DataFrame:
    """Label current fragments NEW/CHANGED/UNCHANGED and append REMOVED ones."""

    if previous_manifest is None or previous_manifest.height == 0:
        if current_manifest.height == 0:
            return empty_manifest(include_status=True)
        return current_manifest.with_columns(pl.lit("NEW").alias("fragment_status"))

    previous_compact = (
        previous_manifest.select(["fragment_path", "digest"])
        .unique(subset=["fragment_path"], keep="last")
        .rename({"digest": "previous_digest"})
    )
    classified = (
        current_manifest.join(previous_compact, on="fragment_path", how="left")
        .with_columns(
            pl.when(pl.col("previous_digest").is_null())
            .then(pl.lit("NEW"))
            .when(pl.col("digest") == pl.col("previous_digest"))
            .then(pl.lit("UNCHANGED"))
            .otherwise(pl.lit("CHANGED"))
            .alias("fragment_status")
        )
        .drop("previous_digest")
    )

    columns = list(_base_manifest_schema())
    removed = (
        previous_manifest.select(columns)
        .join(current_manifest.select("fragment_path"), on="fragment_path", how="anti")
        .with_columns(pl.lit("REMOVED").alias("fragment_status"))
    )
    if removed.height == 0:
        return classified
    return pl.concat([classified.select([*columns, "fragment_status"]), removed], how="vertical")


def status_counts(manifest: pl.DataFrame) -> dict[str, int]:
    """Return per-status counts from a classified manifest."""

    counts = {status: 0 for status in FRAGMENT_STATUS_VALUES}
    if manifest.height == 0 or "fragment_status" not in manifest.columns:
        return counts

    for row in manifest.group_by("fragment_status").len(name="count").to_dicts():
        status = str(row["fragment_status"])
        if status in counts:
            counts[status] = int(row["count"])
    return counts
