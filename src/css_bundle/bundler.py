"""Refresh, clear, and release operations for one merged stylesheet target."""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Literal, Sequence

import polars as pl

from css_bundle.config import AppSettings, BundleOptions
from css_bundle.errors import BundleError, PublicationInconsistentError, SetupError
from css_bundle.fragments.discover import compile_pattern, scan_fragments
from css_bundle.fragments.fingerprint import ChangeState, combine_digests, file_digests, has_changed
from css_bundle.fragments.manifest import build_fragment_manifest, classify_fragment_manifest, status_counts
from css_bundle.merge.dedupe import discard_duplicates
from css_bundle.merge.engine import RuleMerger, merge_fragments
from css_bundle.publish.layout import OutputLayout
from css_bundle.publish.lifecycle import BufferHandles, install_exit_hooks
from css_bundle.publish.publisher import AtomicPublisher

LOGGER = logging.getLogger(__name__)

RefreshStatus = Literal["published", "cleared", "unchanged", "preserved", "skipped", "failed", "inconsistent"]
FAILURE_STATUSES: frozenset[str] = frozenset({"failed", "inconsistent"})


@dataclass(frozen=True, slots=True)
class RefreshResult:
    """Outcome of one refresh or clear call."""

    status: RefreshStatus
    fragment_count: int = 0
    fingerprint: str = ""
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.status not in FAILURE_STATUSES


class CssBundler:
    """Merges ``*.module.css`` fragments under ``output_dir`` into ``styles.css``.

    Every public call holds a per-instance lock, so overlapping calls against
    one output target run one after another. Separate targets need separate
    instances.
    """

    def __init__(
        self,
        output_file: Path | str,
        output_dir: Path | str,
        options: BundleOptions | None = None,
        logger: logging.Logger | None = None,
        merger: RuleMerger = discard_duplicates,
    ) -> None:
        self.options = options or BundleOptions()
        self.layout = OutputLayout.for_target(output_file, output_dir)
        self.logger = logger or LOGGER
        if not self.options.verbose:
            self.logger = self.logger.getChild("quiet")
            self.logger.setLevel(logging.WARNING)
        self.merger = merger
        self.publisher = AtomicPublisher(self.layout, logger=self.logger)
        self.handles = BufferHandles(self.layout.buffers, logger=self.logger)
        self._pattern = compile_pattern(self.options.file_name_pattern)
        self._state = ChangeState()
        self._last_manifest: pl.DataFrame | None = None
        self._lock = threading.RLock()

        self.logger.debug(
            "bundler.init output_dir=%s output_file=%s main_link=%s",
            self.layout.output_dir,
            self.layout.output_file,
            self.layout.main_link,
        )

    @classmethod
    def from_settings(cls, settings: AppSettings, logger: logging.Logger | None = None) -> "CssBundler":
        return cls(
            settings.paths.output_file,
            settings.paths.output_dir,
            options=settings.bundle,
            logger=logger,
        )

    @property
    def state(self) -> ChangeState:
        return self._state

    def refresh(self) -> RefreshResult:
        """Rebuild and publish the merged stylesheet if any fragment changed."""

        with self._lock:
            return self._guarded("refresh", self._refresh)

    def clear(self) -> RefreshResult:
        """Publish an empty stylesheet and forget the remembered fragment state."""

        with self._lock:
            return self._guarded("clear", self._clear)

    def release_resources(self) -> None:
        """Close the held buffer handles; safe to call more than once."""

        with self._lock:
            self.handles.release()

    close = release_resources

    def install_exit_hooks(self) -> Callable[[], None]:
        """Release handles at interpreter exit and on termination signals."""

        return install_exit_hooks(self.release_resources, logger=self.logger)

    def __enter__(self) -> "CssBundler":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.release_resources()

    def _guarded(self, operation: str, action: Callable[[], RefreshResult]) -> RefreshResult:
        try:
            return action()
        except PublicationInconsistentError as exc:
            self.logger.critical(
                "%s.inconsistent main_link=%s error=%s", operation, self.layout.main_link, exc, exc_info=True
            )
            return RefreshResult(status="inconsistent", error=str(exc))
        except (BundleError, OSError) as exc:
            self.logger.exception("%s.failed output_dir=%s error=%s", operation, self.layout.output_dir, exc)
            return RefreshResult(status="failed", error=str(exc))

    def _ensure_ready(self) -> None:
        try:
            self.handles.acquire()
            self.publisher.setup()
        except SetupError:
            self.handles.release()
            raise
        except OSError as exc:
            self.handles.release()
            raise SetupError(f"Cannot open buffers for {self.layout.main_link}: {exc}") from exc

    def _refresh(self) -> RefreshResult:
        self.logger.info("refresh.start output_dir=%s", self.layout.output_dir)
        self._ensure_ready()

        files = scan_fragments(
            self.layout.output_dir,
            self._pattern,
            exclude_paths=self.layout.scan_excludes,
            ignore_dir_names=self.options.ignore_dir_names,
            logger=self.logger,
        )
        if not files:
            active = self.publisher.active_buffer()
            self.logger.info(
                "refresh.no_fragments preserving_existing=%s",
                active is not None and active.is_file() and active.stat().st_size > 0,
            )
            return RefreshResult(status="preserved", fingerprint=self._state.fingerprint)

        digests = file_digests(files, batch_size=self.options.batch_size)
        fingerprint = combine_digests(digests)
        if not has_changed(files, fingerprint, self._state.files, self._state.fingerprint):
            self.logger.info("refresh.unchanged fragments=%s", len(files))
            return RefreshResult(status="unchanged", fragment_count=len(files), fingerprint=fingerprint)

        content = merge_fragments(
            files,
            deduplicate=self.options.deduplicate,
            batch_size=self.options.batch_size,
            merger=self.merger,
            logger=self.logger,
        )
        manifest = self._manifest(files, digests) if self.options.verbose else None

        if not self.publisher.publish(content):
            self.logger.info("refresh.skipped reason=empty_content fragments=%s", len(files))
            return RefreshResult(status="skipped", fragment_count=len(files), fingerprint=fingerprint)

        self._state = ChangeState.from_publish(files, fingerprint)
        if manifest is not None:
            self._log_changes(manifest)
            self._last_manifest = manifest
        self.logger.info(
            "refresh.published fragments=%s chars=%s fingerprint=%s",
            len(files),
            len(content),
            fingerprint,
        )
        return RefreshResult(status="published", fragment_count=len(files), fingerprint=fingerprint)

    def _clear(self) -> RefreshResult:
        self._ensure_ready()
        self.publisher.publish("", force=True)
        self._state = ChangeState()
        self._last_manifest = None
        self.logger.info("clear.done main_link=%s", self.layout.main_link)
        return RefreshResult(status="cleared")

    def _manifest(self, files: Sequence[Path], digests: Sequence[str]) -> pl.DataFrame:
        return build_fragment_manifest(files, digests, root_dir=self.layout.output_dir, logger=self.logger)

    def _log_changes(self, manifest: pl.DataFrame) -> None:
        counts = status_counts(classify_fragment_manifest(manifest, self._last_manifest))
        self.logger.info(
            "refresh.fragments new=%s changed=%s unchanged=%s removed=%s",
            counts["NEW"],
            counts["CHANGED"],
            counts["UNCHANGED"],
            counts["REMOVED"],
        )
