"""Double-buffered publication behind a two-level symlink chain.

Readers open ``styles.css``, which links to ``.styles.shadow.css``, which
links to whichever buffer holds the live artifact. Publishing writes the
idle buffer completely, then re-points only the shadow link, so the main
link never changes and always resolves to a fully-written file.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import NoReturn
from uuid import uuid4

from css_bundle.errors import PublicationInconsistentError, PublishError, SetupError
from css_bundle.publish.layout import OutputLayout

LOGGER = logging.getLogger(__name__)


def _atomic_temp_path(target_path: Path) -> Path:
    """Create a unique temp path next to the target for atomic replacement."""

    return target_path.parent / f".{target_path.name}.{uuid4().hex}.tmp"


def _read_link_target(link: Path) -> Path:
    raw_target = Path(os.readlink(link))
    if not raw_target.is_absolute():
        raw_target = link.parent / raw_target
    return Path(os.path.abspath(raw_target))


class AtomicPublisher:
    """Owns every write to the buffers and links of one output target."""

    def __init__(self, layout: OutputLayout, logger: logging.Logger | None = None) -> None:
        self.layout = layout
        self.logger = logger or LOGGER

    def setup(self) -> None:
        """Create directories and buffers, repair stale links, and create missing links."""

        layout = self.layout
        try:
            for directory in sorted({layout.main_link.parent, layout.shadow_link.parent, layout.temp_file.parent}):
                directory.mkdir(parents=True, exist_ok=True)
            for buffer in layout.buffers:
                buffer.touch(exist_ok=True)

            self._repoint_foreign_shadow()
            self._remove_if_dangling(layout.main_link)

            if not os.path.lexists(layout.shadow_link):
                self.logger.debug("setup.create_shadow_link link=%s target=%s", layout.shadow_link, layout.backup_file)
                os.symlink(layout.backup_file, layout.shadow_link)
            if not os.path.lexists(layout.main_link):
                self.logger.debug("setup.create_main_link link=%s target=%s", layout.main_link, layout.shadow_link)
                os.symlink(layout.shadow_link, layout.main_link)
        except OSError as exc:
            raise SetupError(f"Cannot prepare output target {layout.main_link}: {exc}") from exc

    def _repoint_foreign_shadow(self) -> None:
        """Point a shadow link that resolves outside the two buffers back at the backup buffer."""

        shadow_link = self.layout.shadow_link
        if not shadow_link.is_symlink():
            return
        target = _read_link_target(shadow_link)
        if target in self.layout.buffers:
            return
        self.logger.warning(
            "setup.repoint_shadow_link link=%s foreign_target=%s target=%s",
            shadow_link,
            target,
            self.layout.backup_file,
        )
        self._point_shadow_at(self.layout.backup_file)

    def _remove_if_dangling(self, link: Path) -> None:
        if not link.is_symlink():
            return
        target = _read_link_target(link)
        if not target.exists():
            self.logger.warning("setup.remove_dangling_link link=%s target=%s", link, target)
            link.unlink()

    def active_buffer(self) -> Path | None:
        """Return the buffer the shadow link currently points at."""

        try:
            return _read_link_target(self.layout.shadow_link)
        except FileNotFoundError:
            return None

    def read_current(self) -> str:
        """Return the live artifact, or an empty string when nothing is published."""

        try:
            return self.layout.shadow_link.read_text(encoding="utf-8")
        except FileNotFoundError:
            return ""

    def publish(self, content: str, force: bool = False) -> bool:
        """Make ``content`` the live artifact.

        Returns False without touching disk when ``content`` is blank and
        ``force`` is not set, so a transient empty scan never truncates the
        last good artifact.
        """

        if not content.strip() and not force:
            self.logger.info("publish.skip_empty main_link=%s", self.layout.main_link)
            return False

        try:
            current_target = _read_link_target(self.layout.shadow_link)
        except FileNotFoundError:
            return self._publish_first(content)
        except OSError as exc:
            raise PublishError(f"Cannot read shadow link {self.layout.shadow_link}: {exc}") from exc

        write_target = self.layout.other_buffer(current_target)
        mirror_target = self.layout.other_buffer(write_target)
        if current_target not in self.layout.buffers:
            self.logger.warning(
                "publish.foreign_shadow_target shadow=%s target=%s", self.layout.shadow_link, current_target
            )
        self._write_buffer(write_target, content)

        try:
            self._point_shadow_at(write_target)
        except OSError as exc:
            self._rollback(current_target, exc)

        self.logger.debug("publish.switched shadow=%s target=%s", self.layout.shadow_link, write_target)
        self._write_buffer(mirror_target, content)
        return True

    def _publish_first(self, content: str) -> bool:
        layout = self.layout
        self.logger.info("publish.first shadow=%s target=%s", layout.shadow_link, layout.backup_file)
        self._write_buffer(layout.backup_file, content)
        try:
            os.symlink(layout.backup_file, layout.shadow_link)
            if not os.path.lexists(layout.main_link):
                os.symlink(layout.shadow_link, layout.main_link)
        except OSError as exc:
            raise PublishError(f"Cannot create links for {layout.main_link}: {exc}") from exc
        return True

    def _write_buffer(self, buffer: Path, content: str) -> None:
        """Write a buffer via temporary file then os.replace."""

        buffer.parent.mkdir(parents=True, exist_ok=True)
        temp_path = _atomic_temp_path(buffer)
        try:
            temp_path.write_text(content, encoding="utf-8")
            os.replace(temp_path, buffer)
        except OSError as exc:
            raise PublishError(f"Cannot write buffer {buffer}: {exc}") from exc
        finally:
            if temp_path.exists():
                temp_path.unlink()

    def _point_shadow_at(self, target: Path) -> None:
        """Re-point the shadow link in one rename."""

        shadow_link = self.layout.shadow_link
        temp_link = _atomic_temp_path(shadow_link)
        try:
            os.symlink(target, temp_link)
            os.replace(temp_link, shadow_link)
        finally:
            if os.path.lexists(temp_link):
                os.unlink(temp_link)

    def _rollback(self, previous_target: Path, error: OSError) -> NoReturn:
        shadow_link = self.layout.shadow_link
        try:
            if self.active_buffer() != previous_target:
                self._point_shadow_at(previous_target)
        except OSError as rollback_exc:
            self.logger.critical(
                "publish.rollback_failed shadow=%s previous_target=%s error=%s swap_error=%s",
                shadow_link,
                previous_target,
                rollback_exc,
                error,
            )
            raise PublicationInconsistentError(
                f"Shadow link {shadow_link} could not be restored to {previous_target}: {rollback_exc}"
            ) from rollback_exc

        self.logger.error("publish.rolled_back shadow=%s target=%s error=%s", shadow_link, previous_target, error)
        raise PublishError(f"Cannot switch shadow link {shadow_link}: {error}") from error
