"""Resolved on-disk locations for one merged stylesheet target."""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

MAIN_LINK_NAME = "styles.css"
SHADOW_LINK_NAME = ".styles.shadow.css"
TEMP_BUFFER_NAME = "styles.temp.css"
BACKUP_BUFFER_NAME = "styles.backup.css"


@dataclass(frozen=True, slots=True)
class OutputLayout:
    """Main link, shadow link, and the two alternating buffer files."""

    output_file: Path
    output_dir: Path
    main_link: Path
    shadow_link: Path
    temp_file: Path
    backup_file: Path

    @classmethod
    def for_target(cls, output_file: Path | str, output_dir: Path | str) -> "OutputLayout":
        """Derive the layout from an output file and output directory."""

        absolute_file = Path(os.path.abspath(output_file))
        absolute_dir = Path(os.path.abspath(output_dir))
        main_link = absolute_dir / MAIN_LINK_NAME
        return cls(
            output_file=absolute_file,
            output_dir=absolute_dir,
            main_link=main_link,
            shadow_link=main_link.parent / SHADOW_LINK_NAME,
            temp_file=absolute_file.parent / TEMP_BUFFER_NAME,
            backup_file=absolute_file.parent / BACKUP_BUFFER_NAME,
        )

    @property
    def buffers(self) -> tuple[Path, Path]:
        return (self.temp_file, self.backup_file)

    @property
    def scan_excludes(self) -> tuple[Path, ...]:
        """Paths the fragment scan must never treat as inputs."""

        return (self.output_file, self.temp_file, self.backup_file)

    def other_buffer(self, buffer: Path) -> Path:
        """Return the write target when ``buffer`` is live."""

        return self.temp_file if buffer == self.backup_file else self.backup_file
