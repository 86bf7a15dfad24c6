"""Static file copying for Plume.

Static files (stylesheets, images, downloads) are copied verbatim into the
output directory. The built-in theme's files are copied first and the
project's ``static/`` tree second, so a project file with the same relative
path replaces the theme's.

Key class:
- StaticCopier: Copies one or more static trees into the output directory.
"""

from __future__ import annotations

import logging
import shutil
from pathlib import Path

logger = logging.getLogger(__name__)


class StaticCopier:
    """Copies static files into the build output.

    Attributes:
        source_dirs: Static directories, lowest priority first.
        output_dir: Directory where files are written.
    """

    def __init__(self, source_dirs: list[Path], output_dir: Path):
        """Initialize the copier.

        Args:
            source_dirs: Directories to copy; later ones override earlier ones.
            output_dir: Directory where built files will be placed.
        """
        self.source_dirs = list(source_dirs)
        self.output_dir = output_dir

    def iter_files(self, source_dir: Path) -> list[Path]:
        """Return the files under a static directory, skipping dotfiles."""
        if not source_dir.is_dir():
            return []
        files = []
        for path in source_dir.rglob("*"):
            rel = path.relative_to(source_dir)
            if path.is_dir() or any(part.startswith(".") for part in rel.parts):
                continue
            files.append(path)
        return sorted(files)

    def run(self) -> list[Path]:
        """Copy every static file and return the written output paths."""
        written: dict[Path, None] = {}
        for source_dir in self.source_dirs:
            for path in self.iter_files(source_dir):
                dest = self.output_dir / path.relative_to(source_dir)
                if dest.is_dir():
                    logger.warning("Static file %s collides with directory %s", path, dest)
                    continue
                dest.parent.mkdir(parents=True, exist_ok=True)
                shutil.copyfile(path, dest)
                written[dest] = None
        logger.debug("Copied %d static files", len(written))
        return list(written)
