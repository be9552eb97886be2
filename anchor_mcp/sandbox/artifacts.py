"""
Artifact Store.

Allocates collision-free file names inside a job's working directory, writes
them exclusively, and deletes them on a best-effort basis.
"""

import itertools
import logging
import re
import secrets
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Union

from .base import ArtifactWriteError, CleanupWarning

logger = logging.getLogger("anchor_mcp.artifacts")

_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9._-]+")
# Distinguishes allocations made within the same millisecond by this process.
_sequence = itertools.count()


def sanitize_base_name(base_name: str) -> str:
    """Reduce a caller supplied name to a single safe path component."""
    name = _UNSAFE_CHARS.sub("-", base_name or "").strip(".-")
    return name or "artifact"


@dataclass(frozen=True)
class ArtifactPair:
    source_path: Path
    output_path: Path

    @property
    def paths(self):
        return (self.source_path, self.output_path)


class ArtifactStore:
    """Filesystem access for one working directory."""

    def __init__(self, directory: Union[str, Path]):
        self.directory = Path(directory)

    def allocate(self, base_name: str, source_suffix: str = ".ts", output_suffix: str = ".js") -> ArtifactPair:
        stem = "{}-{}-{}-{}".format(
            sanitize_base_name(base_name),
            int(time.time() * 1000),
            next(_sequence),
            secrets.token_hex(3),
        )
        return ArtifactPair(
            source_path=self.directory / f"{stem}{source_suffix}",
            output_path=self.directory / f"{stem}{output_suffix}",
        )

    def write(self, path: Path, content: str) -> None:
        # "x" refuses to clobber a file another job already owns
        try:
            with open(path, "x", encoding="utf-8") as f:
                f.write(content)
        except OSError as e:
            raise ArtifactWriteError(f"Cannot write {path}: {e.strerror or e}", path=path) from e
        logger.debug(f"Wrote artifact {path} ({len(content)} chars)")

    def remove(self, path: Path) -> Optional[CleanupWarning]:
        """Delete ``path``. A missing file counts as deleted."""
        try:
            Path(path).unlink()
        except FileNotFoundError:
            return None
        except OSError as e:
            warning = CleanupWarning(path=Path(path), message=e.strerror or str(e))
            logger.warning(f"Failed to remove artifact {warning}")
            return warning
        logger.debug(f"Removed artifact {path}")
        return None
