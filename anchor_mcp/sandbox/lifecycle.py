import logging
from pathlib import Path
from typing import Awaitable, Callable, List

from .artifacts import ArtifactPair, ArtifactStore
from .base import CleanupWarning

logger = logging.getLogger("anchor_mcp.lifecycle")


class ArtifactScope:
    """
    Tracks every artifact written for one job and removes all of them on exit,
    whether the body returned normally, returned a failure, or raised.

    Usage:
        async with ArtifactScope(store) as scope:
            pair = scope.allocate("anchor-test")
            scope.write(pair.source_path, text)
            ...
    """

    def __init__(self, store: ArtifactStore):
        self.store = store
        self.warnings: List[CleanupWarning] = []
        self._paths = []

    def allocate(self, base_name: str, source_suffix: str = ".ts", output_suffix: str = ".js") -> ArtifactPair:
        return self.store.allocate(base_name, source_suffix, output_suffix)

    def write(self, path: Path, content: str) -> None:
        """Create ``path`` and own it. A path this job failed to create is never removed."""
        self.store.write(path, content)
        self._paths.append(path)

    async def __aenter__(self) -> "ArtifactScope":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> bool:
        self.cleanup()
        return False

    def cleanup(self) -> None:
        while self._paths:
            warning = self.store.remove(self._paths.pop())
            if warning is not None:
                self.warnings.append(warning)


async def with_artifacts(store: ArtifactStore, body: Callable[[ArtifactScope], Awaitable]):
    """Run ``body`` inside an ArtifactScope and attach cleanup warnings to its report."""
    async with ArtifactScope(store) as scope:
        report = await body(scope)
    if scope.warnings:
        logger.warning(f"{len(scope.warnings)} artifact(s) could not be removed")
        report.cleanup_warnings.extend(scope.warnings)
    return report
