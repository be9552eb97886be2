from .artifacts import ArtifactPair, ArtifactStore
from .base import (
    ArtifactWriteError,
    CleanupWarning,
    CompiledUnit,
    CompileError,
    ExecutionOutcome,
    ExitStatus,
)
from .executor import ProcessExecutor
from .factory import Toolchain, create_toolchain
from .jobs import Cluster, Job, JobKind, JobState
from .pipeline import JobRunner
from .report import JobReport
from .synthesizer import synthesize

__all__ = [
    "ArtifactPair",
    "ArtifactStore",
    "ArtifactWriteError",
    "CleanupWarning",
    "CompiledUnit",
    "CompileError",
    "ExecutionOutcome",
    "ExitStatus",
    "ProcessExecutor",
    "Toolchain",
    "create_toolchain",
    "Cluster",
    "Job",
    "JobKind",
    "JobState",
    "JobRunner",
    "JobReport",
    "synthesize",
]
